"""
Path reconstruction module for pystmatch.

Turns the matched candidate sequence into explicit route geometry. Consecutive
matched candidates are joined pairwise:

1. Coincident candidates (closer than EPS_LENGTH) are merged into the first
   candidate's node, which records the last merged fix time as `time_end`;
   no degenerate way is emitted.
2. Candidates on the same road are joined by one way following the road
   geometry between them, including the shape points in between.
3. Anything else is stitched with the A* pathfinder: the partial geometry from
   the origin to the end of its connection, every interior connection in full,
   and the partial geometry from the start of the destination's connection to
   the destination.

Matched nodes carry the timestamp of their fix, stitched shape and junction
nodes carry the source map node id instead. When no road path exists between
two candidates, a UserWarning is issued and the route simply has a gap there.
"""

import warnings

import pandas as pd
import polars as pl

from pystmatch.matching.candidates import as_fixes
from pystmatch.matching.st_matching import STMatching
from pystmatch.reconstructing.route import Route
from pystmatch.reconstructing.uturn import filter_uturns
from pystmatch.utilities.geometry import (
    EPS_LENGTH,
    distance,
    distance_to_line,
    line_length,
    vertices_between,
)
from pystmatch.utilities.pathfinding import AstarPathfinder


class PathReconstructer:
    """
    Builds a Route from matched candidate points.

    Parameters
    ----------
    road_graph : RoadGraph
        Graph the candidates were matched on.
    pathfinder : AstarPathfinder, optional
        Pathfinder to reuse; a new one is created by default.
    eps : float, default=EPS_LENGTH
        Distance in meters under which two points are the same position.
    merge_ways : bool, default=True
        Join consecutive ways of the same source road into one way.
    """

    def __init__(self, road_graph, pathfinder=None, eps=EPS_LENGTH, merge_ways=True):
        self.road_graph = road_graph
        self.pathfinder = pathfinder if pathfinder is not None else AstarPathfinder(road_graph)
        self.eps = eps
        self.merge_ways = merge_ways

    def reconstruct(self, matched):
        """
        Reconstruct the route through the matched candidates.

        Parameters
        ----------
        matched : sequence of CandidatePoint
            Matched candidates in trace order.

        Returns
        -------
        Route

        Raises
        ------
        PathConsistencyError
            If a candidate cannot be located on the road geometry it claims.
        """
        route = Route()
        matched = list(matched)
        if not matched:
            return route

        previous = matched[0]
        previous_node = route.add_node(*previous.point, time=previous.time)
        for candidate in matched[1:]:
            if distance(previous.point, candidate.point) < self.eps:
                # Keep the first node; geometry continues from the later candidate's road
                if candidate.time is not None:
                    previous_node.time_end = candidate.time
                previous = candidate
                continue

            node = route.add_node(*candidate.point, time=candidate.time)
            road = self._common_road(previous, candidate)
            if road is not None:
                self._add_along_road(route, road, previous, previous_node, candidate, node)
            else:
                self._add_stitched(route, previous, previous_node, candidate, node)
            previous, previous_node = candidate, node

        if self.merge_ways:
            route.merge_consecutive_ways()
        return route

    def _common_road(self, a, b):
        if a.road is b.road:
            return a.road
        if distance_to_line(b.point, a.road.line) < self.eps:
            return a.road
        if distance_to_line(a.point, b.road.line) < self.eps:
            return b.road
        return None

    def _add_along_road(self, route, road, a, a_node, b, b_node):
        interior = [route.add_node(*road.coords[k], node_id=road.node_ids[k])
                    for k in vertices_between(a.point, b.point, road.coords, self.eps)]
        route.add_way(road.way_id, [a_node] + interior + [b_node])

    def _add_stitched(self, route, a, a_node, b, b_node):
        segments, _ = self.pathfinder.find_path(a, b)
        if not segments:
            warnings.warn(
                f"No road path between fix {a.fix.index} and fix {b.fix.index}; "
                f"the reconstructed route has a gap there",
                UserWarning,
            )
            return

        # (way id, [(point, source node id), ...]) per traversed connection
        pieces = []
        for segment in segments:
            geometry = segment.connection.geometry
            points = [(segment.start, segment.start_node_id)]
            points += [(geometry.coords[k], geometry.node_ids[k])
                       for k in vertices_between(segment.start, segment.end, geometry.coords, self.eps)]
            points.append((segment.end, segment.end_node_id))
            if line_length([p for p, _ in points]) < self.eps:
                continue
            pieces.append((geometry.way_id, points))

        if not pieces:
            route.add_way(b.way_id, [a_node, b_node])
            return

        current = a_node
        for i, (way_id, points) in enumerate(pieces):
            interior = [route.add_node(*p, node_id=node_id) for p, node_id in points[1:-1]]
            if i == len(pieces) - 1:
                end = b_node
            else:
                end_point, end_node_id = points[-1]
                end = route.add_node(*end_point, node_id=end_node_id)
            route.add_way(way_id, [current] + interior + [end])
            current = end


def reconstruct_route(trace: pd.DataFrame | pl.DataFrame | list,
                      road_graph,
                      max_uturn_length: float = None,
                      lat_col: str = 'lat',
                      lon_col: str = 'lon',
                      time_col: str = 'time',
                      cancel_event=None,
                      **matching_kwargs) -> Route:
    """
    Match a trace and reconstruct its route in one call.

    Runs ST-matching, path reconstruction and, when `max_uturn_length` is
    given, the u-turn filter.

    Parameters
    ----------
    trace : pd.DataFrame, pl.DataFrame or sequence of GPSFix
        Time-ordered GPS trace.
    road_graph : RoadGraph
        Built road graph.
    max_uturn_length : float, optional
        Longest back-and-forth excursion (meters) treated as matching noise.
        None disables u-turn filtering.
    lat_col, lon_col, time_col : str
        Column names used when the trace is a DataFrame.
    cancel_event : threading.Event, optional
        Cooperative cancellation of the matching stage.
    **matching_kwargs
        Forwarded to STMatching (max_candidates, sigma, search_margin,
        on_empty_layer, n_jobs, verbose).

    Returns
    -------
    Route

    Examples
    --------
    >>> route = reconstruct_route(df, road_graph, max_uturn_length=100)
    >>> route.to_dataframe().head()
    """
    fixes = as_fixes(trace, lat_col=lat_col, lon_col=lon_col, time_col=time_col)
    matcher = STMatching(road_graph, **matching_kwargs)
    matched = matcher.match(fixes, cancel_event=cancel_event)

    route = PathReconstructer(road_graph, pathfinder=matcher.pathfinder).reconstruct(matched)
    if max_uturn_length is not None:
        filter_uturns(route, max_uturn_length)
    return route

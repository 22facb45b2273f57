"""
A* pathfinding module for pystmatch.

This module finds the shortest road path between two candidate points. Unlike a
plain node-to-node search, both ends of the path usually lie somewhere inside a
road geometry, so the search:

1. Seeds the open list with the end node of every connection that uses the
   origin's road, at the cost of the partial distance from the origin point to
   that node along the road geometry.
2. Expands nodes over the directed igraph graph using connection lengths as
   edge costs and the geodesic distance to the closest destination entry node
   as the heuristic. No road path is shorter than the geodesic distance, so the
   heuristic is admissible (and consistent), which keeps the result optimal.
3. Finishes through a virtual goal reached from the start node of every
   connection that uses the destination's road, adding the partial distance
   from that node to the destination point.

An unreachable destination is a normal outcome and is reported as an empty
path with infinite length.
"""

import heapq
import itertools
import math
from dataclasses import dataclass

from pystmatch.utilities.geometry import distance, path_length


@dataclass(frozen=True)
class PathSegment:
    """
    Part of a found path that runs along a single connection.

    The first and last segments of a path are usually partial: they start at
    the origin point or end at the destination point. `start_node_id` and
    `end_node_id` hold the source map node ids of ends that are road nodes and
    None for ends that are candidate points.
    """
    connection: object
    start: tuple
    end: tuple
    start_node_id: object = None
    end_node_id: object = None


class AstarPathfinder:
    """
    Shortest-path search between candidate points over a RoadGraph.

    Parameters
    ----------
    road_graph : RoadGraph
        Built road graph. It is only read, so one pathfinder can serve
        concurrent searches. The graph is read at search time, so the
        pathfinder stays valid when more ways are added with `build()`.

    Examples
    --------
    >>> pathfinder = AstarPathfinder(road_graph)
    >>> segments, length = pathfinder.find_path(candidate_a, candidate_b)
    >>> if segments:
    ...     print(f"{len(segments)} connections, {length:.1f} m")
    """

    def __init__(self, road_graph):
        self.road_graph = road_graph

    def find_path(self, origin, destination):
        """
        Find the shortest road path from origin to destination.

        Parameters
        ----------
        origin, destination : CandidatePoint
            Points lying on road geometries (attributes `point` and `road`).

        Returns
        -------
        segments : list of PathSegment
            Traversed connections in travel order, empty if unreachable.
        length : float
            Total path length in meters, math.inf if unreachable.
        """
        road_graph = self.road_graph
        graph = road_graph.graph
        origin_road = origin.road
        destination_road = destination.road

        # Destination entry vertices -> (connection, remaining distance to the point)
        targets = {}
        for connection in destination_road.connections:
            tail = path_length(connection.from_node.point, destination.point, destination_road.coords)
            vertex = connection.from_node.index
            if vertex not in targets or tail < targets[vertex][1]:
                targets[vertex] = (connection, tail)
        if not targets:
            return [], math.inf

        target_points = [road_graph.vertex(v).point for v in targets]
        heuristics = {}

        def heuristic(vertex):
            h = heuristics.get(vertex)
            if h is None:
                point = road_graph.vertex(vertex).point
                h = min(distance(point, t) for t in target_points)
                heuristics[vertex] = h
            return h

        counter = itertools.count()
        open_list = []
        g_score = {}
        came_from = {}

        for connection in origin_road.connections:
            cost = path_length(origin.point, connection.to_node.point, origin_road.coords)
            vertex = connection.to_node.index
            if cost < g_score.get(vertex, math.inf):
                g_score[vertex] = cost
                came_from[vertex] = (None, connection)
                heapq.heappush(open_list, (cost + heuristic(vertex), next(counter), vertex, None))

        closed = set()
        while open_list:
            f, _, vertex, goal_connection = heapq.heappop(open_list)

            # Virtual goal entry: all remaining entries cost at least f
            if goal_connection is not None:
                return self._build_path(origin, destination, vertex, goal_connection, came_from), f

            if vertex in closed:
                continue
            closed.add(vertex)
            g = g_score[vertex]

            if vertex in targets:
                connection, tail = targets[vertex]
                heapq.heappush(open_list, (g + tail, next(counter), vertex, connection))

            for edge in graph.incident(vertex, mode="out"):
                connection = road_graph.connection(edge)
                neighbour = connection.to_node.index
                if neighbour in closed:
                    continue
                tentative = g + connection.length
                if tentative < g_score.get(neighbour, math.inf):
                    g_score[neighbour] = tentative
                    came_from[neighbour] = (vertex, connection)
                    heapq.heappush(open_list,
                                   (tentative + heuristic(neighbour), next(counter), neighbour, None))

        return [], math.inf

    @staticmethod
    def _build_path(origin, destination, entry_vertex, goal_connection, came_from):
        connections = []
        vertex = entry_vertex
        while True:
            previous, connection = came_from[vertex]
            connections.append(connection)
            if previous is None:
                break
            vertex = previous
        connections.reverse()

        first = connections[0]
        segments = [PathSegment(first, origin.point, first.to_node.point,
                                end_node_id=first.to_node.node_id)]
        for connection in connections[1:]:
            segments.append(PathSegment(connection, connection.from_node.point, connection.to_node.point,
                                        start_node_id=connection.from_node.node_id,
                                        end_node_id=connection.to_node.node_id))
        segments.append(PathSegment(goal_connection, goal_connection.from_node.point, destination.point,
                                    start_node_id=goal_connection.from_node.node_id))
        return segments

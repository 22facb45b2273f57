"""
ST-matching module for pystmatch.

`STMatching` ties the matching stages together for one GPS trace:

1. Candidate generation: every fix is projected onto the nearby roads of the
   road graph (at most 5 candidates per fix).
2. Candidates graph: candidates are layered per fix and adjacent layers are
   fully connected with transmission probabilities (A* road distances).
3. Viterbi decoding: the highest scoring candidate sequence is selected.

Fixes without any road nearby produce no layer. By default they are skipped
(their neighbours become adjacent layers) and reported with a UserWarning, so
the matched output may hold fewer points than the input trace. Callers that
need one matched point per fix can ask for an EmptyLayerError instead.

`st_match` is the DataFrame-level entry point, following the
DataFrame-in/DataFrame-out convention of the package.
"""

import warnings

import pandas as pd
import polars as pl

from pystmatch.exceptions import EmptyLayerError
from pystmatch.matching.candidate_graph import CandidatesGraph
from pystmatch.matching.candidates import (
    MAX_CANDIDATES_COUNT,
    OBSERVATION_SIGMA,
    SEARCH_MARGIN,
    CandidateGenerator,
    as_fixes,
    matched_to_dataframe,
)
from pystmatch.matching.viterbi import viterbi
from pystmatch.utilities.parallel import check_cancelled, map_units
from pystmatch.utilities.pathfinding import AstarPathfinder

_EMPTY_LAYER_POLICIES = ("skip", "raise")


class STMatching:
    """
    Spatio-temporal map matcher over a RoadGraph.

    Parameters
    ----------
    road_graph : RoadGraph
        Built road graph, shared read-only between matching runs.
    max_candidates : int, default=MAX_CANDIDATES_COUNT
        Maximal number of candidates per fix.
    sigma : float, default=OBSERVATION_SIGMA
        GPS error standard deviation in meters.
    search_margin : tuple of float, default=SEARCH_MARGIN
        (latitude, longitude) candidate search margins in degrees.
    on_empty_layer : {'skip', 'raise'}, default='skip'
        What to do with a fix that has no candidate: skip it with a warning,
        or raise EmptyLayerError.
    n_jobs : int, default=1
        Worker threads for candidate generation and layer connection.
    verbose : bool, default=False
        Show tqdm progress bars.

    Examples
    --------
    >>> matcher = STMatching(road_graph)
    >>> matched = matcher.match(fixes)
    >>> [c.way_id for c in matched]
    """

    def __init__(self, road_graph, max_candidates=MAX_CANDIDATES_COUNT, sigma=OBSERVATION_SIGMA,
                 search_margin=SEARCH_MARGIN, on_empty_layer="skip", n_jobs=1, verbose=False):
        if on_empty_layer not in _EMPTY_LAYER_POLICIES:
            raise ValueError(f"on_empty_layer must be one of {_EMPTY_LAYER_POLICIES}, got {on_empty_layer!r}")
        self.road_graph = road_graph
        self.generator = CandidateGenerator(road_graph, max_candidates=max_candidates,
                                            sigma=sigma, search_margin=search_margin)
        self.pathfinder = AstarPathfinder(road_graph)
        self.on_empty_layer = on_empty_layer
        self.n_jobs = n_jobs
        self.verbose = verbose

    def build_candidates_graph(self, fixes, cancel_event=None):
        """
        Generate candidates for every fix and build the connected candidates graph.

        Returns
        -------
        graph : CandidatesGraph
        omitted : list of int
            Indices of fixes that produced no candidate.
        """
        fixes = list(fixes)
        layers = map_units(self.generator.candidates_for, fixes, n_jobs=self.n_jobs,
                           cancel_event=cancel_event, desc="Generating candidates",
                           verbose=self.verbose)

        graph = CandidatesGraph()
        omitted = []
        for fix, candidates in zip(fixes, layers):
            if not candidates:
                if self.on_empty_layer == "raise":
                    raise EmptyLayerError(fix.index)
                omitted.append(fix.index)
                continue
            graph.add_layer(fix, candidates)

        check_cancelled(cancel_event)
        graph.connect_layers(self.pathfinder, n_jobs=self.n_jobs, cancel_event=cancel_event,
                             verbose=self.verbose)
        return graph, omitted

    def match(self, fixes, cancel_event=None):
        """
        Match a trace to the road graph.

        Parameters
        ----------
        fixes : sequence of GPSFix
            Time-ordered trace.
        cancel_event : threading.Event, optional
            Cooperative cancellation, checked between per-fix work units.

        Returns
        -------
        list of CandidatePoint
            One matched candidate per fix that had candidates, in trace order.

        Raises
        ------
        EmptyLayerError
            If a fix has no candidate and on_empty_layer='raise'.
        MatchingCancelled
            If cancel_event gets set during matching.
        """
        graph, omitted = self.build_candidates_graph(fixes, cancel_event=cancel_event)
        if omitted:
            warnings.warn(
                f"{len(omitted)} GPS fix(es) have no road candidate and were omitted from the "
                f"matched output: {omitted}",
                UserWarning,
            )
        if not graph.layers:
            return []

        return viterbi(graph).path()


def st_match(df: pd.DataFrame | pl.DataFrame,
             road_graph,
             lat_col: str = 'lat',
             lon_col: str = 'lon',
             time_col: str = 'time',
             max_candidates: int = MAX_CANDIDATES_COUNT,
             sigma: float = OBSERVATION_SIGMA,
             search_margin: tuple = SEARCH_MARGIN,
             on_empty_layer: str = 'skip',
             n_jobs: int = 1,
             verbose: bool = False) -> pd.DataFrame | pl.DataFrame:
    """
    Map-match a GPS trajectory DataFrame with ST-matching.

    Each fix is snapped to the road position chosen by the Viterbi decoder,
    taking into account both the distance of the fix to the road (observation
    probability) and how direct the road path between consecutive positions
    is (transmission probability).

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Time-ordered GPS trajectory.
    road_graph : RoadGraph
        Road graph built with RoadGraph.from_road_ways().
    lat_col : str, default='lat'
        Name of the latitude column (WGS84 decimal degrees).
    lon_col : str, default='lon'
        Name of the longitude column (WGS84 decimal degrees).
    time_col : str, default='time'
        Name of the timestamp column. Optional in the input.
    max_candidates : int, default=5
        Maximal number of road candidates per fix.
    sigma : float, default=20.0
        GPS error standard deviation in meters.
    search_margin : tuple of float, default=(0.0007, 0.0011)
        (latitude, longitude) candidate search margins in degrees.
    on_empty_layer : {'skip', 'raise'}, default='skip'
        Policy for fixes without road candidates.
    n_jobs : int, default=1
        Worker threads for candidate generation and transmission probabilities.
    verbose : bool, default=False
        Show progress bars.

    Returns
    -------
    pd.DataFrame or pl.DataFrame
        Same type as the input, with columns 'lat', 'lon', 'way_id', 'time',
        'fix_index' and 'observation_probability'. Skipped fixes have no row.

    Examples
    --------
    >>> matched_df = st_match(df, road_graph)
    >>> matched_df[['lat', 'lon', 'way_id']].head()
    """
    input_is_polars = isinstance(df, pl.DataFrame)
    fixes = as_fixes(df, lat_col=lat_col, lon_col=lon_col, time_col=time_col)

    matcher = STMatching(road_graph, max_candidates=max_candidates, sigma=sigma,
                         search_margin=search_margin, on_empty_layer=on_empty_layer,
                         n_jobs=n_jobs, verbose=verbose)
    matched = matcher.match(fixes)
    return matched_to_dataframe(matched, as_polars=input_is_polars)

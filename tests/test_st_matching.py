from __future__ import annotations

import threading

import pandas as pd
import polars as pl
import pytest

from helpers import at
from pystmatch.exceptions import EmptyLayerError, MatchingCancelled
from pystmatch.matching.candidates import GPSFix
from pystmatch.matching.st_matching import STMatching, st_match
from pystmatch.reconstructing.path_reconstruction import PathReconstructer, reconstruct_route
from pystmatch.reconstructing.uturn import filter_uturns
from pystmatch.utilities.road_graph import RoadGraph


def _trace(points: list[tuple[float, float]]) -> list[GPSFix]:
    return [GPSFix(lat=p[1], lon=p[0], time=f"t{i}", index=i) for i, p in enumerate(points)]


def test_three_fixes_on_one_straight_road(straight_graph: RoadGraph) -> None:
    fixes = _trace([at(30), at(140), at(270)])

    matched = STMatching(straight_graph).match(fixes)
    route = PathReconstructer(straight_graph).reconstruct(matched)
    removed = filter_uturns(route, max_uturn_length=100)

    assert len(matched) == 3
    assert [c.fix.index for c in matched] == [0, 1, 2]
    assert all(c.way_id == 100 for c in matched)
    assert len(route.ways) == 1
    assert removed == 0
    assert route.ways[0].tags == {'way-id': 100, 'order': 1}


def test_matching_prefers_the_road_the_trace_follows(triangle_graph: RoadGraph) -> None:
    # Fixes 20 m south of the direct road A-B
    fixes = _trace([at(-50, -20), at(50, -20), at(150, -20), at(250, -20)])

    matched = STMatching(triangle_graph).match(fixes)

    assert [c.way_id for c in matched] == [5, 1, 1, 6]


def test_fix_without_candidates_is_skipped_with_warning(straight_graph: RoadGraph) -> None:
    fixes = _trace([at(30), at(100, 2000), at(270)])

    with pytest.warns(UserWarning, match=r"\[1\]"):
        matched = STMatching(straight_graph).match(fixes)

    assert [c.fix.index for c in matched] == [0, 2]


def test_fix_without_candidates_can_raise(straight_graph: RoadGraph) -> None:
    fixes = _trace([at(30), at(100, 2000), at(270)])

    with pytest.raises(EmptyLayerError) as excinfo:
        STMatching(straight_graph, on_empty_layer="raise").match(fixes)

    assert excinfo.value.fix_index == 1


def test_invalid_empty_layer_policy(straight_graph: RoadGraph) -> None:
    with pytest.raises(ValueError):
        STMatching(straight_graph, on_empty_layer="bridge")


def test_trace_far_from_roads_matches_nothing(straight_graph: RoadGraph) -> None:
    with pytest.warns(UserWarning):
        assert STMatching(straight_graph).match(_trace([at(0, 3000)])) == []


def test_matching_can_be_cancelled(straight_graph: RoadGraph) -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(MatchingCancelled):
        STMatching(straight_graph).match(_trace([at(30), at(140)]), cancel_event=cancel)


def test_threaded_matching_matches_sequential(triangle_graph: RoadGraph) -> None:
    fixes = _trace([at(-50, -20), at(50, -20), at(150, -20), at(250, -20)])

    sequential = STMatching(triangle_graph).match(fixes)
    threaded = STMatching(triangle_graph, n_jobs=4).match(fixes)

    assert [c.point for c in threaded] == [c.point for c in sequential]


@pytest.mark.parametrize("frame", [pd.DataFrame, pl.DataFrame])
def test_st_match_returns_the_input_frame_type(straight_graph: RoadGraph, frame) -> None:
    points = [at(30, 3), at(140, -2), at(270, 1)]
    df = frame({"lat": [p[1] for p in points], "lon": [p[0] for p in points], "time": [1, 2, 3]})

    matched_df = st_match(df, straight_graph)

    assert isinstance(matched_df, frame)
    assert list(matched_df.columns) == ["lat", "lon", "way_id", "time", "fix_index",
                                        "observation_probability"]
    assert list(matched_df["way_id"]) == [100, 100, 100]
    assert list(matched_df["time"]) == [1, 2, 3]


def test_reconstruct_route_runs_the_whole_pipeline(triangle_graph: RoadGraph) -> None:
    df = pd.DataFrame({
        "lat": [at(-50, -20)[1], at(250, -20)[1]],
        "lon": [at(-50, -20)[0], at(250, -20)[0]],
        "time": ["t0", "t1"],
    })

    route = reconstruct_route(df, triangle_graph, max_uturn_length=50)

    assert [w.way_id for w in route.ways] == [5, 1, 6]
    assert [w.order for w in route.ways] == [1, 2, 3]
    assert [n.time for n in route.timed_nodes()] == ["t0", "t1"]

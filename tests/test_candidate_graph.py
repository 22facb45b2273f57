from __future__ import annotations

import threading

import pytest

from helpers import at, candidate_on
from pystmatch.exceptions import MatchingCancelled
from pystmatch.matching.candidate_graph import (
    CandidatesGraph,
    shortest_path_length,
    transmission_probability,
)
from pystmatch.matching.candidates import CandidateGenerator, GPSFix
from pystmatch.utilities.geometry import distance
from pystmatch.utilities.pathfinding import AstarPathfinder
from pystmatch.utilities.road_graph import RoadGraph


def test_coincident_candidates_have_transmission_one(straight_graph: RoadGraph) -> None:
    pathfinder = AstarPathfinder(straight_graph)
    a = candidate_on(straight_graph, 100, at(75))
    b = candidate_on(straight_graph, 100, at(75), index=1)

    assert shortest_path_length(a, b, pathfinder) == 0.0
    assert transmission_probability(a, b, pathfinder) == 1.0


def test_transmission_on_a_straight_road_is_close_to_one(straight_graph: RoadGraph) -> None:
    pathfinder = AstarPathfinder(straight_graph)
    a = candidate_on(straight_graph, 100, at(20))
    b = candidate_on(straight_graph, 100, at(280), index=1)

    assert transmission_probability(a, b, pathfinder) == pytest.approx(1.0, rel=1e-6)


def test_transmission_penalises_detours(triangle_graph: RoadGraph) -> None:
    pathfinder = AstarPathfinder(triangle_graph)
    a = candidate_on(triangle_graph, 6, at(250))
    b = candidate_on(triangle_graph, 5, at(-50))

    _, length = pathfinder.find_path(a, b)
    probability = transmission_probability(a, b, pathfinder)

    assert probability == pytest.approx(distance(a.point, b.point) / length)
    assert probability < 0.7


def test_unreachable_candidates_have_transmission_zero(triangle_graph: RoadGraph) -> None:
    pathfinder = AstarPathfinder(triangle_graph)
    a = candidate_on(triangle_graph, 5, at(-50))
    b = candidate_on(triangle_graph, 4, at(100, 1000))

    assert transmission_probability(a, b, pathfinder) == 0.0


def _layered_graph(parallel_graph: RoadGraph, east_offsets: list[float]) -> CandidatesGraph:
    generator = CandidateGenerator(parallel_graph, max_candidates=3)
    graph = CandidatesGraph()
    for i, east in enumerate(east_offsets):
        fix = GPSFix(lat=at(east, 6)[1], lon=at(east, 6)[0], index=i)
        graph.add_layer(fix, generator.candidates_for(fix))
    return graph


def test_connect_layers_links_only_adjacent_layers(parallel_graph: RoadGraph) -> None:
    graph = _layered_graph(parallel_graph, [-60, -20, 20, 60])

    graph.connect_layers(AstarPathfinder(parallel_graph))

    assert len(graph.connections) == 3 * 3 * 3
    for edge in graph.connections:
        source = graph.candidates[edge.source]
        target = graph.candidates[edge.target]
        assert target.layer == source.layer + 1
        assert edge in graph.incoming[edge.target]
    assert all(graph.incoming[c.index] == [] for c in graph.layers[0].candidates)


def test_add_layer_assigns_arena_indices(parallel_graph: RoadGraph) -> None:
    graph = _layered_graph(parallel_graph, [-60, 60])

    assert [c.index for c in graph.candidates] == list(range(6))
    assert [c.layer for c in graph.candidates] == [0, 0, 0, 1, 1, 1]
    with pytest.raises(ValueError):
        graph.add_layer(GPSFix(50.0, 14.0, index=9), [])

    graph.connect_layers(AstarPathfinder(parallel_graph))
    with pytest.raises(RuntimeError):
        graph.add_layer(GPSFix(50.0, 14.0, index=9), list(graph.layers[0].candidates))


def test_threaded_connection_matches_sequential(parallel_graph: RoadGraph) -> None:
    pathfinder = AstarPathfinder(parallel_graph)
    sequential = _layered_graph(parallel_graph, [-60, -20, 20, 60]).connect_layers(pathfinder)
    threaded = _layered_graph(parallel_graph, [-60, -20, 20, 60]).connect_layers(pathfinder, n_jobs=3)

    assert threaded.connections == sequential.connections


def test_connect_layers_can_be_cancelled(parallel_graph: RoadGraph) -> None:
    graph = _layered_graph(parallel_graph, [-60, -20, 20])
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(MatchingCancelled):
        graph.connect_layers(AstarPathfinder(parallel_graph), cancel_event=cancel)

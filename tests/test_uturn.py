from __future__ import annotations

import pytest

from helpers import at
from pystmatch.reconstructing.route import Route
from pystmatch.reconstructing.uturn import filter_uturns


def _route(points: dict[str, tuple[float, float]],
           ways: list[tuple[int, list[str]]]) -> tuple[Route, dict]:
    """Route whose ways reference named points; a name used twice is one shared node."""
    route = Route()
    nodes = {name: route.add_node(*point) for name, point in points.items()}
    for way_id, names in ways:
        route.add_way(way_id, [nodes[name] for name in names])
    return route, nodes


def _snapshot(route: Route) -> list[tuple[int, int, int, list[int]]]:
    return [(w.id, w.way_id, w.order, [n.id for n in w.nodes]) for w in route.ways]


def _names(route: Route, nodes: dict) -> list[list[str]]:
    by_id = {node.id: name for name, node in nodes.items()}
    return [[by_id[n.id] for n in w.nodes] for w in route.ways]


def test_short_spur_is_removed_and_ways_spliced() -> None:
    points = {"A": at(-60), "P": at(0), "S": at(0, 40), "P2": at(0), "B": at(60)}
    route, nodes = _route(points, [(1, ["A", "P"]), (2, ["P", "S", "P2"]), (1, ["P2", "B"])])

    removed = filter_uturns(route, max_uturn_length=100)

    assert removed == 1
    assert len(route.ways) == 1
    assert route.ways[0].way_id == 1
    assert route.ways[0].order == 1
    assert [n.point for n in route.ways[0].nodes] == [points["A"], points["P"], points["B"]]
    assert len(route.nodes) == 3


def test_long_spur_is_preserved() -> None:
    points = {"A": at(-60), "P": at(0), "P2": at(0), "B": at(60)}
    points.update({f"s{d}": at(0, d) for d in range(50, 501, 50)})
    points.update({f"r{d}": at(0, d) for d in range(50, 451, 50)})
    outward = ["P"] + [f"s{d}" for d in range(50, 501, 50)]
    back = ["s500"] + [f"r{d}" for d in range(450, 49, -50)] + ["P2"]
    route, nodes = _route(points, [(1, ["A", "P"]), (2, outward), (2, back), (1, ["P2", "B"])])
    before = _snapshot(route)

    removed = filter_uturns(route, max_uturn_length=100)

    assert removed == 0
    assert _snapshot(route) == before
    assert len(route.nodes) == len(points)


def test_overshoot_along_the_same_road_is_removed() -> None:
    points = {"A": at(0), "M": at(50), "O": at(70), "N": at(60), "E": at(100)}
    route, nodes = _route(points, [(1, ["A", "M", "O", "N", "E"])])

    removed = filter_uturns(route, max_uturn_length=100)

    assert removed == 1
    assert _names(route, nodes) == [["A", "M", "N", "E"]]
    assert len(route.nodes) == 4


def test_overshoot_on_a_long_segment_is_removed() -> None:
    points = {"A": at(0), "O": at(300), "N": at(290), "E": at(400)}
    route, nodes = _route(points, [(1, ["A", "O"]), (1, ["O", "N"]), (1, ["N", "E"])])

    removed = filter_uturns(route, max_uturn_length=100)

    assert removed == 1
    assert _names(route, nodes) == [["A", "N", "E"]]


def test_reversal_at_the_end_of_the_route_is_preserved() -> None:
    points = {"A": at(0), "M": at(50), "O": at(70), "N": at(60)}
    route, nodes = _route(points, [(1, ["A", "M", "O"]), (1, ["O", "N"])])
    before = _snapshot(route)

    assert filter_uturns(route, max_uturn_length=100) == 0
    assert _snapshot(route) == before


def test_return_to_the_start_keeps_the_first_node() -> None:
    points = {"A": at(0), "P": at(60), "A2": at(0), "W": at(0, 80)}
    route, nodes = _route(points, [(1, ["A", "P", "A2"]), (2, ["A2", "W"])])
    first = route.ways[0].nodes[0]

    removed = filter_uturns(route, max_uturn_length=100)

    assert removed == 1
    assert route.ways[0].nodes[0] is first
    assert _names(route, nodes) == [["A", "W"]]
    assert route.ways[0].way_id == 2


def test_turnaround_running_back_past_the_window_is_preserved() -> None:
    # 300 m out, then 400 m back along the same road past the starting point
    points = {"A": at(0), "B": at(200), "O": at(300), "R": at(250), "Z": at(-100)}
    route, nodes = _route(points, [(1, ["A", "B", "O"]), (1, ["O", "R", "Z"])])
    before = _snapshot(route)

    assert filter_uturns(route, max_uturn_length=100) == 0
    assert _snapshot(route) == before
    assert _names(route, nodes) == [["A", "B", "O"], ["O", "R", "Z"]]


def test_turnaround_returning_onto_earlier_route_is_preserved() -> None:
    out = {f"o{d}": at(d) for d in range(0, 301, 50)}
    back = {f"b{d}": at(d) for d in range(250, -101, -50)}
    route, nodes = _route({**out, **back}, [(1, list(out)), (1, ["o300"] + list(back))])
    before = _snapshot(route)

    assert filter_uturns(route, max_uturn_length=100) == 0
    assert _snapshot(route) == before
    assert len(route.nodes) == len(out) + len(back)


def test_route_without_uturns_is_untouched() -> None:
    points = {"A": at(0), "B": at(100), "C": at(100, 100), "D": at(0, 100)}
    route, nodes = _route(points, [(1, ["A", "B"]), (2, ["B", "C"]), (3, ["C", "D"])])
    before = _snapshot(route)

    assert filter_uturns(route, max_uturn_length=100) == 0
    assert _snapshot(route) == before


def test_negative_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        filter_uturns(Route(), max_uturn_length=-1)

from __future__ import annotations

import pytest

from helpers import at, way
from pystmatch.utilities.road_graph import RoadGraph


@pytest.fixture
def straight_graph() -> RoadGraph:
    """One bidirectional 300 m road running east, with a shape point at 150 m."""
    return RoadGraph.from_road_ways([
        way(100, [(1, at(0)), (2, at(150)), (3, at(300))]),
    ])


@pytest.fixture
def triangle_graph() -> RoadGraph:
    """
    Approach road W-A, exit road B-E, and two routes from A to B.

    A-B (way 1) is 200 m and one-way eastbound; A-C-B (ways 2 and 3) is about
    360 m and bidirectional. Way 4 is a disconnected road 1 km north.
    """
    return RoadGraph.from_road_ways([
        way(5, [(10, at(-100)), (11, at(0))]),
        way(1, [(11, at(0)), (12, at(200))], backward=False),
        way(2, [(11, at(0)), (13, at(100, 150))]),
        way(3, [(13, at(100, 150)), (12, at(200))]),
        way(6, [(12, at(200)), (14, at(300))]),
        way(4, [(20, at(0, 1000)), (21, at(200, 1000))]),
    ])


@pytest.fixture
def parallel_graph() -> RoadGraph:
    """Seven 200 m east-west roads, 5 m apart from each other."""
    return RoadGraph.from_road_ways([
        way(200 + i, [(100 + 2 * i, at(-100, 5 * i)), (101 + 2 * i, at(100, 5 * i))])
        for i in range(7)
    ])

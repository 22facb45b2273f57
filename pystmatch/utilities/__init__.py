"""
Utilities module for the pystmatch library.

This module provides the geodesic helpers, the road graph with its spatial
index, the A* pathfinder and visualization tools.
"""

from pystmatch.utilities.geometry import EPS_LENGTH
from pystmatch.utilities.road_graph import (
    RoadWay,
    RoadNode,
    Connection,
    ConnectionGeometry,
    RoadGraph,
    road_way_from_tags,
    road_ways_from_osm,
)
from pystmatch.utilities.pathfinding import AstarPathfinder, PathSegment

# Import visualization submodule
from pystmatch.utilities import visualization

__all__ = [
    'EPS_LENGTH',
    # Road graph
    'RoadWay',
    'RoadNode',
    'Connection',
    'ConnectionGeometry',
    'RoadGraph',
    'road_way_from_tags',
    'road_ways_from_osm',
    # Pathfinding
    'AstarPathfinder',
    'PathSegment',
    # Visualization module
    'visualization',
]

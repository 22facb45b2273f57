"""Builders shared by the test modules: local metric coordinates, road ways and candidates."""

from __future__ import annotations

import math

from pystmatch.matching.candidates import CandidatePoint, GPSFix, observation_probability
from pystmatch.utilities.geometry import distance, project_point
from pystmatch.utilities.road_graph import RoadGraph, RoadWay

LAT0 = 50.0
LON0 = 14.0
M_PER_DEG_LAT = 111_229.0
M_PER_DEG_LON = 111_320.0 * math.cos(math.radians(LAT0))


def at(east: float = 0.0, north: float = 0.0) -> tuple[float, float]:
    """(lon, lat) of a point `east` / `north` meters away from the local origin."""
    return LON0 + east / M_PER_DEG_LON, LAT0 + north / M_PER_DEG_LAT


def way(way_id: int, nodes: list[tuple[int, tuple[float, float]]], forward: bool = True,
        backward: bool = True, speed: float = 50.0) -> RoadWay:
    return RoadWay(
        way_id=way_id,
        node_ids=[node_id for node_id, _ in nodes],
        coords=[point for _, point in nodes],
        speed=speed,
        accessible=forward,
        accessible_reverse=backward,
    )


def geometry_of(road_graph: RoadGraph, way_id: int):
    return next(g for g in road_graph.connection_geometries if g.way_id == way_id)


def candidate_on(road_graph: RoadGraph, way_id: int, point: tuple[float, float],
                 index: int = 0, time=None) -> CandidatePoint:
    """Candidate for a fix at `point` projected onto the road with the given way id."""
    road = geometry_of(road_graph, way_id)
    projected = project_point(point, road.line)
    fix = GPSFix(lat=point[1], lon=point[0], time=time, index=index)
    return CandidatePoint(
        lat=projected[1],
        lon=projected[0],
        road=road,
        observation_probability=float(observation_probability(distance(point, projected))),
        fix=fix,
    )


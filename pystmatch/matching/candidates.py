"""
Candidate generation module for pystmatch.

Every GPS fix is projected onto the road geometries around it. Each projection
becomes a candidate point, scored by an observation probability derived from a
zero-mean Gaussian model of GPS error:

    p(d) = 0.5 * exp(-d^2 / (2 * sigma^2)) / (sigma * sqrt(2 * pi))

where d is the geodesic distance in meters between the fix and its projection.

Road geometries are found with the R-tree index of the road graph, queried with
the fix's bounding box inflated by an anisotropic margin (more degrees of
longitude than latitude, compensating the shrinking length of a degree of
longitude away from the equator).
"""

import math
from dataclasses import dataclass

import numpy as np
import pandas as pd
import polars as pl

from pystmatch.utilities.geometry import distance, inflate_bbox, project_point

# Maximal number of candidates kept per GPS fix
MAX_CANDIDATES_COUNT = 5

# Standard deviation of the GPS error in meters
OBSERVATION_SIGMA = 20.0

# Candidate search margin (latitude, longitude) in degrees
SEARCH_MARGIN = (0.0007, 0.0011)


@dataclass(frozen=True)
class GPSFix:
    """One timestamped GPS position of the input trace; `index` is its position in the trace."""
    lat: float
    lon: float
    time: object = None
    index: int = 0

    @property
    def point(self):
        return self.lon, self.lat


@dataclass(frozen=True, eq=False)
class CandidatePoint:
    """
    Projection of a GPS fix onto a nearby road geometry.

    Candidate points are immutable. Once added to a CandidatesGraph they carry
    the index of their layer and their own index in the graph's candidate
    store; the matcher keeps its scores in arrays indexed by the latter.

    Attributes
    ----------
    lat, lon : float
        Projected position in WGS84 decimal degrees.
    road : ConnectionGeometry
        Road geometry the candidate lies on.
    observation_probability : float
        Gaussian likelihood of the fix given this candidate.
    fix : GPSFix
        The fix this candidate was generated for.
    layer : int
        Layer index in the candidates graph, -1 before insertion.
    index : int
        Index in the candidates graph store, -1 before insertion.
    """
    lat: float
    lon: float
    road: object
    observation_probability: float
    fix: GPSFix
    layer: int = -1
    index: int = -1

    @property
    def point(self):
        return self.lon, self.lat

    @property
    def way_id(self):
        return self.road.way_id

    @property
    def time(self):
        return self.fix.time


def observation_probability(d, sigma=OBSERVATION_SIGMA):
    """
    Observation probability of a candidate at distance d (meters) from its fix.

    Works on scalars and numpy arrays. The value is maximal at d = 0, where it
    equals 0.5 / (sigma * sqrt(2 * pi)), and strictly decreases with d.
    """
    return 0.5 * np.exp(-np.square(d) / (2 * sigma * sigma)) / (sigma * math.sqrt(2 * math.pi))


class CandidateGenerator:
    """
    Finds candidate points for GPS fixes.

    Parameters
    ----------
    road_graph : RoadGraph
        Built road graph providing the geometry index.
    max_candidates : int, default=MAX_CANDIDATES_COUNT
        Maximal number of candidates kept per fix (highest probabilities win).
    sigma : float, default=OBSERVATION_SIGMA
        Standard deviation of the GPS error in meters.
    search_margin : tuple of float, default=SEARCH_MARGIN
        (latitude, longitude) margins in degrees used to inflate the fix's
        bounding box when looking for nearby roads.
    """

    def __init__(self, road_graph, max_candidates=MAX_CANDIDATES_COUNT,
                 sigma=OBSERVATION_SIGMA, search_margin=SEARCH_MARGIN):
        if max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")
        if sigma <= 0:
            raise ValueError("sigma must be positive")
        self.road_graph = road_graph
        self.max_candidates = int(max_candidates)
        self.sigma = float(sigma)
        self.search_margin = tuple(search_margin)

    def candidates_for(self, fix):
        """
        Candidate points for a single fix, by descending observation probability.

        An empty list is a valid result for a fix far from any road.
        """
        d_lat, d_lon = self.search_margin
        roads = self.road_graph.geometries_in_bbox(inflate_bbox(fix.point, d_lat, d_lon))
        if not roads:
            return []

        projected = [project_point(fix.point, road.line) for road in roads]
        distances = np.array([distance(fix.point, p) for p in projected], dtype=float)
        probabilities = observation_probability(distances, self.sigma)

        order = sorted(range(len(roads)), key=lambda i: (-probabilities[i], roads[i].index))
        return [
            CandidatePoint(lat=projected[i][1], lon=projected[i][0], road=roads[i],
                           observation_probability=float(probabilities[i]), fix=fix)
            for i in order[:self.max_candidates]
        ]


def fixes_from_dataframe(df, lat_col='lat', lon_col='lon', time_col='time'):
    """
    Convert a trajectory DataFrame into a list of GPSFix objects.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Time-ordered trajectory with latitude and longitude columns.
    lat_col : str, default='lat'
        Name of the latitude column (WGS84 decimal degrees).
    lon_col : str, default='lon'
        Name of the longitude column (WGS84 decimal degrees).
    time_col : str or None, default='time'
        Name of the time column. If None or absent, fixes carry no timestamp.

    Returns
    -------
    list of GPSFix
        One fix per row, `index` set to the row position.
    """
    for col in (lat_col, lon_col):
        if col not in df.columns:
            raise ValueError(f"Column '{col}' not found in the trajectory DataFrame")

    lats = np.asarray(df[lat_col].to_numpy(), dtype=float)
    lons = np.asarray(df[lon_col].to_numpy(), dtype=float)
    if time_col is not None and time_col in df.columns:
        times = df[time_col].to_list()
    else:
        times = [None] * len(lats)

    return [GPSFix(lat=float(lat), lon=float(lon), time=t, index=i)
            for i, (lat, lon, t) in enumerate(zip(lats, lons, times))]


def as_fixes(trace, lat_col='lat', lon_col='lon', time_col='time'):
    """Accept a pandas/polars DataFrame or an iterable of GPSFix and return a list of fixes."""
    if isinstance(trace, (pd.DataFrame, pl.DataFrame)):
        return fixes_from_dataframe(trace, lat_col=lat_col, lon_col=lon_col, time_col=time_col)
    return list(trace)


def matched_to_dataframe(matched, as_polars=False):
    """
    Tabulate matched candidate points.

    Returns a DataFrame with columns 'lat', 'lon', 'way_id', 'time',
    'fix_index' and 'observation_probability', one row per matched candidate.
    """
    data = {
        'lat': [c.lat for c in matched],
        'lon': [c.lon for c in matched],
        'way_id': [c.way_id for c in matched],
        'time': [c.time for c in matched],
        'fix_index': [c.fix.index for c in matched],
        'observation_probability': [c.observation_probability for c in matched],
    }
    if as_polars:
        return pl.DataFrame(data)
    return pd.DataFrame(data)

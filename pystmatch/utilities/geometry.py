"""
Geodesic helper module for pystmatch.

This module wraps the geometry primitives used throughout the matching and
reconstruction pipeline. Planar operations (projection of a point onto a line,
bounding boxes) are delegated to Shapely and work directly on WGS84 (lon, lat)
coordinates, while every metric quantity (distances, lengths, bearings) is
computed on the WGS84 ellipsoid with pyproj's Geod.

All coordinates are (lon, lat) tuples in decimal degrees, matching Shapely's
(x, y) convention.
"""

from shapely.geometry import Point, LineString
from pyproj import Geod

from pystmatch.exceptions import PathConsistencyError

# Initialize a global geodesic object for all distance calculations
geod = Geod(ellps="WGS84")

# Two points closer than this (meters) are treated as the same position
EPS_LENGTH = 0.01


def distance(p1, p2):
    """
    Geodesic distance between two (lon, lat) points in meters.

    Examples
    --------
    >>> from pystmatch.utilities.geometry import distance
    >>> round(distance((14.0, 50.0), (14.0, 50.001)), 1)
    111.2
    """
    _, _, d = geod.inv(p1[0], p1[1], p2[0], p2[1])
    return d


def bearing(p1, p2):
    """
    Forward azimuth from p1 to p2 in degrees, normalized to [0, 360).

    pyproj returns azimuths in (-180, 180], so the value is shifted by 360 and
    taken modulo 360 (0° = North, 90° = East).
    """
    fwd_az, _, _ = geod.inv(p1[0], p1[1], p2[0], p2[1])
    return (fwd_az + 360) % 360


def line_length(coords):
    """Geodesic length of a polyline given as a sequence of (lon, lat) points."""
    if len(coords) < 2:
        return 0.0
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    return float(geod.line_length(lons, lats))


def project_point(point, line):
    """
    Project a (lon, lat) point onto a Shapely LineString.

    Returns the closest point on the line (in planar degree space) as a
    (lon, lat) tuple.
    """
    projected = line.interpolate(line.project(Point(point)))
    return projected.x, projected.y


def project_on_segment(point, start, end):
    """Project a point onto the segment start-end, returning (lon, lat)."""
    if start[0] == end[0] and start[1] == end[1]:
        return start[0], start[1]
    return project_point(point, LineString([start, end]))


def distance_to_segment(point, start, end):
    """Geodesic distance in meters between a point and its projection on a segment."""
    return distance(point, project_on_segment(point, start, end))


def distance_to_line(point, line):
    """Geodesic distance in meters between a point and its projection on a LineString."""
    return distance(point, project_point(point, line))


def locate_on_line(point, coords, eps=EPS_LENGTH):
    """
    Find the first segment of a polyline that the point lies on.

    Parameters
    ----------
    point : tuple of float
        Query point (lon, lat).
    coords : sequence of tuple
        Polyline vertices (lon, lat).
    eps : float, default=EPS_LENGTH
        Maximum distance in meters for the point to count as lying on a segment.

    Returns
    -------
    int or None
        Index i of the segment coords[i] -> coords[i + 1], or None when the
        point is farther than eps from every segment.
    """
    for i in range(len(coords) - 1):
        if distance_to_segment(point, coords[i], coords[i + 1]) < eps:
            return i
    return None


def _locate_or_raise(point, coords, eps):
    index = locate_on_line(point, coords, eps)
    if index is None:
        raise PathConsistencyError(
            f"Point ({point[0]:.7f}, {point[1]:.7f}) does not lie on the given path"
        )
    return index


def path_length(start, end, coords, eps=EPS_LENGTH):
    """
    Length of the path between two points measured along a polyline.

    Both points must lie on the polyline (within eps meters). The measurement is
    direction agnostic: the result is the same when start and end are swapped.

    Parameters
    ----------
    start, end : tuple of float
        Points (lon, lat) lying on the polyline.
    coords : sequence of tuple
        Polyline vertices (lon, lat).
    eps : float, default=EPS_LENGTH
        Tolerance in meters used to locate the points on the polyline.

    Returns
    -------
    float
        Path length in meters.

    Raises
    ------
    PathConsistencyError
        If one or both points do not lie on the polyline.
    """
    i = _locate_or_raise(start, coords, eps)
    j = _locate_or_raise(end, coords, eps)

    if i == j:
        return distance(start, end)
    if i > j:
        start, end, i, j = end, start, j, i

    length = distance(start, coords[i + 1])
    for k in range(i + 1, j):
        length += distance(coords[k], coords[k + 1])
    length += distance(coords[j], end)
    return length


def vertices_between(start, end, coords, eps=EPS_LENGTH):
    """
    Indices of polyline vertices lying strictly between two points on it.

    The indices are ordered in the direction of travel from start to end, so
    the polyline may be walked against its own orientation. Vertices that
    coincide with start or end (within eps) are left out.

    Raises
    ------
    PathConsistencyError
        If one or both points do not lie on the polyline.
    """
    i = _locate_or_raise(start, coords, eps)
    j = _locate_or_raise(end, coords, eps)

    if i < j:
        indices = range(i + 1, j + 1)
    elif i > j:
        indices = range(i, j, -1)
    else:
        return []

    return [k for k in indices
            if distance(coords[k], start) >= eps and distance(coords[k], end) >= eps]


def inflate_bbox(point, d_lat, d_lon):
    """Bounding box (minx, miny, maxx, maxy) of a point inflated by degree margins."""
    lon, lat = point
    return lon - d_lon, lat - d_lat, lon + d_lon, lat + d_lat

"""
Road graph utilities module for pystmatch.

This module builds the directed road graph used by candidate generation, the A*
pathfinder and the path reconstructor. Road data enters the package through a
single translation boundary (`road_way_from_tags` / `road_ways_from_osm`) that
turns tagged OSM-like ways into typed `RoadWay` records; nothing past this
boundary reads string tags.

The graph itself is an igraph.Graph (one vertex per road node, one directed
edge per traversable connection) paired with an R-tree spatial index over the
bounding boxes of the road geometries.

Key functionality:
- Validating and typing tagged road ways (speed, accessibility, source way id)
- Creating forward/reverse connections that share one road geometry
- Geodesic connection lengths computed with pyproj Geod
- R-tree index for fast bounding-box lookups of nearby roads
"""

from dataclasses import dataclass, field

import igraph as ig
import numpy as np
from rtree import index
from shapely import bounds as shapely_bounds
from shapely.geometry import LineString
from tqdm import tqdm

from pystmatch.exceptions import MapDataError
from pystmatch.utilities.geometry import line_length

_REQUIRED_TAGS = ("speed", "way-id", "accessible", "accessible-reverse")


@dataclass
class RoadWay:
    """
    Typed road attributes of one routable way.

    Attributes
    ----------
    way_id : int
        Identifier of the source map way.
    node_ids : list of int
        Source map node identifiers, one per shape point.
    coords : list of tuple
        Shape points as (lon, lat) in WGS84 decimal degrees.
    speed : float
        Speed assigned to the road.
    accessible : bool
        True if the way can be traversed from its first to its last node.
    accessible_reverse : bool
        True if the way can be traversed from its last to its first node.
    """
    way_id: int
    node_ids: list
    coords: list
    speed: float
    accessible: bool
    accessible_reverse: bool


def _resolve_tag_value(v):
    if v is None:
        return None
    if isinstance(v, (list, tuple)):
        v = v[0]
    return str(v).strip().lower()


def road_way_from_tags(way_id, node_ids, tags, node_lookup):
    """
    Translate a tagged map way into a typed RoadWay.

    This is the only place where road tags are interpreted. Every routable way
    must carry the tags 'speed', 'way-id', 'accessible' and 'accessible-reverse';
    accessibility is granted only by the value 'yes'.

    Parameters
    ----------
    way_id : int
        Identifier of the routable way record (used in error messages).
    node_ids : sequence of int
        Node references of the way, in order.
    tags : dict
        Tag dictionary of the way.
    node_lookup : dict
        Mapping node id -> (lat, lon) in WGS84 decimal degrees.

    Returns
    -------
    RoadWay

    Raises
    ------
    MapDataError
        If a required tag is missing or malformed, if the way has fewer than
        two nodes, or if a node reference cannot be resolved.
    """
    tags = tags or {}
    for key in _REQUIRED_TAGS:
        if _resolve_tag_value(tags.get(key)) is None:
            raise MapDataError(f"Way {way_id} is missing required tag '{key}'")

    try:
        speed = float(_resolve_tag_value(tags["speed"]))
    except ValueError:
        raise MapDataError(f"Way {way_id} has invalid speed tag {tags['speed']!r}") from None
    try:
        source_way_id = int(_resolve_tag_value(tags["way-id"]))
    except ValueError:
        raise MapDataError(f"Way {way_id} has invalid way-id tag {tags['way-id']!r}") from None

    node_ids = list(node_ids)
    if len(node_ids) < 2:
        raise MapDataError(f"Way {way_id} must reference at least two nodes")

    coords = []
    for node_id in node_ids:
        try:
            lat, lon = node_lookup[node_id]
        except KeyError:
            raise MapDataError(f"Way {way_id} references unknown node {node_id}") from None
        coords.append((float(lon), float(lat)))

    return RoadWay(
        way_id=source_way_id,
        node_ids=node_ids,
        coords=coords,
        speed=speed,
        accessible=_resolve_tag_value(tags["accessible"]) == "yes",
        accessible_reverse=_resolve_tag_value(tags["accessible-reverse"]) == "yes",
    )


def road_ways_from_osm(nodes, ways):
    """
    Translate OSM-like node and way dictionaries into RoadWay records.

    Parameters
    ----------
    nodes : dict
        Mapping node id -> (lat, lon).
    ways : dict
        Mapping way id -> {"nodes": [node ids], "tags": {tag: value}}, the
        structure produced by the usual osmium way/node collectors.

    Returns
    -------
    list of RoadWay
    """
    return [road_way_from_tags(way_id, w.get("nodes", []), w.get("tags", {}), nodes)
            for way_id, w in ways.items()]


@dataclass(eq=False)
class RoadNode:
    """Intersection of the road graph; `index` is the igraph vertex index."""
    node_id: int
    lon: float
    lat: float
    index: int
    connections: list = field(default_factory=list)

    @property
    def point(self):
        return self.lon, self.lat


@dataclass(eq=False)
class ConnectionGeometry:
    """
    Shape of one road way, shared by the connections that traverse it.

    Candidate points are projected onto connection geometries, so this is the
    "road" a candidate lies on.
    """
    way_id: int
    coords: tuple
    node_ids: tuple
    index: int = -1
    connections: list = field(default_factory=list)

    def __post_init__(self):
        self.line = LineString(self.coords)
        self.length = line_length(self.coords)
        self.bbox = tuple(float(b) for b in self.line.bounds)


@dataclass(eq=False)
class Connection:
    """Directed, traversable road segment between two road nodes."""
    index: int
    from_node: RoadNode
    to_node: RoadNode
    speed: float
    geometry: ConnectionGeometry

    @property
    def way_id(self):
        return self.geometry.way_id

    @property
    def length(self):
        return self.geometry.length


class RoadGraph:
    """
    Directed road graph built from typed road ways.

    Attributes
    ----------
    graph : igraph.Graph
        Directed graph with vertex attributes 'node_id', 'x' (lon), 'y' (lat)
        and edge attributes 'length' (meters), 'speed' and 'way_id'. Vertex
        and edge indices match RoadNode.index and Connection.index.
    spatial_index : rtree.index.Index
        R-tree over the bounding boxes of traversable road geometries, keyed
        by ConnectionGeometry.index.

    Examples
    --------
    >>> from pystmatch.utilities.road_graph import RoadGraph, RoadWay
    >>> way = RoadWay(way_id=7, node_ids=[1, 2], coords=[(14.0, 50.0), (14.0, 50.001)],
    ...               speed=50, accessible=True, accessible_reverse=True)
    >>> G = RoadGraph.from_road_ways([way])
    >>> len(G.nodes), len(G.connections)
    (2, 2)
    """

    def __init__(self):
        self._nodes = {}
        self._vertices = []
        self._connections = []
        self._geometries = []
        self.graph = None
        self.spatial_index = None

    @classmethod
    def from_road_ways(cls, road_ways, verbose=False):
        road_graph = cls()
        road_graph.build(road_ways, verbose=verbose)
        return road_graph

    @property
    def nodes(self):
        return list(self._nodes.values())

    @property
    def connections(self):
        return list(self._connections)

    @property
    def connection_geometries(self):
        return list(self._geometries)

    def node(self, node_id):
        return self._nodes[node_id]

    def vertex(self, index):
        """RoadNode of an igraph vertex index."""
        return self._vertices[index]

    def connection(self, index):
        """Connection of an igraph edge index."""
        return self._connections[index]

    def build(self, road_ways, verbose=False):
        """
        Build the graph from a collection of RoadWay records.

        For every way a forward connection is added iff `accessible` is set and
        a reverse connection (swapped endpoints, same geometry) iff
        `accessible_reverse` is set. Endpoint nodes are created either way, but
        geometries without any connection are not indexed for candidate search.

        Parameters
        ----------
        road_ways : iterable of RoadWay
            Typed road ways, e.g. from `road_ways_from_osm()`.
        verbose : bool, default=False
            Show a progress bar while adding ways.

        Returns
        -------
        RoadGraph
            The graph itself, for chaining.
        """
        for way in tqdm(road_ways, desc="Building road graph", disable=not verbose):
            if len(way.node_ids) < 2 or len(way.node_ids) != len(way.coords):
                raise MapDataError(f"Way {way.way_id} has inconsistent node and coordinate lists")

            start = self._get_or_create_node(way.node_ids[0], way.coords[0])
            end = self._get_or_create_node(way.node_ids[-1], way.coords[-1])
            geometry = ConnectionGeometry(
                way_id=way.way_id,
                coords=tuple((float(x), float(y)) for x, y in way.coords),
                node_ids=tuple(way.node_ids),
            )

            if way.accessible:
                self._add_connection(start, end, way.speed, geometry)
            if way.accessible_reverse:
                self._add_connection(end, start, way.speed, geometry)

            if geometry.connections:
                geometry.index = len(self._geometries)
                self._geometries.append(geometry)

        self.graph = self._build_igraph_graph()
        self.spatial_index = self._build_spatial_index()
        return self

    def geometries_in_bbox(self, bbox):
        """Road geometries whose bounding box intersects bbox (minx, miny, maxx, maxy)."""
        return [self._geometries[i] for i in sorted(self.spatial_index.intersection(bbox))]

    def _get_or_create_node(self, node_id, coord):
        node = self._nodes.get(node_id)
        if node is None:
            node = RoadNode(node_id=node_id, lon=float(coord[0]), lat=float(coord[1]),
                            index=len(self._nodes))
            self._nodes[node_id] = node
            self._vertices.append(node)
        return node

    def _add_connection(self, from_node, to_node, speed, geometry):
        connection = Connection(index=len(self._connections), from_node=from_node,
                                to_node=to_node, speed=float(speed), geometry=geometry)
        from_node.connections.append(connection)
        if to_node is not from_node:
            to_node.connections.append(connection)
        geometry.connections.append(connection)
        self._connections.append(connection)

    def _build_igraph_graph(self):
        nodes = self.nodes
        edges = [(c.from_node.index, c.to_node.index) for c in self._connections]
        g = ig.Graph(n=len(nodes), edges=edges, directed=True)

        if nodes:
            g.vs['node_id'] = [n.node_id for n in nodes]
            g.vs['x'] = [n.lon for n in nodes]
            g.vs['y'] = [n.lat for n in nodes]
        if edges:
            g.es['length'] = [c.length for c in self._connections]
            g.es['speed'] = [c.speed for c in self._connections]
            g.es['way_id'] = [c.way_id for c in self._connections]
        return g

    def _build_spatial_index(self):
        # rtree refuses to bulk load an empty stream
        if not self._geometries:
            return index.Index()

        bounds_array = shapely_bounds(np.array([g.line for g in self._geometries], dtype=object))

        def generate_items():
            for i, b in enumerate(bounds_array):
                yield (i, tuple(float(x) for x in b), None)

        return index.Index(generate_items())

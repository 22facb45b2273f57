"""
Reconstructed route data model.

A route is an ordered collection of synthetic ways, each an ordered list of
route nodes. Synthetic entities get strictly negative identifiers, drawn from
one decrementing counter shared by nodes and ways, so they never collide with
source map identifiers. Nodes that correspond to a source map node keep its id
(`node_id`), and nodes created for matched GPS fixes carry the fix timestamp. When several consecutive fixes
match the same position, their node keeps the first fix time in `time` and the
last one in `time_end`, so the stop duration survives.
Each way records the source road way id and its 1-based position in the route.
"""

from dataclasses import dataclass, field

import pandas as pd
import polars as pl

from pystmatch.utilities.geometry import line_length


@dataclass(eq=False)
class RouteNode:
    id: int
    lon: float
    lat: float
    node_id: int = None
    time: object = None
    # Time of the last fix merged into this node while standing still
    time_end: object = None

    @property
    def point(self):
        return self.lon, self.lat

    @property
    def tags(self):
        tags = {}
        if self.node_id is not None:
            tags['node-id'] = self.node_id
        if self.time is not None:
            tags['time'] = self.time
        if self.time_end is not None:
            tags['time-end'] = self.time_end
        return tags


@dataclass(eq=False)
class RouteWay:
    id: int
    way_id: int
    order: int
    nodes: list = field(default_factory=list)

    @property
    def tags(self):
        return {'way-id': self.way_id, 'order': self.order}

    @property
    def coords(self):
        return [n.point for n in self.nodes]

    @property
    def length(self):
        return line_length(self.coords)


class Route:
    """
    Route produced by the path reconstructor.

    Attributes
    ----------
    nodes : dict
        Synthetic node id -> RouteNode, in creation order.
    ways : list of RouteWay
        Ways in route order (`way.order` is the 1-based position).
    """

    def __init__(self):
        self.nodes = {}
        self.ways = []
        self._next_id = -1

    def __len__(self):
        return len(self.ways)

    def _new_id(self):
        new_id = self._next_id
        self._next_id -= 1
        return new_id

    def add_node(self, lon, lat, node_id=None, time=None):
        node = RouteNode(id=self._new_id(), lon=float(lon), lat=float(lat), node_id=node_id, time=time)
        self.nodes[node.id] = node
        return node

    def add_way(self, way_id, nodes):
        way = RouteWay(id=self._new_id(), way_id=way_id, order=len(self.ways) + 1, nodes=list(nodes))
        self.ways.append(way)
        return way

    def clone_way(self, way):
        """New way (fresh synthetic id) with the same source way id; not added to the route."""
        return RouteWay(id=self._new_id(), way_id=way.way_id, order=way.order, nodes=list(way.nodes))

    def merge_consecutive_ways(self):
        """
        Join consecutive ways with the same source way id that share their junction node.

        Returns the number of ways merged away.
        """
        ways = []
        for way in self.ways:
            previous = ways[-1] if ways else None
            if (previous is not None and previous.way_id == way.way_id
                    and previous.nodes and way.nodes and previous.nodes[-1] is way.nodes[0]):
                previous.nodes.extend(way.nodes[1:])
            else:
                ways.append(way)

        count = len(self.ways) - len(ways)
        self.ways = ways
        self.renumber()
        return count

    def renumber(self):
        for order, way in enumerate(self.ways, start=1):
            way.order = order

    def prune_nodes(self):
        """Delete nodes that no way references. Returns the number of deleted nodes."""
        referenced = {n.id for way in self.ways for n in way.nodes}
        unused = [node_id for node_id in self.nodes if node_id not in referenced]
        for node_id in unused:
            del self.nodes[node_id]
        return len(unused)

    @property
    def length(self):
        """Total geodesic length of all ways in meters."""
        return sum(way.length for way in self.ways)

    def coordinates(self):
        """
        Route as one list of (lon, lat) points.

        Consecutive ways that share their junction node contribute it once.
        """
        coords = []
        previous = None
        for way in self.ways:
            nodes = way.nodes
            if previous is not None and nodes and nodes[0] is previous:
                nodes = nodes[1:]
            coords.extend(n.point for n in nodes)
            if way.nodes:
                previous = way.nodes[-1]
        return coords

    def timed_nodes(self):
        """Nodes carrying a fix timestamp, in route order."""
        seen = set()
        timed = []
        for way in self.ways:
            for node in way.nodes:
                if node.time is not None and node.id not in seen:
                    seen.add(node.id)
                    timed.append(node)
        return timed

    def to_dataframe(self, as_polars=False):
        """
        One row per way node, in route order.

        Columns: 'way', 'way_id', 'order', 'node', 'node_id', 'lat', 'lon', 'time',
        'time_end'
        ('way' and 'node' are the synthetic ids).
        """
        rows = {'way': [], 'way_id': [], 'order': [], 'node': [], 'node_id': [],
                'lat': [], 'lon': [], 'time': [], 'time_end': []}
        for way in self.ways:
            for node in way.nodes:
                rows['way'].append(way.id)
                rows['way_id'].append(way.way_id)
                rows['order'].append(way.order)
                rows['node'].append(node.id)
                rows['node_id'].append(node.node_id)
                rows['lat'].append(node.lat)
                rows['lon'].append(node.lon)
                rows['time'].append(node.time)
                rows['time_end'].append(node.time_end)
        if as_polars:
            return pl.DataFrame(rows)
        return pd.DataFrame(rows)

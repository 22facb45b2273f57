"""
Candidate graph module for pystmatch.

The candidates graph is a strictly layered DAG: one layer per GPS fix that
produced candidates, and a full bipartite set of edges between every pair of
temporally adjacent layers (at most 5 x 5 = 25 edges per transition). Each
edge carries the transmission probability

    t(a, b) = geodesic_distance(a, b) / shortest_road_path_length(a, b)

which is close to 1 when the road path between two candidates is nearly
straight and falls towards 0 for detours. Unreachable pairs get 0.

Candidates are stored in a flat arena (`CandidatesGraph.candidates`); every
candidate knows its arena index, so the matcher can keep its scores in plain
arrays instead of mutating the candidates.
"""

import math
from dataclasses import dataclass, replace

from pystmatch.utilities.geometry import EPS_LENGTH, distance, path_length
from pystmatch.utilities.parallel import map_units


@dataclass(frozen=True)
class CandidateGraphLayer:
    """Candidates of one GPS fix, by descending observation probability."""
    fix: object
    candidates: tuple
    index: int


@dataclass(frozen=True)
class CandidatesConnection:
    """Edge between candidates (arena indices) of two adjacent layers."""
    source: int
    target: int
    transmission_probability: float


def shortest_path_length(a, b, pathfinder):
    """
    Length in meters of the shortest road path from candidate a to candidate b.

    Candidates on the same road geometry are measured directly along it;
    anything else goes through the A* pathfinder. Returns math.inf when b is
    unreachable from a.
    """
    if a.road is b.road:
        return path_length(a.point, b.point, a.road.coords)
    _, length = pathfinder.find_path(a, b)
    return length


def transmission_probability(a, b, pathfinder):
    """
    Transmission probability between two candidates of adjacent layers.

    Coincident candidates (zero distance and zero path length) get 1, and
    unreachable ones get 0.
    """
    length = shortest_path_length(a, b, pathfinder)
    if math.isinf(length):
        return 0.0

    d = distance(a.point, b.point)
    if length < EPS_LENGTH:
        return 1.0
    return d / length


class CandidatesGraph:
    """
    Layered graph of candidate points for one trace.

    Layers are appended with `add_layer()` in trace order; `connect_layers()`
    then computes every inter-layer edge. After that the graph is read-only.

    Attributes
    ----------
    candidates : list of CandidatePoint
        Arena of all candidates; `candidate.index` is its position here.
    layers : list of CandidateGraphLayer
    connections : list of CandidatesConnection
    incoming : list of list of CandidatesConnection
        Incoming edges per arena index.
    """

    def __init__(self):
        self.candidates = []
        self.layers = []
        self.connections = []
        self.incoming = []
        self.connected = False

    def __len__(self):
        return len(self.layers)

    def add_layer(self, fix, candidates):
        """
        Append a layer for a fix.

        The candidates are copied with their layer and arena indices filled in.
        A layer must hold at least one candidate; fixes without candidates are
        handled by the caller.
        """
        if self.connected:
            raise RuntimeError("Cannot add layers to a connected candidates graph")
        if not candidates:
            raise ValueError(f"Layer for fix {fix.index} has no candidates")

        layer_index = len(self.layers)
        stored = []
        for candidate in candidates:
            candidate = replace(candidate, layer=layer_index, index=len(self.candidates))
            self.candidates.append(candidate)
            self.incoming.append([])
            stored.append(candidate)

        layer = CandidateGraphLayer(fix=fix, candidates=tuple(stored), index=layer_index)
        self.layers.append(layer)
        return layer

    def connect_layers(self, pathfinder, n_jobs=1, cancel_event=None, verbose=False):
        """
        Create all edges between temporally adjacent layers.

        Parameters
        ----------
        pathfinder : AstarPathfinder
            Used for candidates on different roads.
        n_jobs : int, default=1
            Worker threads; one unit of work is one pair of adjacent layers.
        cancel_event : threading.Event, optional
            Checked between units.
        verbose : bool, default=False
            Show a progress bar.

        Returns
        -------
        CandidatesGraph
            The graph itself.
        """
        if self.connected:
            return self

        def connect_pair(pair):
            previous, following = pair
            return [CandidatesConnection(a.index, b.index, transmission_probability(a, b, pathfinder))
                    for a in previous.candidates for b in following.candidates]

        pairs = list(zip(self.layers, self.layers[1:]))
        results = map_units(connect_pair, pairs, n_jobs=n_jobs, cancel_event=cancel_event,
                            desc="Connecting candidate layers", verbose=verbose)

        for edges in results:
            for edge in edges:
                self.connections.append(edge)
                self.incoming[edge.target].append(edge)
        self.connected = True
        return self

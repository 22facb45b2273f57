"""
Viterbi decoding of the candidates graph.

Scores follow the ST-matching recurrence:

    score(c) = obs(c)                                    for c in layer 0
    score(c) = max_e [ score(source(e)) + obs(c) * trans(e) ]   otherwise

The best final-layer candidate is then traced back through the recorded
predecessors. Scores and predecessors live in numpy arrays indexed by the
candidate arena index, so the candidates themselves are never mutated and two
runs over the same graph never share state.
"""

import numpy as np


class ViterbiResult:
    """
    Scores and predecessors of one Viterbi run.

    Attributes
    ----------
    graph : CandidatesGraph
    scores : np.ndarray
        Cumulative score per arena index.
    predecessors : np.ndarray
        Arena index of the best predecessor, -1 for layer 0 candidates.
    """

    def __init__(self, graph, scores, predecessors):
        self.graph = graph
        self.scores = scores
        self.predecessors = predecessors

    def best_final_index(self):
        """Arena index of the best-scoring candidate of the last layer (ties: lowest index)."""
        last = self.graph.layers[-1].candidates
        indices = np.array([c.index for c in last])
        return int(indices[np.argmax(self.scores[indices])])

    def path(self):
        """
        Matched candidate sequence, one candidate per layer in trace order.

        Raises
        ------
        RuntimeError
            If the predecessor chain revisits a candidate.
        """
        if not self.graph.layers:
            return []

        visited = set()
        path = []
        current = self.best_final_index()
        while current != -1:
            if current in visited:
                raise RuntimeError(f"Predecessor chain revisits candidate {current}")
            visited.add(current)
            path.append(self.graph.candidates[current])
            current = int(self.predecessors[current])

        path.reverse()
        return path


def viterbi(graph):
    """
    Run the Viterbi recurrence over a connected candidates graph.

    Parameters
    ----------
    graph : CandidatesGraph
        Graph whose layers have been connected.

    Returns
    -------
    ViterbiResult
    """
    n = len(graph.candidates)
    scores = np.full(n, -np.inf)
    predecessors = np.full(n, -1, dtype=np.int64)

    if not graph.layers:
        return ViterbiResult(graph, scores, predecessors)
    if len(graph.layers) > 1 and not graph.connected:
        raise ValueError("Candidate layers must be connected before decoding")

    for candidate in graph.layers[0].candidates:
        scores[candidate.index] = candidate.observation_probability

    for layer in graph.layers[1:]:
        for candidate in layer.candidates:
            best_score = -np.inf
            best_source = -1
            for edge in graph.incoming[candidate.index]:
                score = scores[edge.source] + candidate.observation_probability * edge.transmission_probability
                if score > best_score:
                    best_score = score
                    best_source = edge.source
            scores[candidate.index] = best_score
            predecessors[candidate.index] = best_source

    return ViterbiResult(graph, scores, predecessors)

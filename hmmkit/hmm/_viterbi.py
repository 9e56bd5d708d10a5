from typing import List, Tuple

import numpy as np

from ..alignment import ANode
from ..numeric import clamp_nan
from ..util.exceptions import ZeroLikelihoodError
from ..util.types import ensure_observations
from ._search import SearchGraph


def viterbi(log_transition_matrix: np.ndarray, log_output_probabilities: np.ndarray,
            log_initial_distribution: np.ndarray) -> Tuple[np.ndarray, float]:
    r""" Estimates the most likely hidden state path of a classical HMM, given transition matrix, emission
    log-densities and initial distribution, all in log space.

    .. math::
        \delta(j, 0) = \pi(j) + b(j, 0), \quad
        \delta(j, t) = \max_k \left[\delta(k, t-1) + a(k, j)\right] + b(j, t).

    Parameters
    ----------
    log_transition_matrix : (N, N) ndarray
        Log-transition matrix.
    log_output_probabilities : (T, N) ndarray
        Emission log-densities, the element :code:`[t, j]` belongs to frame t in state j.
    log_initial_distribution : (N,) ndarray
        Log of the initial distribution.

    Returns
    -------
    path : (T,) ndarray
        Maximum likelihood hidden state path.
    log_prob : float
        Joint log-probability of the path and the observations.
    """
    log_transition_matrix = np.asarray(log_transition_matrix, dtype=float)
    log_output_probabilities = clamp_nan(np.atleast_2d(log_output_probabilities))
    n_frames, n_states = log_output_probabilities.shape
    if n_frames == 0:
        return np.empty(0, dtype=int), 0.
    if log_transition_matrix.shape != (n_states, n_states):
        raise ValueError(f"Transition matrix of shape {log_transition_matrix.shape} does not match "
                         f"{n_states} states.")
    delta = np.asarray(log_initial_distribution, dtype=float) + log_output_probabilities[0]
    psi = np.zeros((n_frames, n_states), dtype=int)
    for t in range(1, n_frames):
        scores = delta[:, None] + log_transition_matrix
        psi[t] = np.argmax(scores, axis=0)
        delta = scores[psi[t], np.arange(n_states)] + log_output_probabilities[t]
    path = np.empty(n_frames, dtype=int)
    path[-1] = np.argmax(delta)
    log_prob = float(delta[path[-1]])
    for t in range(n_frames - 1, 0, -1):
        path[t - 1] = psi[t, path[t]]
    return path, log_prob


class DecodingResult:
    r""" Best path through a :class:`SearchGraph`.

    Parameters
    ----------
    log_prob : float
        Joint log-probability of path and observations.
    states : (T,) ndarray
        Node index per frame.
    labels : list of str
        Node label per frame, :code:`<net>-<state>`.
    segments : list of tuple
        One :code:`(net_name, start, end)` per net visited with at least one frame.
    """

    def __init__(self, log_prob: float, states: np.ndarray, labels: List[str], segments: List[Tuple[str, int, int]]):
        self.log_prob = log_prob
        self.states = states
        self.labels = labels
        self.segments = segments

    @property
    def transcript(self) -> List[str]:
        r""" Names of the visited nets in order. """
        return [name for name, _, _ in self.segments]

    @property
    def alignment(self) -> ANode:
        r""" Alignment tree with the visited nets on the first and their states on the second level. """
        root = ANode(0, len(self.states))
        for name, start, end in self.segments:
            segment = root.append_child(end, name)
            for t in range(start, end):
                label = self.labels[t]
                if segment.children and segment.children[-1].name == label:
                    segment.children[-1].end = t + 1
                else:
                    segment.append_child(t + 1, label)
        return root

    def __repr__(self):
        return f"DecodingResult(log_prob={self.log_prob:.4f}, transcript={self.transcript})"


def _max_plus_closure(weights: np.ndarray):
    r""" Best paths between all pairs of non-emitting nodes (Floyd-Warshall in the max-plus semiring). The
    empty path has weight zero. Returns the path weights and, per pair (i, j), the predecessor of j. """
    n = weights.shape[0]
    closure = weights.copy()
    predecessor = np.where(np.isfinite(weights), np.arange(n)[:, None], -1)
    np.fill_diagonal(closure, 0.)
    np.fill_diagonal(predecessor, np.arange(n))
    for k in range(n):
        candidate = closure[:, k, None] + closure[None, k, :]
        better = candidate > closure
        if np.any(better):
            closure = np.where(better, candidate, closure)
            predecessor = np.where(better, predecessor[k][None, :], predecessor)
    return closure, predecessor


def _closure_path(predecessor: np.ndarray, i: int, j: int) -> List[int]:
    path = [j]
    while j != i:
        j = int(predecessor[i, j])
        path.append(j)
    return path[::-1]


def decode(graph: SearchGraph, observations) -> DecodingResult:
    r""" Viterbi search over a composed graph. Non-emitting nodes are crossed without consuming frames;
    between frames every best path through non-emitting nodes is considered. Paths start at the global start
    node before the first frame and end in the global end node after the last frame.

    Parameters
    ----------
    graph : SearchGraph
        The decoding graph.
    observations : (T, D) array_like
        The observations.

    Returns
    -------
    result : DecodingResult
        The best path.

    Raises
    ------
    ZeroLikelihoodError
        If no path through the graph produces the observations.
    """
    observations = ensure_observations(observations, graph.nets[0].dim)
    n_frames = observations.shape[0]
    emitting = graph.emitting
    em = np.flatnonzero(emitting)
    ne = np.flatnonzero(~emitting)
    ne_pos = {int(node): k for k, node in enumerate(ne)}
    start, end = ne_pos[graph.start], ne_pos[graph.end]

    w = graph.log_weight_matrix()
    w_ee, w_ue, w_eu = w[np.ix_(em, em)], w[np.ix_(ne, em)], w[np.ix_(em, ne)]
    closure, predecessor = _max_plus_closure(w[np.ix_(ne, ne)])
    log_b = clamp_nan(graph.log_output_probabilities(observations)[em])

    # per frame t: non-emitting scores before t, their closure origin and the emitting source of that origin
    ne_origin = np.zeros((n_frames + 1, len(ne)), dtype=int)
    ne_source = np.full((n_frames + 1, len(ne)), -1, dtype=int)
    em_from_ne = np.zeros((n_frames, len(em)), dtype=bool)
    em_back = np.zeros((n_frames, len(em)), dtype=int)

    scores_ne = closure[start].copy()
    ne_origin[0] = start
    delta = None
    for t in range(n_frames + 1):
        if t > 0:
            candidates = delta[:, None] + w_eu
            source = np.argmax(candidates, axis=0)
            direct = candidates[source, np.arange(len(ne))]
            through = direct[:, None] + closure
            origin = np.argmax(through, axis=0)
            scores_ne = through[origin, np.arange(len(ne))]
            ne_origin[t] = origin
            ne_source[t] = source
        if t == n_frames:
            break
        from_ne = scores_ne[:, None] + w_ue
        best_ne = np.argmax(from_ne, axis=0)
        score_ne = from_ne[best_ne, np.arange(len(em))]
        if delta is None:
            em_from_ne[t] = True
            em_back[t] = best_ne
            delta = score_ne + log_b[:, t]
        else:
            from_em = delta[:, None] + w_ee
            best_em = np.argmax(from_em, axis=0)
            score_em = from_em[best_em, np.arange(len(em))]
            use_ne = score_ne > score_em
            em_from_ne[t] = use_ne
            em_back[t] = np.where(use_ne, best_ne, best_em)
            delta = np.maximum(score_ne, score_em) + log_b[:, t]

    log_prob = float(scores_ne[end])
    if not np.isfinite(log_prob):
        raise ZeroLikelihoodError("No path through the search graph produces the observations.")

    # backtrace into a node sequence with frame stamps; non-emitting nodes are stamped with the next frame
    trace = []
    node_ne, t = end, n_frames
    while True:
        origin = ne_origin[t, node_ne]
        for node in reversed(_closure_path(predecessor, origin, node_ne)):
            trace.append((int(ne[node]), t))
        if t == 0:
            break
        e = ne_source[t, origin]
        t -= 1
        while True:
            trace.append((int(em[e]), t))
            if em_from_ne[t, e]:
                node_ne = em_back[t, e]
                break
            e = em_back[t, e]
            t -= 1
    trace.reverse()

    states = np.array([node for node, _ in trace if emitting[node]], dtype=int)
    labels = [graph.labels[node] for node in states]
    segments = []
    current = None
    for node, t in trace:
        k = graph.net_index[node]
        if k < 0:
            continue
        net = graph.nets[k]
        state = graph.state_index[node]
        if state == 0:
            current = [net.name, t, t]
        elif state == net.exit:
            if current is not None and current[2] > current[1]:
                segments.append(tuple(current))
            current = None
        elif current is not None:
            current[2] = t + 1
    return DecodingResult(log_prob, states, labels, segments)

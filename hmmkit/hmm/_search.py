from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..util.exceptions import UnknownLabelError


class SearchGraph:
    r""" Decoding graph composed from the nets of a set.

    Nodes are the states of all nets plus a global non-emitting start and end node. Within a net the arcs are
    those of its transition matrix. The start node leads into the entry of every initial net, the exit of
    every net leads into the entry of each net allowed to follow it and into the end node. Arcs between nets
    carry the log of a uniform distribution over the allowed successors, arcs into the end node carry zero.
    The topology is stored as a node array and sparse weighted arcs.

    Parameters
    ----------
    nets : sequence of HMMNet
        The nets.
    follow : mapping of str to sequence of str, optional, default=None
        Names of the nets allowed to follow each net, every net may follow every net if None. Nets missing in
        the mapping may not be followed by any net.
    initial : sequence of str, optional, default=None
        Names of the nets a path may start with, all nets if None.
    """

    def __init__(self, nets, follow: Optional[Mapping[str, Sequence[str]]] = None,
                 initial: Optional[Sequence[str]] = None):
        if len(nets) == 0:
            raise ValueError("A search graph needs at least one net.")
        self._nets = list(nets)
        names = [net.name for net in self._nets]
        if follow is None:
            follow = {name: names for name in names}
        if initial is None:
            initial = names
        for name in list(follow.keys()) + [n for succ in follow.values() for n in succ] + list(initial):
            if name not in names:
                raise UnknownLabelError(f"Net '{name}' is not part of the search graph.")

        self._net_index = [-1]
        self._state_index = [-1]
        self._labels = ['<start>']
        self._entry: Dict[str, int] = {}
        self._exit: Dict[str, int] = {}
        src, dst, weights = [], [], []
        for k, net in enumerate(self._nets):
            offset = len(self._labels)
            self._entry[net.name] = offset
            self._exit[net.name] = offset + net.exit
            for i in range(net.n_states):
                self._net_index.append(k)
                self._state_index.append(i)
                self._labels.append(net.state_label(i))
            s, d, w = net.arcs()
            src.extend(s + offset)
            dst.extend(d + offset)
            weights.extend(w)
        self._start = 0
        self._end = len(self._labels)
        self._net_index.append(-1)
        self._state_index.append(-1)
        self._labels.append('<end>')

        for name in initial:
            src.append(self._start)
            dst.append(self._entry[name])
            weights.append(-np.log(len(initial)))
        for net in self._nets:
            successors = follow.get(net.name, ())
            for name in successors:
                src.append(self._exit[net.name])
                dst.append(self._entry[name])
                weights.append(-np.log(len(successors)))
            src.append(self._exit[net.name])
            dst.append(self._end)
            weights.append(0.)
        self._src = np.array(src, dtype=int)
        self._dst = np.array(dst, dtype=int)
        self._log_weights = np.array(weights, dtype=float)
        self._net_index = np.array(self._net_index)
        self._state_index = np.array(self._state_index)

    @property
    def nets(self):
        return self._nets

    @property
    def n_nodes(self) -> int:
        return len(self._labels)

    @property
    def start(self) -> int:
        r""" Index of the global start node. """
        return self._start

    @property
    def end(self) -> int:
        r""" Index of the global end node. """
        return self._end

    @property
    def labels(self) -> List[str]:
        r""" Node labels, :code:`<net>-<state>` for net states. """
        return self._labels

    @property
    def net_index(self) -> np.ndarray:
        r""" Per node the index of its net, -1 for start and end. """
        return self._net_index

    @property
    def state_index(self) -> np.ndarray:
        r""" Per node the state index within its net, -1 for start and end. """
        return self._state_index

    @property
    def emitting(self) -> np.ndarray:
        r""" Boolean mask of the emitting nodes. """
        mask = np.zeros(self.n_nodes, dtype=bool)
        for node in range(self.n_nodes):
            k = self._net_index[node]
            if k >= 0:
                mask[node] = 0 < self._state_index[node] < self._nets[k].exit
        return mask

    def entry_of(self, name: str) -> int:
        return self._entry[name]

    def exit_of(self, name: str) -> int:
        return self._exit[name]

    def arcs(self):
        r""" The arcs as arrays (src, dst, log_weights). """
        return self._src, self._dst, self._log_weights

    def log_weight_matrix(self) -> np.ndarray:
        r""" Dense (n_nodes, n_nodes) matrix of arc log-weights, :math:`-\infty` for missing arcs. """
        w = np.full((self.n_nodes, self.n_nodes), -np.inf)
        np.maximum.at(w, (self._src, self._dst), self._log_weights)
        return w

    def log_output_probabilities(self, observations) -> np.ndarray:
        r""" Emission log-densities for all nodes, :math:`-\infty` for non-emitting nodes.

        Returns
        -------
        log_probs : (n_nodes, T) ndarray
            Log-densities per node and frame.
        """
        observations = np.asarray(observations, dtype=float)
        out = np.full((self.n_nodes, len(observations)), -np.inf)
        for net in self._nets:
            entry = self._entry[net.name]
            out[entry + 1:entry + net.exit] = net.log_output_probabilities(observations)
        return out

    def __repr__(self):
        return f"SearchGraph(n_nets={len(self._nets)}, n_nodes={self.n_nodes}, n_arcs={len(self._src)})"

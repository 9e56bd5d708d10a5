from typing import List, Tuple

import numpy as np
from sklearn.utils import check_random_state

from ..alignment import ANode
from ..util.data import ObservationSequence
from ._network import HMMNet
from ._set import HMMSet


class SequenceGenerator:
    r""" Draws observation sequences from a single net.

    A path starts in the entry state. The successor of every state is drawn from its row of the transition
    matrix and every emitting state on the path contributes one draw of its emitter. Sampling stops when the
    exit state is reached or after `max_length` frames. A net with a skip arc can produce empty sequences.

    Parameters
    ----------
    net : HMMNet
        The net to sample from.
    random_state : None or int or numpy.random.RandomState, optional, default=None
        Source of randomness, a fixed seed gives a deterministic stream of sequences.
    max_length : int, optional, default=100
        Maximum number of frames per sequence.

    Examples
    --------
    >>> import numpy as np
    >>> from hmmkit.emission import Gaussian
    >>> from hmmkit.hmm import HMMNet, left_to_right
    >>> net = HMMNet("a", np.log(left_to_right(3)), [None, Gaussian(1, mean=[0.]), None])
    >>> X, states = SequenceGenerator(net, random_state=17).sample()
    >>> X.shape[0] == len(states) and set(states) == {1}
    True
    """

    def __init__(self, net: HMMNet, random_state=None, max_length: int = 100):
        if max_length <= 0:
            raise ValueError(f"max_length must be positive but was {max_length}.")
        self._net = net
        self._random_state = check_random_state(random_state)
        self._max_length = int(max_length)

    @property
    def net(self) -> HMMNet:
        return self._net

    @property
    def max_length(self) -> int:
        return self._max_length

    def sample(self) -> Tuple[np.ndarray, np.ndarray]:
        r""" Draws one sequence.

        Returns
        -------
        observations : (T, D) ndarray
            The emitted frames.
        states : (T,) ndarray
            The emitting state (index into the net) that produced each frame.
        """
        net, rs = self._net, self._random_state
        transitions = net.transition_matrix
        frames, states = [], []
        state = net.entry
        while len(frames) < self._max_length:
            row = transitions[state]
            state = int(rs.choice(net.n_states, p=row / row.sum()))
            if state == net.exit:
                break
            frames.append(net.emitters[state].sample(rs))
            states.append(state)
        observations = np.array(frames, dtype=float).reshape(len(frames), net.dim)
        return observations, np.array(states, dtype=int)

    def next(self, id: str = '') -> ObservationSequence:
        r""" Draws one sequence labeled with the net name and aligned to its states.

        Parameters
        ----------
        id : str, optional, default=''
            Identifier of the sequence.

        Returns
        -------
        observation : ObservationSequence
            The sequence, its alignment tree has the net as root and runs of states as leaves.
        """
        observations, states = self.sample()
        root = ANode(0, len(states), self._net.name)
        _append_state_runs(root, self._net, states)
        return ObservationSequence(observations, id=id, labels=[self._net.name], alignment=root,
                                   token_labels=True)


def _append_state_runs(node: ANode, net: HMMNet, states: np.ndarray):
    offset = node.start
    t = 0
    while t < len(states):
        run_end = t
        while run_end < len(states) and states[run_end] == states[t]:
            run_end += 1
        node.append_child(offset + run_end, net.state_label(int(states[t])))
        t = run_end


class ChainSequenceGenerator:
    r""" Draws observation sequences from random chains of nets of a set.

    The number of nets is drawn uniformly from :code:`1, ..., max_nets`, the nets themselves uniformly from the
    set. Every net is sampled with :class:`SequenceGenerator` and the parts are concatenated.

    The labels of a generated sequence are the names of all nets of the chain, including nets that were skipped
    without emitting a frame, so that the labels reproduce the chain. The alignment tree has three levels:
    the root covers the sequence, its children the nets that emitted frames, and the leaves runs of states
    named :code:`"<net>-<state>"`.

    Parameters
    ----------
    hmm_set : HMMSet
        The nets to draw from.
    max_nets : int, optional, default=5
        Maximum number of nets per chain.
    random_state : None or int or numpy.random.RandomState, optional, default=None
        Source of randomness.
    max_length : int, optional, default=100
        Maximum number of frames per net.
    """

    def __init__(self, hmm_set: HMMSet, max_nets: int = 5, random_state=None, max_length: int = 100):
        if len(hmm_set) == 0:
            raise ValueError("Cannot generate sequences from an empty set.")
        if max_nets <= 0:
            raise ValueError(f"max_nets must be positive but was {max_nets}.")
        self._set = hmm_set
        self._max_nets = int(max_nets)
        self._random_state = check_random_state(random_state)
        self._generators = {net.name: SequenceGenerator(net, self._random_state, max_length) for net in hmm_set}

    @property
    def max_nets(self) -> int:
        return self._max_nets

    def sample_names(self) -> List[str]:
        r""" Draws the net names of a random chain. """
        n_nets = self._random_state.randint(1, self._max_nets + 1)
        names = self._set.names
        return [names[i] for i in self._random_state.randint(0, len(names), size=n_nets)]

    def next(self, id: str = '') -> ObservationSequence:
        r""" Draws the net names of a chain and one sequence from it.

        Parameters
        ----------
        id : str, optional, default=''
            Identifier of the sequence.

        Returns
        -------
        observation : ObservationSequence
            The labeled and aligned sequence.
        """
        names = self.sample_names()
        parts = [self._generators[name].sample() for name in names]
        n_frames = sum(len(states) for _, states in parts)
        root = ANode(0, n_frames, id)
        end = 0
        for name, (_, states) in zip(names, parts):
            if len(states) > 0:
                end += len(states)
                node = root.append_child(end, name)
                _append_state_runs(node, self._set[name], states)
        observations = np.concatenate([X for X, _ in parts], axis=0) if n_frames > 0 \
            else np.empty((0, self._set.dim))
        return ObservationSequence(observations, id=id, labels=names, alignment=root, token_labels=True)

from typing import List, Optional, Sequence

import numpy as np
from sklearn.utils import check_random_state

from ..base import Model
from ..emission import Emitter
from ..numeric import logsumexp, safe_log
from ..util.exceptions import InvalidNetError, DimensionMismatchError
from ..util.types import ensure_observations

#: Tolerance for the row normalization of log-transition matrices.
ROW_SUM_TOLERANCE = 1e-6


def _validate(log_transition_matrix: np.ndarray, emitters: Sequence[Optional[Emitter]]):
    A = log_transition_matrix
    if A.ndim != 2:
        raise InvalidNetError(f"The transition matrix must have rank 2 but had rank {A.ndim}.")
    if A.shape[0] != A.shape[1]:
        raise InvalidNetError(f"The transition matrix must be square but had shape {A.shape}.")
    n = A.shape[0]
    if n < 3:
        raise InvalidNetError("A net needs an entry, an exit and at least one emitting state.")
    if len(emitters) != n:
        raise InvalidNetError(f"Expected {n} emitters (None for entry and exit) but got {len(emitters)}.")
    if emitters[0] is not None or emitters[-1] is not None:
        raise InvalidNetError("Entry and exit states must be non-emitting (their emitters must be None).")
    for i in range(1, n - 1):
        if not isinstance(emitters[i], Emitter):
            raise InvalidNetError(f"State {i} is emitting but has no emitter.")
    dims = {e.dim for e in emitters[1:-1]}
    if len(dims) != 1:
        raise InvalidNetError(f"All emitters of a net must have the same dimension, got {sorted(dims)}.")
    if np.any(np.isnan(A)) or np.any(A > ROW_SUM_TOLERANCE):
        raise InvalidNetError("Log-transition probabilities must be <= 0 and not NaN.")
    if np.any(np.isfinite(A[:, 0])):
        raise InvalidNetError("The entry state must not have incoming arcs.")
    if np.any(np.isfinite(A[n - 1, :])):
        raise InvalidNetError("The exit state must not have outgoing arcs.")
    lower = np.tril(np.isfinite(A), k=-1)
    if np.any(lower):
        i, j = np.argwhere(lower)[0]
        raise InvalidNetError(f"The net must be left-to-right but has an arc {i} -> {j}.")
    row_sums = logsumexp(A[:-1], axis=1)
    bad = np.abs(row_sums) > ROW_SUM_TOLERANCE
    if np.any(bad):
        raise InvalidNetError(f"Rows {np.flatnonzero(bad).tolist()} of the transition matrix do not sum to one.")
    # exit must be reachable from the entry
    reached, frontier = {0}, [0]
    while frontier:
        i = frontier.pop()
        for j in np.flatnonzero(np.isfinite(A[i])):
            if j not in reached:
                reached.add(int(j))
                frontier.append(int(j))
    if n - 1 not in reached:
        raise InvalidNetError("The exit state cannot be reached from the entry state.")


class HMMNet(Model):
    r""" A left-to-right hidden Markov model network with non-emitting entry and exit states.

    State 0 is the entry, state :math:`N-1` the exit. Both are non-emitting and can be crossed without
    consuming an observation; an arc from the entry directly to the exit (a *skip*) allows a chain of
    nets to skip this net altogether. States :math:`1,\ldots,N-2` carry emitters. The topology is stored
    as a dense log-transition matrix in which forbidden arcs have the value :math:`-\infty`.

    Parameters
    ----------
    name : str
        Name of the net, unique within an :class:`HMMSet`.
    log_transition_matrix : (N, N) array_like
        Natural logarithms of the transition probabilities.
    emitters : list of Emitter
        One entry per state, None for the entry and exit state.

    Raises
    ------
    InvalidNetError
        If the matrix is not square or not of rank two, the emitter list does not match, or the topology
        is not left-to-right with rows summing to one.
    """

    def __init__(self, name: str, log_transition_matrix, emitters: Sequence[Optional[Emitter]]):
        super().__init__()
        log_transition_matrix = np.array(log_transition_matrix, dtype=float)
        _validate(log_transition_matrix, emitters)
        self._name = name
        self._log_transition_matrix = log_transition_matrix
        self._emitters = list(emitters)

    @property
    def name(self) -> str:
        return self._name

    @property
    def n_states(self) -> int:
        r""" Number of states N including entry and exit. """
        return self._log_transition_matrix.shape[0]

    @property
    def n_emitting_states(self) -> int:
        return self.n_states - 2

    @property
    def entry(self) -> int:
        return 0

    @property
    def exit(self) -> int:
        return self.n_states - 1

    @property
    def dim(self) -> int:
        r""" Dimension of the observations scored by this net. """
        return self._emitters[1].dim

    @property
    def emitters(self) -> List[Optional[Emitter]]:
        r""" The emitters, None at the entry and exit state. """
        return self._emitters

    @property
    def emitting_emitters(self) -> List[Emitter]:
        r""" The emitters of the states :math:`1,\ldots,N-2`. """
        return self._emitters[1:-1]

    @property
    def log_transition_matrix(self) -> np.ndarray:
        r""" Log-transition matrix, read-only view. Use :meth:`set_log_transition_matrix` to change it. """
        view = self._log_transition_matrix.view()
        view.setflags(write=False)
        return view

    @property
    def transition_matrix(self) -> np.ndarray:
        r""" Transition probabilities. """
        return np.exp(self._log_transition_matrix)

    def set_log_transition_matrix(self, value):
        r""" Replaces the transition matrix after validating it. """
        value = np.array(value, dtype=float)
        if value.shape != self._log_transition_matrix.shape:
            raise InvalidNetError(f"Expected a transition matrix of shape {self._log_transition_matrix.shape} "
                                  f"but got {value.shape}.")
        _validate(value, self._emitters)
        self._log_transition_matrix = value

    @property
    def skip_log_prob(self) -> float:
        r""" Log-probability of crossing the net without emitting, i.e., of the arc entry -> exit. """
        return float(self._log_transition_matrix[0, -1])

    @property
    def has_skip(self) -> bool:
        return bool(np.isfinite(self.skip_log_prob))

    def arcs(self):
        r""" Sparse view of the topology.

        Returns
        -------
        src : ndarray of int
            Source states.
        dst : ndarray of int
            Destination states.
        log_weights : ndarray of float
            Log-transition probabilities of the arcs.
        """
        src, dst = np.nonzero(np.isfinite(self._log_transition_matrix))
        return src, dst, self._log_transition_matrix[src, dst]

    def state_label(self, state: int) -> str:
        r""" Label :code:`<net>-<state>` of a state of this net. """
        return f"{self.name}-{state}"

    def log_output_probabilities(self, observations) -> np.ndarray:
        r""" Emission log-densities of all emitting states.

        Parameters
        ----------
        observations : (T, D) array_like
            The observations.

        Returns
        -------
        log_probs : (N-2, T) ndarray
            Entry :code:`[j-1, t]` holds the log-density of frame t under emitting state j.
        """
        try:
            observations = ensure_observations(observations, self.dim, allow_empty=True)
        except DimensionMismatchError as e:
            raise DimensionMismatchError(f"Net '{self.name}': {e}") from e
        return np.stack([e.log_prob_batch(observations) for e in self.emitting_emitters])

    def clear(self):
        r""" Clears the accumulators of all emitters. """
        for e in self.emitting_emitters:
            e.clear()

    def __repr__(self):
        return f"HMMNet(name={self.name!r}, n_states={self.n_states}, dim={self.dim})"


def left_to_right(n_states: int, self_loop: float = .5, skip: float = 0.) -> np.ndarray:
    r""" Transition matrix (in probability space) of a canonical left-to-right net: the entry moves to the
    first emitting state (or skips the net with probability `skip`), every emitting state loops with
    probability `self_loop` and moves on to its right neighbour otherwise.

    Parameters
    ----------
    n_states : int
        Number of states including entry and exit, at least three.
    self_loop : float, default=.5
        Self-transition probability of the emitting states.
    skip : float, default=0.
        Probability of the skip arc entry -> exit.

    Returns
    -------
    transition_matrix : (n_states, n_states) ndarray
        The row-stochastic (except for the exit row) transition matrix.

    Examples
    --------
    >>> left_to_right(4, .5, .1)
    array([[0. , 0.9, 0. , 0.1],
           [0. , 0.5, 0.5, 0. ],
           [0. , 0. , 0.5, 0.5],
           [0. , 0. , 0. , 0. ]])
    """
    if n_states < 3:
        raise InvalidNetError("A net needs at least three states.")
    if not 0 <= self_loop < 1 or not 0 <= skip < 1:
        raise ValueError("Self-loop and skip probabilities must lie in [0, 1).")
    a = np.zeros((n_states, n_states))
    a[0, 1] = 1. - skip
    a[0, -1] = skip
    for i in range(1, n_states - 1):
        a[i, i] = self_loop
        a[i, i + 1] = 1. - self_loop
    return a


def random_left_to_right(n_states: int, skip: bool = False, random_state=None) -> np.ndarray:
    r""" Random left-to-right transition matrix (in log space). Every emitting state has a self-loop and an arc
    to its right neighbour; with `skip`, emitting states may additionally jump over their neighbour and the
    entry may skip the first emitting state.

    Parameters
    ----------
    n_states : int
        Number of states including entry and exit, at least three.
    skip : bool, default=False
        Whether to add skip arcs.
    random_state : None or int or numpy.random.RandomState, optional
        Source of randomness.

    Returns
    -------
    log_transition_matrix : (n_states, n_states) ndarray
        Log-transition matrix.
    """
    if n_states < 3:
        raise InvalidNetError("A net needs at least three states.")
    random_state = check_random_state(random_state)

    def probs(k):
        p = random_state.uniform(size=k)
        return p / p.sum()

    a = np.zeros((n_states, n_states))
    if n_states > 3 and skip:
        a[0, 1:3] = probs(2)
    else:
        a[0, 1] = 1.
    for i in range(1, n_states - 2):
        if skip:
            a[i, i:i + 3] = probs(3)
        else:
            a[i, i:i + 2] = probs(2)
    a[n_states - 2, n_states - 2:] = probs(2)
    return safe_log(a)

from typing import List, Sequence

import numpy as np

from ..numeric import logsumexp, clamp_nan
from ..util.exceptions import EmptyChainError, DimensionMismatchError, ZeroLikelihoodError
from ..util.types import ensure_observations
from ._network import HMMNet


class Chain:
    r""" Lattice of an embedded chain of nets :math:`m_0, \ldots, m_{Q-1}` over one observation sequence.

    Nets are joined head to tail: the exit of net :math:`q` leads into the entry of net :math:`q+1`. Entry
    and exit states are non-emitting, so that a net with a skip arc can be crossed without consuming a frame.
    The forward variables are computed for :math:`t = 0, \ldots, T-1`, within a frame for
    :math:`q = 0, \ldots, Q-1`, and within a net entry, emitting states, exit. With :math:`a_q` the
    log-transitions of net :math:`q` and :math:`b_q(j, t)` the emission log-densities,

    .. math::
        \alpha(q, 0, t) &= \log\left(e^{\alpha(q-1, N_{q-1}-1, t-1)} + e^{\alpha(q-1, 0, t) + a_{q-1}(0, N_{q-1}-1)}\right),
        \quad \alpha(0, 0, t) = 0 \text{ if } t = 0 \text{ else } -\infty,\\
        \alpha(q, j, t) &= b_q(j, t) + \log\left(e^{\alpha(q, 0, t) + a_q(0, j)}
        + \sum_i e^{\alpha(q, i, t-1) + a_q(i, j)}\right),\\
        \alpha(q, N_q-1, t) &= \log\sum_i e^{\alpha(q, i, t) + a_q(i, N_q-1)}.

    The entry variable thus includes paths that skip preceding nets within the same frame, while the exit
    variable only covers paths whose last frame was emitted by net :math:`q`. The backward variables are the
    dual: :math:`\beta(q, N_q-1, t)` includes skips over succeeding nets and :math:`\beta(q, 0, t)` only
    covers paths which emit frame :math:`t` in net :math:`q`. The total log-likelihood additionally accounts for
    skipping the first net at the beginning and the last net at the end, so that the forward and backward
    likelihoods agree for every topology.

    All per-frame work is vectorized over the nets of the chain, the emitting states being padded to the
    largest net with :math:`-\infty`.

    Parameters
    ----------
    nets : sequence of HMMNet
        The nets, referenced but not owned by the chain.
    observations : (T, D) array_like
        The observation sequence.
    sequence_id : str, optional, default=''
        Identifier used in error messages.

    Raises
    ------
    EmptyChainError
        If no nets are given.
    EmptyObservationError
        If the observation sequence has no frames.
    DimensionMismatchError
        If the frame dimension does not match the nets.
    """

    def __init__(self, nets: Sequence[HMMNet], observations, sequence_id: str = ''):
        if len(nets) == 0:
            raise EmptyChainError(f"Cannot build a chain without nets (sequence '{sequence_id}').")
        dims = {net.dim for net in nets}
        if len(dims) != 1:
            raise DimensionMismatchError(f"Nets of a chain must share the observation dimension, got {dims}.")
        self._nets = list(nets)
        self._id = sequence_id
        self._observations = ensure_observations(observations, dims.pop())
        self._n_clamped = [0]

        n_nets = len(self._nets)
        self._n_emitting = np.array([net.n_emitting_states for net in self._nets])
        m = int(self._n_emitting.max())
        self._a_entry = np.full((n_nets, m), -np.inf)
        self._a_emit = np.full((n_nets, m, m), -np.inf)
        self._a_exit = np.full((n_nets, m), -np.inf)
        self._skip = np.empty(n_nets)
        for q, net in enumerate(self._nets):
            a, k = net.log_transition_matrix, net.n_emitting_states
            self._a_entry[q, :k] = a[0, 1:-1]
            self._a_emit[q, :k, :k] = a[1:-1, 1:-1]
            self._a_exit[q, :k] = a[1:-1, -1]
            self._skip[q] = a[0, -1]
        self._log_b = self._compute_output_probabilities()
        self._forward = None
        self._backward = None

    def _compute_output_probabilities(self):
        n_frames = self._observations.shape[0]
        log_b = np.full((self.n_nets, self.max_emitting, n_frames), -np.inf)
        cache = {}
        for q, net in enumerate(self._nets):
            if id(net) not in cache:
                cache[id(net)] = clamp_nan(net.log_output_probabilities(self._observations), self._n_clamped)
            log_b[q, :net.n_emitting_states] = cache[id(net)]
        return log_b

    @property
    def nets(self) -> List[HMMNet]:
        return self._nets

    @property
    def observations(self) -> np.ndarray:
        return self._observations

    @property
    def n_nets(self) -> int:
        r""" Number of nets Q in the chain. """
        return len(self._nets)

    @property
    def n_frames(self) -> int:
        r""" Number of frames T. """
        return self._observations.shape[0]

    @property
    def max_emitting(self) -> int:
        return self._a_entry.shape[1]

    @property
    def n_clamped(self) -> int:
        r""" Number of emission log-densities that were NaN and have been clamped to :math:`-\infty`. """
        return self._n_clamped[0]

    @property
    def log_output_probabilities(self) -> np.ndarray:
        r""" Emission log-densities of shape (Q, M, T) with M the largest number of emitting states; entry
        :code:`[q, j-1, t]` belongs to emitting state j of net q. """
        return self._log_b

    def forward(self) -> float:
        r""" Runs the forward pass.

        Returns
        -------
        log_likelihood : float
            Log-likelihood of the observations under the chain.
        """
        n_nets, n_frames = self.n_nets, self.n_frames
        log_b, a_entry, a_emit, a_exit, skip = self._log_b, self._a_entry, self._a_emit, self._a_exit, self._skip

        entry = np.full((n_nets, n_frames), -np.inf)
        emit = np.full((n_nets, self.max_emitting, n_frames), -np.inf)
        exit_ = np.full((n_nets, n_frames), -np.inf)
        for t in range(n_frames):
            entry[0, t] = 0. if t == 0 else -np.inf
            for q in range(1, n_nets):
                previous_exit = exit_[q - 1, t - 1] if t > 0 else -np.inf
                entry[q, t] = np.logaddexp(previous_exit, entry[q - 1, t] + skip[q - 1])
            into = entry[:, t, None] + a_entry
            if t > 0:
                into = np.logaddexp(into, logsumexp(emit[:, :, t - 1, None] + a_emit, axis=1))
            emit[:, :, t] = into + log_b[:, :, t]
            exit_[:, t] = logsumexp(emit[:, :, t] + a_exit, axis=1)

        # entries reached after the last frame, only through skips
        entry_final = np.full(n_nets, -np.inf)
        for q in range(1, n_nets):
            entry_final[q] = np.logaddexp(exit_[q - 1, -1], entry_final[q - 1] + skip[q - 1])
        log_likelihood = float(np.logaddexp(exit_[-1, -1], entry_final[-1] + skip[-1]))
        self._forward = (entry, emit, exit_, entry_final, log_likelihood)
        return log_likelihood

    def backward(self) -> float:
        r""" Runs the backward pass.

        Returns
        -------
        log_likelihood : float
            Log-likelihood of the observations under the chain.
        """
        n_nets, n_frames = self.n_nets, self.n_frames
        log_b, a_entry, a_emit, a_exit, skip = self._log_b, self._a_entry, self._a_emit, self._a_exit, self._skip

        entry = np.full((n_nets, n_frames), -np.inf)
        emit = np.full((n_nets, self.max_emitting, n_frames), -np.inf)
        exit_ = np.full((n_nets, n_frames), -np.inf)
        for t in range(n_frames - 1, -1, -1):
            exit_[-1, t] = 0. if t == n_frames - 1 else -np.inf
            for q in range(n_nets - 2, -1, -1):
                next_entry = entry[q + 1, t + 1] if t < n_frames - 1 else -np.inf
                exit_[q, t] = np.logaddexp(next_entry, exit_[q + 1, t] + skip[q + 1])
            out = a_exit + exit_[:, t, None]
            if t < n_frames - 1:
                following = log_b[:, :, t + 1] + emit[:, :, t + 1]
                out = np.logaddexp(out, logsumexp(a_emit + following[:, None, :], axis=2))
            emit[:, :, t] = out
            entry[:, t] = logsumexp(a_entry + log_b[:, :, t] + emit[:, :, t], axis=1)

        # exits left before the first frame, only through skips
        exit_initial = np.full(n_nets, -np.inf)
        for q in range(n_nets - 2, -1, -1):
            exit_initial[q] = np.logaddexp(entry[q + 1, 0], exit_initial[q + 1] + skip[q + 1])
        log_likelihood = float(np.logaddexp(entry[0, 0], skip[0] + exit_initial[0]))
        self._backward = (entry, emit, exit_, exit_initial, log_likelihood)
        return log_likelihood

    def forward_backward(self) -> float:
        r""" Runs both passes.

        Returns
        -------
        log_likelihood : float
            The forward log-likelihood.

        Raises
        ------
        ZeroLikelihoodError
            If the observations have zero probability under the chain.
        """
        log_likelihood = self.forward()
        self.backward()
        if not np.isfinite(log_likelihood):
            raise ZeroLikelihoodError(f"Sequence '{self._id}' has zero probability under the chain "
                                      f"{[net.name for net in self._nets]}.")
        return log_likelihood

    def _require(self, which):
        if which is None:
            raise RuntimeError("The forward and backward passes have to be run first.")
        return which

    @property
    def log_likelihood(self) -> float:
        r""" Forward log-likelihood, runs both passes if necessary. """
        if self._forward is None or self._backward is None:
            self.forward_backward()
        return self._forward[-1]

    @property
    def forward_log_likelihood(self) -> float:
        return self._require(self._forward)[-1]

    @property
    def backward_log_likelihood(self) -> float:
        return self._require(self._backward)[-1]

    def _assemble(self, entry, emit, exit_):
        lattice = np.full((self.n_nets, self.max_emitting + 2, self.n_frames), -np.inf)
        for q, net in enumerate(self._nets):
            k = net.n_emitting_states
            lattice[q, 0] = entry[q]
            lattice[q, 1:k + 1] = emit[q, :k]
            lattice[q, k + 1] = exit_[q]
        return lattice

    @property
    def alpha(self) -> np.ndarray:
        r""" Forward lattice of shape (Q, max N_q, T); the exit of net q sits at index :math:`N_q - 1`, indices
        beyond are :math:`-\infty`. """
        return self._assemble(*self._require(self._forward)[:3])

    @property
    def beta(self) -> np.ndarray:
        r""" Backward lattice of shape (Q, max N_q, T), laid out like :attr:`alpha`. """
        return self._assemble(*self._require(self._backward)[:3])

    def state_log_posteriors(self) -> np.ndarray:
        r""" Log-occupancies :math:`\gamma_q(j, t) = \alpha(q, j, t) + \beta(q, j, t) - L` of the emitting states.

        Returns
        -------
        gamma : (Q, M, T) ndarray
            Entry :code:`[q, j-1, t]` belongs to emitting state j of net q, padding is :math:`-\infty`. Summed
            over all nets and emitting states, the occupancies of every frame add up to one.
        """
        _, alpha_emit, _, _, log_likelihood = self._require(self._forward)
        _, beta_emit, _, _, _ = self._require(self._backward)
        return alpha_emit + beta_emit - log_likelihood

    def transition_statistics(self, q: int):
        r""" Expected transition counts and state occupancies of net `q` accumulated over all frames.

        Counts are collected for all arcs, including those that touch the entry and exit states:
        emitting to emitting arcs over :math:`t < T-1`, emitting to exit and entry to emitting arcs over all
        frames, and the skip arc entry to exit over all :math:`T+1` positions between and around frames.
        The occupancy of a state is the sum of the counts of its outgoing arcs.

        Parameters
        ----------
        q : int
            Position of the net in the chain.

        Returns
        -------
        counts : (N_q, N_q) ndarray
            Expected number of traversals per arc.
        occupancy : (N_q,) ndarray
            Expected number of visits per state; zero for the exit.
        """
        entry_a, emit_a, _, entry_final, log_likelihood = self._require(self._forward)
        _, emit_b, exit_b, exit_initial, _ = self._require(self._backward)
        net = self._nets[q]
        k, n = net.n_emitting_states, net.n_states
        alpha = emit_a[q, :k]
        beta = emit_b[q, :k]
        log_b = self._log_b[q, :k]
        a_emit = self._a_emit[q, :k, :k]

        counts = np.zeros((n, n))
        if self.n_frames > 1:
            pairs = logsumexp(alpha[:, None, :-1] + (log_b + beta)[None, :, 1:], axis=2)
            counts[1:-1, 1:-1] = np.exp(pairs + a_emit - log_likelihood)
        counts[1:-1, -1] = np.exp(logsumexp(alpha + self._a_exit[q, :k, None] + exit_b[q][None, :], axis=1)
                                  - log_likelihood)
        counts[0, 1:-1] = np.exp(logsumexp(entry_a[q][None, :] + self._a_entry[q, :k, None] + log_b + beta,
                                           axis=1) - log_likelihood)
        entry_times = np.append(entry_a[q], entry_final[q])
        exit_times = np.insert(exit_b[q], 0, exit_initial[q])
        counts[0, -1] = np.exp(logsumexp(entry_times + self._skip[q] + exit_times) - log_likelihood)
        occupancy = counts.sum(axis=1)
        return counts, occupancy

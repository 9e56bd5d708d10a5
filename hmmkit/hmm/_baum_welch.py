import logging
import warnings
from contextlib import nullcontext
from typing import Dict, List, Optional, Sequence

import numpy as np
from threadpoolctl import threadpool_limits

from ..base import Estimator
from ..numeric import log_normalize
from ..util.callbacks import ProgressCallback
from ..util.data import ObservationSequence
from ..util.exceptions import DegenerateWarning, DimensionMismatchError, EmptyChainError, InvalidNetError, \
    SEQUENCE_ERRORS, TrainingError, UnknownLabelError
from ..util.parallel import handle_n_jobs, joining, split_evenly
from ._assign import Assigner, DirectAssigner
from ._set import EmbeddedHMM, HMMSet

log = logging.getLogger(__name__)


class _NetStatistics:
    r""" Expected transition counts and state occupancies of one net, summed over all chain positions and
    sequences of an iteration. """

    def __init__(self, n_states: int):
        self.counts = np.zeros((n_states, n_states))
        self.occupancy = np.zeros(n_states)

    def add(self, counts, occupancy):
        self.counts += counts
        self.occupancy += occupancy

    def merge(self, other: "_NetStatistics"):
        self.add(other.counts, other.occupancy)

    @property
    def total_occupancy(self) -> float:
        return float(self.occupancy.sum())


class _ShardResult:

    def __init__(self, hmm_set: HMMSet):
        self.statistics = {net.name: _NetStatistics(net.n_states) for net in hmm_set}
        self.log_likelihood = 0.
        self.n_updates = 0
        self.n_failed = 0
        self.n_clamped = 0
        self.emitters = None

    def merge(self, other: "_ShardResult"):
        for name, stats in other.statistics.items():
            self.statistics[name].merge(stats)
        self.log_likelihood += other.log_likelihood
        self.n_updates += other.n_updates
        self.n_failed += other.n_failed
        self.n_clamped += other.n_clamped


def _unique_emitters(hmm_set: HMMSet):
    r""" All emitters of a set in a deterministic order, emitters shared between states appear once. """
    seen, out = set(), []
    for net in hmm_set:
        for emitter in net.emitting_emitters:
            if id(emitter) not in seen:
                seen.add(id(emitter))
                out.append(emitter)
    return out


def _split_leaf_name(name: str):
    net_name, _, state = name.rpartition('-')
    if not net_name or not state.isdigit():
        raise UnknownLabelError(f"Alignment leaf '{name}' does not name a state as '<net>-<state>'.")
    return net_name, int(state)


def _accumulate_supervised(hmm_set: HMMSet, observation: ObservationSequence, result: _ShardResult,
                           update_outputs: bool):
    if observation.alignment is None or observation.alignment.is_leaf:
        raise EmptyChainError(f"Sequence '{observation.id}' carries no alignment for supervised training.")
    vectors = observation.vectors
    if vectors.shape[1] != hmm_set.dim:
        raise DimensionMismatchError(f"Sequence '{observation.id}' has dimension {vectors.shape[1]}, "
                                     f"but the nets have dimension {hmm_set.dim}.")
    segments = []
    for leaf in observation.alignment.leaves():
        net_name, state = _split_leaf_name(leaf.name)
        net = hmm_set[net_name]
        if not 0 < state < net.exit:
            raise UnknownLabelError(f"Net '{net_name}' has no emitting state {state}.")
        segments.append((leaf, net, state))
    log_likelihood = 0.
    for leaf, net, state in segments:
        frames = vectors[leaf.start:leaf.end]
        emitter = net.emitters[state]
        log_likelihood += float(np.sum(emitter.log_prob_batch(frames)))
        counts = np.zeros((net.n_states, net.n_states))
        occupancy = np.zeros(net.n_states)
        occupancy[state] = len(leaf)
        if leaf.parent is not None and leaf.parent.children[0] is leaf:
            counts[0, state] = occupancy[0] = 1.
        result.statistics[net.name].add(counts, occupancy)
        if update_outputs and len(frames) > 0:
            emitter.update(frames)
    return log_likelihood


def _accumulate(hmm_set: HMMSet, assigner: Assigner, observation: ObservationSequence, result: _ShardResult,
                use_alignments: bool, update_outputs: bool):
    r""" Adds the statistics of one sequence to `result` and to the emitter accumulators. Raises one of
    :data:`SEQUENCE_ERRORS` before touching any accumulator. """
    if use_alignments:
        return _accumulate_supervised(hmm_set, observation, result, update_outputs)
    chain = hmm_set.chain_for(observation, assigner)
    log_likelihood = chain.forward_backward()
    result.n_clamped += chain.n_clamped
    gamma = np.exp(chain.state_log_posteriors())
    for q, net in enumerate(chain.nets):
        result.statistics[net.name].add(*chain.transition_statistics(q))
        if update_outputs:
            for j, emitter in enumerate(net.emitting_emitters):
                emitter.update(chain.observations, weights=gamma[q, j])
    return log_likelihood


def _accumulate_all(hmm_set: HMMSet, assigner: Assigner, observations, use_alignments: bool,
                    update_outputs: bool, cancel=None) -> Optional[_ShardResult]:
    result = _ShardResult(hmm_set)
    for observation in observations:
        if cancel is not None and cancel.is_set():
            return None
        try:
            result.log_likelihood += _accumulate(hmm_set, assigner, observation, result, use_alignments,
                                                 update_outputs)
            result.n_updates += 1
        except SEQUENCE_ERRORS as e:
            result.n_failed += 1
            log.warning("Skipping sequence '%s': %s", observation.id, e)
    return result


def _accumulate_shard(args):
    r""" Worker entry point: accumulates a shard of sequences on a private copy of the set and ships the
    statistics and the emitter accumulators back. """
    with threadpool_limits(limits=1, user_api='blas'):
        hmm_set, assigner, observations, use_alignments, update_outputs = args
        result = _accumulate_all(hmm_set, assigner, observations, use_alignments, update_outputs)
        result.emitters = _unique_emitters(hmm_set)
        return result


class BaumWelchTrainer(Estimator):
    r""" Embedded Baum-Welch training of a set of nets.

    Every training sequence is mapped to a :class:`Chain` of nets through its transcript and the
    :class:`assigner <Assigner>`. One iteration runs the forward-backward algorithm on all chains, accumulates
    the expected transition counts and state occupancies per net as well as occupancy-weighted emitter
    statistics, and then re-estimates all parameters. Statistics of a net that occurs several times within a
    chain or in several chains are pooled. With :math:`\xi_q(i, j)` the expected number of traversals of arc
    :math:`i \to j` and :math:`\gamma_q(i)` the expected number of visits of state :math:`i`, the transition
    rows are re-estimated as

    .. math::
        a_q(i, j) = \log \frac{\xi_q(i, j)}{\gamma_q(i)},

    renormalized in log-space. Arcs without counts drop out of the net; arcs that were absent never reappear.

    Parameters
    ----------
    initial_model : HMMSet
        The nets to start from. Training works on a copy, the initial model is left untouched.
    assigner : Assigner, optional, default=None
        Maps transcripts to net names, :class:`DirectAssigner` if None.
    update_transitions : bool, optional, default=True
        Whether to re-estimate the rows of the emitting states.
    update_init : bool, optional, default=True
        Whether to re-estimate the row of the entry state.
    update_outputs : bool, optional, default=True
        Whether to re-estimate the emitters.
    use_alignments : bool, optional, default=False
        Supervised training from alignment trees: frames are assigned to the states named by the leaves
        (:code:`"<net>-<state>"`) of each sequence's alignment. Only emitters and entry rows are updated,
        :attr:`update_transitions` is ignored.
    maxit : int, optional, default=10
        Maximum number of iterations.
    accuracy : float, optional, default=None
        Training stops once the log-likelihood gain of an iteration falls below this value. If None, all
        :attr:`maxit` iterations are run.
    min_occupancy : float, optional, default=1e-2
        Nets with a total occupancy below this value are not updated in an iteration; a
        :class:`DegenerateWarning` is issued.
    n_jobs : int, optional, default=1
        Number of worker processes. With more than one job, sequences are split into shards which are
        accumulated in parallel on copies of the set and merged afterwards. None uses all cores.
    progress : ProgressBar, optional, default=None
        Optional progress bar, tested for tqdm.

    See Also
    --------
    EmbeddedHMM
    """

    def __init__(self, initial_model: HMMSet, assigner: Optional[Assigner] = None,
                 update_transitions: bool = True, update_init: bool = True, update_outputs: bool = True,
                 use_alignments: bool = False, maxit: int = 10, accuracy: Optional[float] = None,
                 min_occupancy: float = 1e-2, n_jobs: Optional[int] = 1, progress=None):
        super().__init__()
        self.initial_model = initial_model
        self.assigner = assigner
        self.update_transitions = update_transitions
        self.update_init = update_init
        self.update_outputs = update_outputs
        self.use_alignments = use_alignments
        self.maxit = maxit
        self.accuracy = accuracy
        self.min_occupancy = min_occupancy
        self.n_jobs = n_jobs
        self.progress = progress
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        r""" Whether the last call to :meth:`fit` or :meth:`partial_fit` was cancelled. """
        return self._cancelled

    @property
    def initial_model(self) -> HMMSet:
        r""" The nets training starts from. """
        return self._initial_model

    @initial_model.setter
    def initial_model(self, value: HMMSet):
        if not isinstance(value, HMMSet):
            raise ValueError(f"The initial model must be an HMMSet but was {type(value)}.")
        if len(value) == 0:
            raise ValueError("The initial model contains no nets.")
        self._initial_model = value

    @property
    def assigner(self) -> Optional[Assigner]:
        return self._assigner

    @assigner.setter
    def assigner(self, value: Optional[Assigner]):
        if value is not None and not isinstance(value, Assigner):
            raise ValueError(f"The assigner must be an Assigner but was {type(value)}.")
        self._assigner = value

    @property
    def maxit(self) -> int:
        r""" Maximum number of iterations. """
        return self._maxit

    @maxit.setter
    def maxit(self, value: int):
        value = int(value)
        if value < 0:
            raise ValueError(f"maxit must be non-negative but was {value}.")
        self._maxit = value

    @property
    def accuracy(self) -> Optional[float]:
        r""" Minimum log-likelihood gain per iteration, None disables the convergence check. """
        return self._accuracy

    @accuracy.setter
    def accuracy(self, value: Optional[float]):
        self._accuracy = None if value is None else float(value)

    @property
    def min_occupancy(self) -> float:
        return self._min_occupancy

    @min_occupancy.setter
    def min_occupancy(self, value: float):
        value = float(value)
        if value < 0:
            raise ValueError(f"min_occupancy must be non-negative but was {value}.")
        self._min_occupancy = value

    @property
    def n_jobs(self) -> int:
        r""" Number of worker processes. """
        return self._n_jobs

    @n_jobs.setter
    def n_jobs(self, value: Optional[int]):
        self._n_jobs = handle_n_jobs(value)

    def fetch_model(self) -> Optional[EmbeddedHMM]:
        r""" Yields the trained model or None if :meth:`fit` was not called yet.

        Returns
        -------
        model : EmbeddedHMM or None
            The model.
        """
        return self._model

    def _effective_assigner(self) -> Assigner:
        return DirectAssigner() if self.assigner is None else self.assigner

    @staticmethod
    def _as_list(data) -> List[ObservationSequence]:
        if isinstance(data, ObservationSequence):
            data = [data]
        data = list(data)
        for i, observation in enumerate(data):
            if not isinstance(observation, ObservationSequence):
                raise ValueError(f"Training data must consist of ObservationSequence instances, "
                                 f"element {i} was {type(observation)}.")
        return data

    def fit(self, data, cancel=None, **kwargs):
        r""" Trains a copy of the initial model on labeled observation sequences.

        Parameters
        ----------
        data : ObservationSequence or iterable of ObservationSequence
            The training data. Each sequence needs labels or an alignment from which its chain is built.
        cancel : object, optional, default=None
            Cancellation token with an `is_set()` method, e.g., a :class:`threading.Event`. It is checked
            between iterations and, without worker processes, between sequences. A cancelled iteration is
            discarded and the model of the last completed iteration is kept.
        **kwargs
            Ignored kwargs for scikit-learn compatibility.

        Returns
        -------
        self : BaumWelchTrainer
            Reference to self.

        Raises
        ------
        TrainingError
            If no sequence of an iteration could be used.
        """
        model = EmbeddedHMM(self.initial_model.copy(), assigner=self._effective_assigner())
        self._model = self._train(model, self._as_list(data), self.maxit, cancel)
        return self

    def partial_fit(self, data, cancel=None):
        r""" Runs a single iteration, starting from the current model or from the initial model if there is none
        yet. The likelihood history of the model is extended.

        Parameters
        ----------
        data : ObservationSequence or iterable of ObservationSequence
            The training data.
        cancel : object, optional, default=None
            Cancellation token, see :meth:`fit`.

        Returns
        -------
        self : BaumWelchTrainer
            Reference to self.
        """
        if self._model is None:
            model = EmbeddedHMM(self.initial_model.copy(), assigner=self._effective_assigner())
        else:
            model = self._model
        self._model = self._train(model, self._as_list(data), 1, cancel)
        return self

    def _train(self, model: EmbeddedHMM, data: List[ObservationSequence], maxit: int, cancel) -> EmbeddedHMM:
        if len(data) == 0:
            raise ValueError("Cannot train without observation sequences.")
        hmm_set = model.hmm_set
        likelihoods = list(model.likelihoods)
        self._cancelled = False
        n_updates, n_failed, n_issues = model.n_updates, model.n_failed_updates, model.numerical_issues
        n_jobs = min(self.n_jobs, len(data))
        if n_jobs > 1:
            from multiprocessing import get_context
            pool_context = joining(get_context("spawn").Pool(processes=n_jobs))
        else:
            pool_context = nullcontext()

        with pool_context as pool, ProgressCallback(self.progress, "Baum-Welch", total=maxit) as callback:
            for it in range(maxit):
                if cancel is not None and cancel.is_set():
                    log.info("Training cancelled before iteration %d.", it)
                    self._cancelled = True
                    break
                hmm_set.clear()
                result = self._accumulate_iteration(hmm_set, model.assigner, data, pool, n_jobs, cancel)
                if result is None:
                    hmm_set.clear()
                    log.info("Training cancelled during iteration %d, discarding its statistics.", it)
                    self._cancelled = True
                    break
                n_updates += result.n_updates
                n_failed += result.n_failed
                n_issues += result.n_clamped
                if result.n_updates == 0:
                    hmm_set.clear()
                    raise TrainingError(f"None of the {len(data)} sequences could be used in iteration {it}.")
                likelihoods.append(result.log_likelihood)
                log.info("Iteration %d: log-likelihood %.6f over %d sequences (%d skipped).",
                         it, result.log_likelihood, result.n_updates, result.n_failed)
                n_issues += self._reestimate(hmm_set, result.statistics)
                callback(log_likelihood=result.log_likelihood)
                if self.accuracy is not None and len(likelihoods) > 1 \
                        and likelihoods[-1] - likelihoods[-2] < self.accuracy:
                    log.info("Converged after %d iterations.", it + 1)
                    break

        return EmbeddedHMM(hmm_set, assigner=model.assigner, likelihoods=likelihoods, n_updates=n_updates,
                           n_failed_updates=n_failed, numerical_issues=n_issues)

    def _accumulate_iteration(self, hmm_set: HMMSet, assigner: Assigner, data, pool, n_jobs, cancel):
        update_outputs = self.update_outputs
        if pool is None:
            return _accumulate_all(hmm_set, assigner, data, self.use_alignments, update_outputs, cancel)
        args = [(hmm_set, assigner, shard, self.use_alignments, update_outputs)
                for shard in split_evenly(data, n_jobs)]
        results = pool.map(_accumulate_shard, args)
        if cancel is not None and cancel.is_set():
            return None
        total = _ShardResult(hmm_set)
        emitters = _unique_emitters(hmm_set)
        for result in results:
            total.merge(result)
            if update_outputs:
                for emitter, worker_emitter in zip(emitters, result.emitters):
                    emitter.merge(worker_emitter)
        return total

    def _reestimate(self, hmm_set: HMMSet, statistics: Dict[str, "_NetStatistics"]) -> int:
        r""" Re-estimates every net with enough occupancy. Returns the number of rejected transition updates. """
        n_rejected = 0
        degenerate = []
        update_transitions = self.update_transitions and not self.use_alignments
        estimated = set()
        for net in hmm_set:
            stats = statistics[net.name]
            if stats.total_occupancy < self.min_occupancy:
                degenerate.append(net.name)
                continue
            if self.update_init or update_transitions:
                rows = ([0] if self.update_init else []) + \
                       (list(range(1, net.exit)) if update_transitions else [])
                try:
                    net.set_log_transition_matrix(_reestimate_rows(net.log_transition_matrix, stats, rows))
                except InvalidNetError as e:
                    n_rejected += 1
                    log.warning("Keeping the transitions of net '%s': %s", net.name, e)
            if self.update_outputs:
                for emitter in net.emitting_emitters:
                    if id(emitter) not in estimated:
                        estimated.add(id(emitter))
                        emitter.estimate()
        if degenerate:
            log.warning("Not updating %d net(s) with occupancy below %g: %s", len(degenerate), self.min_occupancy,
                        degenerate)
            warnings.warn(f"Nets {degenerate} have an occupancy below {self.min_occupancy} and were not updated.",
                          DegenerateWarning)
        hmm_set.clear()
        return n_rejected


def _reestimate_rows(log_transition_matrix: np.ndarray, stats: _NetStatistics, rows: Sequence[int]) -> np.ndarray:
    out = np.array(log_transition_matrix, copy=True)
    for i in rows:
        if stats.occupancy[i] <= 0:
            continue
        with np.errstate(divide='ignore'):
            row = np.log(stats.counts[i] / stats.occupancy[i])
        row[~np.isfinite(out[i])] = -np.inf
        out[i] = log_normalize(row)
    return out

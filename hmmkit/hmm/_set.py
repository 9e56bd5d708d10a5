from typing import Iterator, List, Mapping, Optional, Sequence

import numpy as np

from ..base import Model
from ..util.data import ObservationSequence
from ..util.exceptions import UnknownLabelError
from ._assign import Assigner, DirectAssigner
from ._chain import Chain
from ._network import HMMNet
from ._search import SearchGraph


class HMMSet(Model):
    r""" Registry of named :class:`nets <HMMNet>` with stable iteration order. The set owns its nets;
    chains and search graphs built from it only reference them.

    Parameters
    ----------
    nets : sequence of HMMNet, optional, default=None
        Initial nets, their names must be unique.
    """

    def __init__(self, nets: Optional[Sequence[HMMNet]] = None):
        super().__init__()
        self._nets = {}
        for net in (nets or ()):
            self.add_net(net)

    @property
    def nets(self) -> List[HMMNet]:
        return list(self._nets.values())

    @property
    def names(self) -> List[str]:
        return list(self._nets.keys())

    @property
    def dim(self) -> int:
        r""" Observation dimension shared by all nets. """
        if len(self._nets) == 0:
            raise ValueError("The set contains no nets.")
        return next(iter(self._nets.values())).dim

    def __len__(self):
        return len(self._nets)

    def __iter__(self) -> Iterator[HMMNet]:
        return iter(self._nets.values())

    def __contains__(self, name):
        return name in self._nets

    def __getitem__(self, name: str) -> HMMNet:
        try:
            return self._nets[name]
        except KeyError:
            raise UnknownLabelError(f"There is no net named '{name}' in the set.") from None

    def index_of(self, name: str) -> int:
        r""" Position of a net in the iteration order. """
        return self.names.index(self[name].name)

    def add_net(self, net: HMMNet) -> HMMNet:
        r""" Adds a net, its name must not be taken yet. """
        if net.name in self._nets:
            raise ValueError(f"A net named '{net.name}' already exists in the set.")
        if len(self._nets) > 0 and net.dim != self.dim:
            raise ValueError(f"Net '{net.name}' has dimension {net.dim} but the set has dimension {self.dim}.")
        self._nets[net.name] = net
        return net

    def new_net(self, name: str, log_transition_matrix, emitters) -> HMMNet:
        r""" Creates a net and adds it to this set.

        Parameters
        ----------
        name : str
            Unique name of the net.
        log_transition_matrix : (N, N) array_like
            Log-transition matrix.
        emitters : list of Emitter
            N emitters, None for entry and exit.

        Returns
        -------
        net : HMMNet
            The new net.

        Raises
        ------
        InvalidNetError
            If the transition matrix or the emitters do not describe a valid net.
        """
        return self.add_net(HMMNet(name, log_transition_matrix, emitters))

    def chain_from_names(self, names: Sequence[str], observations, sequence_id: str = '') -> Chain:
        r""" Builds a chain from net names.

        Parameters
        ----------
        names : sequence of str
            Net names in chain order.
        observations : (T, D) array_like
            The observations.
        sequence_id : str, optional, default=''
            Identifier used in error messages.

        Returns
        -------
        chain : Chain
            The chain.
        """
        return Chain([self[name] for name in names], observations, sequence_id=sequence_id)

    def chain_for(self, observation: ObservationSequence, assigner: Optional[Assigner] = None) -> Chain:
        r""" Builds the chain for a labeled observation sequence: the transcript of the observation is mapped
        to net names by the assigner and the corresponding nets are concatenated.

        Parameters
        ----------
        observation : ObservationSequence
            Observation with labels or alignment.
        assigner : Assigner, optional, default=None
            Label to net name mapping, labels are used as names if None.

        Returns
        -------
        chain : Chain
            The chain.
        """
        assigner = DirectAssigner() if assigner is None else assigner
        names = assigner.assign(observation.transcript())
        return self.chain_from_names(names, observation.vectors, sequence_id=observation.id)

    def search_graph(self, follow: Optional[Mapping[str, Sequence[str]]] = None,
                     initial: Optional[Sequence[str]] = None) -> SearchGraph:
        r""" Composes all nets into one decoding graph, see :class:`SearchGraph`.

        Parameters
        ----------
        follow : mapping of str to sequence of str, optional, default=None
            Allowed successors per net, a full mesh if None.
        initial : sequence of str, optional, default=None
            Nets a path may start with, all if None.

        Returns
        -------
        graph : SearchGraph
            The graph.
        """
        return SearchGraph(self.nets, follow=follow, initial=initial)

    def clear(self):
        r""" Clears the accumulators of all emitters. """
        for net in self:
            net.clear()

    def __repr__(self):
        return f"HMMSet(names={self.names})"


class EmbeddedHMM(Model):
    r""" A trained set of nets together with the assigner that maps labels to chains, the likelihood history of
    training and its update counters.

    Parameters
    ----------
    hmm_set : HMMSet
        The nets.
    assigner : Assigner, optional, default=None
        Label to net mapping, :class:`DirectAssigner` if None.
    likelihoods : ndarray, optional, default=None
        Total log-likelihood of the training data per iteration, evaluated before the update of that iteration.
    n_updates : int, optional, default=0
        Number of sequences that contributed to training.
    n_failed_updates : int, optional, default=0
        Number of sequences that were skipped because of errors.
    numerical_issues : int, optional, default=0
        Number of NaN emission scores clamped to :math:`-\infty` plus the number of rejected transition updates.
    """

    def __init__(self, hmm_set: HMMSet, assigner: Optional[Assigner] = None, likelihoods=None,
                 n_updates: int = 0, n_failed_updates: int = 0,
                 numerical_issues: int = 0):
        super().__init__()
        self._hmm_set = hmm_set
        self._assigner = DirectAssigner() if assigner is None else assigner
        self._likelihoods = np.empty(0) if likelihoods is None else np.asarray(likelihoods, dtype=float)
        self._n_updates = n_updates
        self._n_failed_updates = n_failed_updates
        self._numerical_issues = numerical_issues

    @property
    def hmm_set(self) -> HMMSet:
        return self._hmm_set

    @property
    def assigner(self) -> Assigner:
        return self._assigner

    @property
    def likelihoods(self) -> np.ndarray:
        return self._likelihoods

    @property
    def likelihood(self) -> Optional[float]:
        r""" Log-likelihood of the last training iteration. """
        return float(self._likelihoods[-1]) if len(self._likelihoods) > 0 else None

    @property
    def n_updates(self) -> int:
        return self._n_updates

    @property
    def n_failed_updates(self) -> int:
        return self._n_failed_updates

    @property
    def numerical_issues(self) -> int:
        return self._numerical_issues

    def chain_for(self, observation: ObservationSequence) -> Chain:
        return self._hmm_set.chain_for(observation, self._assigner)

    def log_likelihood(self, observation: ObservationSequence) -> float:
        r""" Log-likelihood of a labeled observation under the chain of its transcript. """
        chain = self.chain_for(observation)
        return chain.forward()

    def decode(self, observation, follow=None):
        r""" Decodes an observation with the search graph of the set.

        Parameters
        ----------
        observation : ObservationSequence or (T, D) ndarray
            The observation.
        follow : mapping of str to sequence of str, optional, default=None
            Allowed successors per net, see :meth:`HMMSet.search_graph`.

        Returns
        -------
        result : DecodingResult
            The best path.
        """
        from ._viterbi import decode
        vectors = observation.vectors if isinstance(observation, ObservationSequence) else observation
        return decode(self._hmm_set.search_graph(follow=follow), vectors)

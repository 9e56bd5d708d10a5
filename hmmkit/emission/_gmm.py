from typing import List, Optional, Sequence

import numpy as np
from sklearn.utils import check_random_state

from ..numeric import safe_log
from ..util.exceptions import SerializationError
from ..util.types import ensure_observations, ensure_vector
from ._base import Emitter, MIN_SAMPLES
from ._gaussian import Gaussian


def component_name(name: str, k: int, n_components: int) -> str:
    r""" Name of the `k`-th component of a mixture called `name`. Indices are zero-padded to the width of
    the largest index for up to 10000 components.

    >>> component_name("gmm", 7, 123)
    'gmm-007'
    """
    largest = n_components - 1
    for width, bound in ((1, 10), (2, 100), (3, 1000), (4, 10000)):
        if largest < bound:
            return f"{name}-{k:0{width}d}"
    return f"{name}-{k}"


class GMM(Emitter):
    r""" Gaussian mixture emitter with :class:`diagonal Gaussian <Gaussian>` components.

    **Approximation.** Both scoring and the component posteriors used for training replace the log-sum-exp
    over components by a maximum:

    .. math::
        \log p(x) \approx \max_k \left(\log p_k(x) + \log w_k\right), \qquad
        p_k(x) \approx \exp\left(\log p_k(x) + \log w_k - \max_l (\log p_l(x) + \log w_l)\right).

    The best component thus always receives full weight. The approximation defines the
    fixed point of training; for well separated components it is indistinguishable from the exact mixture.
    Since the approximated posteriors do not sum to one, the re-estimated weights are normalized.

    Parameters
    ----------
    dim : int
        Dimension of the observations.
    n_components : int
        Number of mixture components K.
    weights : (K,) array_like, optional, default=None
        Mixture weights, uniform by default. They are normalized to sum to one.
    components : list of Gaussian, optional, default=None
        The components. By default K Gaussians with zero mean and default standard deviation.
    name : str, optional, default='GMM'
        Name of the mixture, components are named :code:`<name>-<k>`.
    """

    def __init__(self, dim: int, n_components: int, weights=None, components: Optional[List[Gaussian]] = None,
                 name: str = 'GMM'):
        super().__init__(dim, name)
        if n_components <= 0:
            raise ValueError("A mixture needs at least one component.")
        if components is None:
            components = [Gaussian(dim, name=component_name(name, k, n_components)) for k in range(n_components)]
        if len(components) != n_components:
            raise ValueError(f"Expected {n_components} components but got {len(components)}.")
        for c in components:
            if not isinstance(c, Gaussian) or c.dim != dim:
                raise ValueError(f"Components must be Gaussians of dimension {dim}, got {c!r}.")
        self._components = list(components)
        self.weights = np.full(n_components, 1. / n_components) if weights is None else weights
        self._posterior_sum = np.zeros(n_components)
        self._n_samples = 0.
        self._likelihood = 0.
        self._iteration = 0

    @property
    def n_components(self) -> int:
        return len(self._components)

    @property
    def components(self) -> List[Gaussian]:
        r""" The mixture components. """
        return self._components

    @property
    def weights(self) -> np.ndarray:
        r""" Mixture weights, derived from :attr:`log_weights`. """
        return self._weights

    @weights.setter
    def weights(self, value):
        value = ensure_vector(value, self.n_components, name='weights')
        if np.any(value < 0) or not np.sum(value) > 0:
            raise ValueError("Mixture weights must be non-negative and not all zero.")
        self.log_weights = safe_log(value / np.sum(value))

    @property
    def log_weights(self) -> np.ndarray:
        r""" Natural logarithm of the mixture weights. """
        return self._log_weights

    @log_weights.setter
    def log_weights(self, value):
        self._log_weights = ensure_vector(value, self.n_components, name='log_weights').copy()
        self._weights = np.exp(self._log_weights)

    @property
    def n_samples(self) -> float:
        return self._n_samples

    @property
    def posterior_sum(self) -> np.ndarray:
        r""" Accumulated (approximate) component posteriors. """
        return self._posterior_sum

    @property
    def likelihood(self) -> float:
        r""" Sum of the per-observation (max-approximated) log-likelihoods accumulated since the last clear. """
        return self._likelihood

    @property
    def iteration(self) -> int:
        r""" Number of times :meth:`estimate` was called. """
        return self._iteration

    def _weighted_component_log_probs(self, observations: np.ndarray) -> np.ndarray:
        return np.stack([c.log_prob_batch(observations) for c in self._components], axis=1) + self._log_weights

    def log_prob_batch(self, observations: np.ndarray) -> np.ndarray:
        observations = ensure_observations(observations, self.dim, allow_empty=True)
        return np.max(self._weighted_component_log_probs(observations), axis=1)

    def update(self, observations: np.ndarray, weights=None) -> None:
        observations, weights = self._check_batch(observations, weights)
        v = self._weighted_component_log_probs(observations)
        best = np.max(v, axis=1)
        valid = np.isfinite(best)
        if not np.all(valid):
            observations, weights, v, best = observations[valid], weights[valid], v[valid], best[valid]
        self._likelihood += float(np.sum(best))
        # exp(v - max + log w) written as w * exp(v - max) so that zero weights stay zero
        posteriors = weights[:, None] * np.exp(v - best[:, None])
        self._posterior_sum += np.sum(posteriors, axis=0)
        for k, c in enumerate(self._components):
            c.update(observations, posteriors[:, k])
        self._n_samples += float(np.sum(weights))

    def estimate(self) -> None:
        r""" Re-estimates weights as normalized posterior sums and then every component. """
        if self._n_samples > MIN_SAMPLES and np.sum(self._posterior_sum) > 0:
            weights = self._posterior_sum / self._n_samples
            self.log_weights = safe_log(weights / np.sum(weights))
        for c in self._components:
            c.estimate()
        self._iteration += 1

    def clear(self) -> None:
        for c in self._components:
            c.clear()
        self._posterior_sum = np.zeros(self.n_components)
        self._n_samples = 0.
        self._likelihood = 0.

    def sample(self, random_state=None, size: Optional[int] = None) -> np.ndarray:
        random_state = check_random_state(random_state)
        p = self._weights / np.sum(self._weights)
        if size is None:
            k = random_state.choice(self.n_components, p=p)
            return self._components[k].sample(random_state)
        ks = random_state.choice(self.n_components, size=size, p=p)
        out = np.empty((size, self.dim))
        for k, c in enumerate(self._components):
            selection = ks == k
            n = int(np.count_nonzero(selection))
            if n > 0:
                out[selection] = c.sample(random_state, size=n)
        return out

    def merge(self, other: "GMM") -> None:
        if not isinstance(other, GMM) or other.dim != self.dim or other.n_components != self.n_components:
            raise ValueError(f"Cannot merge {other!r} into a GMM with {self.n_components} components "
                             f"of dimension {self.dim}.")
        for c, oc in zip(self._components, other.components):
            c.merge(oc)
        self._posterior_sum += other.posterior_sum
        self._n_samples += other.n_samples
        self._likelihood += other.likelihood

    def to_dict(self) -> dict:
        out = {
            "name": self.name,
            "dim": self.dim,
            "nsamples": self._n_samples,
            "diag": True,
            "num_components": self.n_components,
        }
        if np.any(self._posterior_sum != 0):
            out["posterior_sum"] = self._posterior_sum.tolist()
        out["weights"] = [None if np.isneginf(w) else float(w) for w in self._log_weights]
        out["likelihood"] = self._likelihood
        out["components"] = [c.to_dict() for c in self._components]
        out["iteration"] = self._iteration
        return out

    @classmethod
    def from_dict(cls, d: dict) -> "GMM":
        r""" Inverse of :meth:`to_dict`, the weights are re-derived from the stored log-weights. """
        for key in ("dim", "num_components", "weights", "components"):
            if key not in d:
                raise SerializationError("Missing field in GMM", field=key)
        components = [Gaussian.from_dict(c) for c in d["components"]]
        try:
            gmm = cls(int(d["dim"]), int(d["num_components"]), components=components, name=d.get("name", 'GMM'))
            gmm.log_weights = [-np.inf if w is None else w for w in d["weights"]]
        except ValueError as e:
            raise SerializationError(f"Invalid GMM parameters: {e}", field="weights") from e
        if "posterior_sum" in d:
            gmm._posterior_sum = np.array(d["posterior_sum"], dtype=float)
            if gmm._posterior_sum.shape != (gmm.n_components,):
                raise SerializationError("Accumulator has wrong dimension", field="posterior_sum")
        gmm._n_samples = float(d.get("nsamples", 0.))
        gmm._likelihood = float(d.get("likelihood", 0.))
        gmm._iteration = int(d.get("iteration", 0))
        return gmm


def random_model(mean: Sequence[float], sd: Sequence[float], n_components: int, name: str = 'GMM',
                 random_state=None) -> GMM:
    r""" Creates a GMM with uniform weights whose component means are drawn from :math:`\mathcal{N}(\mu, \sigma)`
    and whose components all have standard deviation :math:`\sigma`. Useful as starting point for training,
    e.g., with the mean and standard deviation of the training data.

    Parameters
    ----------
    mean : (D,) array_like
        Center of the component means.
    sd : (D,) array_like
        Spread of the component means and standard deviation of the components.
    n_components : int
        Number of components.
    name : str, optional, default='GMM'
        Name of the mixture.
    random_state : None or int or numpy.random.RandomState, optional
        Source of randomness.

    Returns
    -------
    gmm : GMM
        The random mixture.
    """
    mean = ensure_vector(mean, name='mean')
    sd = ensure_vector(sd, mean.shape[0], name='sd')
    random_state = check_random_state(random_state)
    dim = mean.shape[0]
    components = [Gaussian(dim, mean=mean + sd * random_state.standard_normal(dim), sd=sd,
                           name=component_name(name, k, n_components)) for k in range(n_components)]
    return GMM(dim, n_components, components=components, name=name)


def init_from_data(observations, n_components: int, name: str = 'GMM', random_state=None, **kwargs) -> GMM:
    r""" Initializes a GMM from data with scikit-learn's expectation maximization for diagonal Gaussian
    mixtures.

    Parameters
    ----------
    observations : (T, D) array_like
        Training data.
    n_components : int
        Number of components.
    name : str, optional, default='GMM'
        Name of the mixture.
    random_state : None or int or numpy.random.RandomState, optional
        Source of randomness.
    **kwargs
        Further arguments to :class:`sklearn.mixture.GaussianMixture`.

    Returns
    -------
    gmm : GMM
        The fitted mixture.
    """
    from sklearn.mixture import GaussianMixture
    observations = ensure_observations(observations)
    dim = observations.shape[1]
    fit = GaussianMixture(n_components=n_components, covariance_type='diag', random_state=random_state,
                          **kwargs).fit(observations)
    components = [Gaussian(dim, mean=fit.means_[k], sd=np.sqrt(fit.covariances_[k]),
                           name=component_name(name, k, n_components)) for k in range(n_components)]
    return GMM(dim, n_components, weights=fit.weights_, components=components, name=name)

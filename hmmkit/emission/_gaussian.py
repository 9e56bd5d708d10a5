from typing import Optional

import numpy as np
from sklearn.utils import check_random_state

from ..util.exceptions import SerializationError
from ..util.types import ensure_vector
from ._base import Emitter, MIN_SAMPLES

#: Default standard deviation of a Gaussian that was constructed without parameters.
DEFAULT_SD = 0.01
#: Lower bound on every variance component.
VARIANCE_FLOOR = DEFAULT_SD * DEFAULT_SD

_LOG_2PI = np.log(2. * np.pi)


class Gaussian(Emitter):
    r""" Multivariate Gaussian emitter with diagonal covariance matrix.

    .. math::
        \log p(x) = -\frac{1}{2}\sum_i \frac{(x_i - \mu_i)^2}{\sigma_i^2}
        - \frac{D}{2}\log 2\pi - \frac{1}{2}\sum_i \log\sigma_i^2.

    Every variance component is bounded from below by `min_variance`, so that observations which
    coincide with the mean (e.g., exact zero vectors) never lead to a division by zero.

    Parameters
    ----------
    dim : int
        Dimension of the observations.
    mean : (dim,) array_like, optional, default=None
        The mean vector, zeros by default.
    sd : (dim,) array_like, optional, default=None
        The standard deviations, :data:`DEFAULT_SD` by default.
    name : str, optional, default=''
        Name of this emitter.
    min_variance : float, optional, default=1e-4
        Variance floor.

    Examples
    --------
    >>> g = Gaussian(2, mean=[0., 0.], sd=[1., 1.])
    >>> round(g.log_prob([0., 0.]), 6)
    -1.837877
    """

    def __init__(self, dim: int, mean=None, sd=None, name: str = '', min_variance: float = VARIANCE_FLOOR):
        super().__init__(dim, name)
        if min_variance <= 0:
            raise ValueError("The variance floor must be positive.")
        self._min_variance = float(min_variance)
        self._mean = np.zeros(self.dim) if mean is None else ensure_vector(mean, self.dim, name='mean').copy()
        self._set_sd(np.full(self.dim, DEFAULT_SD) if sd is None else ensure_vector(sd, self.dim, name='sd'))
        self._sumx = np.zeros(self.dim)
        self._sumx_sq = np.zeros(self.dim)
        self._n_samples = 0.

    def _set_sd(self, sd: np.ndarray):
        if np.any(~np.isfinite(sd)) or np.any(sd < 0):
            raise ValueError("Standard deviations must be finite and non-negative.")
        self._variance = np.maximum(sd * sd, self._min_variance)
        self._sd = np.sqrt(self._variance)
        self._variance = self._sd * self._sd
        self._update_constants()

    def _update_constants(self):
        self._inv_variance = 1. / self._variance
        # -D/2 log(2 pi) - 1/2 sum log sigma^2
        self._log_norm = -.5 * self.dim * _LOG_2PI - .5 * np.sum(np.log(self._variance))

    @property
    def mean(self) -> np.ndarray:
        r""" The mean vector. """
        return self._mean

    @mean.setter
    def mean(self, value):
        self._mean = ensure_vector(value, self.dim, name='mean').copy()

    @property
    def sd(self) -> np.ndarray:
        r""" Standard deviation per dimension. """
        return self._sd

    @sd.setter
    def sd(self, value):
        self._set_sd(ensure_vector(value, self.dim, name='sd'))

    @property
    def variance(self) -> np.ndarray:
        r""" Variance per dimension, always at least :attr:`min_variance`. """
        return self._variance

    @property
    def min_variance(self) -> float:
        return self._min_variance

    @property
    def n_samples(self) -> float:
        return self._n_samples

    @property
    def sumx(self) -> np.ndarray:
        r""" Accumulated weighted sum of observations. """
        return self._sumx

    @property
    def sumx_sq(self) -> np.ndarray:
        r""" Accumulated weighted sum of squared observations. """
        return self._sumx_sq

    def log_prob_batch(self, observations: np.ndarray) -> np.ndarray:
        observations, _ = self._check_batch(observations, None)
        diff = observations - self._mean
        return self._log_norm - .5 * np.dot(diff * diff, self._inv_variance)

    def update(self, observations: np.ndarray, weights=None) -> None:
        observations, weights = self._check_batch(observations, weights)
        self._sumx += np.dot(weights, observations)
        self._sumx_sq += np.dot(weights, observations * observations)
        self._n_samples += float(np.sum(weights))

    def estimate(self) -> None:
        r""" Maximum likelihood estimate :math:`\mu = \Sigma x / n`,
        :math:`\sigma^2 = \max(\Sigma x^2/n - \mu^2, \sigma^2_\mathrm{floor})`. If less than
        :data:`MIN_SAMPLES` were accumulated, the mean is reset to zero and the variance to the floor. """
        if self._n_samples > MIN_SAMPLES:
            mean = self._sumx / self._n_samples
            variance = np.maximum(self._sumx_sq / self._n_samples - mean * mean, self._min_variance)
        else:
            mean = np.zeros(self.dim)
            variance = np.full(self.dim, self._min_variance)
        self._mean = mean
        self._set_sd(np.sqrt(variance))

    def clear(self) -> None:
        self._sumx = np.zeros(self.dim)
        self._sumx_sq = np.zeros(self.dim)
        self._n_samples = 0.

    def sample(self, random_state=None, size: Optional[int] = None) -> np.ndarray:
        random_state = check_random_state(random_state)
        shape = (self.dim,) if size is None else (size, self.dim)
        return self._mean + self._sd * random_state.standard_normal(shape)

    def merge(self, other: "Gaussian") -> None:
        if not isinstance(other, Gaussian) or other.dim != self.dim:
            raise ValueError(f"Cannot merge {other!r} into a Gaussian of dimension {self.dim}.")
        self._sumx += other.sumx
        self._sumx_sq += other.sumx_sq
        self._n_samples += other.n_samples

    def to_dict(self) -> dict:
        out = {
            "name": self.name,
            "dim": self.dim,
            "nsamples": self._n_samples,
            "diag": True,
        }
        if self._n_samples != 0 or np.any(self._sumx != 0) or np.any(self._sumx_sq != 0):
            out["sumx"] = self._sumx.tolist()
            out["sumx_sq"] = self._sumx_sq.tolist()
        out["mean"] = self._mean.tolist()
        out["sd"] = self._sd.tolist()
        return out

    @classmethod
    def from_dict(cls, d: dict) -> "Gaussian":
        r""" Inverse of :meth:`to_dict`. """
        for key in ("dim", "mean", "sd"):
            if key not in d:
                raise SerializationError("Missing field in Gaussian", field=key)
        if not d.get("diag", True):
            raise SerializationError("Only diagonal covariance matrices are supported", field="diag")
        try:
            g = cls(int(d["dim"]), mean=d["mean"], sd=d["sd"], name=d.get("name", ''))
        except ValueError as e:
            raise SerializationError(f"Invalid Gaussian parameters: {e}", field="mean") from e
        if "sumx" in d:
            g._sumx = np.array(d["sumx"], dtype=float)
        if "sumx_sq" in d:
            g._sumx_sq = np.array(d["sumx_sq"], dtype=float)
        if g._sumx.shape != (g.dim,) or g._sumx_sq.shape != (g.dim,):
            raise SerializationError("Accumulator has wrong dimension", field="sumx")
        g._n_samples = float(d.get("nsamples", 0.))
        return g

import abc

import numpy as np

from ..base import Model
from ..util.types import ensure_observations, ensure_vector

#: Minimum effective number of samples below which an emitter falls back to its default parameters.
MIN_SAMPLES = 1e-2


class Emitter(Model, metaclass=abc.ABCMeta):
    r""" Emitter superclass. Contains basic functionality and the interfaces which observation models
    attached to HMM states are supposed to implement.

    An emitter owns its own sufficient statistics. Accumulating (:meth:`update_one`, :meth:`update`)
    is not thread-safe; parallel training gives each worker a private copy and combines them with
    :meth:`merge` before calling :meth:`estimate`.

    Parameters
    ----------
    dim : int
        Dimension of the observation vectors.
    name : str
        Name of the emitter.

    See Also
    --------
    Gaussian
    GMM
    """

    def __init__(self, dim: int, name: str = ''):
        super().__init__()
        if dim <= 0:
            raise ValueError(f"Emitter dimension must be positive but was {dim}.")
        self._dim = int(dim)
        self._name = name

    @property
    def dim(self) -> int:
        r""" Dimension of the observation vectors. """
        return self._dim

    @property
    def name(self) -> str:
        r""" Name of this emitter. """
        return self._name

    @name.setter
    def name(self, value: str):
        self._name = value

    @property
    @abc.abstractmethod
    def n_samples(self) -> float:
        r""" Total sample weight accumulated since the last :meth:`clear`. """

    def log_prob(self, x) -> float:
        r""" Log-density of a single observation vector.

        Parameters
        ----------
        x : (D,) array_like
            The observation.

        Returns
        -------
        log_prob : float
            The log-density.
        """
        x = ensure_vector(x, self.dim, name='observation')
        return float(self.log_prob_batch(x[None, :])[0])

    @abc.abstractmethod
    def log_prob_batch(self, observations: np.ndarray) -> np.ndarray:
        r""" Log-densities of many observations at once.

        Parameters
        ----------
        observations : (T, D) ndarray
            The observations.

        Returns
        -------
        log_probs : (T,) ndarray
            One log-density per observation.
        """

    def update_one(self, x, weight: float = 1.) -> None:
        r""" Accumulates a single weighted observation.

        Parameters
        ----------
        x : (D,) array_like
            The observation.
        weight : float, default=1.
            Its weight, e.g., a posterior state occupancy.
        """
        x = ensure_vector(x, self.dim, name='observation')
        self.update(x[None, :], np.array([weight], dtype=float))

    @abc.abstractmethod
    def update(self, observations: np.ndarray, weights=None) -> None:
        r""" Accumulates a batch of weighted observations.

        Parameters
        ----------
        observations : (T, D) ndarray
            The observations.
        weights : (T,) ndarray, optional, default=None
            Weight per observation, all ones by default.
        """

    @abc.abstractmethod
    def estimate(self) -> None:
        r""" Re-estimates the parameters from the accumulated statistics (maximum likelihood). """

    @abc.abstractmethod
    def clear(self) -> None:
        r""" Resets the accumulated statistics, the parameters are left alone. """

    @abc.abstractmethod
    def sample(self, random_state=None, size=None) -> np.ndarray:
        r""" Draws random observations.

        Parameters
        ----------
        random_state : None or int or numpy.random.RandomState, optional
            Source of randomness, see :func:`sklearn.utils.check_random_state`.
        size : int, optional, default=None
            Number of samples. If None, a single (D,) vector is returned, otherwise an array of shape (size, D).

        Returns
        -------
        samples : ndarray
            The drawn observations.
        """

    @abc.abstractmethod
    def merge(self, other: "Emitter") -> None:
        r""" Adds the accumulated statistics of another emitter with identical structure to this one. """

    @abc.abstractmethod
    def to_dict(self) -> dict:
        r""" JSON compatible representation of parameters and accumulators. """

    def _check_batch(self, observations, weights):
        observations = ensure_observations(observations, self.dim, allow_empty=True)
        if weights is None:
            weights = np.ones(observations.shape[0])
        else:
            weights = np.asarray(weights, dtype=float)
            if weights.shape != (observations.shape[0],):
                raise ValueError(f"Expected one weight per observation ({observations.shape[0]}) "
                                 f"but got weights of shape {weights.shape}.")
        return observations, weights

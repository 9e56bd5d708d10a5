from typing import Optional

import numpy as np

from .exceptions import DimensionMismatchError, EmptyObservationError


def ensure_vector(vector, dim: Optional[int] = None, name: str = 'vector') -> np.ndarray:
    r""" Converts the input into a one-dimensional float array, optionally of length `dim`.

    Raises
    ------
    DimensionMismatchError
        If the length does not match `dim`.
    """
    vector = np.asarray(vector, dtype=float)
    if vector.ndim != 1:
        raise DimensionMismatchError(f"{name} must be one-dimensional but had shape {vector.shape}.")
    if dim is not None and vector.shape[0] != dim:
        raise DimensionMismatchError(f"{name} has dimension {vector.shape[0]} but {dim} was expected.")
    return vector


def ensure_observations(observations, dim: Optional[int] = None, allow_empty: bool = False) -> np.ndarray:
    r""" Converts observations into a float array of shape (T, D). A one-dimensional input is interpreted
    as T scalar frames if `dim` is one or unknown, and as a single frame otherwise.

    Parameters
    ----------
    observations : array_like
        The observation vectors.
    dim : int, optional, default=None
        Expected dimension D.
    allow_empty : bool, default=False
        Whether T=0 is accepted.

    Returns
    -------
    observations : (T, D) ndarray
        The observations as two-dimensional float array.
    """
    observations = np.asarray(observations, dtype=float)
    if observations.ndim == 1:
        if dim is None or dim == 1:
            observations = observations[:, None]
        else:
            observations = observations[None, :]
    if observations.ndim != 2:
        raise DimensionMismatchError(f"Observations must be a (T, D) array but had shape {observations.shape}.")
    if dim is not None and observations.shape[1] != dim:
        raise DimensionMismatchError(f"Observations have dimension {observations.shape[1]} "
                                     f"but the model expects {dim}.")
    if not allow_empty and observations.shape[0] == 0:
        raise EmptyObservationError("Observation sequence has no frames.")
    return observations

import numpy as _np
from scipy.special import logsumexp as _scipy_logsumexp


def logsumexp(values, axis=None, keepdims: bool = False):
    r""" Numerically stable evaluation of :math:`\log\sum_i \exp(v_i)`.

    The maximum :math:`m` is factored out, :math:`m + \log\sum_i \exp(v_i - m)`. Slices which consist only
    of :math:`-\infty` evaluate to :math:`-\infty` without warnings, i.e., :math:`-\infty` acts as identity.
    This is a lean replacement for :func:`scipy.special.logsumexp` to be used inside the lattice recursions,
    where it is called for every frame.

    Parameters
    ----------
    values : array_like
        Log-values.
    axis : int or tuple of int, optional, default=None
        Axis over which the sum is taken, by default all elements.
    keepdims : bool, default=False
        Whether to keep the reduced axes as singleton dimensions.

    Returns
    -------
    result : float or ndarray
        The log of the sum of exponentials.

    Examples
    --------
    >>> import numpy as np
    >>> float(logsumexp([0., 0.]))
    0.6931471805599453
    >>> float(logsumexp([-np.inf, -np.inf]))
    -inf
    """
    values = _np.asarray(values, dtype=float)
    if values.size == 0:
        out = _np.full(_np.sum(values, axis=axis, keepdims=keepdims).shape, -_np.inf)
        return out if out.ndim > 0 else float(out)
    m = _np.max(values, axis=axis, keepdims=True)
    m = _np.where(_np.isfinite(m), m, 0.)
    with _np.errstate(divide='ignore', invalid='ignore'):
        out = _np.log(_np.sum(_np.exp(values - m), axis=axis, keepdims=True)) + m
    if not keepdims:
        if axis is None:
            return float(out.reshape(()))
        out = _np.squeeze(out, axis=axis)
    return out


def logaddexp(a, b):
    r""" Log-sum-exp of two (arrays of) log-values, :math:`\log(e^a + e^b)` with :math:`-\infty` as identity. """
    return _np.logaddexp(a, b)


def log_normalize(log_values, axis=-1):
    r""" Normalizes log-values so that their exponentials sum to one along `axis`. Slices that consist only
    of :math:`-\infty` are left untouched.

    Parameters
    ----------
    log_values : array_like
        Log-values, e.g., the rows of a log-transition matrix.
    axis : int, default=-1
        The normalization axis.

    Returns
    -------
    normalized : ndarray
        Log-values with :math:`\log\sum\exp = 0` along the axis (where possible).
    """
    log_values = _np.asarray(log_values, dtype=float)
    norm = _scipy_logsumexp(log_values, axis=axis, keepdims=True)
    norm = _np.where(_np.isfinite(norm), norm, 0.)
    return log_values - norm


def safe_log(values):
    r""" Elementwise natural logarithm which maps zeros to :math:`-\infty` silently. Negative inputs are rejected. """
    values = _np.asarray(values, dtype=float)
    if _np.any(values < 0):
        raise ValueError("Cannot take the logarithm of negative values.")
    with _np.errstate(divide='ignore'):
        return _np.log(values)


def safe_exp(log_values):
    r""" Elementwise exponential, :math:`\exp(-\infty) = 0`. NaN inputs map to zero. """
    log_values = clamp_nan(log_values)
    return _np.exp(log_values)


def log_scale(log_values, factor):
    r""" Multiplies in probability space, i.e., adds :math:`\log(\mathrm{factor})` to the log-values. A zero
    factor yields :math:`-\infty` everywhere. """
    return _np.asarray(log_values, dtype=float) + safe_log(factor)


def square(values):
    r""" Elementwise square. """
    values = _np.asarray(values, dtype=float)
    return values * values


def floor(values, minimum):
    r""" Elementwise lower bound, values below `minimum` are replaced by it. """
    return _np.maximum(_np.asarray(values, dtype=float), minimum)


def clamp_nan(log_values, counter=None):
    r""" Replaces NaN entries of log-values by :math:`-\infty`.

    Parameters
    ----------
    log_values : array_like
        Log-values.
    counter : list, optional, default=None
        If given, the number of replaced entries is added to ``counter[0]``.

    Returns
    -------
    clamped : ndarray
        A copy of the input in which NaNs are replaced.
    """
    log_values = _np.array(log_values, dtype=float)
    nans = _np.isnan(log_values)
    if _np.any(nans):
        log_values[nans] = -_np.inf
        if counter is not None:
            counter[0] += int(_np.count_nonzero(nans))
    return log_values

r"""
.. currentmodule: hmmkit.numeric

===============================================================================
Log-domain arithmetic
===============================================================================

All probabilities in hmmkit are kept as natural logarithms. The helpers below treat :math:`-\infty`
(the logarithm of zero) as the neutral element of log-sum-exp and never produce NaN for it.

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    logsumexp
    logaddexp
    log_normalize
    safe_log
    safe_exp
    log_scale
    square
    floor
    clamp_nan
"""
from ._logspace import logsumexp, logaddexp, log_normalize, safe_log, safe_exp, log_scale, square, floor, \
    clamp_nan

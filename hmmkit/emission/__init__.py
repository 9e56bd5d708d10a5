r"""
.. currentmodule: hmmkit.emission

Emitters are the observation models attached to the emitting states of an HMM. Scoring, accumulation of
weighted samples, maximum-likelihood re-estimation and sampling are supported by all of them.

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    Emitter
    Gaussian
    GMM
    random_model
    init_from_data
"""

from ._base import Emitter, MIN_SAMPLES
from ._gaussian import Gaussian, VARIANCE_FLOOR, DEFAULT_SD
from ._gmm import GMM, random_model, init_from_data, component_name

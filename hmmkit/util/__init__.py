r"""
.. currentmodule: hmmkit.util

===============================================================================
Data utilities
===============================================================================

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    data.ObservationSequence
    data.join_sequences

===============================================================================
Exceptions and warnings
===============================================================================

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    exceptions.DimensionMismatchError
    exceptions.InvalidNetError
    exceptions.UnknownLabelError
    exceptions.EmptyChainError
    exceptions.EmptyObservationError
    exceptions.ZeroLikelihoodError
    exceptions.TrainingError
    exceptions.DegenerateWarning
    exceptions.ReaderIOError
    exceptions.SerializationError

===============================================================================
Other utilities
===============================================================================

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    platform.handle_progress_bar
    callbacks.ProgressCallback
    parallel.handle_n_jobs
"""

from . import exceptions
from . import types
from . import data
from . import platform
from . import callbacks
from . import parallel

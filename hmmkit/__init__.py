r"""
Hidden Markov models with Gaussian and Gaussian-mixture emitters, embedded HMM chains,
Baum-Welch training and Viterbi decoding.
"""
import logging as _logging

__version__ = '0.3.0'

_logging.getLogger(__name__).addHandler(_logging.NullHandler())

from . import util
from . import numeric
from . import alignment
from . import emission
from . import hmm
from . import io
from . import metrics

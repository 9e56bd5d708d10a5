r"""
.. currentmodule: hmmkit.hmm

Nets with non-emitting entry and exit states, their composition into chains and search graphs, embedded
Baum-Welch training and Viterbi decoding.

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    HMMNet
    HMMSet
    EmbeddedHMM
    Chain
    SearchGraph
    BaumWelchTrainer
    DecodingResult
    SequenceGenerator
    ChainSequenceGenerator
    Assigner
    DirectAssigner
    DictionaryAssigner

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    left_to_right
    random_left_to_right
    viterbi
    decode
"""

from ._network import HMMNet, left_to_right, random_left_to_right
from ._assign import Assigner, DirectAssigner, DictionaryAssigner
from ._chain import Chain
from ._search import SearchGraph
from ._set import HMMSet, EmbeddedHMM
from ._viterbi import viterbi, decode, DecodingResult
from ._generator import SequenceGenerator, ChainSequenceGenerator
from ._baum_welch import BaumWelchTrainer

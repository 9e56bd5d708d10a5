r"""
.. currentmodule: hmmkit.alignment

Alignment trees describe how an observation sequence is segmented into labeled units on several levels,
e.g., words, then phones, then HMM states. Every node covers a half-open interval of frame indices.

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    ANode
    tree_of
"""
from ._anode import ANode, tree_of

r"""
.. currentmodule: hmmkit.io

JSON persistence of emitters, nets and sets, and JSON-lines observation streams.

.. autosummary::
    :toctree: generated/
    :template: class_nomodule.rst

    dumps
    loads
    save_model
    load_model
    ObservationReader
    read_observations
    write_observations
"""

from ._models import dumps, loads, save_model, load_model, emitter_to_dict, emitter_from_dict, net_to_dict, \
    net_from_dict
from ._observations import ObservationReader, read_observations, write_observations, observation_to_dict, \
    observation_from_dict

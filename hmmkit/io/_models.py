import json
from typing import Union

import numpy as np

from ..emission import Emitter, Gaussian, GMM
from ..hmm import HMMNet, HMMSet
from ..util.exceptions import InvalidNetError, ReaderIOError, SerializationError

#: Type tags of the serializable emitters.
EMITTER_TYPES = {"gaussian": Gaussian, "gmm": GMM}


def emitter_to_dict(emitter: Emitter) -> dict:
    r""" JSON representation of an emitter, tagged with its type. """
    for tag, cls in EMITTER_TYPES.items():
        if type(emitter) is cls:
            return {"type": tag, **emitter.to_dict()}
    raise SerializationError(f"Cannot serialize emitters of type {type(emitter).__name__}", field="type")


def emitter_from_dict(d: dict) -> Emitter:
    r""" Inverse of :func:`emitter_to_dict`. """
    if not isinstance(d, dict):
        raise SerializationError(f"Expected an emitter object but got {type(d).__name__}", field="B")
    tag = d.get("type")
    if tag not in EMITTER_TYPES:
        raise SerializationError(f"Unknown emitter type {tag!r}", field="type")
    return EMITTER_TYPES[tag].from_dict({k: v for k, v in d.items() if k != "type"})


def net_to_dict(net: HMMNet) -> dict:
    r""" JSON representation of a net. The log-transition matrix is stored as is with :math:`-\infty`
    written as null; entry and exit have null emitters. """
    log_a = [[None if np.isneginf(x) else float(x) for x in row] for row in net.log_transition_matrix]
    emitters = [None if e is None else emitter_to_dict(e) for e in net.emitters]
    return {"name": net.name, "A": log_a, "B": emitters}


def net_from_dict(d: dict) -> HMMNet:
    r""" Inverse of :func:`net_to_dict`. """
    if not isinstance(d, dict):
        raise SerializationError(f"Expected a net object but got {type(d).__name__}")
    for key in ("name", "A", "B"):
        if key not in d:
            raise SerializationError("Missing field in net", field=key)
    try:
        log_a = np.array([[-np.inf if x is None else x for x in row] for row in d["A"]], dtype=float)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Malformed transition matrix of net '{d['name']}': {e}", field="A") from e
    emitters = [None if e is None else emitter_from_dict(e) for e in d["B"]]
    try:
        return HMMNet(d["name"], log_a, emitters)
    except InvalidNetError as e:
        raise SerializationError(f"Invalid net '{d['name']}': {e}", field="A") from e


def _to_document(obj):
    if isinstance(obj, HMMSet):
        return [net_to_dict(net) for net in obj]
    if isinstance(obj, HMMNet):
        return net_to_dict(obj)
    if isinstance(obj, Emitter):
        return emitter_to_dict(obj)
    raise SerializationError(f"Cannot serialize objects of type {type(obj).__name__}")


def _from_document(document):
    if isinstance(document, list):
        hmm_set = HMMSet()
        for d in document:
            try:
                hmm_set.add_net(net_from_dict(d))
            except ValueError as e:
                if isinstance(e, SerializationError):
                    raise
                raise SerializationError(str(e), field="name") from e
        return hmm_set
    if isinstance(document, dict) and "A" in document:
        return net_from_dict(document)
    if isinstance(document, dict) and "type" in document:
        return emitter_from_dict(document)
    raise SerializationError("Document is neither a set, a net nor an emitter")


def dumps(obj: Union[HMMSet, HMMNet, Emitter], indent=None) -> str:
    r""" Serializes a set (as array of nets), a single net or an emitter to a JSON string.

    Parameters
    ----------
    obj : HMMSet or HMMNet or Emitter
        The model.
    indent : int, optional, default=None
        Indentation passed to :func:`json.dumps`.

    Returns
    -------
    text : str
        The JSON document. Floats are written with full precision so that :func:`loads` restores all
        parameters bit by bit.
    """
    return json.dumps(_to_document(obj), indent=indent, allow_nan=False)


def loads(text: str) -> Union[HMMSet, HMMNet, Emitter]:
    r""" Inverse of :func:`dumps`. The kind of model is inferred from the document.

    Raises
    ------
    SerializationError
        If the text is not valid JSON or does not describe a model.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise SerializationError(f"Malformed JSON: {e}") from e
    return _from_document(document)


def save_model(obj: Union[HMMSet, HMMNet, Emitter], path, indent=None):
    r""" Writes :func:`dumps` of `obj` to a file.

    Raises
    ------
    ReaderIOError
        If the file cannot be written.
    """
    text = dumps(obj, indent=indent)
    try:
        with open(path, 'w') as f:
            f.write(text)
    except OSError as e:
        raise ReaderIOError(f"Cannot write model to '{path}': {e}") from e


def load_model(path) -> Union[HMMSet, HMMNet, Emitter]:
    r""" Reads a model written by :func:`save_model`.

    Raises
    ------
    ReaderIOError
        If the file cannot be read.
    SerializationError
        If the content does not describe a model.
    """
    try:
        with open(path, 'r') as f:
            text = f.read()
    except OSError as e:
        raise ReaderIOError(f"Cannot read model from '{path}': {e}") from e
    return loads(text)

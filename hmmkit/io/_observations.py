import json
from typing import Iterable, Iterator, List

from ..alignment import ANode
from ..util.data import ObservationSequence
from ..util.exceptions import ReaderIOError, SerializationError


def observation_to_dict(observation: ObservationSequence) -> dict:
    out = {"id": observation.id, "vectors": observation.vectors.tolist()}
    if observation.labels is not None:
        out["labels"] = list(observation.labels)
    if observation.token_labels is not None:
        out["token_labels"] = observation.token_labels
    if observation.alignment is not None:
        out["alignments"] = observation.alignment.to_json()
    return out


def observation_from_dict(d: dict) -> ObservationSequence:
    if not isinstance(d, dict):
        raise SerializationError(f"Expected an observation object but got {type(d).__name__}")
    if "vectors" not in d:
        raise SerializationError("Missing field in observation", field="vectors")
    alignment = None
    if d.get("alignments"):
        try:
            alignment = ANode.from_json(d["alignments"])
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"Malformed alignment: {e}", field="alignments") from e
    token_labels = d.get("token_labels")
    if token_labels is not None and not isinstance(token_labels, bool):
        raise SerializationError(f"Expected a boolean but got {token_labels!r}", field="token_labels")
    try:
        return ObservationSequence(d["vectors"], id=d.get("id", ''), labels=d.get("labels"), alignment=alignment,
                                   token_labels=token_labels)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Malformed observation vectors: {e}", field="vectors") from e


class ObservationReader:
    r""" Iterates over the observation sequences of a JSON-lines file, one object per line with the fields
    :code:`id`, :code:`vectors`, and optionally :code:`labels` and :code:`alignments` (level-wise alignment
    tree, see :meth:`ANode.to_json <hmmkit.alignment.ANode.to_json>`). Blank lines are skipped.

    The reader is a context manager; the file is opened on entry or on first iteration and closed at EOF
    or on exit.

    Parameters
    ----------
    path : str or path-like
        The file.

    Raises
    ------
    ReaderIOError
        If the file cannot be opened or read.
    SerializationError
        If a line is not a valid observation object; the message carries the line number.
    """

    def __init__(self, path):
        self.path = path
        self._file = None

    def __enter__(self):
        self._open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _open(self):
        if self._file is None:
            try:
                self._file = open(self.path, 'r')
            except OSError as e:
                raise ReaderIOError(f"Cannot open observations '{self.path}': {e}") from e

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def __iter__(self) -> Iterator[ObservationSequence]:
        self._open()
        try:
            for lineno, line in enumerate(self._file, start=1):
                if not line.strip():
                    continue
                try:
                    d = json.loads(line)
                except json.JSONDecodeError as e:
                    raise SerializationError(f"Malformed JSON in '{self.path}' line {lineno}: {e}") from e
                try:
                    yield observation_from_dict(d)
                except SerializationError as e:
                    error = SerializationError(f"'{self.path}' line {lineno}: {e}")
                    error.field = e.field
                    raise error from e
        except OSError as e:
            raise ReaderIOError(f"Cannot read observations '{self.path}': {e}") from e
        finally:
            self.close()


def read_observations(path) -> List[ObservationSequence]:
    r""" Reads all observation sequences of a JSON-lines file, see :class:`ObservationReader`. """
    with ObservationReader(path) as reader:
        return list(reader)


def write_observations(observations: Iterable[ObservationSequence], path):
    r""" Writes observation sequences as JSON lines, the inverse of :func:`read_observations`. """
    try:
        with open(path, 'w') as f:
            for observation in observations:
                f.write(json.dumps(observation_to_dict(observation)))
                f.write('\n')
    except OSError as e:
        raise ReaderIOError(f"Cannot write observations to '{path}': {e}") from e

from typing import List, Optional, Sequence

import numpy as np

from ..alignment import ANode
from .exceptions import EmptyObservationError


class ObservationSequence:
    r""" An ordered sequence of real-valued frames of fixed dimension together with an identifier and
    optional labels.

    Parameters
    ----------
    vectors : (T, D) array_like
        The frames.
    id : str, optional, default=''
        Opaque identifier, e.g., the utterance name.
    labels : list of str, optional, default=None
        Either one label per frame or a token transcript, see :meth:`transcript`.
    alignment : ANode, optional, default=None
        Alignment tree over the frames.
    token_labels : bool, optional, default=None
        Whether `labels` is a token transcript (True) or holds one label per frame (False). If None, this is
        inferred from the number of labels, see :meth:`transcript`.
    """

    def __init__(self, vectors, id: str = '', labels: Optional[Sequence[str]] = None,
                 alignment: Optional[ANode] = None, token_labels: Optional[bool] = None):
        vectors = np.asarray(vectors, dtype=float)
        if vectors.ndim == 1:
            vectors = vectors[:, None]
        if vectors.ndim != 2:
            raise ValueError(f"Observation vectors must be two-dimensional, got shape {vectors.shape}.")
        self.vectors = vectors
        self.id = id
        self.labels = list(labels) if labels is not None else None
        self.alignment = alignment
        if token_labels is False and self.labels is not None and len(self.labels) != len(self):
            raise ValueError(f"Frame labels must have one label per frame, got {len(self.labels)} labels "
                             f"for {len(self)} frames.")
        self.token_labels = token_labels

    def __len__(self):
        return self.vectors.shape[0]

    def __repr__(self):
        return f"ObservationSequence(id={self.id!r}, n_frames={len(self)}, dim={self.dim})"

    @property
    def dim(self) -> int:
        r""" Dimension D of the frames. """
        return self.vectors.shape[1]

    @property
    def n_frames(self) -> int:
        return self.vectors.shape[0]

    def transcript(self) -> List[str]:
        r""" The token sequence of this observation.

        Token labels are returned as is. Otherwise the names of the children of the alignment root are used
        if an alignment is present, and frame labels are collapsed into runs if not.

        Without an explicit :attr:`token_labels` flag, a label list whose length differs from the number of
        frames counts as token transcript and one with exactly one label per frame as frame labels. A token
        transcript that happens to have as many tokens as there are frames is therefore only recognized
        with :code:`token_labels=True`.

        Returns
        -------
        tokens : list of str
            The transcript, empty if the sequence carries no labels.
        """
        if self.labels is not None and (self.token_labels or
                                        (self.token_labels is None and len(self.labels) != len(self))):
            return list(self.labels)
        if self.alignment is not None:
            return [c.name for c in self.alignment.children]
        if self.labels is not None:
            return [c.name for c in ANode.from_labels(self.labels).children]
        return []


def join_sequences(sequences: Sequence[ObservationSequence], id: str = '') -> ObservationSequence:
    r""" Concatenates observation sequences along the time axis. Labels are concatenated as well,
    alignments are dropped.

    Parameters
    ----------
    sequences : sequence of ObservationSequence
        The parts, all of the same dimension.
    id : str, optional, default=''
        Identifier of the joined sequence.

    Returns
    -------
    joined : ObservationSequence
        The concatenation.
    """
    if len(sequences) == 0:
        raise EmptyObservationError("Cannot join an empty list of observation sequences.")
    vectors = np.concatenate([s.vectors for s in sequences], axis=0)
    labels = None
    if all(s.labels is not None for s in sequences):
        labels = [label for s in sequences for label in s.labels]
    flags = {s.token_labels for s in sequences}
    token_labels = flags.pop() if len(flags) == 1 else None
    return ObservationSequence(vectors, id=id, labels=labels, token_labels=token_labels)

import abc
from typing import List, Mapping, Sequence

from ..util.exceptions import UnknownLabelError


class Assigner(abc.ABC):
    r""" Maps a label sequence, e.g., the words of an utterance, to the sequence of net names which are
    concatenated into a :class:`Chain`. """

    @abc.abstractmethod
    def assign(self, labels: Sequence[str]) -> List[str]:
        r""" Translates labels into net names.

        Parameters
        ----------
        labels : sequence of str
            The labels.

        Returns
        -------
        names : list of str
            The net names.
        """

    def __call__(self, labels: Sequence[str]) -> List[str]:
        return self.assign(labels)


class DirectAssigner(Assigner):
    r""" Uses every label as net name. """

    def assign(self, labels: Sequence[str]) -> List[str]:
        return list(labels)


class DictionaryAssigner(Assigner):
    r""" Expands every label into a sequence of net names by dictionary lookup, e.g., words into phones.

    Parameters
    ----------
    dictionary : mapping of str to sequence of str
        The expansions.

    Examples
    --------
    >>> assigner = DictionaryAssigner({"HELLO": ["HH", "AH0", "L", "OW1"], "WORLD": ["W", "ER1", "L", "D"]})
    >>> assigner.assign(["HELLO", "WORLD"])
    ['HH', 'AH0', 'L', 'OW1', 'W', 'ER1', 'L', 'D']
    """

    def __init__(self, dictionary: Mapping[str, Sequence[str]]):
        self._dictionary = {k: tuple(v) for k, v in dictionary.items()}

    @property
    def dictionary(self) -> Mapping[str, Sequence[str]]:
        return dict(self._dictionary)

    def assign(self, labels: Sequence[str]) -> List[str]:
        names = []
        for label in labels:
            try:
                names.extend(self._dictionary[label])
            except KeyError:
                raise UnknownLabelError(f"Label '{label}' is not in the dictionary.") from None
        return names

r"""
.. currentmodule: hmmkit.metrics

Token accuracy of decoded transcripts.

.. autosummary::
    :toctree: generated/

    edit_counts
    accuracy
    split_dash
    AccuracyScore
"""
from typing import List, Sequence, Tuple


def split_dash(tokens: Sequence[str]) -> List[str]:
    r""" Cuts every token at its first dash, e.g., state labels :code:`"a-2"` become net names :code:`"a"`.

    >>> split_dash(["a-1", "b", "c-d-2"])
    ['a', 'b', 'c']
    """
    return [token.split('-', 1)[0] for token in tokens]


def edit_counts(reference: Sequence[str], hypothesis: Sequence[str]) -> Tuple[int, int, int]:
    r""" Counts the substitutions, deletions and insertions of a minimum Levenshtein alignment of a hypothesis
    against a reference.

    Parameters
    ----------
    reference : sequence of str
        Reference tokens.
    hypothesis : sequence of str
        Hypothesis tokens.

    Returns
    -------
    counts : tuple of int
        Number of substitutions, deletions and insertions. Among alignments of minimum cost, the one with the
        most substitutions is chosen.

    Examples
    --------
    >>> edit_counts(["a", "b", "c"], ["a", "x", "c", "d"])
    (1, 0, 1)
    """
    n, m = len(reference), len(hypothesis)
    # cost, substitutions, deletions, insertions
    previous = [(j, 0, 0, j) for j in range(m + 1)]
    for i in range(1, n + 1):
        current = [(i, 0, i, 0)]
        for j in range(1, m + 1):
            mismatch = reference[i - 1] != hypothesis[j - 1]
            c, s, d, ins = previous[j - 1]
            diagonal = (c + mismatch, s + mismatch, d, ins)
            c, s, d, ins = previous[j]
            deletion = (c + 1, s, d + 1, ins)
            c, s, d, ins = current[j - 1]
            insertion = (c + 1, s, d, ins + 1)
            current.append(min(diagonal, deletion, insertion, key=lambda x: (x[0], -x[1])))
        previous = current
    _, s, d, ins = previous[m]
    return s, d, ins


def accuracy(reference: Sequence[str], hypothesis: Sequence[str]) -> float:
    r""" Token accuracy :math:`(N - S - D - I) / N` with :math:`N` the number of reference tokens. It can
    become negative when there are many insertions. An empty reference scores one if the hypothesis is empty
    as well and zero otherwise.

    >>> accuracy(["a", "b", "c", "d"], ["a", "b", "d"])
    0.75
    """
    if len(reference) == 0:
        return 1. if len(hypothesis) == 0 else 0.
    s, d, i = edit_counts(reference, hypothesis)
    return (len(reference) - s - d - i) / len(reference)


class AccuracyScore:
    r""" Accumulates edit counts over many utterances.

    Parameters
    ----------
    split_dash : bool, optional, default=False
        Whether hypothesis tokens are cut at their first dash before scoring.
    """

    def __init__(self, split_dash: bool = False):
        self.split_dash = split_dash
        self.n_tokens = 0
        self.n_substitutions = 0
        self.n_deletions = 0
        self.n_insertions = 0
        self.n_sessions = 0

    def session(self, reference: Sequence[str], hypothesis: Sequence[str]) -> float:
        r""" Scores one utterance and adds its counts to the totals.

        Returns
        -------
        accuracy : float
            Accuracy of this utterance.
        """
        if self.split_dash:
            hypothesis = split_dash(hypothesis)
        s, d, i = edit_counts(reference, hypothesis)
        self.n_tokens += len(reference)
        self.n_substitutions += s
        self.n_deletions += d
        self.n_insertions += i
        self.n_sessions += 1
        return accuracy(reference, hypothesis)

    def total(self) -> float:
        r""" Accuracy over all scored utterances. """
        if self.n_tokens == 0:
            return 1. if self.n_insertions == 0 else 0.
        n_errors = self.n_substitutions + self.n_deletions + self.n_insertions
        return (self.n_tokens - n_errors) / self.n_tokens

from contextlib import AbstractContextManager
from typing import Optional


def handle_n_jobs(value: Optional[int]) -> int:
    r"""Handles the n_jobs parameter consistently so that a non-negative number is returned.
    In particular, if

      * value is None, use the number of cores available to this process
      * value is positive, use value

    Parameters
    ----------
    value : int or None
        The provided n_jobs argument

    Returns
    -------
    n_jobs : int
        A positive integer value describing how many worker processes can be started simultaneously.
    """
    if value is None:
        try:
            from os import sched_getaffinity
            count = len(sched_getaffinity(0))
        except ImportError:
            from os import cpu_count
            count = cpu_count()
        if count is None:
            raise ValueError("Could not determine number of cpus in system, please provide n_jobs manually.")
        value = count
    elif value <= 0:
        raise ValueError(f"n_jobs can only be None (in which case it will be determined from hardware) "
                         f"or a positive number, but was {value}.")
    assert isinstance(value, int) and value > 0
    return value


def split_evenly(items, n_chunks: int):
    r""" Splits a list into at most `n_chunks` contiguous chunks whose lengths differ by at most one.
    Empty chunks are dropped. """
    n_chunks = max(1, min(n_chunks, len(items)))
    size, rest = divmod(len(items), n_chunks)
    chunks, start = [], 0
    for i in range(n_chunks):
        stop = start + size + (1 if i < rest else 0)
        chunks.append(items[start:stop])
        start = stop
    return [c for c in chunks if len(c) > 0]


class joining(AbstractContextManager):
    r""" Context manager for pools that will automatically join upon exit of scope. """

    def __init__(self, thing):
        self.thing = thing

    def __enter__(self):
        return self.thing

    def __exit__(self, *info):
        self.thing.close()
        self.thing.join()

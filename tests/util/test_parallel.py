import pytest

from hmmkit.util.callbacks import ProgressCallback, supports_progress_interface
from hmmkit.util.parallel import handle_n_jobs, split_evenly


@pytest.mark.parametrize("n_items, n_chunks", [(10, 3), (3, 5), (1, 1), (7, 7), (0, 2)])
def test_split_evenly(n_items, n_chunks):
    items = list(range(n_items))
    chunks = split_evenly(items, n_chunks)
    assert [x for chunk in chunks for x in chunk] == items
    assert len(chunks) <= n_chunks
    if chunks:
        lengths = [len(c) for c in chunks]
        assert max(lengths) - min(lengths) <= 1
        assert min(lengths) > 0


def test_handle_n_jobs():
    assert handle_n_jobs(3) == 3
    assert handle_n_jobs(None) > 0
    with pytest.raises(ValueError):
        handle_n_jobs(0)


class ProgressBar:

    def __init__(self, total=None, **_):
        self.total = total
        self.n = 0
        self.description = None
        self.closed = False

    def update(self, inc):
        self.n += inc

    def close(self):
        self.closed = True

    def set_description(self, value):
        self.description = value


def test_progress_callback():
    assert supports_progress_interface(ProgressBar())
    assert not supports_progress_interface(object())
    with ProgressCallback(ProgressBar, "Training", total=5) as callback:
        callback(log_likelihood=-12.5)
        callback(log_likelihood=-10.)
        bar = callback.progress_bar
    assert bar.n == 2
    assert bar.total == 2
    assert bar.closed
    assert bar.description.startswith("Training")
    assert "-1.0000e+01" in bar.description

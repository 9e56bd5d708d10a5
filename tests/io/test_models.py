import json
import os
import tempfile
import unittest

import numpy as np
import pytest
from numpy.testing import assert_equal

from hmmkit.emission import Gaussian, GMM, random_model
from hmmkit.hmm import HMMNet, HMMSet, left_to_right, random_left_to_right
from hmmkit.io import dumps, loads, save_model, load_model, net_to_dict
from hmmkit.util.exceptions import ReaderIOError, SerializationError


def _gaussian(seed, dim=3, name='g'):
    rs = np.random.RandomState(seed)
    return Gaussian(dim, mean=rs.normal(size=dim), sd=rs.uniform(.1, 2., size=dim), name=name)


def _set():
    gmm = random_model([0., 1., 2.], [1., 1., 1.], 3, name="mix", random_state=4)
    gmm.weights = [.2, .0, .8]
    return HMMSet([
        HMMNet("a", random_left_to_right(4, skip=True, random_state=1), [None, _gaussian(1), _gaussian(2), None]),
        HMMNet("b", np.log(left_to_right(3, skip=.25)), [None, gmm, None]),
    ])


def _assert_same_emitter(a, b):
    assert type(a) is type(b)
    assert a.name == b.name
    if isinstance(a, GMM):
        assert_equal(a.log_weights, b.log_weights)
        for ca, cb in zip(a.components, b.components):
            _assert_same_emitter(ca, cb)
    else:
        assert_equal(a.mean, b.mean)
        assert_equal(a.sd, b.sd)
        assert_equal(a.sumx, b.sumx)
        assert_equal(a.sumx_sq, b.sumx_sq)
    assert a.n_samples == b.n_samples


def _assert_same_set(a, b):
    assert a.names == b.names
    for na, nb in zip(a, b):
        assert_equal(na.log_transition_matrix, nb.log_transition_matrix)
        for ea, eb in zip(na.emitters, nb.emitters):
            if ea is None:
                assert eb is None
            else:
                _assert_same_emitter(ea, eb)


class TestModelSerialization(unittest.TestCase):

    def test_set_round_trip_is_exact(self):
        hmm_set = _set()
        restored = loads(dumps(hmm_set))
        self.assertIsInstance(restored, HMMSet)
        _assert_same_set(hmm_set, restored)
        self.assertEqual(dumps(restored), dumps(hmm_set))

    def test_accumulators_survive(self):
        hmm_set = _set()
        hmm_set["a"].emitters[1].update(np.ones((4, 3)) * .3)
        restored = loads(dumps(hmm_set))
        _assert_same_set(hmm_set, restored)
        self.assertEqual(restored["a"].emitters[1].n_samples, 4.)

    def test_net_and_emitter_documents(self):
        net = _set()["b"]
        restored = loads(dumps(net, indent=2))
        self.assertIsInstance(restored, HMMNet)
        assert_equal(restored.log_transition_matrix, net.log_transition_matrix)
        gaussian = _gaussian(7, name="single")
        _assert_same_emitter(gaussian, loads(dumps(gaussian)))

    def test_document_layout(self):
        doc = json.loads(dumps(_set()))
        self.assertEqual([d["name"] for d in doc], ["a", "b"])
        b = doc[1]
        self.assertIsNone(b["B"][0])
        self.assertIsNone(b["B"][-1])
        self.assertEqual(b["B"][1]["type"], "gmm")
        self.assertIsNone(b["A"][0][0])
        self.assertEqual(b["A"][0][2], np.log(.25))
        self.assertIn(None, b["B"][1]["weights"])
        self.assertEqual(doc[0]["B"][1]["type"], "gaussian")

    def test_files(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "model.json")
            save_model(_set(), path)
            _assert_same_set(_set(), load_model(path))

    def test_missing_file(self):
        with self.assertRaises(ReaderIOError):
            load_model("/nonexistent/directory/model.json")
        with self.assertRaises(ReaderIOError):
            save_model(_set(), "/nonexistent/directory/model.json")


@pytest.mark.parametrize("mutate, field", [
    (lambda d: d[0].pop("A"), "A"),
    (lambda d: d[0].pop("B"), "B"),
    (lambda d: d[0].pop("name"), "name"),
    (lambda d: d[0]["B"][1].pop("mean"), "mean"),
    (lambda d: d[0]["B"][1].update(type="laplace"), "type"),
    (lambda d: d[0]["A"][1].__setitem__(1, -.01), "A"),
    (lambda d: d[0]["A"].__setitem__(0, "x"), "A"),
    (lambda d: d[1]["B"][1].pop("components"), "components"),
    (lambda d: d[1].update(name="a"), "name"),
], ids=["no-A", "no-B", "no-name", "no-mean", "bad-type", "not-stochastic", "malformed-A", "no-components",
        "duplicate-name"])
def test_invalid_documents(mutate, field):
    doc = json.loads(dumps(_set()))
    mutate(doc)
    with pytest.raises(SerializationError) as info:
        loads(json.dumps(doc))
    assert info.value.field == field


def test_malformed_json():
    with pytest.raises(SerializationError):
        loads("[{")
    with pytest.raises(SerializationError):
        loads("42")


def test_infinity_is_never_written():
    text = dumps(_set())
    assert "Infinity" not in text
    assert "NaN" not in text
    assert net_to_dict(_set()["a"])["A"][0][0] is None

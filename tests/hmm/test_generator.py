import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_equal

from hmmkit.emission import Gaussian
from hmmkit.hmm import SequenceGenerator, ChainSequenceGenerator, HMMNet, HMMSet, left_to_right


def _net(name, means, skip=0., dim=2):
    emitters = [None] + [Gaussian(dim, mean=np.full(dim, m), sd=np.full(dim, .1)) for m in means] + [None]
    with np.errstate(divide='ignore'):
        return HMMNet(name, np.log(left_to_right(len(means) + 2, self_loop=.6, skip=skip)), emitters)


class TestSequenceGenerator(unittest.TestCase):

    def setUp(self):
        self.net = _net("a", [0., 10., 20.])

    def test_sample(self):
        X, states = SequenceGenerator(self.net, random_state=3).sample()
        self.assertEqual(X.shape, (len(states), 2))
        self.assertTrue(np.all(np.diff(states) >= 0))
        self.assertEqual(set(states), {1, 2, 3})
        # frames come from the emitter of their state
        assert_allclose(X[:, 0], 10. * (states - 1), atol=1.)

    def test_deterministic(self):
        X1, s1 = SequenceGenerator(self.net, random_state=11).sample()
        X2, s2 = SequenceGenerator(self.net, random_state=11).sample()
        assert_equal(X1, X2)
        assert_equal(s1, s2)

    def test_max_length(self):
        net = HMMNet("slow", np.log(left_to_right(3, self_loop=.99)), [None, Gaussian(1), None])
        for _ in range(5):
            X, states = SequenceGenerator(net, random_state=1, max_length=4).sample()
            self.assertLessEqual(len(states), 4)
        with self.assertRaises(ValueError):
            SequenceGenerator(net, max_length=0)

    def test_next(self):
        obs = SequenceGenerator(self.net, random_state=5).next("seq")
        self.assertEqual(obs.id, "seq")
        self.assertEqual(obs.labels, ["a"])
        self.assertEqual(obs.transcript(), ["a"])
        alignment = obs.alignment
        self.assertTrue(alignment.is_valid())
        self.assertEqual(alignment.name, "a")
        self.assertEqual((alignment.start, alignment.end), (0, len(obs)))
        self.assertEqual([leaf.name for leaf in alignment.leaves()], ["a-1", "a-2", "a-3"])

    def test_state_frequencies(self):
        # expected dwell time of a state with self-loop .6 is 1 / .4 frames
        generator = SequenceGenerator(self.net, random_state=9)
        lengths = [len(generator.sample()[1]) for _ in range(2000)]
        assert_allclose(np.mean(lengths), 3 / .4, rtol=.05)


class TestChainSequenceGenerator(unittest.TestCase):

    def setUp(self):
        self.hmm_set = HMMSet([_net("a", [0., 1.]), _net("b", [5.]), _net("c", [9.], skip=.5)])

    def test_next(self):
        generator = ChainSequenceGenerator(self.hmm_set, max_nets=4, random_state=42)
        for i in range(50):
            obs = generator.next(f"s{i}")
            self.assertEqual(obs.id, f"s{i}")
            self.assertTrue(1 <= len(obs.labels) <= 4)
            self.assertTrue(set(obs.labels) <= {"a", "b", "c"})
            self.assertEqual(obs.vectors.shape[1], 2)
            alignment = obs.alignment
            self.assertTrue(alignment.is_valid())
            self.assertEqual((alignment.start, alignment.end), (0, len(obs)))
            emitted = [name for name in obs.labels if name != "c"]
            self.assertEqual([node.name for node in alignment.children if node.name != "c"], emitted)
            for node in alignment.children:
                self.assertTrue(all(leaf.name.startswith(node.name + "-") for leaf in node.leaves()))

    def test_deterministic(self):
        a = ChainSequenceGenerator(self.hmm_set, random_state=3)
        b = ChainSequenceGenerator(self.hmm_set, random_state=3)
        for _ in range(5):
            x, y = a.next(), b.next()
            self.assertEqual(x.labels, y.labels)
            assert_equal(x.vectors, y.vectors)

    def test_sample_names(self):
        generator = ChainSequenceGenerator(self.hmm_set, max_nets=2, random_state=1)
        counts = {}
        for _ in range(600):
            names = generator.sample_names()
            self.assertIn(len(names), (1, 2))
            for name in names:
                counts[name] = counts.get(name, 0) + 1
        self.assertEqual(set(counts), {"a", "b", "c"})

    def test_only_skipped_nets(self):
        hmm_set = HMMSet([_net("c", [9.], skip=.99)])
        generator = ChainSequenceGenerator(hmm_set, max_nets=1, random_state=0)
        empty = [obs for obs in (generator.next() for _ in range(20)) if len(obs) == 0]
        self.assertGreater(len(empty), 0)
        self.assertEqual(empty[0].vectors.shape, (0, 2))
        self.assertEqual(empty[0].labels, ["c"])


def test_invalid_arguments():
    with pytest.raises(ValueError):
        ChainSequenceGenerator(HMMSet())
    with pytest.raises(ValueError):
        ChainSequenceGenerator(HMMSet([_net("a", [0.])]), max_nets=0)

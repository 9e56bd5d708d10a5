import unittest

import numpy as np
from numpy.testing import assert_allclose

from hmmkit.alignment import ANode
from hmmkit.emission import Gaussian
from hmmkit.hmm import HMMSet, HMMNet, EmbeddedHMM, DictionaryAssigner, left_to_right
from hmmkit.util.data import ObservationSequence
from hmmkit.util.exceptions import UnknownLabelError, InvalidNetError


def _emitters(means, dim=1):
    return [None] + [Gaussian(dim, mean=np.full(dim, m), sd=np.ones(dim)) for m in means] + [None]


class TestHMMSet(unittest.TestCase):

    def setUp(self):
        self.hmm_set = HMMSet()
        self.hmm_set.new_net("a", np.log(left_to_right(3)), _emitters([0.]))
        self.hmm_set.new_net("b", np.log(left_to_right(4)), _emitters([5., 6.]))

    def test_registry(self):
        self.assertEqual(len(self.hmm_set), 2)
        self.assertEqual(self.hmm_set.names, ["a", "b"])
        self.assertEqual([net.name for net in self.hmm_set], ["a", "b"])
        self.assertIn("a", self.hmm_set)
        self.assertNotIn("c", self.hmm_set)
        self.assertEqual(self.hmm_set["b"].n_states, 4)
        self.assertEqual(self.hmm_set.index_of("b"), 1)
        self.assertEqual(self.hmm_set.dim, 1)

    def test_unknown_name(self):
        with self.assertRaises(UnknownLabelError):
            _ = self.hmm_set["c"]
        with self.assertRaises(UnknownLabelError):
            self.hmm_set.index_of("c")

    def test_duplicate_name(self):
        with self.assertRaises(ValueError):
            self.hmm_set.new_net("a", np.log(left_to_right(3)), _emitters([1.]))

    def test_dimension_mismatch(self):
        with self.assertRaises(ValueError):
            self.hmm_set.new_net("c", np.log(left_to_right(3)), _emitters([1.], dim=2))

    def test_invalid_net_is_not_added(self):
        with self.assertRaises(InvalidNetError):
            self.hmm_set.new_net("c", np.log(left_to_right(4)), _emitters([1.]))
        self.assertNotIn("c", self.hmm_set)

    def test_empty_set_has_no_dim(self):
        with self.assertRaises(ValueError):
            _ = HMMSet().dim

    def test_chain_from_names(self):
        chain = self.hmm_set.chain_from_names(["a", "b", "a"], np.zeros((4, 1)))
        self.assertEqual([net.name for net in chain.nets], ["a", "b", "a"])
        self.assertIs(chain.nets[0], chain.nets[2])
        with self.assertRaises(UnknownLabelError):
            self.hmm_set.chain_from_names(["a", "c"], np.zeros((4, 1)))

    def test_chain_for_labels_and_alignment(self):
        obs = ObservationSequence(np.zeros((5, 1)), id="x", labels=["a", "b"])
        self.assertEqual([net.name for net in self.hmm_set.chain_for(obs).nets], ["a", "b"])
        aligned = ObservationSequence(np.zeros((5, 1)), alignment=ANode.from_labels(["b", "b", "a", "a", "a"]))
        self.assertEqual([net.name for net in self.hmm_set.chain_for(aligned).nets], ["b", "a"])

    def test_chain_for_with_assigner(self):
        obs = ObservationSequence(np.zeros((5, 1)), labels=["word"])
        chain = self.hmm_set.chain_for(obs, DictionaryAssigner({"word": ["b", "a"]}))
        self.assertEqual([net.name for net in chain.nets], ["b", "a"])

    def test_search_graph(self):
        graph = self.hmm_set.search_graph()
        self.assertEqual(graph.n_nodes, 3 + 4 + 2)
        self.assertEqual(int(graph.emitting.sum()), 3)
        self.assertEqual(graph.labels[graph.entry_of("b")], "b-0")
        self.assertEqual(graph.labels[graph.exit_of("a")], "a-2")
        src, dst, w = graph.arcs()
        into_a = (src == graph.exit_of("b")) & (dst == graph.entry_of("a"))
        assert_allclose(w[into_a], [-np.log(2)])
        into_end = dst == graph.end
        assert_allclose(w[into_end], 0.)
        self.assertEqual(int(into_end.sum()), 2)

    def test_clear(self):
        for net in self.hmm_set:
            for e in net.emitting_emitters:
                e.update(np.ones((2, 1)))
        self.hmm_set.clear()
        self.assertTrue(all(e.n_samples == 0 for net in self.hmm_set for e in net.emitting_emitters))

    def test_copy_is_deep(self):
        clone = self.hmm_set.copy()
        clone["a"].emitters[1].mean = [3.]
        assert_allclose(self.hmm_set["a"].emitters[1].mean, [0.])


class TestEmbeddedHMM(unittest.TestCase):

    def setUp(self):
        hmm_set = HMMSet([HMMNet("a", np.log(left_to_right(3)), _emitters([0.])),
                          HMMNet("b", np.log(left_to_right(3)), _emitters([8.]))])
        self.model = EmbeddedHMM(hmm_set, likelihoods=[-10., -5.], n_updates=4, n_failed_updates=1)

    def test_properties(self):
        self.assertEqual(self.model.likelihood, -5.)
        assert_allclose(self.model.likelihoods, [-10., -5.])
        self.assertEqual(self.model.n_updates, 4)
        self.assertEqual(self.model.n_failed_updates, 1)
        self.assertEqual(self.model.numerical_issues, 0)
        self.assertIsNone(EmbeddedHMM(self.model.hmm_set).likelihood)

    def test_log_likelihood(self):
        obs = ObservationSequence(np.array([[0.], [8.]]), labels=["a", "b"])
        expected = sum(e.log_prob(x) for e, x in zip([self.model.hmm_set["a"].emitters[1],
                                                       self.model.hmm_set["b"].emitters[1]], obs.vectors))
        assert_allclose(self.model.log_likelihood(obs), expected + 2 * np.log(.5))

    def test_decode(self):
        vectors = np.r_[np.zeros(3), np.full(4, 8.)][:, None]
        result = self.model.decode(ObservationSequence(vectors, id="x"))
        self.assertEqual(result.transcript, ["a", "b"])
        self.assertEqual(self.model.decode(vectors).transcript, ["a", "b"])
        restricted = self.model.decode(vectors, follow={"a": ["a"], "b": ["b"]})
        self.assertEqual(len(set(restricted.transcript)), 1)

    def test_get_params(self):
        params = self.model.get_params()
        self.assertIs(params["hmm_set"], self.model.hmm_set)
        self.assertEqual(params["n_updates"], 4)

import itertools
import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_equal

from hmmkit.emission import GMM, Gaussian, random_model, init_from_data, component_name
from hmmkit.util.exceptions import SerializationError


def two_component_gmm():
    g0 = Gaussian(2, mean=[1., 2.], sd=[.3, .3], name="g0")
    g1 = Gaussian(2, mean=[4., 4.], sd=[1., 1.], name="g1")
    return GMM(2, 2, weights=[.5, .5], components=[g0, g1], name="gmm")


class TestGMM(unittest.TestCase):

    def test_component_names(self):
        self.assertEqual(component_name("mygmm", 111, 123), "mygmm-111")
        self.assertEqual(component_name("mygmm", 3, 10), "mygmm-3")
        self.assertEqual(component_name("mygmm", 3, 11), "mygmm-03")
        gmm = GMM(1, 12, name="m")
        self.assertEqual([c.name for c in gmm.components][:2], ["m-00", "m-01"])

    def test_weights_are_normalized(self):
        gmm = GMM(1, 2, weights=[1., 3.])
        assert_allclose(gmm.weights, [.25, .75])
        assert_allclose(gmm.log_weights, np.log([.25, .75]))
        with self.assertRaises(ValueError):
            GMM(1, 2, weights=[0., 0.])
        with self.assertRaises(ValueError):
            GMM(1, 2, weights=[1., 2., 3.])

    def test_invalid_components(self):
        with self.assertRaises(ValueError):
            GMM(2, 2, components=[Gaussian(2)])
        with self.assertRaises(ValueError):
            GMM(2, 1, components=[Gaussian(3)])
        with self.assertRaises(ValueError):
            GMM(2, 0)

    def test_log_prob_is_max_approximation(self):
        gmm = two_component_gmm()
        x = np.array([[1., 2.], [4., 4.], [2.5, 3.]])
        per_component = np.stack([c.log_prob_batch(x) for c in gmm.components], axis=1) + np.log(.5)
        assert_allclose(gmm.log_prob_batch(x), per_component.max(axis=1))
        assert_allclose(gmm.log_prob(x[0]), per_component[0].max())

    def test_update_posteriors(self):
        gmm = two_component_gmm()
        x = np.array([[1., 2.]])
        gmm.update(x)
        v = np.array([c.log_prob(x[0]) for c in gmm.components])
        assert_allclose(gmm.posterior_sum, np.exp(v - v.max()))
        self.assertEqual(gmm.posterior_sum[0], 1.)
        self.assertEqual(gmm.n_samples, 1.)
        assert_allclose(gmm.likelihood, v.max() + np.log(.5))

    def test_zero_weight_contributes_nothing(self):
        gmm = two_component_gmm()
        gmm.update(np.array([[1., 2.], [4., 4.]]), weights=np.array([0., 1.]))
        self.assertEqual(gmm.n_samples, 1.)
        self.assertEqual(gmm.components[0].n_samples, gmm.posterior_sum[0])

    def test_estimate_and_clear(self):
        gmm = two_component_gmm()
        gmm.update(gmm.sample(random_state=3, size=1000))
        gmm.estimate()
        self.assertEqual(gmm.iteration, 1)
        assert_allclose(np.sum(gmm.weights), 1.)
        gmm.clear()
        self.assertEqual(gmm.n_samples, 0.)
        self.assertEqual(gmm.likelihood, 0.)
        assert_equal(gmm.posterior_sum, [0., 0.])
        self.assertTrue(all(c.n_samples == 0. for c in gmm.components))

    def test_merge(self):
        x = two_component_gmm().sample(random_state=4, size=200)
        full, a, b = two_component_gmm(), two_component_gmm(), two_component_gmm()
        full.update(x)
        a.update(x[:50])
        b.update(x[50:])
        a.merge(b)
        assert_allclose(a.posterior_sum, full.posterior_sum)
        assert_allclose(a.likelihood, full.likelihood)
        for ca, cf in zip(a.components, full.components):
            assert_allclose(ca.sumx, cf.sumx)
        with self.assertRaises(ValueError):
            a.merge(GMM(2, 3))

    def test_sample(self):
        gmm = two_component_gmm()
        assert_equal(gmm.sample(random_state=1).shape, (2,))
        x = gmm.sample(random_state=1, size=20000)
        assert_equal(x.shape, (20000, 2))
        near_first = np.linalg.norm(x - [1., 2.], axis=1) < 1.2
        assert_allclose(np.mean(near_first), .5, atol=.03)

    def test_dict_roundtrip_is_exact(self):
        gmm = GMM(2, 3, weights=[.2, 0., .8], components=[
            Gaussian(2, mean=[0., 1.], sd=[1., 2.]),
            Gaussian(2, mean=[1. / 3., 1.], sd=[.5, .25]),
            Gaussian(2, mean=[-1., np.e], sd=[.1, .7]),
        ], name="m")
        gmm.update(gmm.sample(random_state=0, size=10))
        d = gmm.to_dict()
        self.assertIsNone(d["weights"][1])
        restored = GMM.from_dict(d)
        assert_equal(restored.log_weights, gmm.log_weights)
        assert_equal(restored.weights, gmm.weights)
        assert_equal(restored.posterior_sum, gmm.posterior_sum)
        self.assertEqual(restored.likelihood, gmm.likelihood)
        self.assertEqual(restored.iteration, gmm.iteration)
        for c, rc in zip(gmm.components, restored.components):
            assert_equal(rc.mean, c.mean)
            assert_equal(rc.sd, c.sd)

    def test_from_dict_missing_field(self):
        d = two_component_gmm().to_dict()
        del d["components"]
        with self.assertRaises(SerializationError) as cm:
            GMM.from_dict(d)
        self.assertEqual(cm.exception.field, "components")


def test_random_model():
    gmm = random_model([2.5, 3.], [.5, .5], 4, "r", random_state=17)
    assert gmm.n_components == 4
    assert_allclose(gmm.weights, .25)
    assert [c.name for c in gmm.components] == ["r-0", "r-1", "r-2", "r-3"]
    for c in gmm.components:
        assert_allclose(c.sd, [.5, .5])
    means = np.array([c.mean for c in gmm.components])
    assert len(np.unique(means[:, 0])) == 4
    other = random_model([2.5, 3.], [.5, .5], 4, "r", random_state=17)
    assert_equal(np.array([c.mean for c in other.components]), means)


def test_init_from_data():
    x = two_component_gmm().sample(random_state=5, size=5000)
    gmm = init_from_data(x, 2, name="init", random_state=1)
    means = np.array(sorted((c.mean for c in gmm.components), key=lambda m: m[0]))
    assert_allclose(means, [[1., 2.], [4., 4.]], atol=.1)
    assert_allclose(gmm.weights, [.5, .5], atol=.05)


@pytest.mark.parametrize("n_iterations", [10])
def test_training_recovers_reference(n_iterations):
    reference_means = np.array([[1., 2.], [4., 4.]])
    reference_sds = np.array([[.3, .3], [1., 1.]])
    rs = np.random.RandomState(33)
    n_per_component = 1000000
    x = np.concatenate([reference_means[k] + reference_sds[k] * rs.standard_normal((n_per_component, 2))
                        for k in range(2)])

    data_estimate = Gaussian(2)
    data_estimate.update(x)
    data_estimate.estimate()
    gmm = random_model(data_estimate.mean, data_estimate.sd, 2, "mygmm", random_state=99)
    for _ in range(n_iterations):
        gmm.update(x)
        gmm.estimate()
        gmm.clear()

    best = None
    for perm in itertools.permutations(range(2)):
        means = np.array([gmm.components[k].mean for k in perm])
        error = np.max(np.abs(means - reference_means))
        if best is None or error < best[0]:
            best = error, perm
    _, perm = best
    for k, ref in zip(perm, range(2)):
        assert_allclose(gmm.components[k].mean, reference_means[ref], atol=.004)
        assert_allclose(gmm.components[k].sd, reference_sds[ref], atol=.004)
        assert_allclose(gmm.weights[k], .5, atol=.004)

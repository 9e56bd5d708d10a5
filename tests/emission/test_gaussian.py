import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_equal
from scipy.stats import multivariate_normal

from hmmkit.emission import Gaussian, VARIANCE_FLOOR, DEFAULT_SD, MIN_SAMPLES
from hmmkit.util.exceptions import DimensionMismatchError, SerializationError


class TestGaussian(unittest.TestCase):

    def test_defaults(self):
        g = Gaussian(3, name="g")
        assert_equal(g.mean, np.zeros(3))
        assert_allclose(g.sd, np.full(3, DEFAULT_SD))
        self.assertEqual(g.name, "g")
        self.assertEqual(g.dim, 3)
        self.assertEqual(g.n_samples, 0.)

    def test_invalid_parameters(self):
        with self.assertRaises(DimensionMismatchError):
            Gaussian(2, mean=[1., 2., 3.])
        with self.assertRaises(DimensionMismatchError):
            Gaussian(2, sd=[1.])
        with self.assertRaises(ValueError):
            Gaussian(2, sd=[1., -1.])
        with self.assertRaises(ValueError):
            Gaussian(0)

    def test_log_prob_matches_scipy(self):
        mean, sd = np.array([1., -2., .5]), np.array([.5, 2., 1.])
        g = Gaussian(3, mean=mean, sd=sd)
        x = np.random.RandomState(1).normal(size=(20, 3))
        expected = multivariate_normal(mean, np.diag(sd ** 2)).logpdf(x)
        assert_allclose(g.log_prob_batch(x), expected)
        assert_allclose(g.log_prob(x[3]), expected[3])

    def test_log_prob_dimension_mismatch(self):
        with self.assertRaises(DimensionMismatchError):
            Gaussian(2).log_prob([1., 2., 3.])

    def test_variance_floor(self):
        g = Gaussian(2, mean=[0., 0.], sd=[0., 1.])
        assert_allclose(g.variance, [VARIANCE_FLOOR, 1.])
        self.assertTrue(np.isfinite(g.log_prob([0., 0.])))

    def test_estimate(self):
        x = np.array([[1., 2.], [3., 4.], [5., 9.]])
        g = Gaussian(2)
        for row in x:
            g.update_one(row)
        self.assertEqual(g.n_samples, 3.)
        g.estimate()
        assert_allclose(g.mean, x.mean(axis=0))
        assert_allclose(g.sd, x.std(axis=0))

    def test_weighted_estimate(self):
        x = np.array([[0.], [1.], [10.]])
        g = Gaussian(1)
        g.update(x, weights=np.array([1., 3., 0.]))
        g.estimate()
        assert_allclose(g.mean, [.75])
        assert_allclose(g.variance, [.75 - .75 ** 2])

    def test_too_few_samples_falls_back(self):
        g = Gaussian(2, mean=[3., 3.], sd=[1., 1.])
        g.update_one([1., 1.], weight=MIN_SAMPLES / 2)
        g.estimate()
        assert_equal(g.mean, [0., 0.])
        assert_allclose(g.variance, [VARIANCE_FLOOR, VARIANCE_FLOOR])

    def test_clear(self):
        g = Gaussian(1)
        g.update(np.ones((4, 1)))
        g.clear()
        self.assertEqual(g.n_samples, 0.)
        assert_equal(g.sumx, [0.])
        assert_equal(g.sumx_sq, [0.])

    def test_merge(self):
        x = np.random.RandomState(5).normal(size=(100, 2))
        full, a, b = Gaussian(2), Gaussian(2), Gaussian(2)
        full.update(x)
        a.update(x[:30])
        b.update(x[30:])
        a.merge(b)
        assert_allclose(a.sumx, full.sumx)
        assert_allclose(a.sumx_sq, full.sumx_sq)
        self.assertEqual(a.n_samples, full.n_samples)
        with self.assertRaises(ValueError):
            a.merge(Gaussian(3))

    def test_sample_shapes(self):
        g = Gaussian(2, mean=[1., 2.], sd=[1., 1.])
        assert_equal(g.sample(random_state=1).shape, (2,))
        assert_equal(g.sample(random_state=1, size=5).shape, (5, 2))
        assert_equal(g.sample(random_state=7, size=3), g.sample(random_state=7, size=3))

    def test_dict_roundtrip_is_exact(self):
        g = Gaussian(3, mean=[.1, 1. / 3., -7.25], sd=[.3, np.pi, 1e-2 + 1e-9], name="g")
        g.update(np.random.RandomState(0).normal(size=(7, 3)))
        restored = Gaussian.from_dict(g.to_dict())
        assert_equal(restored.mean, g.mean)
        assert_equal(restored.sd, g.sd)
        assert_equal(restored.variance, g.variance)
        assert_equal(restored.sumx, g.sumx)
        assert_equal(restored.sumx_sq, g.sumx_sq)
        self.assertEqual(restored.n_samples, g.n_samples)
        self.assertEqual(restored.name, "g")

    def test_dict_omits_empty_accumulators(self):
        d = Gaussian(2).to_dict()
        self.assertNotIn("sumx", d)
        self.assertNotIn("sumx_sq", d)
        self.assertEqual(set(d), {"name", "dim", "nsamples", "diag", "mean", "sd"})

    def test_from_dict_missing_field(self):
        d = Gaussian(2).to_dict()
        del d["sd"]
        with self.assertRaises(SerializationError) as cm:
            Gaussian.from_dict(d)
        self.assertEqual(cm.exception.field, "sd")


@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_accepts_dtypes(dtype):
    g = Gaussian(2, mean=[0., 0.], sd=[1., 1.])
    assert_allclose(g.log_prob_batch(np.zeros((1, 2), dtype=dtype)), [-np.log(2 * np.pi)])


def test_estimate_from_many_samples():
    mean = np.array([.1, .2, .3, .4, 1., 1., 1., 1.])
    sd = np.array([.5, .5, .5, .5, .1, .2, .3, .4])
    rs = np.random.RandomState(33)
    g = Gaussian(8, name="g")
    n_samples, chunk = 2000000, 200000
    for _ in range(n_samples // chunk):
        g.update(mean + sd * rs.standard_normal((chunk, 8)))
    assert g.n_samples == n_samples
    g.estimate()
    assert_allclose(g.mean, mean, atol=.004)
    assert_allclose(g.sd, sd, atol=.004)

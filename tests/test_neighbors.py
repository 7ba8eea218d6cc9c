from unittest import TestCase

import numpy as np

from gwzinbr.errors import KernelError
from gwzinbr.neighbors import Kernel, get_wi, local_dist, max_pairwise_distance

from .mixins import TestMixin


class TestKernel(TestMixin, TestCase):
    def test_fixed_gaussian(self):
        kernel = Kernel(0, np.array([0.0, 1.0, 2.0]), 1.0, method="fixed_g").kernel
        np.testing.assert_allclose([1.0, np.exp(-0.5), np.exp(-2.0)], kernel)

    def test_fixed_bisquare(self):
        kernel = Kernel(0, np.array([0.0, 0.5, 1.0, 2.0]), 1.0, method="fixed_bsq").kernel
        np.testing.assert_allclose([1.0, 0.5625, 0.0, 0.0], kernel)

    def test_adaptive_bisquare_original_order(self):
        kernel = Kernel(1, np.array([3.0, 0.0, 1.0, 2.0, 5.0]), 3, method="adaptive_bsq").kernel
        np.testing.assert_allclose([0.0, 1.0, 0.5625, 0.0, 0.0], kernel)

    def test_adaptive_bisquare_truncates_bandwidth(self):
        dist = np.array([3.0, 0.0, 1.0, 2.0, 5.0])
        np.testing.assert_array_equal(
            Kernel(1, dist, 3.9, method="adaptive_bsq").kernel, Kernel(1, dist, 3, method="adaptive_bsq").kernel
        )

    def test_adaptive_bisquare_coincident_points(self):
        kernel = Kernel(0, np.array([0.0, 0.0, 1.0]), 2, method="adaptive_bsq").kernel
        np.testing.assert_array_equal([1.0, 1.0, 0.0], kernel)

    def test_exclude_self(self):
        for method, bw in (("fixed_g", 1.0), ("fixed_bsq", 1.0), ("adaptive_bsq", 3)):
            kernel = Kernel(1, np.array([1.0, 0.0, 0.5]), bw, method=method, exclude_self=True).kernel
            self.assertEqual(0.0, kernel[1])
            self.assertTrue(np.all(kernel >= 0))

    def test_invalid_adaptive_bandwidth(self):
        with self.assertRaises(KernelError):
            Kernel(0, np.array([0.0, 1.0]), 0, method="adaptive_bsq")
        with self.assertRaises(KernelError):
            Kernel(0, np.array([0.0, 1.0]), 3, method="adaptive_bsq")

    def test_unknown_method(self):
        with self.assertRaises(KernelError):
            Kernel(0, np.array([0.0, 1.0]), 1.0, method="exponential")


class TestWeights(TestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.coords = np.array([[0.0, 0.0], [3.0, 4.0], [1.0, 0.0]])

    def test_local_dist(self):
        np.testing.assert_allclose([5.0, 0.0, np.sqrt(20.0)], local_dist(self.coords[1], self.coords))
        np.testing.assert_allclose(
            [555.0, 0.0, 111 * np.sqrt(20.0)], local_dist(self.coords[1], self.coords, distancekm=True)
        )

    def test_max_pairwise_distance(self):
        self.assertAlmostEqual(5.0, max_pairwise_distance(self.coords))
        self.assertAlmostEqual(555.0, max_pairwise_distance(self.coords, distancekm=True))

    def test_get_wi_km(self):
        wi = get_wi(0, self.coords, 111.0, method="fixed_g", distancekm=True)
        self.assertAlmostEqual(np.exp(-0.5), wi[2])

    def test_get_wi_infinite_bandwidth(self):
        np.testing.assert_array_equal([1.0, 1.0, 1.0], get_wi(0, self.coords, np.inf))
        np.testing.assert_array_equal([1.0, 0.0, 1.0], get_wi(1, self.coords, np.inf, exclude_self=True))

    def test_large_bandwidth_weights_tend_to_one(self):
        wi = get_wi(0, self.coords, 1e8, method="fixed_g")
        np.testing.assert_allclose(np.ones(3), wi)

    def test_cv_self_weight(self):
        wi = get_wi(2, self.coords, 3, method="adaptive_bsq", exclude_self=True)
        self.assertEqual(0.0, wi[2])
        self.assertTrue(np.all((wi >= 0) & (wi <= 1)))

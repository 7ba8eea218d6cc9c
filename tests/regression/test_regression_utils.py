from unittest import TestCase

import numpy as np

from gwzinbr.configuration import THETA_MAX, THETA_PROBES
from gwzinbr.regression.distributions import nb_log_pmf
from gwzinbr.regression.regression_utils import (
    DivergenceRecovery,
    FixedPointLoop,
    hat_value,
    moment_theta,
    newton_theta,
    solve_weighted,
    theta_score,
)

from ..mixins import TestMixin


class TestFixedPointLoop(TestMixin, TestCase):
    def test_stops_on_tolerance(self):
        loop = FixedPointLoop(tol=0.1, max_iter=100)
        counters = []
        for n_iter in loop:
            counters.append(n_iter)
            loop.step(1.0 if n_iter < 3 else 0.01)
        self.assertEqual([1, 2, 3], counters)
        self.assertTrue(loop.converged)

    def test_stops_on_cap(self):
        loop = FixedPointLoop(tol=1e-6, max_iter=5, start=0)
        counters = []
        for n_iter in loop:
            counters.append(n_iter)
            loop.step(1.0)
        self.assertEqual([0, 1, 2, 3, 4], counters)
        self.assertFalse(loop.converged)

    def test_tolerance_is_exclusive(self):
        loop = FixedPointLoop(tol=1e-4, max_iter=100)
        passes = 0
        for _ in loop:
            passes += 1
            loop.step(1e-4)
        self.assertEqual(1, passes)


class TestWeightedSolve(TestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.x = np.array([[1.0, 0.0], [1.0, 1.0], [1.0, 2.0]])

    def test_solve(self):
        betas, singular = solve_weighted(self.x, np.ones(3), np.array([1.0, 3.0, 5.0]))
        self.assertFalse(singular)
        np.testing.assert_allclose([1.0, 2.0], betas)

    def test_solve_weighted(self):
        betas, _ = solve_weighted(self.x, np.array([1.0, 1.0, 0.0]), np.array([1.0, 3.0, 100.0]))
        np.testing.assert_allclose([1.0, 2.0], betas)

    def test_singular(self):
        x = np.column_stack([np.ones(3), np.ones(3)])
        betas, singular = solve_weighted(x, np.ones(3), np.array([1.0, 2.0, 3.0]))
        self.assertTrue(singular)
        np.testing.assert_array_equal([0.0, 0.0], betas)

    def test_weights_on_too_few_observations(self):
        betas, singular = solve_weighted(self.x, np.array([1.0, 0.0, 0.0]), np.array([1.0, 2.0, 3.0]))
        self.assertTrue(singular)
        np.testing.assert_array_equal([0.0, 0.0], betas)
        self.assertEqual(0.0, hat_value(self.x, np.array([1.0, 0.0, 0.0]), 0))

    def test_hat_values_sum_to_rank(self):
        weights = np.array([1.0, 2.0, 0.5])
        self.assertAlmostEqual(2.0, sum(hat_value(self.x, weights, i) for i in range(3)))


class TestDispersion(TestMixin, TestCase):
    def setUp(self):
        super().setUp()
        rng = np.random.default_rng(2021)
        self.mu = np.full(2000, 3.0)
        self.y = rng.negative_binomial(5, 5 / (5 + self.mu)).astype(float)

    def test_score_matches_log_likelihood(self):
        theta, eps = 4.0, 1e-5
        gradient, hessian = theta_score(theta, self.y, self.mu)

        def ll(t):
            return np.sum(nb_log_pmf(self.y, self.mu, t))

        np.testing.assert_allclose((ll(theta + eps) - ll(theta - eps)) / (2 * eps), gradient, rtol=1e-4)
        gradient_up, _ = theta_score(theta + eps, self.y, self.mu)
        gradient_down, _ = theta_score(theta - eps, self.y, self.mu)
        np.testing.assert_allclose((gradient_up - gradient_down) / (2 * eps), hessian, rtol=1e-4)

    def test_case_weights(self):
        gradient, hessian = theta_score(4.0, self.y, self.mu)
        weighted_gradient, weighted_hessian = theta_score(4.0, self.y, self.mu, np.full(self.y.shape[0], 0.5))
        self.assertAlmostEqual(0.5 * gradient, weighted_gradient)
        self.assertAlmostEqual(0.5 * hessian, weighted_hessian)

    def test_zero_case_weights(self):
        gradient, hessian = theta_score(4.0, self.y, self.mu, np.zeros(self.y.shape[0]))
        self.assertEqual(0.0, gradient)
        self.assertGreater(hessian, 0)

    def test_newton_recovers_dispersion(self):
        start = moment_theta(self.y, self.mu, 0)
        theta, at_ceiling = newton_theta(start, self.y, self.mu, tol=1e-6)
        self.assertFalse(at_ceiling)
        self.assertTrue(3.5 < theta < 7.0)
        gradient, _ = theta_score(theta, self.y, self.mu)
        self.assertLess(abs(gradient), 1e-3)

    def test_divergence_probes(self):
        recovery = DivergenceRecovery()
        self.assertEqual([2.0, 1e5, 1e-4], [recovery(1e7) for _ in range(3)])
        self.assertEqual(3e5, recovery(3e5))
        self.assertEqual(4, recovery.n_divergences)
        self.assertEqual((2.0, 1e5, 1e-4), THETA_PROBES)

    def test_equidispersed_counts_hit_ceiling(self):
        # Constant counts equal to their mean: the likelihood increases without bound in theta.
        y = np.full(10, 3.0)
        recovery = DivergenceRecovery()
        theta, at_ceiling = newton_theta(1.0, y, y.copy(), tol=1e-6, recovery=recovery)
        self.assertTrue(at_ceiling)
        self.assertEqual(THETA_MAX, theta)
        self.assertGreaterEqual(recovery.n_divergences, 3)

    def test_probes_wait_for_counter(self):
        y = np.full(10, 3.0)
        recovery = DivergenceRecovery()
        theta, at_ceiling = newton_theta(1.0, y, y.copy(), tol=1e-6, recovery=recovery, probe_after=200)
        self.assertEqual(0, recovery.n_divergences)
        self.assertTrue(at_ceiling)
        self.assertEqual(THETA_MAX, theta)

from unittest import TestCase

import numpy as np
from scipy import stats

from gwzinbr.configuration import DENSITY_FLOOR, THETA_MAX
from gwzinbr.errors import FamilyError
from gwzinbr.regression.distributions import (
    Logit,
    local_density_kernel,
    logistic,
    logit,
    nb_density_kernel,
    nb_log_pmf,
    nb_working_variance,
    zero_inflation_posterior,
)
from gwzinbr.regression.family import Family

from ..mixins import TestMixin


class TestFamily(TestMixin, TestCase):
    def test_parse(self):
        self.assertIs(Family.ZINB, Family.parse("zinb"))
        self.assertIs(Family.POISSON, Family.parse("Poisson"))
        self.assertIs(Family.NEGBIN, Family.parse(Family.NEGBIN))
        with self.assertRaises(FamilyError):
            Family.parse("gaussian")

    def test_capabilities(self):
        self.assertEqual(
            [False, True, False, True], [family.estimates_dispersion for family in Family]
        )
        self.assertEqual([False, False, True, True], [family.zero_inflated for family in Family])

    def test_downgraded(self):
        self.assertIs(Family.NEGBIN, Family.ZINB.downgraded())
        self.assertIs(Family.POISSON, Family.ZIP.downgraded())
        self.assertIs(Family.NEGBIN, Family.NEGBIN.downgraded())


class TestDistributions(TestMixin, TestCase):
    def test_logit_inverse(self):
        self.assertAlmostEqual(0.3, logistic(logit(0.3)))
        np.testing.assert_allclose(
            logistic(np.array([-2.0, 2.0])), Logit(2.0).inverse(np.array([-50.0, 50.0]))
        )

    def test_nb_log_pmf(self):
        y = np.array([0.0, 1.0, 4.0, 10.0])
        mu = np.array([0.5, 2.0, 3.0, 8.0])
        theta = 2.5
        np.testing.assert_allclose(stats.nbinom.logpmf(y, theta, theta / (theta + mu)), nb_log_pmf(y, mu, theta))

    def test_poisson_working_variance(self):
        y = np.array([0.0, 2.0, 7.0])
        mu = np.array([1.0, 2.0, 5.0])
        np.testing.assert_allclose(mu, nb_working_variance(y, mu, 1e-12))

    def test_density_kernel_floor(self):
        density = nb_density_kernel(np.array([400.0]), np.array([1e-3]), 1.0)
        np.testing.assert_array_equal([DENSITY_FLOOR], density)

    def test_local_density_kernel(self):
        y = np.array([0.0, 0.0, 2.0])
        mu = np.array([1e-310, 1.0, 1.0])
        density = local_density_kernel(y, mu, 1.0)
        self.assertEqual(DENSITY_FLOOR, density[0])
        self.assertAlmostEqual(0.5, density[1])
        self.assertAlmostEqual(0.125, density[2])

        at_ceiling = local_density_kernel(np.array([2.0]), np.array([1.0]), THETA_MAX)
        np.testing.assert_allclose([(1 / (THETA_MAX + 1)) ** 2 * np.exp(-1.0)], at_ceiling)

    def test_posterior_zero_for_positive_counts(self):
        y = np.array([0.0, 1.0, 0.0, 5.0])
        mu = np.array([1.0, 1.0, 3.0, 3.0])
        z = zero_inflation_posterior(np.zeros(4), 2.0, mu, y)
        np.testing.assert_array_equal([0.0, 0.0], z[y > 0])
        self.assertTrue(np.all((z[y == 0] > 0) & (z[y == 0] < 1)))
        self.assertAlmostEqual(1 / (1 + (2.0 / 3.0) ** 2), z[0])

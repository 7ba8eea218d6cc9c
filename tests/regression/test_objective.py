from unittest import TestCase

import numpy as np

from gwzinbr.configuration import config
from gwzinbr.data_io import build_design
from gwzinbr.errors import CriterionError
from gwzinbr.regression.family import Family
from gwzinbr.regression.global_model import GlobalModelFitter
from gwzinbr.regression.local_model import LocalModelFitter
from gwzinbr.regression.objective import BandwidthObjective, compute_aicc

from ..mixins import TestMixin, create_count_data


class TestBandwidthObjective(TestMixin, TestCase):
    def objective(
        self, family="poisson", criterion="cv", method="fixed_g", n_samples=30, force=False, **data_kwargs
    ):
        data = create_count_data(n_samples, seed=7, **data_kwargs)
        xvarinf = "x1" if family in ("zip", "zinb") else None
        design = build_design(data, "y ~ x1", lat="lat", long="long", xvarinf=xvarinf)
        global_fit = GlobalModelFitter(
            design.y, design.x, design.g, design.wt, design.offset, family=family, force=force
        ).fit()
        local_fitter = LocalModelFitter(design.y, design.x, design.g, design.wt, design.offset, global_fit)
        return BandwidthObjective(local_fitter, design.coords, method=method, criterion=criterion)

    def test_deterministic(self):
        objective = self.objective()
        first = objective(4.0)
        self.assertEqual(first, objective(4.0))

        config.n_threads = 2
        self.assertEqual(first, objective(4.0))

    def test_cv_score(self):
        objective = self.objective()
        yhat, _, _, _, hat, _, _ = objective.local_fits(4.0)
        score, n_params = objective(4.0)
        self.assertAlmostEqual(np.sum((objective.y - yhat) ** 2), score)
        self.assertAlmostEqual(np.sum(hat), n_params)

    def test_non_inflated_parameter_count(self):
        objective = self.objective(criterion="aic")
        _, _, _, _, hat, hat_infl, inflated = objective.local_fits(6.0)
        _, n_params = objective(6.0)
        self.assertAlmostEqual(np.sum(hat), n_params)
        self.assertFalse(inflated.any())
        np.testing.assert_array_equal(np.zeros(objective.n_samples), hat_infl)
        self.assertLessEqual(n_params, objective.n_samples)

    def test_aicc_finite(self):
        objective = self.objective(criterion="aic", method="adaptive_bsq")
        score, n_params = objective(15)
        self.assertTrue(np.isfinite(score))
        self.assertTrue(0 < n_params <= objective.n_samples)

    def test_zero_inflated_parameter_count(self):
        objective = self.objective(family="zip", criterion="aic", zero_inflation=0.4)
        _, _, _, _, hat, hat_infl, _ = objective.local_fits(8.0)
        score, n_params = objective(8.0)
        self.assertAlmostEqual(np.sum(hat) + np.sum(hat_infl), n_params)
        self.assertTrue(np.isfinite(score))

    def test_compute_aicc(self):
        self.assertAlmostEqual(2 * 3 + 20 + 2 * 3 * 4 / (20 - 3 - 1), compute_aicc(-10.0, 3.0, 20))

    def test_unknown_criterion(self):
        with self.assertRaises(CriterionError):
            self.objective(criterion="bic")

    def test_zinb_parameter_count(self):
        objective = self.objective(family="zinb", criterion="aic", force=True, dispersion=4.0, zero_inflation=0.4)
        self.assertIs(Family.ZINB, objective.family)
        _, _, _, _, hat, hat_infl, inflated = objective.local_fits(8.0)
        score, n_params = objective(8.0)
        self.assertTrue(inflated.any())
        self.assertTrue(np.all(hat_infl[~inflated] == 0))
        self.assertAlmostEqual(np.sum(hat) + np.sum(hat_infl), n_params)
        self.assertTrue(np.isfinite(score))


class TestLargeBandwidth(TestMixin, TestCase):
    def setUp(self):
        super().setUp()
        design = build_design(create_count_data(25, seed=14), "y ~ x1", lat="lat", long="long")
        self.design = design
        self.global_fit = GlobalModelFitter(
            design.y, design.x, design.g, design.wt, design.offset, family="poisson"
        ).fit()
        self.local_fitter = LocalModelFitter(
            design.y, design.x, design.g, design.wt, design.offset, self.global_fit
        )

    def test_local_fits_reproduce_global_fit(self):
        objective = BandwidthObjective(self.local_fitter, self.design.coords, method="fixed_g", criterion="aic")
        yhat, _, _, _, _, _, _ = objective.local_fits(1e8)
        _, n_params = objective(1e8)
        global_mu = np.exp(np.dot(self.design.x, self.global_fit.beta) + self.design.offset)
        np.testing.assert_allclose(global_mu, yhat, rtol=1e-3)
        # Leverages of the global fit sum to the number of coefficients:
        self.assertAlmostEqual(2.0, n_params, places=3)

    def test_cv_approaches_leave_one_out_global_fit(self):
        design = self.design
        objective = BandwidthObjective(self.local_fitter, design.coords, method="fixed_g", criterion="cv")
        yhat, _, _, _, _, _, _ = objective.local_fits(1e8)

        loo_prediction = np.zeros(design.y.shape[0])
        for i in range(design.y.shape[0]):
            keep = np.arange(design.y.shape[0]) != i
            loo_fit = GlobalModelFitter(
                design.y[keep], design.x[keep], design.g[keep], design.wt[keep], design.offset[keep], family="poisson"
            ).fit()
            loo_prediction[i] = np.exp(np.dot(design.x[i], loo_fit.beta) + design.offset[i])
        np.testing.assert_allclose(loo_prediction, yhat, rtol=1e-3)

        score, _ = objective(1e8)
        self.assertAlmostEqual(1.0, score / np.sum((design.y - loo_prediction) ** 2), places=3)

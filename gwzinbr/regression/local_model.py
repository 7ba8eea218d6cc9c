"""
Geographically weighted refit of the count model at a single focal observation.
"""
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from ..configuration import (
    ALPHA_POISSON,
    MAX_ITER_IRLS,
    MAX_ITER_MIXTURE,
    MAX_ITER_THETA,
    MU_MAX,
    MU_MAX_LOCAL,
    MU_MIN,
    MU_ZERO,
    OSCILLATION_DECIMALS,
    OSCILLATION_START,
    THETA_COLLAPSE,
    THETA_MAX,
    TOL_DEVIANCE,
    TOL_LOGLIK,
    TOL_THETA_LOCAL,
    WEIGHT_FLOOR,
)
from ..logging import logger_manager as lm
from .distributions import (
    Log,
    Logit,
    local_density_kernel,
    logistic,
    logit,
    mixture_log_likelihood,
    nb_working_variance,
    softplus,
    zero_inflation_posterior,
)
from .family import Family
from .global_model import GlobalFit, inflation_baseline
from .regression_utils import FixedPointLoop, hat_value, newton_theta, solve_weighted


class LocalFit(NamedTuple):
    """Result of a local fit at observation i.

    yhat: fitted value at i (mean times the probability of not being an excess zero for inflated families)
    mu: count mean at i
    eta_infl: inflation linear predictor at i
    alpha: dispersion at convergence
    hat: i-th leverage of the count model
    hat_infl: i-th leverage of the inflation model
    inflated: True if the local inflation coefficients are not all zero
    """

    yhat: float
    mu: float
    eta_infl: float
    alpha: float
    hat: float
    hat_infl: float
    beta: np.ndarray
    theta: float
    lam: np.ndarray
    z: np.ndarray
    inflated: bool


class _WarmStart(NamedTuple):
    beta: np.ndarray
    mu: np.ndarray
    lam: np.ndarray
    eta_infl: np.ndarray
    z: np.ndarray


class LocalModelFitter:
    """Refits the count model around each focal observation with the spatial weights of that observation.

    Each fit starts from the global estimates and alternates dispersion, mean and inflation updates until the mixture
    log-likelihood stabilizes. The fitter holds only read-only shared state, so fits of different observations can run
    concurrently.

    Args:
        y: Array of shape [n_samples, ]; observed counts
        x: Array of shape [n_samples, n_features]; design matrix of the count model
        g: Array of shape [n_samples, n_features_infl]; design matrix of the inflation model
        wt: Array of shape [n_samples, ]; sample weights
        offset: Array of shape [n_samples, ]; offset of the count linear predictor
        global_fit: Whole-sample estimates used as warm start
        maxg: Bound on the absolute value of the inflation linear predictor
    """

    def __init__(
        self,
        y: np.ndarray,
        x: np.ndarray,
        g: np.ndarray,
        wt: np.ndarray,
        offset: np.ndarray,
        global_fit: GlobalFit,
        maxg: float = 100,
    ):
        self.y = np.asarray(y, dtype=float)
        self.x = np.asarray(x, dtype=float)
        self.g = np.asarray(g, dtype=float)
        self.wt = np.asarray(wt, dtype=float)
        self.offset = np.asarray(offset, dtype=float)
        self.global_fit = global_fit
        self.family = global_fit.family
        self.n_samples = self.x.shape[0]
        self.link = Log()
        self.logit_link = Logit(maxg)

    # ---------------------------------------------------------------------------------------------------
    # Starting values
    # ---------------------------------------------------------------------------------------------------
    def _posterior(self, eta_infl: np.ndarray, theta: float, mu: np.ndarray, lam: np.ndarray) -> np.ndarray:
        if not self.family.zero_inflated or not lam.any():
            return np.zeros(self.n_samples)
        return zero_inflation_posterior(eta_infl, theta, mu, self.y)

    def _warm_start(self) -> _WarmStart:
        """Global estimates, as used whenever a local dispersion estimate runs off to its bounds."""
        beta = self.global_fit.beta.copy()
        mu = np.exp(np.dot(self.x, beta) + self.offset)
        lam = self.global_fit.lam.copy()
        eta_infl = self.logit_link.clip(np.dot(self.g, lam))
        z = self._posterior(eta_infl, self.global_fit.theta, mu, lam)
        return _WarmStart(beta, mu, lam, eta_infl, z)

    def _initial_state(self) -> _WarmStart:
        beta, mu, lam, eta_infl, _ = self._warm_start()
        if not self.family.zero_inflated:
            return _WarmStart(beta, mu, lam, eta_infl, np.zeros(self.n_samples))

        baseline = inflation_baseline(self.global_fit.n_zero, self.global_fit.theta, mu)
        if baseline > 0:
            lam = np.zeros(self.g.shape[1])
            lam[0] = logit(baseline)
            eta_infl = np.dot(self.g, lam)
        z = zero_inflation_posterior(eta_infl, self.global_fit.theta, mu, self.y)
        return _WarmStart(beta, mu, lam, eta_infl, z)

    # ---------------------------------------------------------------------------------------------------
    # Oscillation guard
    # ---------------------------------------------------------------------------------------------------
    def _is_oscillating(self, history: List[Tuple[float, float]]) -> bool:
        alphas = [alpha for alpha, _ in history]
        intercepts = [intercept for _, intercept in history]
        repeated_intercept = len(set(intercepts)) < len(intercepts)
        if self.family is Family.ZINB:
            return repeated_intercept and len(set(alphas)) < len(alphas)
        return repeated_intercept

    # ---------------------------------------------------------------------------------------------------
    # Fit
    # ---------------------------------------------------------------------------------------------------
    def fit(self, i: int, w: np.ndarray) -> LocalFit:
        """Fit the model at observation i.

        Args:
            i: Index of the focal observation
            w: Array of shape [n_samples, ]; spatial weights of every observation relative to i

        Returns:
            fit: Fitted value, dispersion, inflation predictor and leverages at i
        """
        y, x, g, wt, offset = self.y, self.x, self.g, self.wt, self.offset
        family = self.family
        beta, mu, lam, eta_infl, z = self._initial_state()
        theta = self.global_fit.theta
        alpha = 1 / theta

        count_weights = np.ones(self.n_samples)
        infl_weights: Optional[np.ndarray] = None
        history: List[Tuple[float, float]] = []
        oscillating = False

        ll = 0.0
        mixture_loop = FixedPointLoop(TOL_LOGLIK, MAX_ITER_MIXTURE, start=0)
        for n_iter in mixture_loop:
            # Dispersion:
            if family.estimates_dispersion:
                if theta <= THETA_COLLAPSE:
                    theta = self.global_fit.theta
                reset = False
                if theta >= THETA_MAX:
                    theta = THETA_MAX
                    reset = True
                else:
                    theta, reset = newton_theta(
                        theta, y, mu, case_weights=w * wt * (1 - z), tol=TOL_THETA_LOCAL, max_iter=MAX_ITER_THETA
                    )
                if theta <= THETA_COLLAPSE:
                    theta = THETA_MAX
                    reset = True
                if reset:
                    beta, mu, lam, eta_infl, z = self._warm_start()
                alpha = 1 / theta
            else:
                alpha = ALPHA_POISSON
                theta = 1 / alpha

            # Count model:
            eta = self.link.clip(np.dot(x, beta) + offset)
            mu = np.exp(eta)
            dev = 0.0
            irls_loop = FixedPointLoop(TOL_DEVIANCE, MAX_ITER_IRLS, start=1)
            for _ in irls_loop:
                mu = np.minimum(mu, MU_MAX)
                count_weights = (1 - z) * nb_working_variance(y, mu, alpha)
                count_weights = np.where(count_weights <= 0, WEIGHT_FLOOR, count_weights)
                mu = np.maximum(mu, MU_MIN)
                denominator = nb_working_variance(y, mu, alpha) * (1 + alpha * mu)
                denominator = np.where(denominator == 0, WEIGHT_FLOOR, denominator)
                working_response = eta + (y - mu) / denominator - offset
                beta, _ = solve_weighted(x, w * count_weights * wt, working_response)

                eta = self.link.clip(np.dot(x, beta) + offset)
                mu = np.exp(eta)
                mu = np.minimum(mu, MU_MAX_LOCAL)
                mu = np.where(mu == 0, MU_ZERO, mu)
                density = local_density_kernel(y, mu, theta)
                new_dev = np.sum((1 - z) * np.log(density))
                irls_loop.step(new_dev - dev)
                dev = new_dev

            # Inflation model:
            if family.zero_inflated:
                history.append((round(alpha, OSCILLATION_DECIMALS), round(float(lam[0]), OSCILLATION_DECIMALS)))
                if n_iter >= OSCILLATION_START and self._is_oscillating(history):
                    if not oscillating:
                        lm.main_debug(
                            f"Inflation coefficients of observation {i} oscillate after {n_iter} iterations; "
                            f"setting them to zero."
                        )
                    oscillating = True
                    lam = np.zeros(g.shape[1])
                    z = np.zeros(self.n_samples)
                else:
                    eta_infl = self.logit_link.clip(np.dot(g, lam))
                    pi = logistic(eta_infl)
                    dev = 0.0
                    infl_loop = FixedPointLoop(TOL_DEVIANCE, MAX_ITER_IRLS, start=1)
                    for _ in infl_loop:
                        infl_weights = pi * (1 - pi)
                        infl_weights = np.where(infl_weights <= 0, WEIGHT_FLOOR, infl_weights)
                        working_response = eta_infl + (z - pi) / infl_weights
                        lam, _ = solve_weighted(g, infl_weights * w * wt, working_response)

                        eta_infl = self.logit_link.clip(np.dot(g, lam))
                        pi = logistic(eta_infl)
                        new_dev = np.sum(z * eta_infl - softplus(eta_infl))
                        infl_loop.step(new_dev - dev)
                        dev = new_dev

            eta_infl = self.logit_link.clip(np.dot(g, lam))
            z = self._posterior(eta_infl, theta, mu, lam)
            new_ll = mixture_log_likelihood(z, eta_infl, density)
            mixture_loop.step(new_ll - ll)
            ll = new_ll

        hat = hat_value(x, w * count_weights * wt, i)
        inflated = bool(family.zero_inflated and lam.any())
        if family.zero_inflated:
            yhat = mu[i] * (1 - logistic(eta_infl[i]))
            hat_infl = hat_value(g, w * infl_weights * wt, i) if inflated and infl_weights is not None else 0.0
        else:
            yhat = mu[i]
            hat_infl = 0.0

        return LocalFit(
            yhat=float(yhat),
            mu=float(mu[i]),
            eta_infl=float(eta_infl[i]),
            alpha=float(alpha),
            hat=hat,
            hat_infl=hat_infl,
            beta=beta,
            theta=float(theta),
            lam=lam,
            z=z,
            inflated=inflated,
        )

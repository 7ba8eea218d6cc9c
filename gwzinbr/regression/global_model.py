"""
Non-spatial (whole-sample) fit of the count model, used as the warm start for every local fit.
"""
from typing import NamedTuple, Optional

import numpy as np

from ..configuration import (
    ALPHA_POISSON,
    DENSITY_FLOOR,
    ETA_MAX,
    GLOBAL_PROBE_AFTER,
    MAX_ITER_IRLS,
    MAX_ITER_MIXTURE,
    MAX_ITER_OUTER,
    MAX_ITER_THETA,
    MU_MAX,
    MU_MAX_GLOBAL,
    MU_MIN,
    THETA_NEGATIVE_RESET,
    TOL_DEVIANCE,
    TOL_LOGLIK,
    TOL_THETA_GLOBAL,
    TOL_THETA_OUTER,
    WEIGHT_FLOOR,
)
from ..logging import logger_manager as lm
from .distributions import (
    Log,
    Logit,
    logistic,
    logit,
    mixture_log_likelihood,
    nb_density_kernel,
    nb_working_variance,
    nb_zero_mass,
    softplus,
    zero_inflation_posterior,
)
from .family import Family
from .regression_utils import (
    DivergenceRecovery,
    FixedPointLoop,
    moment_theta,
    newton_theta,
    solve_weighted,
)


class GlobalFit(NamedTuple):
    beta: np.ndarray
    theta: float
    alpha: float
    lam: np.ndarray
    family: Family
    mu: np.ndarray
    n_zero: int
    log_likelihood: float


def inflation_baseline(n_zero: int, theta: float, mu: np.ndarray) -> float:
    """Share of zeros not explained by the count distribution; the starting point of the inflation intercept."""
    return (n_zero - np.sum(nb_zero_mass(theta, mu))) / mu.shape[0]


class GlobalModelFitter:
    """Fits a Poisson, negative binomial or zero-inflated count model to the whole sample.

    The fit runs in two stages. The count model is first fitted alone, alternating Newton-Raphson updates of the
    dispersion with IRLS refits of the coefficients. For zero-inflated families an EM alternation follows, in which the
    posterior probability of an excess zero reweights the count model and is the working response of a logistic IRLS
    fit of the inflation coefficients.

    Args:
        y: Array of shape [n_samples, ]; observed counts
        x: Array of shape [n_samples, n_features]; design matrix of the count model
        g: Array of shape [n_samples, n_features_infl]; design matrix of the inflation model, first column constant
        wt: Array of shape [n_samples, ]; sample weights
        offset: Array of shape [n_samples, ]; offset of the count linear predictor
        family: Count model family
        force: If True, keep a zero-inflated family even if the data give no evidence of excess zeros
        maxg: Bound on the absolute value of the inflation linear predictor
    """

    def __init__(
        self,
        y: np.ndarray,
        x: np.ndarray,
        g: np.ndarray,
        wt: Optional[np.ndarray] = None,
        offset: Optional[np.ndarray] = None,
        family: Family = Family.ZINB,
        force: bool = False,
        maxg: float = 100,
    ):
        self.y = np.asarray(y, dtype=float)
        self.x = np.asarray(x, dtype=float)
        self.g = np.asarray(g, dtype=float)
        self.n_samples, self.n_features = self.x.shape
        self.wt = np.ones(self.n_samples) if wt is None else np.asarray(wt, dtype=float)
        self.offset = np.zeros(self.n_samples) if offset is None else np.asarray(offset, dtype=float)
        self.family = Family.parse(family)
        self.force = force
        self.link = Log()
        self.logit_link = Logit(maxg)

    def fit(self) -> GlobalFit:
        beta, theta, alpha, mu = self._fit_count_model()
        family, lam = self._initial_inflation(theta, mu)
        return self._fit_mixture(family, beta, theta, alpha, lam, mu)

    def _irls_count_stage(self, beta: np.ndarray, alpha: float, mu: np.ndarray, eta: np.ndarray):
        dev = 0.0
        loop = FixedPointLoop(TOL_DEVIANCE, MAX_ITER_IRLS, start=0)
        for _ in loop:
            working_weights = nb_working_variance(self.y, mu, alpha)
            working_weights = np.where(working_weights <= 0, WEIGHT_FLOOR, working_weights)
            z = eta + (self.y - mu) / (working_weights * (1 + alpha * mu)) - self.offset
            beta, _ = solve_weighted(self.x, working_weights * self.wt, z)

            eta = np.minimum(np.dot(self.x, beta) + self.offset, ETA_MAX)
            mu = np.clip(np.exp(eta), MU_MIN, MU_MAX_GLOBAL)
            ratio = self.y / mu
            ratio = np.where(ratio == 0, DENSITY_FLOOR, ratio)
            new_dev = 2 * np.sum(
                self.y * np.log(ratio) - (self.y + 1 / alpha) * np.log((1 + alpha * self.y) / (1 + alpha * mu))
            )
            loop.step(new_dev - dev)
            dev = new_dev
        return beta, mu, eta

    def _fit_count_model(self):
        """Count model without zero inflation, used to seed the mixture fit."""
        y = self.y
        mu = (y + np.mean(y)) / 2
        eta = np.log(mu)
        beta = np.zeros(self.n_features)
        # Inverse of the moment estimate; only the first Newton pass starts here.
        theta = np.sum((y - mu) ** 2 / mu) / (self.n_samples - self.n_features)
        alpha = 1 / theta

        recovery = DivergenceRecovery()
        loop = FixedPointLoop(TOL_THETA_OUTER, MAX_ITER_OUTER, start=1)
        for n_iter in loop:
            previous_theta = theta
            if self.family.estimates_dispersion:
                if n_iter > 1:
                    theta = moment_theta(y, mu, self.n_features)
                theta, _ = newton_theta(
                    theta,
                    y,
                    mu,
                    tol=TOL_THETA_GLOBAL,
                    max_iter=MAX_ITER_THETA,
                    recovery=recovery,
                    negative_reset=THETA_NEGATIVE_RESET,
                )
                alpha = 1 / theta
            else:
                alpha = ALPHA_POISSON
                theta = 1 / alpha

            beta, mu, eta = self._irls_count_stage(beta, alpha, mu, eta)
            loop.step(theta - previous_theta)

        lm.main_debug(f"Count model converged after {loop.n_iter - 1} dispersion updates, theta = {theta:.6g}.")
        return beta, theta, alpha, mu

    def _initial_inflation(self, theta: float, mu: np.ndarray):
        """Starting inflation coefficients, downgrading the family when zero inflation is not supported by the data."""
        lam = np.zeros(self.g.shape[1])
        family = self.family
        if not family.zero_inflated:
            return family, lam

        n_zero = int(np.sum(self.y == 0))
        baseline = inflation_baseline(n_zero, theta, mu)
        if baseline > 0:
            lam[0] = logit(baseline)

        if n_zero == 0:
            lm.main_warning(
                f"No zero counts in the response; fitting {family.downgraded().value} instead of {family.value}."
            )
            family = family.downgraded()
        elif not lam.any() and not self.force:
            lm.main_warning(
                f"No excess zeros relative to the count model; fitting {family.downgraded().value} instead of "
                f"{family.value}. Set `force=True` to keep the zero-inflated model."
            )
            family = family.downgraded()
        return family, lam

    def _fit_mixture(
        self, family: Family, beta: np.ndarray, theta: float, alpha: float, lam: np.ndarray, mu: np.ndarray
    ) -> GlobalFit:
        y, x, g, wt = self.y, self.x, self.g, self.wt

        eta_infl = np.dot(g, lam)
        if family.zero_inflated:
            z = zero_inflation_posterior(eta_infl, theta, mu, y)
        else:
            z = np.zeros(self.n_samples)

        ll = 0.0
        em_loop = FixedPointLoop(TOL_LOGLIK, MAX_ITER_MIXTURE, start=0)
        for n_em in em_loop:
            # Dispersion and mean updates given the current posterior:
            theta_loop = FixedPointLoop(TOL_THETA_OUTER, MAX_ITER_OUTER, start=1)
            for _ in theta_loop:
                previous_theta = theta
                if family.estimates_dispersion:
                    if n_em > 0:
                        theta = moment_theta(y, mu, self.n_features)
                    theta, _ = newton_theta(
                        theta,
                        y,
                        mu,
                        case_weights=(1 - z) * wt,
                        tol=TOL_THETA_GLOBAL,
                        max_iter=MAX_ITER_THETA,
                        recovery=DivergenceRecovery(),
                        probe_after=GLOBAL_PROBE_AFTER,
                        negative_reset=THETA_NEGATIVE_RESET,
                    )
                    alpha = 1 / theta
                else:
                    alpha = ALPHA_POISSON
                    theta = 1 / alpha

                eta = np.dot(x, beta) + self.offset
                mu = np.exp(eta)
                dev = 0.0
                irls_loop = FixedPointLoop(TOL_DEVIANCE, MAX_ITER_IRLS, start=1)
                for _ in irls_loop:
                    mu = np.minimum(mu, MU_MAX)
                    working_weights = (1 - z) * nb_working_variance(y, mu, alpha)
                    working_weights = np.where(working_weights <= 0, WEIGHT_FLOOR, working_weights)
                    mu = np.maximum(mu, MU_MIN)
                    working_response = (
                        eta + (y - mu) / (nb_working_variance(y, mu, alpha) * (1 + alpha * mu)) - self.offset
                    )
                    beta, _ = solve_weighted(x, working_weights * wt, working_response)

                    eta = self.link.clip(np.dot(x, beta) + self.offset)
                    mu = self.link.inverse(eta)
                    density = nb_density_kernel(y, mu, theta)
                    new_dev = np.sum((1 - z) * np.log(density))
                    irls_loop.step(new_dev - dev)
                    dev = new_dev
                theta_loop.step(theta - previous_theta)

            # Inflation update given the posterior:
            if family.zero_inflated:
                eta_infl = self.logit_link.clip(np.dot(g, lam))
                pi = logistic(eta_infl)
                dev = 0.0
                infl_loop = FixedPointLoop(TOL_DEVIANCE, MAX_ITER_IRLS, start=1)
                for _ in infl_loop:
                    infl_weights = pi * (1 - pi)
                    infl_weights = np.where(infl_weights <= 0, WEIGHT_FLOOR, infl_weights)
                    working_response = eta_infl + (z - pi) / infl_weights
                    lam, _ = solve_weighted(g, infl_weights * wt, working_response)

                    eta_infl = self.logit_link.clip(np.dot(g, lam))
                    pi = logistic(eta_infl)
                    new_dev = np.sum(z * eta_infl - softplus(eta_infl))
                    infl_loop.step(new_dev - dev)
                    dev = new_dev
                z = zero_inflation_posterior(eta_infl, theta, mu, y)
            else:
                z = np.zeros(self.n_samples)

            new_ll = mixture_log_likelihood(z, eta_infl, density)
            em_loop.step(new_ll - ll)
            ll = new_ll

        lm.main_info(
            f"Global {family.value} fit converged after {em_loop.n_iter} mixture iterations: theta = {theta:.6g}, "
            f"log-likelihood = {ll:.6g}."
        )
        return GlobalFit(
            beta=beta,
            theta=theta,
            alpha=alpha,
            lam=lam,
            family=family,
            mu=mu,
            n_zero=int(np.sum(y == 0)),
            log_likelihood=ll,
        )

"""
Auxiliary functions shared by the global and local count-model fits: the iterate-until-converged primitive, weighted
least squares solves with singularity checks, and Newton-Raphson estimation of the negative binomial dispersion.
"""
from typing import Iterator, Optional, Tuple

import numpy as np
from numpy import linalg
from scipy import special

from ..configuration import (
    DET_TOL,
    HESSIAN_FLOOR,
    PROBE_STEP,
    THETA_DIVERGENCE,
    THETA_MAX,
    THETA_MIN,
    THETA_PROBES,
)


# ---------------------------------------------------------------------------------------------------
# Fixed-point iteration
# ---------------------------------------------------------------------------------------------------
class FixedPointLoop:
    """Iterate until the absolute change reported through :func:`step` is no larger than `tol`, or until the counter
    reaches `max_iter`.

    The loop yields the current counter value, which starts at `start` and is incremented after every pass.

    Examples:
        loop = FixedPointLoop(tol=1e-6, max_iter=100)
        for n_iter in loop:
            new_dev = ...
            loop.step(new_dev - dev)
    """

    def __init__(self, tol: float, max_iter: int, start: int = 1):
        self.tol = tol
        self.max_iter = max_iter
        self.n_iter = start
        self.delta = np.inf

    def step(self, delta: float):
        self.delta = delta

    @property
    def converged(self) -> bool:
        return abs(self.delta) <= self.tol

    def __iter__(self) -> Iterator[int]:
        while abs(self.delta) > self.tol and self.n_iter < self.max_iter:
            yield self.n_iter
            self.n_iter += 1


# ---------------------------------------------------------------------------------------------------
# Weighted least squares
# ---------------------------------------------------------------------------------------------------
def weighted_cross_product(x: np.ndarray, weights: np.ndarray) -> np.ndarray:
    return np.dot(x.T, x * weights[:, None])


def solve_weighted(x: np.ndarray, weights: np.ndarray, z: np.ndarray) -> Tuple[np.ndarray, bool]:
    """Solve the weighted normal equations (X'WX) b = X'Wz.

    Args:
        x: Array of shape [n_samples, n_features]; design matrix
        weights: Array of shape [n_samples, ]; diagonal of W
        z: Array of shape [n_samples, ]; working response

    Returns:
        betas: Array of shape [n_features, ]; all zero if the system is numerically singular
        singular: True if the determinant of X'WX fell below the singularity threshold
    """
    xtwx = weighted_cross_product(x, weights)
    if linalg.det(xtwx) < DET_TOL:
        return np.zeros(x.shape[1]), True
    betas = np.dot(linalg.inv(xtwx), np.dot(x.T, weights * z))
    return betas, False


def hat_value(x: np.ndarray, weights: np.ndarray, i: int) -> float:
    """i-th diagonal entry of the hat matrix X (X'WX)^-1 X'W; zero when X'WX is numerically singular."""
    xtwx = weighted_cross_product(x, weights)
    if linalg.det(xtwx) < DET_TOL:
        return 0.0
    return float(np.dot(x[i], np.dot(linalg.inv(xtwx), x[i])) * weights[i])


# ---------------------------------------------------------------------------------------------------
# Dispersion estimation
# ---------------------------------------------------------------------------------------------------
def moment_theta(y: np.ndarray, mu: np.ndarray, n_features: int) -> float:
    """Method-of-moments dispersion size from the Pearson statistic."""
    return 1 / (np.sum((y - mu) ** 2 / mu) / (y.shape[0] - n_features))


def theta_score(
    theta: float, y: np.ndarray, mu: np.ndarray, case_weights: Optional[np.ndarray] = None
) -> Tuple[float, float]:
    """Gradient and Hessian of the negative binomial log-likelihood with respect to the size parameter theta.

    Args:
        theta: Current dispersion size
        y: Array of shape [n_samples, ]; observed counts
        mu: Array of shape [n_samples, ]; fitted means
        case_weights: Optional array of shape [n_samples, ]; per-sample weights of the score terms

    Returns:
        gradient: Score at theta
        hessian: Second derivative at theta, floored away from exactly zero
    """
    gradient_terms = special.digamma(theta + y) - special.digamma(theta) + np.log(theta) + 1 - np.log(theta + mu)
    gradient_terms = gradient_terms - (theta + y) / (theta + mu)
    hessian_terms = special.polygamma(1, theta + y) - special.polygamma(1, theta) + 1 / theta - 2 / (theta + mu)
    hessian_terms = hessian_terms + (y + theta) / (theta + mu) ** 2
    if case_weights is not None:
        gradient_terms = case_weights * gradient_terms
        hessian_terms = case_weights * hessian_terms

    gradient = np.sum(gradient_terms)
    hessian = np.sum(hessian_terms)
    if hessian == 0:
        hessian = HESSIAN_FLOOR
    return gradient, hessian


class DivergenceRecovery:
    """Substitutes a fixed sequence of probe values for Newton iterates of theta that diverge.

    The n-th divergence returns the n-th probe value. Once the probes are used up the diverged iterate is kept, and
    the hard ceiling of the Newton loop takes over.
    """

    def __init__(self, probes: Tuple[float, ...] = THETA_PROBES):
        self.probes = probes
        self.n_divergences = 0

    def __call__(self, theta: float) -> float:
        self.n_divergences += 1
        if self.n_divergences <= len(self.probes):
            return self.probes[self.n_divergences - 1]
        return theta


def newton_theta(
    theta: float,
    y: np.ndarray,
    mu: np.ndarray,
    case_weights: Optional[np.ndarray] = None,
    tol: float = 1e-4,
    max_iter: int = 200,
    recovery: Optional[DivergenceRecovery] = None,
    probe_after: int = 0,
    negative_reset: Optional[float] = None,
) -> Tuple[float, bool]:
    """Newton-Raphson estimation of the negative binomial size parameter theta with the mean held fixed.

    Args:
        theta: Starting value
        y: Array of shape [n_samples, ]; observed counts
        mu: Array of shape [n_samples, ]; fitted means
        case_weights: Optional array of shape [n_samples, ]; weights of the score terms
        tol: Convergence tolerance on the absolute Newton step
        max_iter: Iteration cap
        recovery: Divergence handler consulted whenever an iterate exceeds the divergence threshold. If None, a fresh
            handler is used for this call.
        probe_after: Divergence is only handled once the iteration counter exceeds this value
        negative_reset: If given, negative iterates restart from this value before the lower clamp is applied

    Returns:
        theta: Estimated theta, within [THETA_MIN, THETA_MAX]
        at_ceiling: True if the estimate was capped at THETA_MAX
    """
    if recovery is None:
        recovery = DivergenceRecovery()

    at_ceiling = False
    loop = FixedPointLoop(tol, max_iter, start=1)
    for n_iter in loop:
        if negative_reset is not None and theta < 0:
            theta = negative_reset
        theta = max(theta, THETA_MIN)

        gradient, hessian = theta_score(theta, y, mu, case_weights)
        previous = theta
        theta = previous - gradient / hessian

        if theta > THETA_DIVERGENCE and n_iter > probe_after:
            theta = recovery(theta)
            delta = PROBE_STEP
        else:
            delta = theta - previous

        if theta >= THETA_MAX:
            theta = THETA_MAX
            delta = 0.0
            at_ceiling = True
        else:
            at_ceiling = False
        loop.step(delta)

    return max(theta, THETA_MIN), at_ceiling

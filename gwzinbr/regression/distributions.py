"""
Link functions and density terms for the Poisson / negative binomial count models and their zero-inflated mixtures.
"""
import numpy as np
from scipy import special

from ..configuration import DENSITY_FLOOR, ETA_MAX, RATIO_UNDERFLOW, THETA_MAX


# ---------------------------------------------------------------------------------------------------
# Link functions
# ---------------------------------------------------------------------------------------------------
class Link(object):
    """
    Parent class for transformations of the mean of the response variable to the scale of the linear predictor.

    Args:
        bound: Linear predictors are clipped to [-bound, bound] before the inverse transform, to avoid overflow
    """

    def __init__(self, bound: float):
        self.bound = bound

    def clip(self, z: np.ndarray) -> np.ndarray:
        return np.clip(z, -self.bound, self.bound)

    def inverse(self, z: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class Log(Link):
    """Log link of the count mean."""

    def __init__(self, bound: float = ETA_MAX):
        super().__init__(bound)

    def inverse(self, z: np.ndarray) -> np.ndarray:
        """Transforms the (clipped) linear predictor to the mean of the count distribution."""
        return np.exp(self.clip(z))


class Logit(Link):
    """Logit link of the probability of an excess (structural) zero.

    Args:
        bound: Clamp for the inflation linear predictor ("maxg")
    """

    def inverse(self, z: np.ndarray) -> np.ndarray:
        """Transforms the (clipped) linear predictor to the probability of an excess zero."""
        return logistic(self.clip(z))


def logistic(z: np.ndarray) -> np.ndarray:
    return np.exp(z) / (1 + np.exp(z))


def logit(p: float) -> float:
    return np.log(p / (1 - p))


def softplus(z: np.ndarray) -> np.ndarray:
    """log(1 + exp(z)); inputs are expected to be clipped already."""
    return np.log(1 + np.exp(z))


# ---------------------------------------------------------------------------------------------------
# Count model terms
# ---------------------------------------------------------------------------------------------------
def nb_working_variance(y: np.ndarray, mu: np.ndarray, alpha: float) -> np.ndarray:
    """Observed-information working weight of the negative binomial log-link model, before any case weights.

    Args:
        y: Array of shape [n_samples, ]; observed counts
        mu: Array of shape [n_samples, ]; current fitted means
        alpha: Dispersion (1 / theta); a tiny alpha gives the Poisson weights

    Returns:
        v: Array of shape [n_samples, ]
    """
    return mu / (1 + alpha * mu) + (y - mu) * (alpha * mu / (1 + 2 * alpha * mu + alpha**2 * mu * mu))


def nb_zero_mass(theta: float, mu: np.ndarray) -> np.ndarray:
    """Probability of a zero count under the negative binomial distribution with mean `mu` and size `theta`."""
    return (theta / (theta + mu)) ** theta


def nb_density_kernel(y: np.ndarray, mu: np.ndarray, theta: float) -> np.ndarray:
    """Negative binomial density without its gamma-function normalization, floored away from zero.

    Used as the convergence quantity of the whole-sample IRLS loops.
    """
    density = (mu / (mu + theta)) ** y * (theta / (mu + theta)) ** theta
    return np.where(density <= 0, DENSITY_FLOOR, density)


def local_density_kernel(y: np.ndarray, mu: np.ndarray, theta: float) -> np.ndarray:
    """Density kernel used by the local fits.

    Ratios that underflow are treated as zero, the Poisson limit is used once theta sits at its ceiling, and every
    non-positive or undefined value (0^0 for a zero count with a vanishing ratio) is floored.
    """
    ratio = mu / (mu + theta)
    ratio = np.where(ratio < RATIO_UNDERFLOW, 0.0, ratio)
    if theta >= THETA_MAX:
        density = ratio**y * np.exp(-mu)
    else:
        density = ratio**y * (theta / (mu + theta)) ** theta
    undefined = (ratio == 0) & (y == 0)
    return np.where((density <= 0) | undefined | np.isnan(density), DENSITY_FLOOR, density)


def nb_log_pmf(y: np.ndarray, mu: np.ndarray, theta: np.ndarray) -> np.ndarray:
    """Full negative binomial log probability mass, with per-sample size `theta`."""
    return (
        special.gammaln(theta + y)
        - special.gammaln(y + 1)
        - special.gammaln(theta)
        + y * np.log(mu / (theta + mu))
        + theta * np.log(theta / (theta + mu))
    )


def zero_inflation_posterior(eta_infl: np.ndarray, theta: float, mu: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Posterior probability that each observation is an excess (structural) zero. Exactly zero for positive counts.

    Args:
        eta_infl: Array of shape [n_samples, ]; inflation linear predictor
        theta: Dispersion size parameter
        mu: Array of shape [n_samples, ]; count means
        y: Array of shape [n_samples, ]; observed counts

    Returns:
        z: Array of shape [n_samples, ]
    """
    z = 1 / (1 + np.exp(-eta_infl) * nb_zero_mass(theta, mu))
    return np.where(y > 0, 0.0, z)


def mixture_log_likelihood(z: np.ndarray, eta_infl: np.ndarray, density: np.ndarray) -> float:
    """Complete-data log-likelihood of the zero-inflated mixture, given the posterior excess-zero probabilities."""
    return np.sum(z * eta_infl - softplus(eta_infl) + (1 - z) * np.log(density))

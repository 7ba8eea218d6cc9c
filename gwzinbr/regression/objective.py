"""
Bandwidth objective: cross-validation or corrected AIC score of the geographically weighted fit at one bandwidth.
"""
from typing import Tuple, Union

try:
    from typing import Literal
except ImportError:
    from typing_extensions import Literal

import numpy as np
from joblib import Parallel, delayed

from ..configuration import DENSITY_FLOOR, config
from ..errors import CriterionError
from ..logging import logger_manager as lm
from ..neighbors import get_wi
from .distributions import nb_log_pmf, nb_zero_mass, softplus
from .family import Family
from .local_model import LocalFit, LocalModelFitter

CRITERIA = ("cv", "aic")


def compute_aicc(log_likelihood: float, n_params: float, n_samples: int) -> float:
    """Corrected Akaike information criterion."""
    aic = 2 * n_params - 2 * log_likelihood
    return aic + 2 * n_params * (n_params + 1) / (n_samples - n_params - 1)


class BandwidthObjective:
    """Scores a candidate bandwidth by refitting the model at every observation.

    Args:
        local_fitter: Fitter holding the data and the global warm start
        coords: Array of shape [n_samples, 2]; coordinates of the observations
        method: Kernel method, one of "fixed_g", "fixed_bsq" or "adaptive_bsq"
        criterion: "cv" for the leave-one-out sum of squared errors, "aic" for the corrected AIC
        distancekm: Set True to compute distances in kilometers from degree coordinates
    """

    def __init__(
        self,
        local_fitter: LocalModelFitter,
        coords: np.ndarray,
        method: Literal["fixed_g", "fixed_bsq", "adaptive_bsq"] = "fixed_g",
        criterion: Literal["cv", "aic"] = "cv",
        distancekm: bool = False,
    ):
        if criterion not in CRITERIA:
            raise CriterionError(f"Invalid bandwidth criterion. Options: {', '.join(CRITERIA)}. Got {criterion}.")
        self.local_fitter = local_fitter
        self.coords = np.asarray(coords, dtype=float)
        self.method = method
        self.criterion = criterion
        self.distancekm = distancekm

        self.y = local_fitter.y
        self.wt = local_fitter.wt
        self.family = local_fitter.family
        self.n_samples = self.y.shape[0]

    def fit_observation(self, i: int, bw: Union[float, int]) -> LocalFit:
        w = get_wi(
            i,
            self.coords,
            bw,
            method=self.method,
            exclude_self=self.criterion == "cv",
            distancekm=self.distancekm,
        )
        return self.local_fitter.fit(i, w)

    def local_fits(self, bw: Union[float, int]):
        """Local fits at every observation, in observation order."""
        fits = Parallel(n_jobs=config.n_threads, prefer="threads")(
            delayed(self.fit_observation)(i, bw) for i in range(self.n_samples)
        )

        yhat = np.zeros(self.n_samples)
        mu = np.zeros(self.n_samples)
        eta_infl = np.zeros(self.n_samples)
        alpha = np.zeros(self.n_samples)
        hat = np.zeros(self.n_samples)
        hat_infl = np.zeros(self.n_samples)
        inflated = np.zeros(self.n_samples, dtype=bool)
        for i, fit in enumerate(fits):
            yhat[i] = fit.yhat
            mu[i] = fit.mu
            eta_infl[i] = fit.eta_infl
            alpha[i] = fit.alpha
            hat[i] = fit.hat
            hat_infl[i] = fit.hat_infl
            inflated[i] = fit.inflated
        return yhat, mu, eta_infl, alpha, hat, hat_infl, inflated

    def __call__(self, bw: Union[float, int]) -> Tuple[float, float]:
        """Score of the bandwidth and effective number of parameters of the fit."""
        yhat, mu, eta_infl, alpha, hat, hat_infl, inflated = self.local_fits(bw)

        n_params = np.sum(hat)
        if self.family.zero_inflated:
            n_params += np.sum(hat_infl)

        if self.criterion == "cv":
            score = float(np.sum(self.wt * (self.y - yhat) ** 2))
        else:
            score = self._aicc(mu, eta_infl, alpha, inflated, n_params)

        lm.main_debug(f"Bandwidth {bw}: {self.criterion} = {score:.6g}, effective parameters = {n_params:.4g}.")
        return score, float(n_params)

    def _aicc(
        self, mu: np.ndarray, eta_infl: np.ndarray, alpha: np.ndarray, inflated: np.ndarray, n_params: float
    ) -> float:
        y = self.y
        theta = 1 / alpha
        zero = y == 0
        n_features = self.local_fitter.x.shape[1]

        zero_mass = nb_zero_mass(theta, mu)
        zero_mass = np.where(zero_mass <= 0, DENSITY_FLOOR, zero_mass)
        count_ll = nb_log_pmf(y, mu, theta)

        if self.family.zero_inflated:
            # Observations whose local inflation coefficients vanished contribute the plain count likelihood:
            ll_zero = np.where(
                inflated, -softplus(eta_infl) + np.log(np.exp(eta_infl) + zero_mass), np.log(zero_mass)
            )
            ll_positive = np.where(inflated, count_ll - softplus(eta_infl), count_ll)
            ll = np.sum(ll_zero[zero]) + np.sum(ll_positive[~zero])
            n_features += self.local_fitter.g.shape[1]
            k = n_params + n_params / n_features
        else:
            ll = np.sum(np.log(zero_mass[zero])) + np.sum(count_ll[~zero])
            k = n_params + n_params / n_features if self.family is Family.NEGBIN else n_params

        return float(compute_aicc(ll, k, self.n_samples))

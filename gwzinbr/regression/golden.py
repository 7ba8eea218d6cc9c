"""
Bandwidth selection for geographically weighted Poisson, negative binomial and zero-inflated regression.
"""
from typing import NamedTuple, Optional, Sequence, Union

try:
    from typing import Literal
except ImportError:
    from typing_extensions import Literal

import numpy as np
import pandas as pd

from ..data_io import DesignData, build_design
from ..errors import CriterionError, KernelError
from ..logging import logger_manager as lm
from ..neighbors import KERNEL_METHODS
from .family import Family
from .global_model import GlobalModelFitter
from .local_model import LocalModelFitter
from .objective import CRITERIA, BandwidthObjective
from .search import multi_start_search, search_bounds


class GoldenResult(NamedTuple):
    """Outcome of the bandwidth search.

    h_values: initial bracket (h0, h1, h2, h3) of each search
    iterations: one row per evaluated pair of interior points, labeled with the search it belongs to
    gss_results: best score, bandwidth and effective number of parameters of each search
    min_bandwidth: bandwidth with the lowest score over all searches
    """

    h_values: pd.DataFrame
    iterations: pd.DataFrame
    gss_results: pd.DataFrame
    min_bandwidth: float


def select_bandwidth(
    design: DesignData,
    method: Literal["fixed_g", "fixed_bsq", "adaptive_bsq"],
    model: Union[str, Family] = "zinb",
    bandwidth: Literal["cv", "aic"] = "cv",
    globalmin: bool = True,
    force: bool = False,
    maxg: float = 100,
    distancekm: bool = False,
) -> GoldenResult:
    """Golden section search for the bandwidth of a geographically weighted count regression on prepared arrays.

    Args:
        design: Response, design matrices, sample weights, offset and coordinates, e.g. from
            :func:`~gwzinbr.data_io.build_design`
        method: Kernel method. "fixed_g" (Gaussian) and "fixed_bsq" (bisquare) search a distance; "adaptive_bsq"
            searches a number of nearest neighbors.
        model: Model family, one of "poisson", "negbin", "zip" or "zinb"
        bandwidth: Selection criterion, "cv" (leave-one-out cross-validation) or "aic" (corrected AIC)
        globalmin: If True, search three overlapping sub-intervals and keep the best result
        force: If True, keep a zero-inflated family even without evidence of excess zeros
        maxg: Bound on the absolute value of the inflation linear predictor
        distancekm: Set True to compute distances in kilometers from degree coordinates

    Returns:
        result: Search brackets, history, per-search results and the selected bandwidth
    """
    if method not in KERNEL_METHODS:
        raise KernelError(f"Invalid kernel method. Options: {', '.join(KERNEL_METHODS)}. Got {method}.")
    if bandwidth not in CRITERIA:
        raise CriterionError(f"Invalid bandwidth criterion. Options: {', '.join(CRITERIA)}. Got {bandwidth}.")
    family = Family.parse(model)

    global_fit = GlobalModelFitter(
        design.y, design.x, design.g, wt=design.wt, offset=design.offset, family=family, force=force, maxg=maxg
    ).fit()
    local_fitter = LocalModelFitter(
        design.y, design.x, design.g, design.wt, design.offset, global_fit=global_fit, maxg=maxg
    )
    objective = BandwidthObjective(local_fitter, design.coords, method=method, criterion=bandwidth, distancekm=distancekm)

    lower, upper = search_bounds(design.coords, method, distancekm=distancekm)
    lm.main_info(f"Searching {bandwidth} bandwidth of the {global_fit.family.value} model in [{lower:.6g}, {upper:.6g}].")
    lm.main_log_time()
    results = multi_start_search(objective, lower, upper, integer=method == "adaptive_bsq", globalmin=globalmin)
    lm.main_finish_progress("bandwidth search")

    h_values = pd.DataFrame([result.initial for result in results], columns=["h0", "h1", "h2", "h3"])
    score1, score2 = f"{bandwidth}1", f"{bandwidth}2"
    iterations = pd.DataFrame(
        [(n + 1,) + tuple(step) for n, result in enumerate(results) for step in result.steps],
        columns=["GSS_count", "h1", score1, "h2", score2],
    )
    gss_results = pd.DataFrame(
        [(result.score, result.bandwidth, result.n_params) for result in results],
        columns=[bandwidth, "bandwidth", "npar"],
    )

    if globalmin:
        lm.main_info("Global Minimum (Da Silva and Mendes, 2018)")
    min_bandwidth = float(gss_results["bandwidth"].iloc[int(np.argmin(gss_results[bandwidth].to_numpy()))])
    lm.main_info(f"Bandwidth: {min_bandwidth:g}")

    return GoldenResult(
        h_values=h_values,
        iterations=iterations,
        gss_results=gss_results,
        min_bandwidth=min_bandwidth,
    )


def golden(
    data: pd.DataFrame,
    formula: str,
    lat: str,
    long: str,
    method: Literal["fixed_g", "fixed_bsq", "adaptive_bsq"],
    xvarinf: Optional[Union[str, Sequence[str]]] = None,
    weight: Optional[str] = None,
    globalmin: bool = True,
    model: Union[str, Family] = "zinb",
    bandwidth: Literal["cv", "aic"] = "cv",
    offset: Optional[str] = None,
    force: bool = False,
    maxg: float = 100,
    distancekm: bool = False,
) -> GoldenResult:
    """Golden section search for the optimal bandwidth of a geographically weighted zero-inflated negative binomial
    regression, or of its Poisson, negative binomial and zero-inflated Poisson counterparts.

    Args:
        data: One row per observation
        formula: Patsy formula of the count model, e.g. "n_cases ~ income + density"
        lat: Name of the column holding the latitudes
        long: Name of the column holding the longitudes
        method: Kernel method, "fixed_g", "fixed_bsq" or "adaptive_bsq"
        xvarinf: Name(s) of the covariates of the zero-inflation model
        weight: Name of the column holding the sample weights
        globalmin: If True, search three overlapping sub-intervals to reduce the risk of a local minimum
        model: Model family, one of "zinb", "zip", "negbin" or "poisson"
        bandwidth: Selection criterion, "cv" or "aic"
        offset: Name of the column holding the offset; zero if None
        force: If True, keep the requested zero-inflated model even if the data do not support it
        maxg: Bound on the absolute value of the inflation linear predictor
        distancekm: Set True to compute distances in kilometers from degree coordinates

    Returns:
        result: See :class:`GoldenResult`

    Examples:
        gss = golden(df, "n_covid1 ~ diff_sd", lat="y", long="x", method="fixed_g", model="poisson",
                     globalmin=False)
        gss.min_bandwidth
    """
    design = build_design(data, formula, lat=lat, long=long, xvarinf=xvarinf, weight=weight, offset=offset)
    return select_bandwidth(
        design,
        method=method,
        model=model,
        bandwidth=bandwidth,
        globalmin=globalmin,
        force=force,
        maxg=maxg,
        distancekm=distancekm,
    )

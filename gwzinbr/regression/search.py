"""
Golden section search for the bandwidth minimizing the objective, optionally split over three overlapping intervals to
guard against local minima.
"""
from typing import Callable, Dict, List, NamedTuple, Tuple

import numpy as np
from joblib import Parallel, delayed

from ..configuration import (
    ADAPTIVE_MIN_NEIGHBORS,
    GOLDEN_RATIO,
    GSS_MAX_ITER,
    GSS_TOL,
    config,
)
from ..logging import logger_manager as lm
from ..neighbors import max_pairwise_distance


class Bracket(NamedTuple):
    h0: float
    h1: float
    h2: float
    h3: float


class SearchStep(NamedTuple):
    h1: float
    score1: float
    h2: float
    score2: float


class SearchResult(NamedTuple):
    """Outcome of one golden section search.

    initial: bracket before the first refinement
    steps: every evaluated pair of interior points, starting with the seed pair
    brackets: bracket after every refinement, starting with the initial one
    score: best score found
    bandwidth: bandwidth at the best score (floored for the adaptive kernel)
    n_params: effective number of parameters at the best score
    """

    initial: Bracket
    steps: List[SearchStep]
    brackets: List[Bracket]
    score: float
    bandwidth: float
    n_params: float


def search_bounds(coords: np.ndarray, method: str, distancekm: bool = False) -> Tuple[float, float]:
    """Bandwidth search interval: distances up to the maximum pairwise distance for the fixed kernels, neighbor counts
    from 5 up to the number of observations for the adaptive kernel."""
    if method == "adaptive_bsq":
        return float(ADAPTIVE_MIN_NEIGHBORS), float(coords.shape[0])
    return 0.0, max_pairwise_distance(coords, distancekm=distancekm)


def split_interval(lower: float, upper: float, r: float = GOLDEN_RATIO) -> List[Tuple[float, float]]:
    """Three overlapping sub-intervals used by the global minimum search (Da Silva and Mendes, 2018). Split points
    below `lower` are raised to it, so no sub-interval leaves [lower, upper]."""
    first = max(lower, (1 - r) * upper)
    second = max(lower, r * upper)
    return [(lower, first), (first, second), (second, upper)]


def golden_section(
    function: Callable[[float], Tuple[float, float]],
    lower: float,
    upper: float,
    integer: bool = False,
    r: float = GOLDEN_RATIO,
    tol: float = GSS_TOL,
    max_iter: int = GSS_MAX_ITER,
) -> SearchResult:
    """Golden section search routine.

    Method: p212, 9.6.4

    :cite:`fotheringham_geographically_2002`: Fotheringham, A. S., Brunsdon, C., & Charlton, M. (2002).
    Geographically weighted regression: the analysis of spatially varying relationships.

    Args:
        function: Objective, returning (score, effective number of parameters) for a bandwidth
        lower: Lower end of the search interval
        upper: Upper end of the search interval
        integer: If True, bandwidths are floored to integers before evaluation and in the result
        r: Golden ratio
        tol: Stop once the bracket width is at most `tol` times the sum of the absolute interior points
        max_iter: Maximum number of refinements

    Returns:
        result: Initial bracket, search history and best bandwidth
    """
    cache: Dict[float, Tuple[float, float]] = {}

    def evaluate(h: float) -> Tuple[float, float]:
        key = float(np.floor(h)) if integer else h
        if key not in cache:
            cache[key] = function(int(key) if integer else key)
        return cache[key]

    h0, h3 = lower, upper
    h1 = h3 - r * (h3 - h0)
    h2 = h0 + r * (h3 - h0)
    initial = Bracket(h0, h1, h2, h3)
    brackets = [initial]

    res1 = evaluate(h1)
    res2 = evaluate(h2)
    steps = [SearchStep(h1, res1[0], h2, res2[0])]

    n_iter = 1
    while abs(h3 - h0) > tol * (abs(h1) + abs(h2)) and n_iter < max_iter:
        if res2[0] < res1[0]:
            h0 = h1
            h1 = h3 - r * (h3 - h0)
            h2 = h0 + r * (h3 - h0)
            res1 = res2
            res2 = evaluate(h2)
        else:
            h3 = h2
            h1 = h3 - r * (h3 - h0)
            h2 = h0 + r * (h3 - h0)
            res2 = res1
            res1 = evaluate(h1)
        brackets.append(Bracket(h0, h1, h2, h3))
        steps.append(SearchStep(h1, res1[0], h2, res2[0]))
        lm.main_debug(f"Bracket [{h0:.6g}, {h3:.6g}]: scores {res1[0]:.6g} at {h1:.6g}, {res2[0]:.6g} at {h2:.6g}.")
        n_iter += 1

    if res1[0] < res2[0]:
        score, bandwidth, n_params = res1[0], h1, res1[1]
    else:
        score, bandwidth, n_params = res2[0], h2, res2[1]
    if integer:
        bandwidth = float(np.floor(bandwidth))

    return SearchResult(
        initial=initial,
        steps=steps,
        brackets=brackets,
        score=score,
        bandwidth=bandwidth,
        n_params=n_params,
    )


def multi_start_search(
    function: Callable[[float], Tuple[float, float]],
    lower: float,
    upper: float,
    integer: bool = False,
    globalmin: bool = True,
) -> List[SearchResult]:
    """Run one search over the whole interval, or three independent searches over overlapping sub-intervals.

    Args:
        function: Objective, returning (score, effective number of parameters) for a bandwidth
        lower: Lower end of the search interval
        upper: Upper end of the search interval
        integer: If True, bandwidths are floored to integers
        globalmin: If True, search the three sub-intervals given by :func:`split_interval`

    Returns:
        results: One search result per (sub-)interval, in interval order
    """
    if not globalmin:
        return [golden_section(function, lower, upper, integer=integer)]

    intervals = split_interval(lower, upper)
    for n, (sub_lower, sub_upper) in enumerate(intervals):
        lm.main_debug(f"Sub-search {n + 1}: [{sub_lower:.6g}, {sub_upper:.6g}].")
    return Parallel(n_jobs=min(config.n_threads, len(intervals)), prefer="threads")(
        delayed(golden_section)(function, sub_lower, sub_upper, integer=integer) for sub_lower, sub_upper in intervals
    )

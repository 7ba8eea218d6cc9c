"""
Build the response, design matrices, weights, offset and coordinates of a geographically weighted count model from a
data frame and a model formula.
"""
from typing import List, NamedTuple, Optional, Sequence, Union

import numpy as np
import pandas as pd
from patsy import PatsyError, dmatrices

from .errors import DataError
from .logging import logger_manager as lm


class DesignData(NamedTuple):
    y: np.ndarray
    x: np.ndarray
    g: np.ndarray
    wt: np.ndarray
    offset: np.ndarray
    coords: np.ndarray
    x_names: List[str]
    g_names: List[str]


def _columns(data: pd.DataFrame, names: Union[str, Sequence[str]], role: str) -> pd.DataFrame:
    names = [names] if isinstance(names, str) else list(names)
    missing = [name for name in names if name not in data.columns]
    if missing:
        raise DataError(f"Column(s) {', '.join(missing)} given as {role} not found in the data.")
    return data[names]


def build_design(
    data: pd.DataFrame,
    formula: str,
    lat: str,
    long: str,
    xvarinf: Optional[Union[str, Sequence[str]]] = None,
    weight: Optional[str] = None,
    offset: Optional[str] = None,
) -> DesignData:
    """Materialize the model inputs from a data frame.

    Args:
        data: One row per observation
        formula: Patsy formula of the count model, e.g. "n_cases ~ income + density". An intercept is included unless
            the formula removes it.
        lat: Name of the column holding the latitude (second coordinate)
        long: Name of the column holding the longitude (first coordinate)
        xvarinf: Name(s) of the covariates of the zero-inflation model. The inflation design always starts with a
            constant column; if None it is that column alone.
        weight: Name of the column holding sample weights. Defaults to unit weights.
        offset: Name of the column holding the offset of the count linear predictor. Defaults to zeros.

    Returns:
        design: Response, design matrices, sample weights, offset and coordinates, with consistent rows
    """
    if not isinstance(data, pd.DataFrame):
        raise DataError(f"`data` must be a pandas DataFrame, got {type(data).__name__}.")

    try:
        response, design = dmatrices(formula, data, return_type="dataframe", NA_action="raise")
    except PatsyError as e:
        raise DataError(f"Could not build the design matrix from formula '{formula}': {e}") from e

    if response.shape[1] != 1:
        raise DataError(f"Formula '{formula}' must have a single response variable.")
    y = response.iloc[:, 0].to_numpy(dtype=float)
    if np.any(y < 0) or np.any(y != np.floor(y)):
        raise DataError("The response must hold non-negative integer counts.")

    n_samples = y.shape[0]
    if n_samples != data.shape[0]:
        raise DataError(f"Formula '{formula}' kept {n_samples} of {data.shape[0]} rows; remove missing values first.")

    g_names = ["Intercept"]
    g = np.ones((n_samples, 1))
    if xvarinf is not None:
        inflation_covariates = _columns(data, xvarinf, "inflation covariates")
        g = np.column_stack([g, inflation_covariates.to_numpy(dtype=float)])
        g_names += list(inflation_covariates.columns)

    wt = np.ones(n_samples)
    if weight is not None:
        wt = _columns(data, weight, "sample weights").iloc[:, 0].to_numpy(dtype=float)
        if np.any(wt < 0):
            raise DataError("Sample weights must be non-negative.")

    offset_values = np.zeros(n_samples)
    if offset is not None:
        offset_values = _columns(data, offset, "offset").iloc[:, 0].to_numpy(dtype=float)

    coords = _columns(data, [long, lat], "coordinates").to_numpy(dtype=float)

    lm.main_debug(
        f"Design with {n_samples} observations, {design.shape[1]} count covariates and {g.shape[1]} inflation "
        f"covariates."
    )
    return DesignData(
        y=y,
        x=design.to_numpy(dtype=float),
        g=g,
        wt=wt,
        offset=offset_values,
        coords=coords,
        x_names=list(design.columns),
        g_names=g_names,
    )

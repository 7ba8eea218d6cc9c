import logging
import os
from typing import Union

from .errors import ConfigurationError
from .logging import logger_manager as lm

# ---------------------------------------------------------------------------------------------------
# Numerical constants for the count-model solvers
# ---------------------------------------------------------------------------------------------------
# Dispersion parameter theta (alpha = 1 / theta):
THETA_MIN = 1e-10
THETA_MAX = 1e6
# A Newton step on theta beyond this value counts as divergence and triggers a probe substitution:
THETA_DIVERGENCE = 1e5
THETA_PROBES = (2.0, 1e5, 1e-4)
# Change reported for a probed Newton step:
PROBE_STEP = 1e-4
# Negative Newton iterates in the global fit restart from here:
THETA_NEGATIVE_RESET = 1e-5
# Local dispersion estimates at or below this value are treated as collapsed:
THETA_COLLAPSE = 1e-5
# Fixed alpha for families without dispersion estimation (Poisson, ZIP):
ALPHA_POISSON = 1e-6
HESSIAN_FLOOR = 1e-23

# Linear system solves:
DET_TOL = 1e-60

# Linear predictors and means:
ETA_MAX = 700.0
MU_MIN = 1e-150
MU_MAX = 1e100
MU_MAX_GLOBAL = 1e5
MU_MAX_LOCAL = 1e10
MU_ZERO = 1e-10

# Floors applied before division or logarithm:
WEIGHT_FLOOR = 1e-5
DENSITY_FLOOR = 1e-10
RATIO_UNDERFLOW = 1e-307

# Convergence tolerances and iteration caps:
TOL_THETA_GLOBAL = 1e-4
TOL_THETA_LOCAL = 1e-6
TOL_THETA_OUTER = 1e-6
TOL_DEVIANCE = 1e-6
TOL_LOGLIK = 1e-5
MAX_ITER_OUTER = 100
MAX_ITER_THETA = 200
MAX_ITER_IRLS = 100
MAX_ITER_MIXTURE = 600
# Newton probes in the global mixture loop only start after this many steps:
GLOBAL_PROBE_AFTER = 50
# Oscillation guard for the zero-inflation coefficients in local fits:
OSCILLATION_START = 300
OSCILLATION_DECIMALS = 7

# ---------------------------------------------------------------------------------------------------
# Bandwidth search constants
# ---------------------------------------------------------------------------------------------------
GOLDEN_RATIO = 0.61803399
GSS_TOL = 0.1
GSS_MAX_ITER = 200
ADAPTIVE_MIN_NEIGHBORS = 5
KM_PER_DEGREE = 111.0


class GWZConfig:
    def __init__(
        self,
        logging_level: int = logging.INFO,
        n_threads: int = os.cpu_count(),
    ):
        self.logging_level = logging_level
        self.n_threads = n_threads

    @property
    def logging_level(self):
        return self.__logging_level

    @property
    def n_threads(self):
        return self.__n_threads

    @logging_level.setter
    def logging_level(self, level: Union[int, str]):
        lm.main_debug(f"Setting logging level to {level}.")
        if isinstance(level, str):
            levels = {
                "debug": logging.DEBUG,
                "info": logging.INFO,
                "warning": logging.WARNING,
                "error": logging.ERROR,
                "critical": logging.CRITICAL,
            }
            if level.lower() not in levels:
                raise ConfigurationError(f"Unknown logging level {level}. Options: {', '.join(levels)}.")
            level = levels[level.lower()]
        lm.main_set_level(level)
        self.__logging_level = level

    @n_threads.setter
    def n_threads(self, n: int):
        lm.main_debug(f"Setting n_threads to {n}.")
        if n is None:
            n = 1
        if n < 1 and n != -1:
            raise ConfigurationError(f"`n_threads` must be a positive integer or -1, got {n}.")
        self.__n_threads = n


config = GWZConfig()

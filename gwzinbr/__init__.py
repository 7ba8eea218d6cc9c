"""Golden section bandwidth selection for geographically weighted (zero-inflated) count regression
"""

__version__ = "0.1.0"

from . import regression
from .configuration import config
from .data_io import DesignData, build_design
from .regression import Family, GoldenResult, golden, select_bandwidth

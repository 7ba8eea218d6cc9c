"""
Geographically weighted Poisson, negative binomial and zero-inflated regression: whole-sample and local fits, the
bandwidth objective and the golden section search over it.
"""
from .family import Family
from .global_model import GlobalFit, GlobalModelFitter
from .golden import GoldenResult, golden, select_bandwidth
from .local_model import LocalFit, LocalModelFitter
from .objective import BandwidthObjective
from .search import golden_section, multi_start_search, search_bounds

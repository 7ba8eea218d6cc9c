"""
Spatial distances and kernel weights for geographically weighted fits.
"""
from typing import Union

try:
    from typing import Literal
except ImportError:
    from typing_extensions import Literal

import numpy as np
from scipy.spatial.distance import pdist

from .configuration import KM_PER_DEGREE
from .errors import KernelError

KERNEL_METHODS = ("fixed_g", "fixed_bsq", "adaptive_bsq")


def local_dist(coords_i: np.ndarray, coords: np.ndarray, distancekm: bool = False) -> np.ndarray:
    """For a single sample, compute the Euclidean distance between that sample and every sample in the data.

    Args:
        coords_i: Array of shape (n, ), where n is the dimensionality of the data; the coordinates of a single point
        coords: Array of shape (m, n); the coordinates of all points
        distancekm: Set True to scale distances computed from degree coordinates by 111 to approximate kilometers

    Returns:
        distances: Array of shape (m, ); distances between `coords_i` and each point in `coords`
    """
    distances = np.sqrt(np.sum((coords_i - coords) ** 2, axis=1))
    if distancekm:
        distances = distances * KM_PER_DEGREE
    return distances


def max_pairwise_distance(coords: np.ndarray, distancekm: bool = False) -> float:
    """Largest distance between any two samples."""
    if coords.shape[0] < 2:
        return 0.0
    max_dist = float(np.max(pdist(coords)))
    if distancekm:
        max_dist = max_dist * KM_PER_DEGREE
    return max_dist


class Kernel(object):
    r"""
    Spatial weights of every sample relative to a focal sample.

    Args:
        i: Index of the focal sample
        dist_vector: Array of shape (n_samples, ); distances from the focal sample to every sample
        bw: Bandwidth. For the fixed kernels this is a distance; for "adaptive_bsq" it is the number of nearest
            neighbors (non-integer values are truncated).
        method: Kernel function and bandwidth semantics. Options:
            - "fixed_g": Gaussian kernel with a fixed distance bandwidth, :math K(d) = e^{-\frac{1}{2}(d/h)^2}
            - "fixed_bsq": bisquare kernel with a fixed distance bandwidth,
                :math K(d) = (1-(d/h)^2)^2 if d \leq h, 0 otherwise
            - "adaptive_bsq": bisquare kernel with the distance to the h-th nearest neighbor as bandwidth; zero
                for samples ranked beyond the h-th neighbor
        exclude_self: If True, the weight of the focal sample is set to zero (leave-one-out)
    """

    def __init__(
        self,
        i: int,
        dist_vector: np.ndarray,
        bw: Union[int, float],
        method: Literal["fixed_g", "fixed_bsq", "adaptive_bsq"] = "fixed_g",
        exclude_self: bool = False,
    ):
        self.dist_vector = np.asarray(dist_vector, dtype=float)
        self.method = method

        if method == "fixed_g":
            self.kernel = np.exp(-0.5 * (self.dist_vector / bw) ** 2)
        elif method == "fixed_bsq":
            self.kernel = np.where(self.dist_vector <= bw, (1 - (self.dist_vector / bw) ** 2) ** 2, 0.0)
        elif method == "adaptive_bsq":
            self.kernel = self._adaptive_bisquare(bw)
        else:
            raise KernelError(f"Unsupported kernel method. Valid options: {', '.join(KERNEL_METHODS)}. Got {method}.")

        if exclude_self:
            self.kernel[i] = 0.0

    def _adaptive_bisquare(self, bw: Union[int, float]) -> np.ndarray:
        n_samples = self.dist_vector.shape[0]
        n_neighbors = int(bw)
        if n_neighbors < 1 or n_neighbors > n_samples:
            raise KernelError(f"Adaptive bandwidth must be a neighbor count in [1, {n_samples}], got {bw}.")

        # Stable sort so that ties keep the original sample order:
        order = np.argsort(self.dist_vector, kind="stable")
        sorted_dist = self.dist_vector[order]
        self.bandwidth = sorted_dist[n_neighbors - 1]

        sorted_kernel = np.zeros(n_samples)
        if self.bandwidth > 0:
            sorted_kernel[:n_neighbors] = (1 - (sorted_dist[:n_neighbors] / self.bandwidth) ** 2) ** 2
        else:
            # All included neighbors coincide with the focal sample:
            sorted_kernel[:n_neighbors] = 1.0

        # Back to the original sample order:
        kernel = np.empty(n_samples)
        kernel[order] = sorted_kernel
        return kernel


def get_wi(
    i: int,
    coords: np.ndarray,
    bw: Union[float, int],
    method: Literal["fixed_g", "fixed_bsq", "adaptive_bsq"] = "fixed_g",
    exclude_self: bool = False,
    distancekm: bool = False,
) -> np.ndarray:
    """Get spatial weights for an individual sample, given the coordinates of all samples in space.

    Args:
        i: Index of sample for which weights are to be calculated to all other samples in the dataset
        coords: Array of shape (n_samples, 2) representing the spatial coordinates of each sample
        bw: Bandwidth for the spatial kernel
        method: Kernel method, one of "fixed_g", "fixed_bsq" or "adaptive_bsq"
        exclude_self: If True, ignore each sample itself (weight zero), as needed for cross-validation
        distancekm: Set True to compute distances in kilometers from degree coordinates

    Returns:
        wi: Array of shape (n_samples, ); weights for all samples relative to sample i
    """
    if bw == np.inf and method != "adaptive_bsq":
        wi = np.ones(coords.shape[0])
        if exclude_self:
            wi[i] = 0.0
        return wi

    dist_vector = local_dist(coords[i], coords, distancekm=distancekm)
    wi = Kernel(i, dist_vector, bw, method=method, exclude_self=exclude_self).kernel
    return wi

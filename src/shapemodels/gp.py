"""
Low-rank approximation of Gaussian processes.

A Gaussian process with a continuous matrix-valued kernel is approximated by
its leading eigenfunctions, computed with the Nystrom method: the kernel is
evaluated on a finite set of points sampled from a mesh surface, the Gram
matrix is eigen-decomposed once, and its eigenvectors are extended to
arbitrary points through the kernel.

The sampled points and the eigen-decomposition are stored on the returned
``LowRankGP``. Evaluating it afterwards never draws random numbers, so every
model derived from it is reproducible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import scipy.linalg as sp

from shapemodels.errors import InsufficientDataError
from shapemodels.kernels import DiagonalKernel, Kernel, MatrixValuedKernel
from shapemodels.mesh import sample_surface_points
from shapemodels.model import LowRankModel, orthonormal_basis

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from shapemodels.mesh import TriangleMesh

log = logging.getLogger(__name__)


@dataclass(eq=False)
class LowRankGP:
    """Zero-mean Gaussian process truncated to its leading eigenfunctions.

    Attributes:
        kernel: Matrix-valued covariance kernel of the process
        sample_points: Points the Gram matrix was evaluated at, shape (m, 3)
        eigenvalues: Leading Gram matrix eigenvalues, descending, shape (rank,)
        eigenvectors: Corresponding Gram matrix eigenvectors, shape (3m, rank)
    """

    kernel: MatrixValuedKernel
    sample_points: NDArray[np.floating]
    eigenvalues: NDArray[np.floating]
    eigenvectors: NDArray[np.floating]

    @property
    def rank(self) -> int:
        return len(self.eigenvalues)

    @property
    def variances(self) -> NDArray[np.floating]:
        """Eigenvalues of the covariance operator (uniform surface measure)."""
        return self.eigenvalues / len(self.sample_points)

    def eigenfunctions(self, points: ArrayLike) -> NDArray[np.floating]:
        """Nystrom extension of the eigenvectors to arbitrary points.

        Args:
            points: Evaluation points, shape (n_points, 3)

        Returns:
            Eigenfunction values, shape (3 * n_points, rank), point-major rows
        """
        cross = self.kernel.matrix(points, self.sample_points)
        n_samples = len(self.sample_points)
        return np.dot(cross, self.eigenvectors) * (np.sqrt(n_samples) / self.eigenvalues)

    def covariance(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        """Low-rank approximation of the kernel matrix between two point sets."""
        phi_x = self.eigenfunctions(xs) * self.variances
        return np.dot(phi_x, self.eigenfunctions(ys).T)

    def discretize(
        self,
        mesh: TriangleMesh,
        weights: NDArray[np.floating] | None = None,
        tolerance: float = 1e-10,
    ) -> LowRankModel:
        """Evaluate the process on the points of a mesh.

        The eigenfunctions are generally not orthonormal on the mesh points,
        so the discretized covariance is diagonalized again under the mesh's
        inner product.

        Args:
            mesh: Mesh to evaluate on
            weights: Inner product weights, shape (3 * n_points,). Defaults to ones.
            tolerance: Relative threshold below which variances are dropped

        Returns:
            Zero-mean LowRankModel over ``mesh``
        """
        n_coords = 3 * mesh.n_points
        if weights is None:
            weights = np.ones(n_coords)

        factors = self.eigenfunctions(mesh.points) * np.sqrt(self.variances)
        basis, variances = orthonormal_basis(factors, weights, tolerance=tolerance)
        return LowRankModel(
            reference=mesh,
            mean=np.zeros(n_coords),
            basis=basis,
            variances=variances,
            weights=weights,
        )


def approximate_gp(
    kernel: Kernel | MatrixValuedKernel,
    domain: TriangleMesh,
    n_samples: int,
    rank: int,
    rng: np.random.Generator | int | None = None,
    sample_points: ArrayLike | None = None,
    tolerance: float = 1e-10,
) -> LowRankGP:
    """Approximate a zero-mean Gaussian process by its leading eigenfunctions.

    Args:
        kernel: Covariance kernel. A scalar kernel is used for each vector
            component independently.
        domain: Mesh whose surface the sample points are drawn from
        n_samples: Number of points to sample from the surface
        rank: Number of eigenfunctions to keep (at most 3 * n_samples)
        rng: Random generator or seed used to sample the points
        sample_points: Fixed points to use instead of sampling, shape (m, 3)
        tolerance: Gram eigenvalues below ``tolerance`` times the largest are dropped

    Returns:
        LowRankGP caching the sample points and Gram eigen-decomposition

    Raises:
        InsufficientDataError: If fewer than one sample point is requested
    """
    if isinstance(kernel, Kernel):
        kernel = DiagonalKernel(kernel)

    if sample_points is None:
        if n_samples < 1:
            raise InsufficientDataError(
                f"GP approximation needs at least 1 sample point, got {n_samples}"
            )
        sample_points = sample_surface_points(domain, n_samples, rng)
    else:
        sample_points = np.asarray(sample_points, dtype=float).reshape(-1, 3)
        if len(sample_points) < 1:
            raise InsufficientDataError("GP approximation needs at least 1 sample point")

    if rank < 1:
        raise ValueError(f"Rank must be positive, got {rank}")

    gram = kernel.matrix(sample_points, sample_points)
    gram = 0.5 * (gram + gram.T)
    size = gram.shape[0]
    if rank > size:
        log.warning("Rank %d exceeds Gram matrix size %d, using %d", rank, size, size)
        rank = size

    eigenvalues, eigenvectors = sp.eigh(gram, subset_by_index=(size - rank, size - 1))

    idx = np.argsort(eigenvalues)[::-1]
    eigenvalues = eigenvalues[idx]
    eigenvectors = eigenvectors[:, idx]

    # Vanishing eigenvalues are round-off of a PSD kernel and cannot be extended
    keep = eigenvalues > max(tolerance * eigenvalues[0], 0.0)
    if not np.all(keep):
        log.debug("Dropping %d degenerate Gram eigenvalues", np.sum(~keep))
    eigenvalues = eigenvalues[keep]
    eigenvectors = eigenvectors[:, keep]

    log.debug(
        "Approximated GP with %d samples: rank %d", len(sample_points), len(eigenvalues)
    )
    return LowRankGP(
        kernel=kernel,
        sample_points=sample_points,
        eigenvalues=eigenvalues,
        eigenvectors=eigenvectors,
    )

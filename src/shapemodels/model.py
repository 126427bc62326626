"""
Low-rank linear shape models.

A ``LowRankModel`` is a mean deformation field plus an orthonormal basis of
deformation fields with associated variances. Models are built from data
(see ``shapemodels.pca``), from a Gaussian process (see ``shapemodels.gp``),
or by combining both with ``augment_model``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import scipy.linalg as sp

from shapemodels.data import DeformationField
from shapemodels.errors import DomainMismatchError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from shapemodels.gp import LowRankGP
    from shapemodels.mesh import TriangleMesh

log = logging.getLogger(__name__)


@dataclass(eq=False)
class LowRankModel:
    """Gaussian shape model with a low-rank covariance.

    Attributes:
        reference: Mesh the model's fields are defined over
        mean: Flattened mean deformation, shape (3 * n_points,)
        basis: Orthonormal basis vectors as columns, shape (3 * n_points, rank)
        variances: Variance along each basis vector, descending, shape (rank,)
        weights: Inner product weight of each coordinate, shape (3 * n_points,).
            Defaults to ones (the Euclidean inner product).
    """

    reference: TriangleMesh
    mean: NDArray[np.floating]
    basis: NDArray[np.floating]
    variances: NDArray[np.floating]
    weights: NDArray[np.floating] | None = None

    def __post_init__(self) -> None:
        n_coords = 3 * self.reference.n_points
        self.mean = np.asarray(self.mean, dtype=float).reshape(-1)
        self.basis = np.asarray(self.basis, dtype=float)
        if self.basis.ndim == 1:
            self.basis = self.basis[:, None]
        self.variances = np.maximum(np.asarray(self.variances, dtype=float), 0.0)
        if self.weights is None:
            self.weights = np.ones(n_coords)
        self.weights = np.asarray(self.weights, dtype=float)

        if (
            self.mean.shape != (n_coords,)
            or self.weights.shape != (n_coords,)
            or self.basis.shape[0] != n_coords
        ):
            raise DomainMismatchError(
                f"Model mean, basis and weights must have length {n_coords}"
            )
        if self.variances.shape != (self.basis.shape[1],):
            raise ValueError(
                f"Got {self.variances.shape[0]} variances for "
                f"{self.basis.shape[1]} basis vectors"
            )

    @property
    def rank(self) -> int:
        return self.basis.shape[1]

    @property
    def mean_field(self) -> DeformationField:
        return DeformationField.from_flat(self.reference, self.mean)

    @property
    def variance_explained(self) -> NDArray[np.floating]:
        """Proportion of the total model variance along each basis vector."""
        total = self.variances.sum()
        if total > 0:
            return self.variances / total
        return np.zeros_like(self.variances)

    def components(self) -> list[tuple[DeformationField, float]]:
        """The (eigenvector, variance) pairs of the model."""
        return [
            (DeformationField.from_flat(self.reference, self.basis[:, i]), float(v))
            for i, v in enumerate(self.variances)
        ]

    def is_orthonormal(self, atol: float = 1e-8) -> bool:
        gram = np.dot(self.basis.T, self.weights[:, None] * self.basis)
        return bool(np.allclose(gram, np.eye(self.rank), atol=atol))

    def coefficients(self, field: DeformationField) -> NDArray[np.floating]:
        """Inner products of a field's deviation from the mean with the basis.

        Fields over a different reference with the same topology are first
        re-expressed over the model's reference.

        Raises:
            DomainMismatchError: If the field's topology differs from the model's
        """
        if field.reference is not self.reference:
            field = field.rebase(self.reference)
        deviation = field.flatten() - self.mean
        return np.dot(self.basis.T, self.weights * deviation)

    def reconstruct(self, coefficients: ArrayLike) -> DeformationField:
        """Mean plus the basis weighted by projection coefficients."""
        coefficients = np.asarray(coefficients, dtype=float)
        flat = self.mean + np.dot(self.basis, coefficients)
        return DeformationField.from_flat(self.reference, flat)

    def project(self, field: DeformationField) -> DeformationField:
        """Orthogonal projection of a field onto the model's affine span."""
        return self.reconstruct(self.coefficients(field))

    def instance(self, alpha: ArrayLike) -> DeformationField:
        """Model instance for standard normal coefficients ``alpha``."""
        alpha = np.asarray(alpha, dtype=float)
        if alpha.shape != (self.rank,):
            raise ValueError(f"Expected {self.rank} coefficients, got {alpha.shape}")
        return self.reconstruct(alpha * np.sqrt(self.variances))

    def sample(self, rng: np.random.Generator | int | None = None) -> DeformationField:
        """Draw a random instance from the model."""
        rng = np.random.default_rng(rng)
        return self.instance(rng.standard_normal(self.rank))


def orthonormal_basis(
    factors: NDArray[np.floating],
    weights: NDArray[np.floating],
    tolerance: float = 1e-10,
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """Eigen-decompose a covariance given in factored form.

    Computes the eigenvectors of ``C = F F^T`` that are orthonormal under the
    inner product ``<u, v> = sum(weights * u * v)``. The smaller of the two
    symmetric problems is solved: the Gram matrix ``F^T W F`` when ``F`` has
    fewer columns than rows, the weighted covariance otherwise.

    Args:
        factors: Covariance factor ``F``, shape (n_coords, k)
        weights: Inner product weights, shape (n_coords,)
        tolerance: Eigenvalues below ``tolerance * largest`` are dropped

    Returns:
        Tuple of (basis, variances): basis has shape (n_coords, rank),
        variances are non-negative and sorted in descending order
    """
    n_coords, k = factors.shape
    root = np.sqrt(weights)
    scaled = root[:, None] * factors

    if k == 0:
        return np.zeros((n_coords, 0)), np.zeros(0)

    if k < n_coords:
        eigenvalues, eigenvectors = sp.eigh(np.dot(scaled.T, scaled))
    else:
        eigenvalues, eigenvectors = sp.eigh(np.dot(scaled, scaled.T))

    # Round-off can push eigenvalues of a PSD matrix slightly below zero
    eigenvalues = np.maximum(eigenvalues, 0.0)

    idx = np.argsort(eigenvalues)[::-1]
    eigenvalues = eigenvalues[idx]
    eigenvectors = eigenvectors[:, idx]

    keep = eigenvalues > tolerance * eigenvalues[0]
    eigenvalues = eigenvalues[keep]
    eigenvectors = eigenvectors[:, keep]

    if k < n_coords:
        vectors = np.dot(scaled, eigenvectors) / np.sqrt(eigenvalues)
    else:
        vectors = eigenvectors

    return vectors / root[:, None], eigenvalues


def augment_model(
    model: LowRankModel,
    bias: LowRankModel | LowRankGP,
    tolerance: float = 1e-10,
) -> LowRankModel:
    """Add an independent zero-mean bias to a model.

    The covariance of the result is the sum of both covariances. Since the
    two bases are generally not orthogonal to each other, the combined
    covariance is re-diagonalized within the span of both bases.

    Args:
        model: Model to augment (its mean is kept)
        bias: Zero-mean model or low-rank Gaussian process. A Gaussian process
            is evaluated on the model's reference points.
        tolerance: Relative threshold below which combined variances are dropped

    Returns:
        Augmented model over the same reference

    Raises:
        DomainMismatchError: If the bias is defined over a different topology
        ValueError: If the bias has a nonzero mean or another inner product
    """
    if not isinstance(bias, LowRankModel):
        bias = bias.discretize(model.reference, weights=model.weights)

    if not model.reference.same_topology(bias.reference):
        raise DomainMismatchError("Cannot augment a model with a bias over another mesh")
    if not np.allclose(model.weights, bias.weights):
        raise ValueError("Model and bias must use the same inner product")
    if not np.allclose(bias.mean, 0.0):
        raise ValueError("The bias must have a zero mean")

    factors = np.hstack(
        [
            model.basis * np.sqrt(model.variances),
            bias.basis * np.sqrt(bias.variances),
        ]
    )
    basis, variances = orthonormal_basis(factors, model.weights, tolerance=tolerance)
    log.debug(
        "Augmented model of rank %d with bias of rank %d: rank %d",
        model.rank,
        bias.rank,
        len(variances),
    )

    return LowRankModel(
        reference=model.reference,
        mean=model.mean,
        basis=basis,
        variances=variances,
        weights=model.weights,
    )

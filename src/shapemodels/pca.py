"""
Principal Component Analysis (PCA) of data collections.

This module builds low-rank shape models from the deformation fields of a
(typically GPA-aligned) data collection, and provides helpers to visualize
the resulting shape variation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from shapemodels.errors import InsufficientDataError
from shapemodels.model import LowRankModel, orthonormal_basis

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from shapemodels.data import DataCollection
    from shapemodels.mesh import TriangleMesh

log = logging.getLogger(__name__)


def pca(
    collection: DataCollection,
    n_components: int | None = None,
    area_weighted: bool = False,
    tolerance: float = 1e-10,
) -> LowRankModel:
    """Build a shape model by Principal Component Analysis.

    The covariance of the centered fields is never formed explicitly when
    there are fewer items than coordinates: the eigenvectors are recovered
    from the (n_items x n_items) Gram matrix instead.

    Args:
        collection: Data collection of n_items deformation fields
        n_components: Number of components to retain. If None, retains every
            component with non-negligible variance (at most n_items - 1).
        area_weighted: If True, use the inner product weighted by the
            per-vertex surface area of the reference
        tolerance: Components with variance below ``tolerance`` times the
            largest variance are dropped

    Returns:
        LowRankModel with eigenvalues in descending order

    Raises:
        InsufficientDataError: If the collection holds fewer than 2 items
        ValueError: If n_components is not positive
    """
    n_items = collection.size
    if n_items < 2:
        raise InsufficientDataError(
            f"PCA needs at least 2 data items, got {n_items}"
        )
    if n_components is not None and n_components < 1:
        raise ValueError(f"n_components must be positive, got {n_components}")

    fields = collection.field_matrix()
    mean = fields.mean(axis=0)
    centered = fields - mean

    weights = _inner_product_weights(collection.reference, area_weighted)
    basis, variances = orthonormal_basis(
        centered.T / np.sqrt(n_items - 1), weights, tolerance=tolerance
    )

    max_components = n_items - 1
    if n_components is not None:
        max_components = min(max_components, n_components)
    basis = basis[:, :max_components]
    variances = variances[:max_components]

    log.debug(
        "PCA of %d items over %d points: rank %d",
        n_items,
        collection.reference.n_points,
        len(variances),
    )

    return LowRankModel(
        reference=collection.reference,
        mean=mean,
        basis=basis,
        variances=variances,
        weights=weights,
    )


def warp_along_pc(
    model: LowRankModel,
    pc: int,
    magnitude: float,
) -> TriangleMesh:
    """Warp the mean shape along a principal component.

    This is useful for visualizing what shape changes are captured
    by each principal component.

    Args:
        model: Shape model
        pc: Principal component number (1-indexed, like PC1, PC2, etc.)
        magnitude: How far to warp along the PC (in units of standard deviation)

    Returns:
        Warped reference mesh
    """
    pc_index = pc - 1  # Convert to 0-indexed

    if pc_index < 0 or pc_index >= model.rank:
        raise ValueError(f"PC {pc} is out of range. Available: 1-{model.rank}")

    variance = model.variances[pc_index]
    std = np.sqrt(variance) if variance > 0 else 1
    coefficients = np.zeros(model.rank)
    coefficients[pc_index] = magnitude * std

    return model.reconstruct(coefficients).warp()


def project_to_pc_space(
    model: LowRankModel,
    collection: DataCollection,
    pc_x: int = 1,
    pc_y: int = 2,
) -> NDArray[np.floating]:
    """Project the items of a collection onto a 2D PC space for visualization.

    Args:
        model: Shape model to project onto
        collection: Collection over the model's topology
        pc_x: PC number for x-axis (1-indexed)
        pc_y: PC number for y-axis (1-indexed)

    Returns:
        2D coordinates, shape (n_items, 2)
    """
    for pc in (pc_x, pc_y):
        if not 1 <= pc <= model.rank:
            raise ValueError(f"PC {pc} is out of range. Available: 1-{model.rank}")

    coefficients = np.array(
        [model.coefficients(item.transformation) for item in collection]
    ).reshape(len(collection), model.rank)
    return coefficients[:, [pc_x - 1, pc_y - 1]]


def _inner_product_weights(
    reference: TriangleMesh,
    area_weighted: bool,
) -> NDArray[np.floating]:
    """Per-coordinate inner product weights, normalized to mean 1."""
    n_coords = 3 * reference.n_points
    if not area_weighted:
        return np.ones(n_coords)

    areas = reference.area_weights()
    if np.any(areas <= 0):
        raise ValueError("Area weighting needs every vertex to touch a triangle")
    return np.repeat(areas / areas.mean(), 3)

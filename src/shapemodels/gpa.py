"""
Generalized Procrustes Analysis (GPA) of data collections.

This module removes rigid pose differences between the shapes of a data
collection. The algorithm alternates between rigidly registering every
warped shape to a working reference and replacing that reference by the
point-wise mean of the aligned shapes.

Based on Dryden and Mardia (2016) "Statistical Shape Analysis".
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from shapemodels.data import DataCollection, DataItem
from shapemodels.errors import InsufficientDataError
from shapemodels.registration import rigid_landmark_registration

if TYPE_CHECKING:
    from numpy.typing import NDArray

log = logging.getLogger(__name__)


class GPAState(enum.Enum):
    ALIGNING = "aligning"
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


@dataclass
class GPAResult:
    """Result of Generalized Procrustes Analysis.

    Attributes:
        collection: Aligned collection. Its reference is the final mean shape
            and every item's field is expressed relative to it.
        mean_shape: Final mean shape, shape (n_points, 3)
        centroid_sizes: Centroid size of each item's shape before alignment
        state: Final state of the iteration
        iterations: Number of alignment iterations performed
        distance_moved: Mean point displacement of the mean shape in the last iteration
    """

    collection: DataCollection
    mean_shape: NDArray[np.floating]
    centroid_sizes: NDArray[np.floating]
    state: GPAState
    iterations: int
    distance_moved: float

    @property
    def converged(self) -> bool:
        return self.state is GPAState.CONVERGED


def center(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    """Center a shape by subtracting the centroid.

    Args:
        shape: Point coordinates, shape (n_points, 3)

    Returns:
        Centered shape with centroid at origin
    """
    return shape - shape.mean(axis=0)


def centroid_size(shape: NDArray[np.floating]) -> float:
    """Compute the centroid size of a shape.

    Centroid size is the square root of the sum of squared distances
    from each point to the centroid.

    Args:
        shape: Point coordinates, shape (n_points, 3)

    Returns:
        Centroid size (scalar)
    """
    return float(np.linalg.norm(center(shape)))


def procrustes_distance(
    collection: DataCollection,
    reference: NDArray[np.floating] | None = None,
) -> NDArray[np.floating]:
    """Mean point-to-point distance from each item's shape to a reference shape.

    Args:
        collection: Data collection
        reference: Reference shape, shape (n_points, 3). Defaults to the
            collection's reference points.

    Returns:
        Array of distances, shape (n_items,)
    """
    if reference is None:
        reference = collection.reference.points
    warped = collection.warped_points()
    return np.linalg.norm(warped - reference, axis=2).mean(axis=1)


def gpa_step(
    collection: DataCollection,
    reference: NDArray[np.floating],
    scale: bool = False,
) -> tuple[DataCollection, NDArray[np.floating], float]:
    """Perform one GPA iteration.

    Args:
        collection: Collection whose shapes are aligned
        reference: Working reference shape, shape (n_points, 3)
        scale: If True, also remove size differences

    Returns:
        Tuple of (aligned collection, new mean shape, mean point displacement
        between the old and new reference)
    """
    rotation_center = reference.mean(axis=0)
    items = []
    for item in collection:
        transform = rigid_landmark_registration(
            item.transformation.warped_points(),
            reference,
            center=rotation_center,
            scale=scale,
        )
        items.append(DataItem(item.id, item.transformation.transform(transform)))

    aligned = DataCollection(collection.reference, items)
    new_mean = aligned.warped_points().mean(axis=0)
    if scale:
        new_mean = _match_size(new_mean, reference)

    moved = float(np.linalg.norm(new_mean - reference, axis=1).mean())
    return aligned, new_mean, moved


def generalized_procrustes(
    collection: DataCollection,
    scale: bool = False,
    max_iterations: int = 5,
    tolerance: float = 1e-5,
) -> GPAResult:
    """Perform Generalized Procrustes Analysis on a data collection.

    The algorithm iteratively:
    1. Aligns every warped shape to the working reference (initially the
       collection's reference)
    2. Recomputes the mean shape of the aligned shapes
    3. Uses the mean as the new working reference
    4. Stops once the mean moves less than ``tolerance``

    Args:
        collection: Collection to align. It is not modified.
        scale: If True, also remove size differences (similarity alignment).
            The mean is kept at the reference's centroid size.
        max_iterations: Maximum number of alignment iterations
        tolerance: Convergence threshold on the mean point displacement of
            the mean shape between two iterations

    Returns:
        GPAResult holding the aligned collection. If the iteration limit is
        reached first, the last alignment is returned with state
        ``ITERATION_LIMIT_REACHED``.

    Raises:
        InsufficientDataError: If the collection is empty
    """
    if collection.size == 0:
        raise InsufficientDataError("GPA needs at least one data item")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be positive, got {max_iterations}")

    centroid_sizes = np.array(
        [centroid_size(shape) for shape in collection.warped_points()]
    )

    state = GPAState.ALIGNING
    working = collection.reference.points
    current = collection
    moved = np.inf
    iterations = 0

    while state is GPAState.ALIGNING:
        current, working, moved = gpa_step(current, working, scale=scale)
        iterations += 1
        log.debug("GPA iteration %d: mean moved %g", iterations, moved)

        if moved < tolerance:
            state = GPAState.CONVERGED
        elif iterations >= max_iterations:
            state = GPAState.ITERATION_LIMIT_REACHED
            log.warning(
                "GPA did not converge after %d iterations (mean moved %g, tolerance %g)",
                iterations,
                moved,
                tolerance,
            )

    reference = collection.reference.with_points(working)
    items = [
        DataItem(f"gpa -> {item.id}", item.transformation.rebase(reference))
        for item in current
    ]

    return GPAResult(
        collection=DataCollection(reference, items),
        mean_shape=working,
        centroid_sizes=centroid_sizes,
        state=state,
        iterations=iterations,
        distance_moved=moved,
    )


def _match_size(
    shape: NDArray[np.floating],
    target: NDArray[np.floating],
) -> NDArray[np.floating]:
    """Rescale a shape about its centroid to the centroid size of ``target``."""
    size = centroid_size(shape)
    if size == 0:
        return shape
    centroid = shape.mean(axis=0)
    return centroid + (shape - centroid) * (centroid_size(target) / size)

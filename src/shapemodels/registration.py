"""
Rigid point-to-point registration.

Least-squares alignment of corresponding point sets, following Umeyama (1991)
"Least-squares estimation of transformation parameters between two point
patterns".
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np
import scipy.linalg as sp

from shapemodels.errors import DomainMismatchError
from shapemodels.mesh import RigidTransform, TriangleMesh

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

log = logging.getLogger(__name__)


def rigid_landmark_registration(
    source: ArrayLike,
    target: ArrayLike,
    center: ArrayLike | None = None,
    scale: bool = False,
) -> RigidTransform:
    """Find the rigid transform mapping source points onto target points.

    Uses Singular Value Decomposition (SVD) of the cross-covariance of the
    centered point sets, with a sign correction so the result is a proper
    rotation and never a reflection.

    Args:
        source: Points to move, shape (n_points, 3)
        target: Corresponding fixed points, shape (n_points, 3)
        center: Rotation center of the returned transform. Defaults to the origin.
        scale: If True, also estimate a uniform scale factor

    Returns:
        Transform minimizing the sum of squared distances between
        ``transform(source)`` and ``target``

    Raises:
        ValueError: If the point sets differ in shape or hold fewer than 3 points
    """
    source = np.asarray(source, dtype=float)
    target = np.asarray(target, dtype=float)
    if source.shape != target.shape:
        raise ValueError(
            f"Point sets must correspond: {source.shape} vs {target.shape}"
        )
    if source.ndim != 2 or source.shape[1] != 3 or source.shape[0] < 3:
        raise ValueError(f"Need at least 3 point pairs in 3D, got {source.shape}")

    source_mean = source.mean(axis=0)
    target_mean = target.mean(axis=0)
    source_centered = source - source_mean
    target_centered = target - target_mean

    u, s, vt = sp.svd(np.dot(target_centered.T, source_centered))
    d = np.sign(np.linalg.det(np.dot(u, vt)))
    correction = np.diag([1.0, 1.0, d])
    rotation = np.dot(u, np.dot(correction, vt))

    factor = 1.0
    if scale:
        variance = np.sum(source_centered**2)
        if variance > 0:
            factor = float(np.sum(s * np.diag(correction)) / variance)

    # p -> factor * R p + t, re-expressed around the requested center
    translation = target_mean - factor * np.dot(rotation, source_mean)
    if center is None:
        center = np.zeros(3)
    center = np.asarray(center, dtype=float)
    translation = factor * np.dot(rotation, center) + translation - center

    return RigidTransform(
        rotation=rotation, translation=translation, center=center, scale=factor
    )


def align_meshes(
    reference: TriangleMesh,
    meshes: Sequence[TriangleMesh],
    scale: bool = False,
) -> list[TriangleMesh]:
    """Rigidly align meshes to a reference through vertex correspondence.

    Args:
        reference: Mesh to align to
        meshes: Meshes in correspondence with the reference
        scale: If True, also remove size differences

    Returns:
        Aligned copies of the meshes, in input order

    Raises:
        DomainMismatchError: If a mesh's point count differs from the reference
    """
    center = reference.centroid()
    aligned = []
    for i, mesh in enumerate(meshes):
        if mesh.n_points != reference.n_points:
            raise DomainMismatchError(
                f"Mesh {i} has {mesh.n_points} points, "
                f"reference has {reference.n_points}"
            )
        transform = rigid_landmark_registration(
            mesh.points, reference.points, center=center, scale=scale
        )
        aligned.append(mesh.transform(transform))
    log.debug("Aligned %d meshes to reference", len(aligned))
    return aligned

"""
Triangle meshes and rigid transforms.

A ``TriangleMesh`` is the reference domain every deformation field in a
collection is defined over. Meshes are immutable: ``transform`` returns a new
mesh that shares the connectivity array of the original.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, TypeVar

import numpy as np
import trimesh

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

T = TypeVar("T", bound="Transformable")


class Transformable(Protocol):
    """Anything that can be moved by a rigid transform."""

    def transform(self: T, transform: RigidTransform) -> T:
        ...


@dataclass(frozen=True, eq=False)
class RigidTransform:
    """Similarity transform ``p -> scale * R (p - center) + center + translation``.

    Attributes:
        rotation: Rotation matrix, shape (3, 3)
        translation: Translation vector, shape (3,)
        center: Rotation center, shape (3,)
        scale: Uniform scale factor (1.0 for a purely rigid transform)
    """

    rotation: NDArray[np.floating]
    translation: NDArray[np.floating]
    center: NDArray[np.floating] = field(default_factory=lambda: np.zeros(3))
    scale: float = 1.0

    @classmethod
    def identity(cls) -> RigidTransform:
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_translation(cls, vector: ArrayLike) -> RigidTransform:
        return cls(np.eye(3), np.asarray(vector, dtype=float))

    def __call__(self, points: ArrayLike) -> NDArray[np.floating]:
        points = np.asarray(points, dtype=float)
        moved = self.scale * np.dot(points - self.center, self.rotation.T)
        return moved + self.center + self.translation

    @property
    def offset(self) -> NDArray[np.floating]:
        """Image of the origin."""
        return self(np.zeros(3))

    def compose(self, other: RigidTransform) -> RigidTransform:
        """Return the transform applying ``other`` first, then ``self``."""
        linear = self.scale * self.rotation
        offset = np.dot(linear, other.offset) + self.offset
        return RigidTransform(
            rotation=np.dot(self.rotation, other.rotation),
            translation=offset,
            scale=self.scale * other.scale,
        )

    def inverse(self) -> RigidTransform:
        rotation = self.rotation.T
        return RigidTransform(
            rotation=rotation,
            translation=-np.dot(rotation, self.offset) / self.scale,
            scale=1.0 / self.scale,
        )


@dataclass(frozen=True, eq=False)
class TriangleMesh:
    """Triangulated surface.

    Attributes:
        points: Vertex coordinates, shape (n_points, 3)
        triangles: Vertex indices of each triangle, shape (n_triangles, 3)
    """

    points: NDArray[np.floating]
    triangles: NDArray[np.integer]

    def __post_init__(self) -> None:
        points = np.asarray(self.points, dtype=float)
        triangles = np.asarray(self.triangles, dtype=int)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Mesh points must have shape (n, 3), got {points.shape}")
        if triangles.size == 0:
            triangles = triangles.reshape(0, 3)
        elif triangles.ndim != 2 or triangles.shape[1] != 3:
            raise ValueError(
                f"Mesh triangles must have shape (m, 3), got {triangles.shape}"
            )
        # Meshes derived from this one keep the same connectivity array
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "triangles", triangles)

    @property
    def n_points(self) -> int:
        return self.points.shape[0]

    def transform(self, transform: RigidTransform) -> TriangleMesh:
        return TriangleMesh(transform(self.points), self.triangles)

    def with_points(self, points: ArrayLike) -> TriangleMesh:
        """Return a mesh with the same connectivity and new vertex positions."""
        points = np.asarray(points, dtype=float)
        if points.shape != self.points.shape:
            raise ValueError(
                f"Expected points of shape {self.points.shape}, got {points.shape}"
            )
        return TriangleMesh(points, self.triangles)

    def same_topology(self, other: TriangleMesh) -> bool:
        """True if both meshes have the same point count and connectivity."""
        if self is other or self.triangles is other.triangles:
            return self.n_points == other.n_points
        return self.n_points == other.n_points and np.array_equal(
            self.triangles, other.triangles
        )

    def centroid(self) -> NDArray[np.floating]:
        return self.points.mean(axis=0)

    def triangle_areas(self) -> NDArray[np.floating]:
        a, b, c = (self.points[self.triangles[:, i]] for i in range(3))
        return 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1)

    def area_weights(self) -> NDArray[np.floating]:
        """Per-vertex area: one third of the area of every adjacent triangle."""
        areas = self.triangle_areas() / 3.0
        weights = np.zeros(self.n_points)
        for i in range(3):
            np.add.at(weights, self.triangles[:, i], areas)
        return weights


def sample_surface_points(
    mesh: TriangleMesh,
    n_points: int,
    rng: np.random.Generator | int | None = None,
) -> NDArray[np.floating]:
    """Draw points uniformly from the surface of a mesh.

    Triangles are chosen with probability proportional to their area and a
    point is drawn uniformly inside each chosen triangle.

    Args:
        mesh: Surface to sample from
        n_points: Number of points to draw
        rng: Random generator or seed; the only source of randomness used

    Returns:
        Sampled points, shape (n_points, 3)
    """
    if n_points < 1:
        raise ValueError(f"Number of sample points must be positive, got {n_points}")

    if mesh.triangle_areas().sum() <= 0:
        raise ValueError("Cannot sample from a mesh with zero surface area")

    surface = trimesh.Trimesh(vertices=mesh.points, faces=mesh.triangles, process=False)
    points, _ = trimesh.sample.sample_surface(
        surface, n_points, seed=np.random.default_rng(rng)
    )
    return np.asarray(points, dtype=float)

"""
Data collections of deformation fields.

A ``DataCollection`` pairs a reference mesh with an ordered sequence of named
deformation fields, each describing one subject's shape relative to the
reference. Collections are the input to GPA, PCA model building and model
evaluation, and can be split into cross-validation folds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator, Sequence

import numpy as np

from shapemodels.errors import DomainMismatchError
from shapemodels.io import mesh_files, read_mesh
from shapemodels.mesh import RigidTransform, TriangleMesh

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class DeformationField:
    """Per-point displacement field over a reference mesh.

    Attributes:
        reference: Mesh whose points the field is defined on (shared, never copied)
        vectors: Displacement of each reference point, shape (n_points, 3)
    """

    reference: TriangleMesh
    vectors: NDArray[np.floating]

    def __post_init__(self) -> None:
        vectors = np.asarray(self.vectors, dtype=float)
        if vectors.shape != self.reference.points.shape:
            raise DomainMismatchError(
                f"Field of shape {vectors.shape} does not match reference "
                f"points of shape {self.reference.points.shape}"
            )
        object.__setattr__(self, "vectors", vectors)

    @classmethod
    def from_meshes(cls, reference: TriangleMesh, target: TriangleMesh) -> DeformationField:
        """Field mapping each reference vertex to the same vertex of ``target``."""
        if target.n_points != reference.n_points:
            raise DomainMismatchError(
                f"Target has {target.n_points} points, "
                f"reference has {reference.n_points}"
            )
        return cls(reference, target.points - reference.points)

    @classmethod
    def from_translation(cls, reference: TriangleMesh, vector: ArrayLike) -> DeformationField:
        vector = np.asarray(vector, dtype=float)
        return cls(reference, np.tile(vector, (reference.n_points, 1)))

    @classmethod
    def from_flat(cls, reference: TriangleMesh, flat: ArrayLike) -> DeformationField:
        """Build a field from a point-major vector of length 3 * n_points."""
        return cls(reference, np.asarray(flat, dtype=float).reshape(-1, 3))

    def flatten(self) -> NDArray[np.floating]:
        return self.vectors.reshape(-1)

    def warped_points(self) -> NDArray[np.floating]:
        return self.reference.points + self.vectors

    def warp(self) -> TriangleMesh:
        """The subject's surface: the reference moved along the field."""
        return self.reference.with_points(self.warped_points())

    def transform(self, transform: RigidTransform) -> DeformationField:
        """Rigidly move the warped shape, keeping the same reference."""
        moved = transform(self.warped_points())
        return DeformationField(self.reference, moved - self.reference.points)

    def rebase(self, reference: TriangleMesh) -> DeformationField:
        """Express the same warped shape relative to another reference."""
        if not reference.same_topology(self.reference):
            raise DomainMismatchError(
                "Cannot rebase a field onto a reference with a different topology"
            )
        return DeformationField(reference, self.warped_points() - reference.points)


@dataclass(frozen=True, eq=False)
class DataItem:
    """A named deformation field, typically one subject."""

    id: str
    transformation: DeformationField


@dataclass(frozen=True)
class ItemFailure:
    """An item that could not be added to a collection, and why."""

    id: str
    error: Exception


@dataclass(frozen=True, eq=False)
class Fold:
    """One (training, testing) split of a data collection."""

    training_data: DataCollection
    testing_data: DataCollection


class DataCollection:
    """A reference mesh and an ordered sequence of data items over it.

    Every item's field must be defined over a mesh with the same point
    count and connectivity as ``reference``.

    Args:
        reference: Reference mesh, shared with collections derived from this one
        items: Data items

    Raises:
        DomainMismatchError: If any item's field does not match the reference
    """

    def __init__(self, reference: TriangleMesh, items: Sequence[DataItem] = ()):
        self._reference = reference
        self._items = tuple(items)
        for item in self._items:
            domain = item.transformation.reference
            if not reference.same_topology(domain):
                raise DomainMismatchError(
                    f"Item {item.id!r} is defined over {domain.n_points} points, "
                    f"reference has {reference.n_points}"
                )

    def __repr__(self) -> str:
        return (
            f"DataCollection(n_points={self._reference.n_points}, "
            f"size={self.size})"
        )

    @property
    def reference(self) -> TriangleMesh:
        return self._reference

    @property
    def items(self) -> tuple[DataItem, ...]:
        return self._items

    @property
    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[DataItem]:
        return iter(self._items)

    @classmethod
    def from_mesh_sequence(
        cls,
        reference: TriangleMesh,
        meshes: Sequence[TriangleMesh],
        ids: Sequence[str] | None = None,
        correspondence: Callable[[TriangleMesh, TriangleMesh], DeformationField]
        | None = None,
    ) -> tuple[DataCollection | None, list[ItemFailure]]:
        """Build a collection from meshes in correspondence with a reference.

        Meshes that fail (for instance because their point count differs from
        the reference) are reported instead of aborting the batch.

        Args:
            reference: Reference mesh
            meshes: Meshes to turn into data items
            ids: Item ids, one per mesh. Defaults to ``"mesh-<index>"``.
            correspondence: Callable returning the deformation field from the
                reference to a mesh. Defaults to vertex-to-vertex correspondence.

        Returns:
            Tuple of (collection, failures). The collection is None when no
            mesh could be converted.
        """
        if ids is None:
            ids = [f"mesh-{i}" for i in range(len(meshes))]
        if len(ids) != len(meshes):
            raise ValueError(f"Got {len(ids)} ids for {len(meshes)} meshes")
        loaders = [(item_id, partial(_identity, mesh)) for item_id, mesh in zip(ids, meshes)]
        return cls._from_loaders(reference, loaders, correspondence)

    @classmethod
    def from_mesh_directory(
        cls,
        reference: TriangleMesh,
        source: str | Path | list[str] | list[Path],
        correspondence: Callable[[TriangleMesh, TriangleMesh], DeformationField]
        | None = None,
    ) -> tuple[DataCollection | None, list[ItemFailure]]:
        """Build a collection from mesh files, using file names as item ids.

        Each file is read on its own, so an unreadable file is reported as a
        failure like any other item.

        Args:
            reference: Reference mesh
            source: Directory, glob pattern or list of mesh files
            correspondence: As for ``from_mesh_sequence``

        Returns:
            Tuple of (collection, failures), as for ``from_mesh_sequence``

        Raises:
            ValueError: If no mesh files are found
        """
        files = mesh_files(source)
        if not files:
            raise ValueError(f"No mesh files found: {source}")
        loaders = [(f.name, partial(read_mesh, f)) for f in files]
        return cls._from_loaders(reference, loaders, correspondence)

    @classmethod
    def _from_loaders(
        cls,
        reference: TriangleMesh,
        loaders: Sequence[tuple[str, Callable[[], TriangleMesh]]],
        correspondence: Callable[[TriangleMesh, TriangleMesh], DeformationField]
        | None,
    ) -> tuple[DataCollection | None, list[ItemFailure]]:
        if correspondence is None:
            correspondence = DeformationField.from_meshes

        items = []
        failures = []
        for item_id, load in loaders:
            try:
                field = correspondence(reference, load())
                if not reference.same_topology(field.reference):
                    raise DomainMismatchError(
                        f"Correspondence for {item_id!r} is not defined over the reference"
                    )
            except (ValueError, OSError) as e:
                log.warning("Skipping %s: %s", item_id, e)
                failures.append(ItemFailure(item_id, e))
                continue
            items.append(DataItem(item_id, field))

        if not items:
            return None, failures
        return cls(reference, items), failures

    def subset(self, indices: Sequence[int]) -> DataCollection:
        """Collection of the items at ``indices`` sharing this reference."""
        return DataCollection(self._reference, [self._items[i] for i in indices])

    def create_cross_validation_folds(
        self,
        n_folds: int,
        rng: np.random.Generator | int | None = None,
    ) -> list[Fold]:
        """Partition the items into balanced folds.

        Items are split into ``n_folds`` contiguous groups whose sizes differ
        by at most one. Fold ``i`` tests on group ``i`` and trains on all
        other groups.

        Args:
            n_folds: Number of folds, between 1 and the collection size
            rng: If given, the item order is permuted with this generator
                (or seed) before grouping

        Returns:
            List of exactly ``n_folds`` folds
        """
        n = self.size
        if not 1 <= n_folds <= n:
            raise ValueError(
                f"Number of folds must be between 1 and {n}, got {n_folds}"
            )

        order = np.arange(n)
        if rng is not None:
            order = np.random.default_rng(rng).permutation(n)

        groups = np.array_split(order, n_folds)
        folds = []
        for i, testing in enumerate(groups):
            training = np.concatenate(
                [g for j, g in enumerate(groups) if j != i] or [np.array([], dtype=int)]
            )
            folds.append(
                Fold(
                    training_data=self.subset(training.tolist()),
                    testing_data=self.subset(testing.tolist()),
                )
            )
        return folds

    def create_leave_one_out_folds(self) -> list[Fold]:
        """One fold per item, testing on that item alone."""
        return self.create_cross_validation_folds(self.size)

    def field_matrix(self) -> NDArray[np.floating]:
        """Flattened fields of all items, shape (n_items, 3 * n_points)."""
        if not self._items:
            return np.zeros((0, 3 * self._reference.n_points))
        return np.stack([item.transformation.flatten() for item in self._items])

    def warped_points(self) -> NDArray[np.floating]:
        """Warped shapes of all items, shape (n_items, n_points, 3)."""
        return self.field_matrix().reshape(self.size, -1, 3) + self._reference.points

    def mean_field(self) -> DeformationField:
        if not self._items:
            raise ValueError("Cannot compute the mean of an empty collection")
        return DeformationField.from_flat(
            self._reference, self.field_matrix().mean(axis=0)
        )

    def mean_surface(self) -> TriangleMesh:
        """Point-wise mean of all warped shapes."""
        return self.mean_field().warp()

    def transform(self, transform: RigidTransform) -> DataCollection:
        """Apply a rigid transform to every item's warped shape."""
        return DataCollection(
            self._reference,
            [
                DataItem(item.id, item.transformation.transform(transform))
                for item in self._items
            ],
        )


def _identity(mesh: TriangleMesh) -> TriangleMesh:
    return mesh

"""Shared fixtures: triangulated spheres and smoothly deformed copies of them."""

import numpy as np
import pytest

from shapemodels import (
    DataCollection,
    DataItem,
    DeformationField,
    GaussianKernel,
    RigidTransform,
    TriangleMesh,
    align_meshes,
    approximate_gp,
    augment_model,
    pca,
)

# Radial displacement patterns of degree 2 and 3 on the unit sphere
MODES = [
    lambda p: p[:, 0] * p[:, 1],
    lambda p: p[:, 0] * p[:, 2],
    lambda p: p[:, 1] * p[:, 2],
    lambda p: p[:, 0] ** 2 - p[:, 1] ** 2,
    lambda p: 3 * p[:, 2] ** 2 - 1,
    lambda p: p[:, 0] * p[:, 1] * p[:, 2],
    lambda p: p[:, 2] * (p[:, 0] ** 2 - p[:, 1] ** 2),
    lambda p: p[:, 0] * (p[:, 0] ** 2 - 3 * p[:, 1] ** 2),
]


def make_sphere(n_rings=10, n_segments=16, radius=1.0):
    """UV sphere with 2 + (n_rings - 1) * n_segments points."""
    theta = np.linspace(0, np.pi, n_rings + 1)[1:-1]
    phi = np.linspace(0, 2 * np.pi, n_segments, endpoint=False)
    t, p = np.meshgrid(theta, phi, indexing="ij")
    ring_points = np.stack(
        [np.sin(t) * np.cos(p), np.sin(t) * np.sin(p), np.cos(t)], axis=-1
    ).reshape(-1, 3)
    points = np.vstack([[0.0, 0.0, 1.0], ring_points, [0.0, 0.0, -1.0]]) * radius
    south = len(points) - 1

    def idx(ring, segment):
        return 1 + ring * n_segments + segment % n_segments

    triangles = []
    for s in range(n_segments):
        triangles.append([0, idx(0, s), idx(0, s + 1)])
        for r in range(n_rings - 2):
            triangles.append([idx(r, s), idx(r + 1, s), idx(r + 1, s + 1)])
            triangles.append([idx(r, s), idx(r + 1, s + 1), idx(r, s + 1)])
        triangles.append([south, idx(n_rings - 2, s + 1), idx(n_rings - 2, s)])

    return TriangleMesh(points, np.array(triangles))


def deformed_sphere(reference, coefficients):
    """Displace each point of a sphere along its normal by a mix of MODES."""
    normals = reference.points / np.linalg.norm(reference.points, axis=1, keepdims=True)
    radial = sum(c * mode(normals) for c, mode in zip(coefficients, MODES))
    return reference.with_points(reference.points + radial[:, None] * normals)


def random_rotation(rng):
    q, r = np.linalg.qr(rng.standard_normal((3, 3)))
    q = q * np.sign(np.diag(r))
    if np.linalg.det(q) < 0:
        q[:, 0] = -q[:, 0]
    return q


@pytest.fixture
def sphere():
    return make_sphere()


@pytest.fixture
def translation_collection(sphere):
    """10 copies of the sphere translated by (i, 0, 0)."""
    items = [
        DataItem(f"transformation-{i}", DeformationField.from_translation(sphere, [i, 0.0, 0.0]))
        for i in range(10)
    ]
    return DataCollection(sphere, items)


@pytest.fixture
def non_aligned_meshes(sphere):
    rng = np.random.default_rng(42)
    meshes = []
    for _ in range(9):
        mesh = deformed_sphere(sphere, rng.normal(0.0, 0.1, len(MODES)))
        transform = RigidTransform(random_rotation(rng), rng.normal(0.0, 0.5, 3))
        meshes.append(mesh.transform(transform))
    return meshes


@pytest.fixture
def aligned_meshes(sphere, non_aligned_meshes):
    return align_meshes(sphere, non_aligned_meshes)


@pytest.fixture
def training_collection(sphere, aligned_meshes):
    collection, failures = DataCollection.from_mesh_sequence(sphere, aligned_meshes[3:])
    assert not failures
    return collection


@pytest.fixture
def pca_model(training_collection):
    return pca(training_collection)


@pytest.fixture
def testing_collection(pca_model, aligned_meshes):
    collection, failures = DataCollection.from_mesh_sequence(
        pca_model.reference, aligned_meshes[:3]
    )
    assert not failures
    return collection


@pytest.fixture
def gp_bias(pca_model):
    kernel = GaussianKernel(1.0) * 0.01
    return approximate_gp(
        kernel,
        pca_model.reference,
        n_samples=400,
        rank=pca_model.rank + 100,
        rng=np.random.default_rng(42),
    )


@pytest.fixture
def augmented_model(pca_model, gp_bias):
    return augment_model(pca_model, gp_bias)

"""Tests for mesh module."""

import numpy as np
import pytest

from shapemodels import RigidTransform, TriangleMesh, sample_surface_points


def rotation_z(theta):
    return np.array(
        [[np.cos(theta), -np.sin(theta), 0], [np.sin(theta), np.cos(theta), 0], [0, 0, 1]]
    )


class TestRigidTransform:
    def test_identity_leaves_points_unchanged(self):
        points = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        np.testing.assert_array_equal(RigidTransform.identity()(points), points)

    def test_translation(self):
        transform = RigidTransform.from_translation([1.0, 0.0, -1.0])
        np.testing.assert_array_almost_equal(
            transform(np.array([[0.0, 0.0, 0.0]])), [[1.0, 0.0, -1.0]]
        )

    def test_rotation_about_center_keeps_center_fixed(self):
        center = np.array([1.0, 1.0, 0.0])
        transform = RigidTransform(rotation_z(np.pi / 2), np.zeros(3), center=center)

        np.testing.assert_array_almost_equal(transform(center), center)
        np.testing.assert_array_almost_equal(transform([2.0, 1.0, 0.0]), [1.0, 2.0, 0.0])

    def test_compose_applies_other_first(self):
        rotate = RigidTransform(rotation_z(np.pi / 2), np.zeros(3))
        shift = RigidTransform.from_translation([1.0, 0.0, 0.0])
        points = np.array([[1.0, 0.0, 0.0], [0.0, 2.0, 1.0]])

        composed = rotate.compose(shift)

        np.testing.assert_array_almost_equal(composed(points), rotate(shift(points)))

    def test_inverse(self):
        transform = RigidTransform(
            rotation_z(0.3), np.array([1.0, -2.0, 0.5]), center=np.array([0.0, 1.0, 0.0]), scale=2.0
        )
        points = np.array([[1.0, 2.0, 3.0], [-1.0, 0.0, 4.0]])

        np.testing.assert_array_almost_equal(transform.inverse()(transform(points)), points)


class TestTriangleMesh:
    def test_rejects_bad_point_shape(self):
        with pytest.raises(ValueError):
            TriangleMesh(np.zeros((4, 2)), np.array([[0, 1, 2]]))

    def test_transform_shares_triangles(self, sphere):
        moved = sphere.transform(RigidTransform.from_translation([1.0, 0.0, 0.0]))

        assert moved.triangles is sphere.triangles
        np.testing.assert_array_almost_equal(moved.points - sphere.points, np.tile([1.0, 0.0, 0.0], (sphere.n_points, 1)))

    def test_transform_does_not_modify_input(self, sphere):
        original = sphere.points.copy()
        sphere.transform(RigidTransform.from_translation([1.0, 0.0, 0.0]))

        np.testing.assert_array_equal(sphere.points, original)

    def test_same_topology(self, sphere):
        from conftest import make_sphere

        assert sphere.same_topology(sphere.with_points(sphere.points * 2))
        assert sphere.same_topology(make_sphere())
        assert not sphere.same_topology(make_sphere(n_rings=6))

    def test_area_weights_sum_to_surface_area(self, sphere):
        np.testing.assert_almost_equal(
            sphere.area_weights().sum(), sphere.triangle_areas().sum()
        )

    def test_triangle_area(self):
        mesh = TriangleMesh(
            np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]), np.array([[0, 1, 2]])
        )
        np.testing.assert_array_almost_equal(mesh.triangle_areas(), [0.5])
        np.testing.assert_array_almost_equal(mesh.area_weights(), [1 / 6, 1 / 6, 1 / 6])


class TestSampleSurfacePoints:
    def test_sample_shape(self, sphere):
        points = sample_surface_points(sphere, 50, rng=0)

        assert points.shape == (50, 3)

    def test_samples_lie_on_inscribed_surface(self, sphere):
        points = sample_surface_points(sphere, 200, rng=0)
        radii = np.linalg.norm(points, axis=1)

        assert np.all(radii <= 1.0 + 1e-12)
        assert np.all(radii > 0.8)

    def test_same_seed_same_samples(self, sphere):
        first = sample_surface_points(sphere, 20, rng=np.random.default_rng(7))
        second = sample_surface_points(sphere, 20, rng=np.random.default_rng(7))

        np.testing.assert_array_equal(first, second)

    def test_planar_samples_stay_in_triangle(self):
        mesh = TriangleMesh(
            np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]), np.array([[0, 1, 2]])
        )
        points = sample_surface_points(mesh, 100, rng=1)

        assert np.all(points[:, 0] >= 0)
        assert np.all(points[:, 1] >= 0)
        assert np.all(points[:, 0] + points[:, 1] <= 1.0 + 1e-12)
        np.testing.assert_array_equal(points[:, 2], 0.0)

    def test_triangles_are_chosen_by_area(self):
        # Two disjoint triangles in the z=0 and z=1 planes, areas 0.5 and 4.5
        points = np.array(
            [
                [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
                [0.0, 0.0, 1.0], [3.0, 0.0, 1.0], [0.0, 3.0, 1.0],
            ]
        )
        mesh = TriangleMesh(points, np.array([[0, 1, 2], [3, 4, 5]]))

        samples = sample_surface_points(mesh, 4000, rng=3)

        assert abs(np.mean(samples[:, 2] == 1.0) - 0.9) < 0.03

    def test_rejects_mesh_without_area(self):
        mesh = TriangleMesh(np.zeros((3, 3)), np.array([[0, 1, 2]]))

        with pytest.raises(ValueError):
            sample_surface_points(mesh, 5)

    def test_rejects_non_positive_count(self, sphere):
        with pytest.raises(ValueError):
            sample_surface_points(sphere, 0)

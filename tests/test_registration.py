"""Tests for registration module."""

import numpy as np
import pytest

from conftest import random_rotation
from shapemodels import DomainMismatchError, RigidTransform, align_meshes, rigid_landmark_registration


class TestRigidLandmarkRegistration:
    def test_recovers_rigid_motion(self):
        rng = np.random.default_rng(0)
        source = rng.normal(size=(10, 3))
        true = RigidTransform(random_rotation(rng), np.array([1.0, -2.0, 3.0]))
        target = true(source)

        transform = rigid_landmark_registration(source, target)

        np.testing.assert_array_almost_equal(transform(source), target)
        np.testing.assert_almost_equal(transform.scale, 1.0)

    def test_result_is_proper_rotation(self):
        rng = np.random.default_rng(1)
        source = rng.normal(size=(6, 3))
        # Mirrored target: the best proper rotation must not reflect
        target = source * np.array([-1.0, 1.0, 1.0])

        transform = rigid_landmark_registration(source, target)

        np.testing.assert_almost_equal(np.linalg.det(transform.rotation), 1.0)

    def test_recovers_scale(self):
        rng = np.random.default_rng(2)
        source = rng.normal(size=(8, 3))
        target = 2.5 * source + 1.0

        transform = rigid_landmark_registration(source, target, scale=True)

        np.testing.assert_almost_equal(transform.scale, 2.5)
        np.testing.assert_array_almost_equal(transform(source), target)

    def test_center_does_not_change_mapping(self):
        rng = np.random.default_rng(3)
        source = rng.normal(size=(10, 3))
        target = RigidTransform(random_rotation(rng), np.array([0.5, 0.0, 0.0]))(source)

        at_origin = rigid_landmark_registration(source, target)
        centered = rigid_landmark_registration(source, target, center=[3.0, 2.0, 1.0])

        np.testing.assert_array_equal(centered.center, [3.0, 2.0, 1.0])
        np.testing.assert_array_almost_equal(centered(source), at_origin(source))

    def test_rejects_mismatched_point_sets(self):
        with pytest.raises(ValueError):
            rigid_landmark_registration(np.zeros((4, 3)), np.zeros((5, 3)))

    def test_rejects_too_few_points(self):
        with pytest.raises(ValueError):
            rigid_landmark_registration(np.zeros((2, 3)), np.zeros((2, 3)))


class TestAlignMeshes:
    def test_undoes_rigid_motion(self, sphere):
        rng = np.random.default_rng(4)
        moved = sphere.transform(RigidTransform(random_rotation(rng), np.array([5.0, 0.0, 1.0])))

        (aligned,) = align_meshes(sphere, [moved])

        np.testing.assert_array_almost_equal(aligned.points, sphere.points)

    def test_rejects_point_count_mismatch(self, sphere):
        from conftest import make_sphere

        with pytest.raises(DomainMismatchError):
            align_meshes(sphere, [make_sphere(n_rings=6)])

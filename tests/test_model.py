"""Tests for low-rank models and model augmentation."""

import numpy as np
import pytest

from conftest import make_sphere
from shapemodels import (
    DeformationField,
    DomainMismatchError,
    LowRankModel,
    augment_model,
    pca,
)


class TestLowRankModel:
    def test_rejects_mismatched_mean(self, sphere):
        with pytest.raises(DomainMismatchError):
            LowRankModel(sphere, np.zeros(5), np.zeros((3 * sphere.n_points, 0)), np.zeros(0))

    def test_rejects_mismatched_variances(self, sphere):
        n_coords = 3 * sphere.n_points
        with pytest.raises(ValueError):
            LowRankModel(sphere, np.zeros(n_coords), np.zeros((n_coords, 2)), np.zeros(3))

    def test_clamps_negative_variances(self, sphere):
        n_coords = 3 * sphere.n_points
        basis = np.zeros((n_coords, 1))
        basis[0, 0] = 1.0

        model = LowRankModel(sphere, np.zeros(n_coords), basis, np.array([-1e-17]))

        np.testing.assert_array_equal(model.variances, [0.0])

    def test_instance_with_zero_coefficients_is_mean(self, pca_model):
        instance = pca_model.instance(np.zeros(pca_model.rank))

        np.testing.assert_array_almost_equal(instance.flatten(), pca_model.mean)

    def test_instance_rejects_wrong_coefficient_count(self, pca_model):
        with pytest.raises(ValueError):
            pca_model.instance(np.zeros(pca_model.rank + 1))

    def test_sample_is_reproducible(self, pca_model):
        first = pca_model.sample(np.random.default_rng(3))
        second = pca_model.sample(np.random.default_rng(3))

        np.testing.assert_array_equal(first.vectors, second.vectors)

    def test_coefficients_of_mean_are_zero(self, pca_model):
        np.testing.assert_array_almost_equal(
            pca_model.coefficients(pca_model.mean_field), np.zeros(pca_model.rank)
        )

    def test_coefficients_of_field_over_other_reference(self, pca_model):
        field = pca_model.reconstruct(np.ones(pca_model.rank))
        other = pca_model.reference.with_points(pca_model.reference.points + 1.0)

        coefficients = pca_model.coefficients(field.rebase(other))

        np.testing.assert_array_almost_equal(coefficients, np.ones(pca_model.rank))

    def test_coefficients_reject_other_topology(self, pca_model):
        other = make_sphere(n_rings=6)
        field = DeformationField.from_translation(other, [0.0, 0.0, 0.0])

        with pytest.raises(DomainMismatchError):
            pca_model.coefficients(field)

    def test_components(self, pca_model):
        components = pca_model.components()

        assert len(components) == pca_model.rank
        field, variance = components[0]
        assert field.reference is pca_model.reference
        assert variance == pca_model.variances[0]

    def test_variance_explained_sums_to_one(self, pca_model):
        np.testing.assert_almost_equal(pca_model.variance_explained.sum(), 1.0)


class TestAugmentModel:
    def test_keeps_mean_and_reference(self, pca_model, augmented_model):
        assert augmented_model.reference is pca_model.reference
        np.testing.assert_array_equal(augmented_model.mean, pca_model.mean)

    def test_basis_is_orthonormal(self, augmented_model):
        assert augmented_model.is_orthonormal()

    def test_rank_is_bounded_by_input_ranks(self, pca_model, gp_bias, augmented_model):
        assert pca_model.rank < augmented_model.rank <= pca_model.rank + gp_bias.rank
        assert np.all(np.diff(augmented_model.variances) <= 0)

    def test_total_variance_is_additive(self, pca_model, gp_bias, augmented_model):
        bias_model = gp_bias.discretize(pca_model.reference)

        np.testing.assert_almost_equal(
            augmented_model.variances.sum(),
            pca_model.variances.sum() + bias_model.variances.sum(),
        )

    def test_augmented_span_contains_model_span(self, pca_model, augmented_model):
        for field, _ in pca_model.components():
            deviation = DeformationField(
                pca_model.reference, field.vectors + pca_model.mean_field.vectors
            )
            projected = augmented_model.project(deviation)
            np.testing.assert_array_almost_equal(projected.vectors, deviation.vectors)

    def test_augment_with_low_rank_model(self, training_collection):
        model = pca(training_collection, n_components=2)
        other = pca(training_collection)
        bias = LowRankModel(other.reference, np.zeros_like(other.mean), other.basis, other.variances)

        augmented = augment_model(model, bias)

        assert augmented.rank == other.rank
        assert augmented.is_orthonormal()

    def test_rejects_bias_with_nonzero_mean(self, training_collection):
        model = pca(training_collection, n_components=2)

        with pytest.raises(ValueError, match="zero mean"):
            augment_model(model, pca(training_collection))

    def test_rejects_bias_over_other_topology(self, pca_model):
        other = make_sphere(n_rings=6)
        n_coords = 3 * other.n_points
        bias = LowRankModel(other, np.zeros(n_coords), np.zeros((n_coords, 0)), np.zeros(0))

        with pytest.raises(DomainMismatchError):
            augment_model(pca_model, bias)

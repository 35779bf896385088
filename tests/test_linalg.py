"""Tests for rotations and the Jacobi eigen decomposition."""

import numpy as np
import pytest

from kentmm.linalg import (align_vector_with_zaxis, align_zaxis_with_vector, eigen_decomposition,
                           frame_from_mean_and_major, generate_random_orthogonal_vectors,
                           orthogonal_transformation, orthogonal_transformation_angles)


class TestEigenDecomposition:

    @pytest.mark.parametrize("n", [2, 3, 5])
    def test_matches_numpy(self, rng, n):
        a = rng.normal(size=(n, n))
        m = a + a.T
        values, vectors = eigen_decomposition(m, max_iterations=500)
        expected_values, expected_vectors = np.linalg.eigh(m)
        np.testing.assert_allclose(values, expected_values, atol=1e-10)
        # eigenvectors agree up to sign
        overlap = np.abs(np.sum(vectors * expected_vectors, axis=0))
        np.testing.assert_allclose(overlap, 1.0, atol=1e-8)
        np.testing.assert_allclose(m @ vectors, vectors * values, atol=1e-9)

    def test_diagonal_matrix(self):
        values, vectors = eigen_decomposition(np.diag([3.0, 1.0, 2.0]))
        np.testing.assert_allclose(values, [1.0, 2.0, 3.0])
        np.testing.assert_allclose(np.abs(vectors), np.eye(3)[:, [1, 2, 0]])

    def test_rejects_non_symmetric(self):
        with pytest.raises(ValueError):
            eigen_decomposition(np.array([[1.0, 2.0], [0.0, 1.0]]))

    def test_rejects_non_square(self):
        with pytest.raises(ValueError):
            eigen_decomposition(np.ones((2, 3)))


class TestRotations:

    def test_orthogonal_transformation_is_rotation(self):
        r = orthogonal_transformation(0.3, 1.1, -2.0)
        np.testing.assert_allclose(r @ r.T, np.eye(3), atol=1e-12)
        assert np.linalg.det(r) == pytest.approx(1.0)

    def test_angles_round_trip(self, rng):
        mean, major, minor = generate_random_orthogonal_vectors(rng)
        psi, alpha, eta = orthogonal_transformation_angles(mean, major)
        r = orthogonal_transformation(psi, alpha, eta)
        np.testing.assert_allclose(r[:, 2], mean, atol=1e-10)
        np.testing.assert_allclose(r[:, 0], major, atol=1e-10)
        np.testing.assert_allclose(r[:, 1], minor, atol=1e-10)

    def test_align_zaxis(self, rng):
        y = rng.normal(size=3)
        r = align_zaxis_with_vector(y)
        np.testing.assert_allclose(r @ [0, 0, 1], y / np.linalg.norm(y), atol=1e-12)
        np.testing.assert_allclose(align_vector_with_zaxis(y) @ r, np.eye(3), atol=1e-12)

    def test_frame_is_right_handed(self, rng):
        frame = frame_from_mean_and_major(rng.normal(size=3), rng.normal(size=3))
        np.testing.assert_allclose(frame @ frame.T, np.eye(3), atol=1e-12)
        np.testing.assert_allclose(np.cross(frame[0], frame[1]), frame[2], atol=1e-12)

    def test_frame_rejects_parallel_axes(self):
        with pytest.raises(ValueError):
            frame_from_mean_and_major([0, 0, 1], [0, 0, 2])

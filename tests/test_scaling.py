"""Tests for operator and measurement scaling."""

import numpy as np
import pytest
import torch

from csrecon.reconstruction import (
    MatrixOperator,
    estimate_operator_norm_sq,
    is_near_orthonormal,
    scale_measurements,
    scale_operator,
)
from toy import orthonormal_sensing_matrix


class TestOrthonormalCheck:
    def test_orthonormal_rows(self):
        rng = np.random.default_rng(0)
        A = MatrixOperator(orthonormal_sensing_matrix(8, 32, rng=rng))
        b = torch.from_numpy(rng.standard_normal(8))
        assert is_near_orthonormal(A, b)

    def test_gaussian_rows(self):
        torch.manual_seed(0)
        A = MatrixOperator(torch.randn(8, 32, dtype=torch.float64))
        b = torch.randn(8, dtype=torch.float64)
        assert not is_near_orthonormal(A, b)


class TestOperatorNorm:
    def test_matches_largest_singular_value(self):
        rng = np.random.default_rng(1)
        M = rng.standard_normal((20, 40))
        expected = np.linalg.norm(M, 2) ** 2

        s = estimate_operator_norm_sq(MatrixOperator(M), 40)
        print(f"||A||^2: estimated={s:.6f}, exact={expected:.6f}")
        assert s == pytest.approx(expected, rel=2e-2)

    def test_complex_operator(self):
        rng = np.random.default_rng(2)
        M = rng.standard_normal((10, 30)) + 1j * rng.standard_normal((10, 30))
        expected = np.linalg.norm(M, 2) ** 2

        s = estimate_operator_norm_sq(MatrixOperator(M), 30, dtype=torch.complex128)
        assert s == pytest.approx(expected, rel=2e-2)

    def test_tiny_signal(self):
        """Signals too short for ARPACK use a dense Gram matrix."""
        M = np.array([[3.0, 0.0], [0.0, 1.0]])
        assert estimate_operator_norm_sq(MatrixOperator(M), 2) == pytest.approx(9.0)


class TestScaleOperator:
    def test_unit_norm_after_scaling(self):
        rng = np.random.default_rng(3)
        M = 5.0 * rng.standard_normal((10, 30))
        A = MatrixOperator(M)
        b = torch.from_numpy(rng.standard_normal(10))

        mu, A2, b2 = scale_operator(A, b, mu=256.0, n=30)
        root = np.linalg.norm(M, 2)

        assert mu == 256.0
        assert torch.allclose(b2, b / root, rtol=2e-2)
        assert estimate_operator_norm_sq(A2, 30) == pytest.approx(1.0, rel=2e-2)

    def test_consistent_mu(self):
        rng = np.random.default_rng(4)
        M = 3.0 * rng.standard_normal((10, 30))
        b = torch.from_numpy(rng.standard_normal(10))

        mu, _, _ = scale_operator(MatrixOperator(M), b, mu=2.0, n=30, consistent=True)
        assert mu == pytest.approx(2.0 * np.linalg.norm(M, 2) ** 2, rel=2e-2)

    def test_small_norm_unchanged(self):
        """Operators with ||A|| <= 1 are left alone."""
        A = MatrixOperator(0.5 * torch.eye(4, dtype=torch.float64))
        b = torch.ones(4, dtype=torch.float64)

        mu, A2, b2 = scale_operator(A, b, mu=1.0, n=4)
        assert A2 is A
        assert b2 is b
        assert mu == 1.0


class TestScaleMeasurements:
    def test_wide_range_shrunk(self):
        b = torch.tensor([0.0, 3.0, 6.0], dtype=torch.float64)
        mu, b2, scl = scale_measurements(b, mu=8.0)

        assert scl == pytest.approx(0.25)
        assert float(b2.max() - b2.min()) == pytest.approx(1.5)
        assert mu == 8.0

    def test_narrow_range_stretched(self):
        b = torch.tensor([1.0, 1.1], dtype=torch.float64)
        mu, b2, scl = scale_measurements(b, mu=8.0, consistent=True)

        assert scl == pytest.approx(5.0)
        assert float(b2.max() - b2.min()) == pytest.approx(0.5)
        assert mu == pytest.approx(8.0 / 5.0)

    def test_range_in_band_unchanged(self):
        b = torch.tensor([0.0, 1.0], dtype=torch.float64)
        _, b2, scl = scale_measurements(b, mu=1.0)
        assert scl == 1.0
        assert torch.equal(b2, b)

    def test_constant_measurements(self):
        b = torch.full((5,), 2.0, dtype=torch.float64)
        mu, b2, scl = scale_measurements(b, mu=1.0, consistent=True)
        assert scl == 1.0
        assert mu == 1.0

    def test_complex_uses_magnitude(self):
        b = torch.tensor([3j, 0.0, -6.0], dtype=torch.complex128)
        _, _, scl = scale_measurements(b, mu=1.0)
        assert scl == pytest.approx(0.25)

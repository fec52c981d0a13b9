"""Tests for measurement operators and sparsifying transforms.

Uses the dot-product test to verify adjoint correctness:
    Re<A(x), y> = Re<x, A^H(y)>

For random vectors x and y, both inner products should be equal
(up to floating-point precision).
"""

import numpy as np
import pytest
import torch

from csrecon.reconstruction import (
    FunctionOperator,
    LinearOperator,
    MatrixOperator,
    ScaledOperator,
    TVTransform,
    as_operator,
    forward_diff,
    forward_diff_adj,
    gradient_2d,
    gradient_2d_adj,
    temporal_diff,
    temporal_diff_adj,
)


def _randn(shape, dtype):
    if dtype.is_complex:
        return torch.complex(torch.randn(shape, dtype=torch.float64), torch.randn(shape, dtype=torch.float64))
    return torch.randn(shape, dtype=dtype)


def _inner(a, b):
    """Re<a, b>, summed over all entries (tuples are summed componentwise)."""
    if isinstance(a, tuple):
        return sum(_inner(ai, bi) for ai, bi in zip(a, b))
    return torch.sum(torch.conj(a) * b).real.item()


def dot_product_test(
    forward,
    adjoint,
    x_shape: tuple,
    y_shape,
    dtype: torch.dtype = torch.float64,
    rtol: float = 1e-10,
) -> tuple[float, float, float]:
    """Verify adjoint correctness via dot-product test.

    Args:
        forward: Forward operator A
        adjoint: Adjoint operator A^H. If y_shape is a tuple of shapes,
            adjoint receives the unpacked components.
        x_shape: Shape of input to forward operator
        y_shape: Shape of input to adjoint operator, or a tuple of shapes
        dtype: Data type for tensors (float64 recommended for precision)
        rtol: Relative tolerance for comparison

    Returns:
        Tuple of (lhs, rhs, relative_error)
    """
    torch.manual_seed(42)
    x = _randn(x_shape, dtype)
    if isinstance(y_shape[0], tuple):
        y = tuple(_randn(s, dtype) for s in y_shape)
        Aty = adjoint(*y)
    else:
        y = _randn(y_shape, dtype)
        Aty = adjoint(y)

    lhs = _inner(forward(x), y)
    rhs = _inner(x, Aty)

    rel_error = abs(lhs - rhs) / (0.5 * (abs(lhs) + abs(rhs)) + 1e-12)

    assert rel_error < rtol, (
        f"Dot-product test failed: <Ax, y> = {lhs:.12e}, <x, A^H y> = {rhs:.12e}, "
        f"relative error = {rel_error:.2e} (tolerance = {rtol:.2e})"
    )

    return lhs, rhs, rel_error


class TestMatrixOperator:
    """Tests for MatrixOperator."""

    def test_adjoint_real(self):
        """Dot-product test for a real matrix."""
        torch.manual_seed(0)
        A = MatrixOperator(torch.randn(8, 16, dtype=torch.float64))

        lhs, rhs, rel_error = dot_product_test(A.forward, A.adjoint, (16,), (8,))
        print(f"Real matrix: <Ax, y>={lhs:.10e}, <x, A^H y>={rhs:.10e}, err={rel_error:.2e}")

    def test_adjoint_complex(self):
        """Dot-product test for a complex matrix uses the conjugate transpose."""
        rng = np.random.default_rng(0)
        M = rng.standard_normal((8, 16)) + 1j * rng.standard_normal((8, 16))
        A = MatrixOperator(M)

        dot_product_test(A.forward, A.adjoint, (16,), (8,), dtype=torch.complex128)

    def test_numpy_input(self):
        """NumPy matrices are converted and keep their values."""
        M = np.arange(6, dtype=np.float64).reshape(2, 3)
        A = MatrixOperator(M)
        x = torch.ones(3, dtype=torch.float64)

        assert A.shape == (2, 3)
        assert torch.allclose(A.forward(x), torch.tensor([3.0, 12.0], dtype=torch.float64))

    def test_real_matrix_complex_vector(self):
        """A real matrix applied to a complex vector promotes to complex."""
        A = MatrixOperator(torch.eye(3, dtype=torch.float64))
        x = torch.tensor([1 + 1j, 2, 3j], dtype=torch.complex128)

        assert torch.allclose(A.forward(x), x)

    def test_rejects_non_2d(self):
        with pytest.raises(ValueError, match="2D"):
            MatrixOperator(torch.ones(3))


class TestOperatorAdapters:
    """Tests for as_operator and the apply modes."""

    def test_matrix_forms(self):
        M = np.eye(4)
        assert isinstance(as_operator(M), MatrixOperator)
        assert isinstance(as_operator(torch.from_numpy(M)), MatrixOperator)

    def test_operator_returned_unchanged(self):
        A = MatrixOperator(torch.eye(2))
        assert as_operator(A) is A

    def test_callable_pair(self):
        """A (forward, adjoint) pair of callables."""
        M = torch.randn(4, 6, dtype=torch.float64)
        A = as_operator((lambda x: M @ x, lambda y: M.T @ y))

        assert isinstance(A, LinearOperator)
        dot_product_test(A.forward, A.adjoint, (6,), (4,))

    def test_duck_typed_object(self):
        """Any object with forward/adjoint methods is wrapped."""

        class Doubler:
            def forward(self, x):
                return 2 * x

            def adjoint(self, y):
                return 2 * y

        A = as_operator(Doubler())
        x = torch.ones(3, dtype=torch.float64)
        assert torch.allclose(A(x), 2 * x)
        assert torch.allclose(A.adjoint(x), 2 * x)

    def test_mode_function(self):
        """Single function with mode 1 = forward, mode 2 = adjoint."""
        M = torch.randn(3, 5, dtype=torch.float64)

        def fn(x, mode):
            return M @ x if mode == 1 else M.T @ x

        A = FunctionOperator.from_mode_function(fn)
        x = torch.randn(5, dtype=torch.float64)
        y = torch.randn(3, dtype=torch.float64)

        assert torch.allclose(A.apply(x, 1), M @ x)
        assert torch.allclose(A.apply(y, "adjoint"), M.T @ y)

    def test_invalid_mode(self):
        A = MatrixOperator(torch.eye(2))
        with pytest.raises(ValueError, match="mode"):
            A.apply(torch.ones(2), 3)

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            as_operator("not an operator")

    def test_scaled_operator(self):
        """ScaledOperator scales both directions and stays self-adjoint-consistent."""
        M = torch.randn(4, 6, dtype=torch.float64)
        A = ScaledOperator(MatrixOperator(M), 0.5)
        x = torch.randn(6, dtype=torch.float64)

        assert torch.allclose(A.forward(x), 0.5 * (M @ x))
        dot_product_test(A.forward, A.adjoint, (6,), (4,))


class TestDifferences:
    """Tests for the circular difference operators."""

    @pytest.mark.parametrize("dim", [0, 1, 2])
    def test_forward_diff_adjoint(self, dim):
        dot_product_test(
            lambda x: forward_diff(x, dim),
            lambda y: forward_diff_adj(y, dim),
            (5, 6, 3),
            (5, 6, 3),
        )

    def test_forward_diff_values(self):
        """D[i] = x[i+1] - x[i] with wrap-around at the end."""
        x = torch.tensor([1.0, 3.0, 6.0], dtype=torch.float64)
        assert torch.equal(forward_diff(x, 0), torch.tensor([2.0, 3.0, -5.0], dtype=torch.float64))

    def test_constant_has_zero_gradient(self):
        U = torch.full((4, 5, 2), 3.0, dtype=torch.float64)
        Ux, Uy = gradient_2d(U)
        assert torch.count_nonzero(Ux) == 0
        assert torch.count_nonzero(Uy) == 0

    def test_gradient_directions(self):
        """Ux differences along dim 1 (columns), Uy along dim 0 (rows)."""
        U = torch.zeros(3, 3, 1, dtype=torch.float64)
        U[:, 1:, :] = 1.0
        Ux, Uy = gradient_2d(U)
        assert torch.count_nonzero(Uy) == 0
        assert torch.count_nonzero(Ux) > 0

    def test_gradient_2d_adjoint(self):
        shape = (6, 7, 2)
        dot_product_test(gradient_2d, gradient_2d_adj, shape, (shape, shape))

    def test_gradient_2d_adjoint_complex(self):
        shape = (4, 4, 1)
        dot_product_test(gradient_2d, gradient_2d_adj, shape, (shape, shape), dtype=torch.complex128)

    def test_temporal_diff_adjoint(self):
        dot_product_test(temporal_diff, temporal_diff_adj, (4, 5, 3), (4, 5, 3))


class TestTVTransform:
    """Tests for the TVTransform bundle."""

    def test_default_is_spatial_gradient(self):
        torch.manual_seed(1)
        U = torch.randn(4, 5, 2, dtype=torch.float64)
        Ux, Uy = TVTransform().forward(U)
        Gx, Gy = gradient_2d(U)
        assert torch.equal(Ux, Gx)
        assert torch.equal(Uy, Gy)

    def test_default_adjoint(self):
        shape = (5, 4, 2)
        t = TVTransform()
        dot_product_test(t.forward, t.adjoint, shape, (shape, shape))

    def test_temporal_adjoint(self):
        shape = (5, 4, 3)
        t = TVTransform.temporal()
        dot_product_test(t.forward, t.adjoint, shape, (shape, shape))

    def test_temporal_static_video(self):
        """A video without motion has zero temporal-TV."""
        frame = torch.randn(4, 4, 1, dtype=torch.float64)
        video = frame.repeat(1, 1, 3)
        Ux, Uy = TVTransform.temporal().forward(video)
        assert torch.allclose(Ux, torch.zeros_like(Ux))
        assert torch.allclose(Uy, torch.zeros_like(Uy))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

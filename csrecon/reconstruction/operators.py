"""Measurement operators for compressive reconstruction.

A measurement operator maps a flattened signal of length n to a measurement
vector of length m (forward) and back (adjoint). All operators satisfy
<A x, y> = <x, A^H y>, which the solvers rely on but do not verify.

Example:
    >>> import torch
    >>> from csrecon.reconstruction import as_operator
    >>> M = torch.randn(8, 16, dtype=torch.float64)
    >>> A = as_operator(M)
    >>> y = A.forward(torch.ones(16, dtype=torch.float64))
    >>> x = A.adjoint(y)
"""

from typing import Callable, Tuple, Union

import numpy as np
import torch

__all__ = [
    "LinearOperator",
    "MatrixOperator",
    "FunctionOperator",
    "ScaledOperator",
    "as_operator",
]

_FORWARD_MODES = ("forward", 1)
_ADJOINT_MODES = ("adjoint", 2)


class LinearOperator:
    """Base class for forward/adjoint operator pairs.

    Subclasses implement ``forward`` and ``adjoint``.
    """

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError

    def adjoint(self, y: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError

    def apply(self, x: torch.Tensor, mode: Union[str, int] = "forward") -> torch.Tensor:
        """Apply the operator in the given mode.

        Args:
            x: Input vector.
            mode: "forward" (or 1) for A x, "adjoint" (or 2) for A^H x.
        """
        if mode in _FORWARD_MODES:
            return self.forward(x)
        if mode in _ADJOINT_MODES:
            return self.adjoint(x)
        raise ValueError(f"mode must be 'forward' or 'adjoint', got {mode!r}")

    def __call__(self, x: torch.Tensor) -> torch.Tensor:
        return self.forward(x)


def _matmul(M: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
    """Matrix-vector product after promoting both to a common dtype."""
    dtype = torch.promote_types(M.dtype, x.dtype)
    return M.to(dtype) @ x.to(dtype)


class MatrixOperator(LinearOperator):
    """Dense matrix operator.

    Attributes:
        matrix: The (m, n) sensing matrix.
    """

    def __init__(self, matrix: Union[np.ndarray, torch.Tensor]):
        if isinstance(matrix, np.ndarray):
            matrix = torch.from_numpy(matrix)
        if matrix.ndim != 2:
            raise ValueError(f"matrix must be 2D, got shape {tuple(matrix.shape)}")
        self.matrix = matrix
        self._matrix_h = matrix.mH

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self.matrix.shape)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Compute M x."""
        return _matmul(self.matrix, x)

    def adjoint(self, y: torch.Tensor) -> torch.Tensor:
        """Compute M^H y."""
        return _matmul(self._matrix_h, y)


class FunctionOperator(LinearOperator):
    """Operator defined by a pair of callables."""

    def __init__(
        self,
        forward: Callable[[torch.Tensor], torch.Tensor],
        adjoint: Callable[[torch.Tensor], torch.Tensor],
    ):
        self._forward = forward
        self._adjoint = adjoint

    @classmethod
    def from_mode_function(
        cls, fn: Callable[[torch.Tensor, int], torch.Tensor]
    ) -> "FunctionOperator":
        """Wrap a single function ``fn(x, mode)`` with mode 1 = A, 2 = A^H."""
        return cls(lambda x: fn(x, 1), lambda y: fn(y, 2))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self._forward(x)

    def adjoint(self, y: torch.Tensor) -> torch.Tensor:
        return self._adjoint(y)


class ScaledOperator(LinearOperator):
    """Operator multiplied by a real scalar in both directions.

    Attributes:
        operator: The wrapped operator.
        scale: Scalar factor.
    """

    def __init__(self, operator: LinearOperator, scale: float):
        self.operator = operator
        self.scale = float(scale)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.scale * self.operator.forward(x)

    def adjoint(self, y: torch.Tensor) -> torch.Tensor:
        return self.scale * self.operator.adjoint(y)


def as_operator(A) -> LinearOperator:
    """Normalize the accepted operator forms into a LinearOperator.

    Accepted forms:
        - a LinearOperator, returned unchanged;
        - any object with ``forward`` and ``adjoint`` methods;
        - a ``(forward, adjoint)`` pair of callables;
        - a 2D torch.Tensor or numpy.ndarray (dense matrix).

    Raises:
        TypeError: If ``A`` is none of the above.
    """
    if isinstance(A, LinearOperator):
        return A
    if isinstance(A, (torch.Tensor, np.ndarray)):
        return MatrixOperator(A)
    if hasattr(A, "forward") and hasattr(A, "adjoint"):
        return FunctionOperator(A.forward, A.adjoint)
    if isinstance(A, (tuple, list)) and len(A) == 2 and all(callable(f) for f in A):
        return FunctionOperator(A[0], A[1])
    raise TypeError(
        "A must be a LinearOperator, a matrix, an object with forward/adjoint "
        f"methods or a (forward, adjoint) pair, got {type(A).__name__}"
    )

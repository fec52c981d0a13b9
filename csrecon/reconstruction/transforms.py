"""Sparsifying transforms for TV reconstruction.

The TV term is evaluated on D(T(U)) where U has shape (p, q, r):
    - T is a pre-transform along the frame axis (identity by default, or a
      temporal difference for video),
    - D returns the two circular first differences (x along dim 1, y along
      dim 0).

Circular boundaries make every adjoint an exact algebraic transpose.
"""

from dataclasses import dataclass
from typing import Callable, Tuple

import torch

__all__ = [
    "forward_diff",
    "forward_diff_adj",
    "gradient_2d",
    "gradient_2d_adj",
    "identity",
    "temporal_diff",
    "temporal_diff_adj",
    "TVTransform",
]


def forward_diff(x: torch.Tensor, dim: int) -> torch.Tensor:
    """Forward difference: D[i] = x[i+1] - x[i] (circular boundary)."""
    return torch.roll(x, -1, dims=dim) - x


def forward_diff_adj(y: torch.Tensor, dim: int) -> torch.Tensor:
    """Adjoint of forward difference: D^T[i] = y[i-1] - y[i]."""
    return torch.roll(y, 1, dims=dim) - y


def gradient_2d(U: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    """Horizontal and vertical differences of every frame.

    Returns:
        (Ux, Uy) with Ux differenced along dim 1 and Uy along dim 0.
    """
    return forward_diff(U, 1), forward_diff(U, 0)


def gradient_2d_adj(X: torch.Tensor, Y: torch.Tensor) -> torch.Tensor:
    """Adjoint of gradient_2d."""
    return forward_diff_adj(X, 1) + forward_diff_adj(Y, 0)


def identity(U: torch.Tensor) -> torch.Tensor:
    return U


def temporal_diff(U: torch.Tensor) -> torch.Tensor:
    """Difference between consecutive frames (circular, dim 2)."""
    return forward_diff(U, 2)


def temporal_diff_adj(V: torch.Tensor) -> torch.Tensor:
    """Adjoint of temporal_diff."""
    return forward_diff_adj(V, 2)


@dataclass(frozen=True)
class TVTransform:
    """Bundle of the operators entering the TV term.

    Each solve receives its own bundle.

    Attributes:
        D: Maps a (p, q, r) array to its two difference fields.
        Dt: Adjoint of D.
        T: Pre-transform applied before D.
        Tt: Adjoint of T.
    """

    D: Callable[[torch.Tensor], Tuple[torch.Tensor, torch.Tensor]] = gradient_2d
    Dt: Callable[[torch.Tensor, torch.Tensor], torch.Tensor] = gradient_2d_adj
    T: Callable[[torch.Tensor], torch.Tensor] = identity
    Tt: Callable[[torch.Tensor], torch.Tensor] = identity

    @classmethod
    def temporal(cls) -> "TVTransform":
        """Transform penalizing the spatial TV of the temporal derivative."""
        return cls(T=temporal_diff, Tt=temporal_diff_adj)

    def forward(self, U: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """Compute D(T(U))."""
        return self.D(self.T(U))

    def adjoint(self, X: torch.Tensor, Y: torch.Tensor) -> torch.Tensor:
        """Compute T^T(D^T(X, Y))."""
        return self.Tt(self.Dt(X, Y))

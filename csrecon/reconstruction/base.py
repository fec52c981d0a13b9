"""Base types for reconstruction algorithms."""

from dataclasses import dataclass, field
from typing import List

import torch

__all__ = ["ReconstructionResult", "TVAL3History"]


@dataclass
class TVAL3History:
    """Per-iteration diagnostics recorded by the TVAL3 solver.

    Every list except ``outer_change`` and ``inner_iterations`` receives one
    entry per inner iteration. ``objective``, ``reference_cost`` and the five
    Lagrangian terms also hold the value at the starting point, so they are
    one entry longer than ``step_length``.

    Attributes:
        objective: Augmented Lagrangian value f.
        reference_cost: Non-monotone line search reference value C.
        tv_norm: Sum of |W| over both directions (lam1).
        shrinkage_gap: ||D(T(U)) - W||^2 (lam2).
        data_misfit: ||AU - b||^2 (lam3).
        tv_multiplier: <sigma, D(T(U)) - W> (lam4).
        data_multiplier: <delta, AU - b> (lam5).
        step_change: ||U - U_prev|| of each accepted step.
        inner_change: Inner stopping metric of each iteration.
        outer_change: Outer stopping metric at the end of each cycle.
        inner_iterations: Number of inner iterations of each cycle.
        backtracks: Number of backtracking attempts of each iteration.
        step_length: Step length tau of each iteration.
        step_fraction: Accepted line search fraction alpha (0 after fallback).
        beta: TV penalty in effect during each iteration.
        mu: Data penalty in effect during each iteration.
        true_error: ||U - U_true|| when a ground truth was supplied.
        total_iterations: Number of inner iterations performed.
    """

    objective: List[float] = field(default_factory=list)
    reference_cost: List[float] = field(default_factory=list)
    tv_norm: List[float] = field(default_factory=list)
    shrinkage_gap: List[float] = field(default_factory=list)
    data_misfit: List[float] = field(default_factory=list)
    tv_multiplier: List[float] = field(default_factory=list)
    data_multiplier: List[float] = field(default_factory=list)
    step_change: List[float] = field(default_factory=list)
    inner_change: List[float] = field(default_factory=list)
    outer_change: List[float] = field(default_factory=list)
    inner_iterations: List[int] = field(default_factory=list)
    backtracks: List[int] = field(default_factory=list)
    step_length: List[float] = field(default_factory=list)
    step_fraction: List[float] = field(default_factory=list)
    beta: List[float] = field(default_factory=list)
    mu: List[float] = field(default_factory=list)
    true_error: List[float] = field(default_factory=list)
    total_iterations: int = 0

    def record_terms(self, f: float, C: float, lam: tuple) -> None:
        """Append the objective, reference cost and (lam1, ..., lam5)."""
        self.objective.append(f)
        self.reference_cost.append(C)
        self.tv_norm.append(lam[0])
        self.shrinkage_gap.append(lam[1])
        self.data_misfit.append(lam[2])
        self.tv_multiplier.append(lam[3])
        self.data_multiplier.append(lam[4])


@dataclass
class ReconstructionResult:
    """Result from a reconstruction algorithm.

    Attributes:
        restored: The reconstructed signal, shaped like the requested shape.
        iterations: Number of iterations performed.
        history: Per-iteration diagnostics.
        converged: Whether the outer tolerance was met.
        metadata: Optional algorithm-specific metadata.
    """

    restored: torch.Tensor
    iterations: int
    history: TVAL3History = field(default_factory=TVAL3History)
    converged: bool = False
    metadata: dict = field(default_factory=dict)

    @property
    def loss_history(self) -> List[float]:
        """Objective value at each iteration."""
        return self.history.objective

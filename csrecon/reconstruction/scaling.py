"""Conditioning helpers applied before a TVAL3 solve.

Two rescalings are available:
    - operator scaling divides A and b by sqrt(lambda_max(A^H A)) so the
      operator has unit spectral norm,
    - measurement scaling brings the range of b into [0.5, 1.5].

With ``consistent=True`` the data penalty mu is adjusted so that the
rescaled problem has the same minimizer as the original one.
"""

import logging
from typing import Tuple

import numpy as np
import torch
from scipy.sparse.linalg import LinearOperator as ScipyLinearOperator
from scipy.sparse.linalg import eigsh

from .operators import LinearOperator, ScaledOperator

__all__ = [
    "is_near_orthonormal",
    "estimate_operator_norm_sq",
    "scale_operator",
    "scale_measurements",
]

logger = logging.getLogger(__name__)

EPS = float(np.finfo(np.float64).eps)


def is_near_orthonormal(A: LinearOperator, b: torch.Tensor, tol: float = 1e-3) -> bool:
    """Check whether A A^H acts as the identity on b.

    Returns True when ||A A^H b - b||_1 / ||b||_1 < tol.
    """
    residual = A.forward(A.adjoint(b)) - b
    num = float(torch.sum(torch.abs(residual)))
    den = max(float(torch.sum(torch.abs(b))), EPS)
    return num / den < tol


def estimate_operator_norm_sq(
    A: LinearOperator,
    n: int,
    dtype: torch.dtype = torch.float64,
    device: torch.device = None,
    tol: float = 0.05,
) -> float:
    """Estimate the largest eigenvalue of A^H A.

    Uses ARPACK through scipy's eigsh on a matrix-free operator.

    Args:
        A: Measurement operator on signals of length n.
        n: Signal length.
        dtype: Dtype of the signal domain (complex for complex operators).
        device: Device the operator expects its inputs on.
        tol: Relative accuracy requested from ARPACK.

    Returns:
        Estimate of ||A||^2.
    """
    np_dtype = np.complex128 if dtype.is_complex else np.float64

    def matvec(x: np.ndarray) -> np.ndarray:
        x_t = torch.from_numpy(np.ascontiguousarray(x).reshape(-1)).to(device=device, dtype=dtype)
        result = A.adjoint(A.forward(x_t))
        return result.detach().cpu().numpy().astype(np_dtype)

    if n < 3:
        # ARPACK needs k < n; build A^H A explicitly
        gram = np.stack([matvec(col) for col in np.eye(n, dtype=np_dtype)], axis=1)
        return float(np.max(np.linalg.eigvalsh(gram)))

    op = ScipyLinearOperator((n, n), matvec=matvec, dtype=np_dtype)
    v0 = np.random.default_rng(0).standard_normal(n).astype(np_dtype)
    eigenvalues = eigsh(op, k=1, which="LM", tol=tol, v0=v0, return_eigenvectors=False)
    return float(np.real(eigenvalues[0]))


def scale_operator(
    A: LinearOperator,
    b: torch.Tensor,
    mu: float,
    n: int,
    consistent: bool = False,
) -> Tuple[float, LinearOperator, torch.Tensor]:
    """Rescale A and b so that A has unit spectral norm.

    Nothing changes when ||A||^2 <= 1 + 1e-10.

    Returns:
        Tuple (mu, A, b) of the possibly rescaled quantities.
    """
    dtype = A.adjoint(b).dtype
    s = estimate_operator_norm_sq(A, n, dtype=dtype, device=b.device)
    if s > 1 + 1e-10:
        logger.info("Scaling operator by 1/sqrt(%.6g)", s)
        if consistent:
            mu = mu * s
        root = float(np.sqrt(s))
        A = ScaledOperator(A, 1.0 / root)
        b = b / root
    return mu, A, b


def scale_measurements(
    b: torch.Tensor,
    mu: float,
    consistent: bool = False,
) -> Tuple[float, torch.Tensor, float]:
    """Rescale b so that max(b) - min(b) lies in [0.5, 1.5].

    For complex measurements the range of |b| is used. A constant b is left
    unscaled.

    Returns:
        Tuple (mu, b, scl) where scl is the factor applied to b.
    """
    threshold1, threshold2 = 0.5, 1.5
    values = torch.abs(b) if b.is_complex() else b
    b_dif = float(torch.max(values) - torch.min(values))

    scl = 1.0
    if EPS < b_dif < threshold1:
        scl = threshold1 / b_dif
    elif b_dif > threshold2:
        scl = threshold2 / b_dif

    b = scl * b
    if consistent:
        mu = mu / scl
    return mu, b, scl

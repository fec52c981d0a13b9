"""TVAL3: total variation minimization by augmented Lagrangian.

Recovers a signal U of shape (p, q, r) from compressive measurements b by
solving

    min_U  sum_i |(D T U)_i|_1    s.t.  A U = b

where D T U are the circular differences of the (optionally pre-transformed)
signal. With the splitting W = D T U the augmented Lagrangian reads

    L(U, W) = |W|_1 - <sigma, DTU - W> + beta/2 |DTU - W|^2
              - <delta, AU - b> + mu/2 |AU - b|^2

and is minimized by alternating directions:
    1. one gradient step in U, with a Barzilai-Borwein step length and a
       non-monotone backtracking line search,
    2. closed-form shrinkage in W.
Once the inner loop settles the multipliers are updated,
    sigma <- sigma - beta (DTU - W),    delta <- delta - mu (AU - b),
and beta, mu grow geometrically towards their final values (continuation).

The objective is tracked through five terms:
    lam1 = |W|_1
    lam2 = |DTU - W|^2
    lam3 = |AU - b|^2
    lam4 = <sigma, DTU - W>
    lam5 = <delta, AU - b>
    f    = lam1 + beta/2 lam2 + mu/2 lam3 - lam4 - lam5
with gradients (penalties not included)
    g  = A^H (AU - b)
    g2 = T^T D^T (DTU - W)

Reference:
    Li, C., Yin, W., Jiang, H. and Zhang, Y. (2013). "An efficient augmented
    Lagrangian method with applications to total variation minimization".
    Computational Optimization and Applications 56(3): 507-530.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from .base import ReconstructionResult, TVAL3History
from .operators import LinearOperator, as_operator
from .options import ConfigurationError, TVAL3Options, resolve_options
from .scaling import is_near_orthonormal, scale_measurements, scale_operator
from .transforms import TVTransform

__all__ = ["solve_tval3", "soft_threshold", "shrink"]

logger = logging.getLogger(__name__)

EPS = float(np.finfo(np.float64).eps)

# Backtracking attempts before falling back to a steepest descent step
_MAX_BACKTRACKS = 5


# =============================================================================
# Shrinkage
# =============================================================================


def soft_threshold(v: torch.Tensor, threshold: float) -> torch.Tensor:
    """Soft-thresholding: sgn(v) * max(|v| - threshold, 0).

    For complex input sgn(v) = v / |v|, so the phase is preserved.
    """
    return torch.sgn(v) * torch.clamp(torch.abs(v) - threshold, min=0.0)


def shrink(
    Ux: torch.Tensor,
    Uy: torch.Tensor,
    sigmax: torch.Tensor,
    sigmay: torch.Tensor,
    beta: float,
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Minimize the augmented Lagrangian over W for fixed U.

    Returns:
        (Wx, Wy) = soft_threshold(U* - sigma*/beta, 1/beta) per direction.
    """
    return (
        soft_threshold(Ux - sigmax / beta, 1.0 / beta),
        soft_threshold(Uy - sigmay / beta, 1.0 / beta),
    )


# =============================================================================
# Solver state
# =============================================================================


@dataclass(frozen=True)
class _Problem:
    """Quantities fixed for the duration of one solve."""

    A: LinearOperator
    b: torch.Tensor
    Atb: torch.Tensor
    transform: TVTransform
    shape: Tuple[int, int, int]


@dataclass(frozen=True)
class _Multipliers:
    sigmax: torch.Tensor
    sigmay: torch.Tensor
    delta: torch.Tensor


@dataclass(frozen=True)
class _Point:
    """An iterate U with the quantities derived from it.

    g and g2 are flattened to length n, Au has length m.
    """

    U: torch.Tensor
    Ux: torch.Tensor
    Uy: torch.Tensor
    Au: torch.Tensor
    g: torch.Tensor
    g2: torch.Tensor


@dataclass(frozen=True)
class _Terms:
    lam1: float
    lam2: float
    lam3: float
    lam4: float
    lam5: float
    f: float

    @property
    def lam(self) -> Tuple[float, float, float, float, float]:
        return (self.lam1, self.lam2, self.lam3, self.lam4, self.lam5)


# =============================================================================
# Helpers
# =============================================================================


def _inner(a: torch.Tensor, b: torch.Tensor) -> float:
    """Real part of the Hermitian inner product <a, b>."""
    prod = torch.sum(torch.conj(a) * b)
    return float(prod.real if prod.is_complex() else prod)


def _sqnorm(x: torch.Tensor) -> float:
    return float(torch.sum(torch.abs(x) ** 2))


def _norm(x: torch.Tensor) -> float:
    return float(torch.linalg.vector_norm(x))


def _l1(W: Tuple[torch.Tensor, torch.Tensor]) -> float:
    return float(torch.sum(torch.abs(W[0])) + torch.sum(torch.abs(W[1])))


def _lagrangian(lam1, lam2, lam3, lam4, lam5, beta, mu) -> float:
    return lam1 + beta / 2 * lam2 + mu / 2 * lam3 - lam4 - lam5


def _as_3d_shape(shape: Sequence[int]) -> Tuple[int, int, int]:
    """Pad a 1D/2D/3D shape with trailing ones to (p, q, r)."""
    dims = tuple(int(s) for s in shape)
    if not 1 <= len(dims) <= 3:
        raise ValueError(f"shape must have 1 to 3 dimensions, got {dims}")
    return dims + (1,) * (3 - len(dims))


def _terms_at(
    prob: _Problem,
    Ux: torch.Tensor,
    Uy: torch.Tensor,
    Au: torch.Tensor,
    W: Tuple[torch.Tensor, torch.Tensor],
    lam1: float,
    beta: float,
    mu: float,
    mult: _Multipliers,
) -> _Terms:
    """Objective terms lam2..lam5 and f for the given cached quantities."""
    Vx = Ux - W[0]
    Vy = Uy - W[1]
    Aub = Au - prob.b
    lam2 = _sqnorm(Vx) + _sqnorm(Vy)
    lam3 = _sqnorm(Aub)
    lam4 = _inner(mult.sigmax, Vx) + _inner(mult.sigmay, Vy)
    lam5 = _inner(mult.delta, Aub)
    f = _lagrangian(lam1, lam2, lam3, lam4, lam5, beta, mu)
    return _Terms(lam1, lam2, lam3, lam4, lam5, f)


def _evaluate(
    prob: _Problem,
    U: torch.Tensor,
    Ux: torch.Tensor,
    Uy: torch.Tensor,
    W: Tuple[torch.Tensor, torch.Tensor],
    lam1: float,
    beta: float,
    mu: float,
    mult: _Multipliers,
) -> Tuple[_Point, _Terms]:
    """Evaluate objective terms and both gradients at U for fixed W.

    Costs one forward and one adjoint application of A.
    """
    Au = prob.A.forward(U.reshape(-1))
    g = prob.A.adjoint(Au) - prob.Atb
    g2 = prob.transform.adjoint(Ux - W[0], Uy - W[1]).reshape(-1)
    terms = _terms_at(prob, Ux, Uy, Au, W, lam1, beta, mu, mult)
    return _Point(U, Ux, Uy, Au, g, g2), terms


def _difference(point: _Point, start: _Point) -> _Point:
    """Componentwise point - start."""
    return _Point(
        U=point.U - start.U,
        Ux=point.Ux - start.Ux,
        Uy=point.Uy - start.Uy,
        Au=point.Au - start.Au,
        g=point.g - start.g,
        g2=point.g2 - start.g2,
    )


def _interpolate(
    prob: _Problem,
    start: _Point,
    diff: _Point,
    alpha: float,
    W: Tuple[torch.Tensor, torch.Tensor],
    lam1: float,
    beta: float,
    mu: float,
    mult: _Multipliers,
) -> Tuple[_Point, _Terms]:
    """Evaluate the point start + alpha * diff without applying A or D.

    Every cached quantity is linear in U, so interpolating them is exact.
    """
    point = _Point(
        U=start.U + alpha * diff.U,
        Ux=start.Ux + alpha * diff.Ux,
        Uy=start.Uy + alpha * diff.Uy,
        Au=start.Au + alpha * diff.Au,
        g=start.g + alpha * diff.g,
        g2=start.g2 + alpha * diff.g2,
    )
    terms = _terms_at(prob, point.Ux, point.Uy, point.Au, W, lam1, beta, mu, mult)
    return point, terms


def _update_shrinkage_terms(
    prob: _Problem,
    point: _Point,
    W: Tuple[torch.Tensor, torch.Tensor],
    terms: _Terms,
    beta: float,
    mult: _Multipliers,
) -> Tuple[_Point, _Terms]:
    """Refresh the W-dependent quantities (lam1, lam2, lam4, f, g2)."""
    rest = terms.f - terms.lam1 - beta / 2 * terms.lam2 + terms.lam4
    Vx = point.Ux - W[0]
    Vy = point.Uy - W[1]
    lam1 = _l1(W)
    lam2 = _sqnorm(Vx) + _sqnorm(Vy)
    lam4 = _inner(mult.sigmax, Vx) + _inner(mult.sigmay, Vy)
    g2 = prob.transform.adjoint(Vx, Vy).reshape(-1)
    f = rest + lam1 + beta / 2 * lam2 - lam4
    return (
        replace(point, g2=g2),
        replace(terms, lam1=lam1, lam2=lam2, lam4=lam4, f=f),
    )


def _update_multipliers(
    prob: _Problem,
    point: _Point,
    W: Tuple[torch.Tensor, torch.Tensor],
    mult: _Multipliers,
    terms: _Terms,
    beta: float,
    mu: float,
) -> Tuple[_Multipliers, _Terms]:
    """Dual ascent step on sigma and delta; refresh lam4, lam5 and f."""
    Vx = point.Ux - W[0]
    Vy = point.Uy - W[1]
    Aub = point.Au - prob.b
    mult = _Multipliers(
        sigmax=mult.sigmax - beta * Vx,
        sigmay=mult.sigmay - beta * Vy,
        delta=mult.delta - mu * Aub,
    )
    rest = terms.f + terms.lam4 + terms.lam5
    lam4 = _inner(mult.sigmax, Vx) + _inner(mult.sigmay, Vy)
    lam5 = _inner(mult.delta, Aub)
    return mult, replace(terms, lam4=lam4, lam5=lam5, f=rest - lam4 - lam5)


def _steepest_descent_length(prob: _Problem, d: torch.Tensor, muDbeta: float) -> float:
    """Exact minimizing step length along d for the quadratic part."""
    dx, dy = prob.transform.forward(d.reshape(prob.shape))
    dTDTd = _sqnorm(dx) + _sqnorm(dy)
    Ad = prob.A.forward(d)
    return abs(_sqnorm(d) / max(dTDTd + muDbeta * _sqnorm(Ad), EPS))


def _project_nonneg(U: torch.Tensor) -> torch.Tensor:
    """Projection onto non-negative reals, keeping the dtype of U."""
    real = U.real if U.is_complex() else U
    return torch.clamp(real, min=0.0).to(U.dtype)


def _descend(U: torch.Tensor, step: torch.Tensor, nonneg: bool) -> torch.Tensor:
    """Gradient step U - step, projected onto non-negative reals if requested."""
    new = U.reshape(-1) - step
    if nonneg:
        new = _project_nonneg(new)
    return new.reshape(U.shape)


def _initial_guess(
    init: Any,
    shape: Tuple[int, int, int],
    Atb: torch.Tensor,
    scl: float,
) -> torch.Tensor:
    """Build the starting iterate from the ``init`` option.

    An explicit guess of the wrong shape is replaced by A^H b.
    """
    if isinstance(init, (torch.Tensor, np.ndarray)):
        guess = torch.as_tensor(init)
        guess_shape = tuple(guess.shape) + (1,) * (3 - guess.ndim)
        if guess_shape != shape:
            logger.warning(
                "Initial guess has incompatible shape %s (expected %s); "
                "switching to the A^H b initial guess.",
                tuple(guess.shape),
                shape,
            )
            return Atb.reshape(shape)
        dtype = torch.promote_types(guess.dtype, Atb.dtype)
        return guess.reshape(shape).to(device=Atb.device, dtype=dtype) * scl
    if init == 0:
        return torch.zeros(shape, dtype=Atb.dtype, device=Atb.device)
    return Atb.reshape(shape)


# =============================================================================
# Solver
# =============================================================================


def solve_tval3(
    A,
    b: Union[torch.Tensor, np.ndarray],
    shape: Sequence[int],
    options: Union[TVAL3Options, Mapping[str, Any], None] = None,
    transform: Optional[TVTransform] = None,
    callback: Optional[Callable[[int, torch.Tensor], None]] = None,
) -> ReconstructionResult:
    """Reconstruct a signal from compressive measurements with TVAL3.

    Minimizes the anisotropic TV of T(U) subject to A U = b by an augmented
    Lagrangian method with continuation on the penalties beta and mu.

    Args:
        A: Measurement operator: a LinearOperator, a dense (m, n) matrix
            (torch or NumPy), an object with forward/adjoint methods, or a
            (forward, adjoint) pair of callables acting on flat vectors.
        b: Measurement vector of length m.
        shape: Signal shape (p,), (p, q) or (p, q, r) with p*q*r = n.
        options: TVAL3Options or a mapping of option names. ``beta0`` and
            ``mu0`` are required.
        transform: Operators entering the TV term. Defaults to circular
            spatial differences with an identity pre-transform.
        callback: Optional function called each iteration with
            (iteration, current_estimate). The estimate is in the scaled
            domain used internally.

    Returns:
        ReconstructionResult with the restored signal (shaped like ``shape``)
        and the per-iteration history.

    Raises:
        ConfigurationError: If beta0 or mu0 is missing, or an option is
            invalid.
        ValueError: If ``shape`` does not match the operator.

    Example:
        ```python
        import torch
        from csrecon.reconstruction import solve_tval3

        M = torch.randn(8, 16, dtype=torch.float64)
        x = torch.zeros(16, dtype=torch.float64)
        x[8:] = 1.0
        result = solve_tval3(
            M, M @ x, shape=(16,),
            options={"beta0": 1.0, "mu0": 1.0, "beta": 256.0, "mu": 256.0,
                     "tol_inn": 1e-3, "tol": 1e-4, "maxit": 300},
        )
        restored = result.restored
        ```

    Note:
        - An incompatible explicit initial guess is not an error; a warning
          is logged and A^H b is used instead.
        - Reaching ``maxit`` returns the last iterate with converged=False.
    """
    opts = resolve_options(options)
    if opts.beta0 is None or opts.mu0 is None:
        raise ConfigurationError("Initial mu0 or beta0 is not provided.")

    out_shape = tuple(int(s) for s in shape)
    dims = _as_3d_shape(out_shape)
    n = dims[0] * dims[1] * dims[2]

    A = as_operator(A)
    if transform is None:
        transform = TVTransform()
    b = torch.as_tensor(b).reshape(-1)
    n_adj = A.adjoint(b).numel()
    if n_adj != n:
        raise ValueError(f"shape {out_shape} has {n} elements but A^H b has {n_adj}")

    mu = opts.mu
    beta = opts.beta
    gam = opts.gam

    # A with orthonormal rows needs no rescaling
    scale_A = opts.scale_A
    if is_near_orthonormal(A, b):
        scale_A = False
    if scale_A:
        mu, A, b = scale_operator(A, b, mu, n, opts.consist_mu)

    scl = 1.0
    if opts.scale_b:
        mu, b, scl = scale_measurements(b, mu, opts.consist_mu)

    Atb = A.adjoint(b)

    muf = mu
    betaf = beta
    U = _initial_guess(opts.init, dims, Atb, scl)
    if opts.nonneg:
        U = _project_nonneg(U)
    beta = min(opts.beta0, betaf)
    mu = min(opts.mu0, muf)
    muDbeta = mu / beta
    rcdU = U
    nrmrcdU = _norm(rcdU)
    nrmb = _norm(b)

    prob = _Problem(A=A, b=b, Atb=Atb, transform=transform, shape=dims)
    mult = _Multipliers(
        sigmax=torch.zeros(dims, dtype=U.dtype, device=U.device),
        sigmay=torch.zeros(dims, dtype=U.dtype, device=U.device),
        delta=torch.zeros_like(b),
    )
    # T^T D^T sigma / beta + A^H delta / beta, the multiplier part of the gradient
    DtsAtd = torch.zeros(n, dtype=U.dtype, device=U.device)

    history = TVAL3History()
    Ut = None
    if opts.true_signal is not None:
        Ut = torch.as_tensor(opts.true_signal).reshape(dims).to(U.device) * scl
        nrmUt = max(_norm(Ut), EPS)
        history.true_error.append(_norm(U - Ut))

    Ux, Uy = transform.forward(U)

    # first shrinkage step
    W = (soft_threshold(Ux, 1.0 / beta), soft_threshold(Uy, 1.0 / beta))
    lam1 = _l1(W)
    point, terms = _evaluate(prob, U, Ux, Uy, W, lam1, beta, mu, mult)

    d = point.g2 + muDbeta * point.g - DtsAtd

    count = 1
    sum_itrs = 0
    Q = 1.0
    C = terms.f
    history.record_terms(terms.f, C, terms.lam)

    # start point of the previous step; None forces a steepest descent step
    start = None
    uup = None

    def finish(iterations: int, converged: bool, reason: str) -> ReconstructionResult:
        restored = point.U
        if opts.isreal and restored.is_complex():
            restored = restored.real
        restored = restored / scl
        history.total_iterations = iterations
        return ReconstructionResult(
            restored=restored.reshape(out_shape),
            iterations=iterations,
            history=history,
            converged=converged,
            metadata={
                "algorithm": "TVAL3",
                "scale_A": scale_A,
                "scale_b": scl,
                "beta_final": betaf,
                "mu_final": muf,
                "outer_cycles": count - 1,
                "stop_reason": reason,
            },
        )

    if opts.disp > 0:
        print("TVAL3 Reconstruction")
        print(f"  Shape: {dims}, Measurements: {b.numel()}")
        print(f"  beta: {beta:.4g} -> {betaf:.4g}, mu: {mu:.4g} -> {muf:.4g}")
        print(f"  scale_A: {scale_A}, b scale: {scl:.4g}")
        print()
        header = f"{'Outer':>5}  {'Iter':>5}  {'|DTU-W|':>10}  {'|Au-b|/|b|':>11}  {'RelChg':>10}"
        if Ut is not None:
            header += f"  {'RelErr':>10}"
        print(header)
        print("-" * len(header))

    for ii in range(1, opts.maxit + 1):
        # step length
        if start is not None:
            dg = point.g - start.g
            dg2 = point.g2 - start.g2
            ss = _sqnorm(uup)
            sy = _inner(uup, dg2 + muDbeta * dg)
            tau = abs(ss / max(sy, EPS))
        else:
            tau = _steepest_descent_length(prob, d, muDbeta)

        # one-step gradient descent from a snapshot of the current point
        start = point
        taud = tau * d
        U = _descend(start.U, taud, opts.nonneg)
        Ux, Uy = transform.forward(U)
        point, terms = _evaluate(prob, U, Ux, Uy, W, lam1, beta, mu, mult)

        # non-monotone line search along start -> point
        alpha = 1.0
        const = opts.c * beta * _inner(d, taud)
        cnt = 0
        diff = None
        while terms.f > C - alpha * const:
            if cnt == _MAX_BACKTRACKS:
                gam = opts.rate_gam * gam
                logger.debug(
                    "Backtracking attained %d attempts at iteration %d; "
                    "taking a steepest descent step.",
                    cnt,
                    ii,
                )
                tau = _steepest_descent_length(prob, d, muDbeta)
                U = _descend(start.U, tau * d, opts.nonneg)
                Ux, Uy = transform.forward(U)
                W = shrink(Ux, Uy, mult.sigmax, mult.sigmay, beta)
                lam1 = _l1(W)
                point, terms = _evaluate(prob, U, Ux, Uy, W, lam1, beta, mu, mult)
                alpha = 0.0
                break
            if diff is None:
                diff = _difference(point, start)
            alpha = alpha * opts.gamma
            point, terms = _interpolate(prob, start, diff, alpha, W, lam1, beta, mu, mult)
            cnt += 1

        if alpha != 0:
            W = shrink(point.Ux, point.Uy, mult.sigmax, mult.sigmay, beta)
            point, terms = _update_shrinkage_terms(prob, point, W, terms, beta, mult)
            lam1 = terms.lam1

        # update reference value
        Qp = Q
        Q = gam * Qp + 1
        C = (gam * Qp * C + terms.f) / Q
        uup = (point.U - start.U).reshape(-1)
        nrmuup = _norm(uup)

        history.step_change.append(nrmuup)
        history.record_terms(terms.f, C, terms.lam)
        history.backtracks.append(cnt)
        history.step_length.append(tau)
        history.step_fraction.append(alpha)
        history.beta.append(beta)
        history.mu.append(mu)

        rel_err = None
        if Ut is not None:
            err = _norm(point.U - Ut)
            history.true_error.append(err)
            rel_err = err / nrmUt

        d = point.g2 + muDbeta * point.g - DtsAtd

        if opts.stop_criterion == 1:
            rel_chg = nrmuup / max(_norm(start.U), EPS)
        else:
            rel_chg = _norm(d)
        history.inner_change.append(rel_chg)

        if opts.disp > 0 and ii % opts.disp == 0:
            row = (
                f"{count:>5}  {ii:>5}  {math.sqrt(terms.lam2):>10.4e}  "
                f"{math.sqrt(terms.lam3) / max(nrmb, EPS):>11.4e}  {rel_chg:>10.4e}"
            )
            if rel_err is not None:
                row += f"  {rel_err:>10.4e}"
            print(row)

        if callback is not None:
            callback(ii, point.U)

        if rel_chg < opts.tol_inn or ii - sum_itrs >= opts.maxin:
            count += 1
            if opts.stop_criterion == 1:
                rel_chg_out = _norm(point.U - rcdU) / max(nrmrcdU, EPS)
                rcdU = point.U
                nrmrcdU = _norm(rcdU)
            else:
                rel_chg_out = math.sqrt(terms.lam3) / max(nrmb, EPS)
            history.outer_change.append(rel_chg_out)
            history.inner_iterations.append(ii - sum_itrs)
            sum_itrs = ii

            if rel_chg_out < opts.tol or count > opts.maxcnt:
                converged = rel_chg_out < opts.tol
                logger.info("Number of total iterations is %d.", ii)
                if opts.disp > 0:
                    print(f"Completed {ii} iterations in {count - 1} outer cycles.")
                return finish(ii, converged, "tolerance" if converged else "maxcnt")

            mult, terms = _update_multipliers(prob, point, W, mult, terms, beta, mu)

            # continuation on the penalty parameters
            beta0 = beta
            beta = min(beta * opts.rate_ctn, betaf)
            mu = min(mu * opts.rate_ctn, muf)
            muDbeta = mu / beta

            terms = replace(
                terms,
                f=_lagrangian(terms.lam1, terms.lam2, terms.lam3, terms.lam4, terms.lam5, beta, mu),
            )
            # DtsAtd is divided by the new beta, not the old one
            DtsAtd = -(beta0 / beta) * d
            d = point.g2 + muDbeta * point.g - DtsAtd

            start = None
            gam = opts.gam
            Q = 1.0
            C = terms.f

    logger.warning("Attained the maximum of %d iterations.", opts.maxit)
    if opts.disp > 0:
        print(f"Attained the maximum of {opts.maxit} iterations.")
    return finish(opts.maxit, False, "maxit")

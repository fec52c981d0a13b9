"""TVAL3 solver options.

Options are collected in an immutable dataclass validated on construction.
``resolve_options`` also accepts plain mappings, including the short
option spellings ``StpCr`` and ``Ut``.
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Union

import numpy as np
import torch

__all__ = ["ConfigurationError", "TVAL3Options", "resolve_options"]


class ConfigurationError(ValueError):
    """Raised when solver options are missing or invalid."""


_ALIASES = {
    "StpCr": "stop_criterion",
    "Ut": "true_signal",
}


@dataclass(frozen=True)
class TVAL3Options:
    """Hyperparameters of the TVAL3 solver.

    Attributes:
        mu: Final penalty weight of the data-fidelity term.
        beta: Final penalty weight of the TV term.
        mu0: Starting data penalty. Required by the solver.
        beta0: Starting TV penalty. Required by the solver.
        tol: Outer convergence threshold.
        tol_inn: Inner convergence threshold.
        maxit: Global cap on inner iterations.
        maxin: Maximum inner iterations per outer cycle.
        maxcnt: Maximum number of outer cycles.
        gam: Memory weight of the non-monotone line search.
        rate_gam: Decay applied to ``gam`` when backtracking fails.
        c: Sufficient-decrease constant.
        gamma: Step shrink factor used while backtracking.
        rate_ctn: Growth rate of ``beta`` and ``mu`` per outer cycle.
        stop_criterion: 1 for relative change of the solution, any other
            value for the optimality gap.
        nonneg: Project iterates onto non-negative reals.
        isreal: Return only the real part of the result.
        scale_A: Rescale the operator to unit spectral norm.
        scale_b: Rescale measurements to a range of [0.5, 1.5].
        consist_mu: Adjust ``mu`` so that rescaling keeps the same minimizer.
        init: 0 (zeros), 1 (A'b) or an explicit initial guess.
        disp: Print progress every ``disp`` iterations (0 disables).
        true_signal: Ground truth used only to record the true error.

    Example:
        >>> opts = TVAL3Options(mu0=1.0, beta0=1.0, mu=256.0, beta=256.0)
        >>> opts.rate_ctn
        2.0
    """

    mu: float = 2.0**8
    beta: float = 2.0**5
    mu0: Optional[float] = None
    beta0: Optional[float] = None
    tol: float = 1e-6
    tol_inn: float = 1e-3
    maxit: int = 1025
    maxin: int = 10
    maxcnt: int = 10
    gam: float = 0.9995
    rate_gam: float = 0.9
    c: float = 1e-5
    gamma: float = 0.6
    rate_ctn: float = 2.0
    stop_criterion: int = 0
    nonneg: bool = False
    isreal: bool = False
    scale_A: bool = True
    scale_b: bool = True
    consist_mu: bool = False
    init: Any = 1
    disp: int = 0
    true_signal: Optional[Any] = None

    def __post_init__(self) -> None:
        """Validate option values."""
        if self.mu <= 0 or self.beta <= 0:
            raise ConfigurationError(
                f"mu and beta must be positive, got mu={self.mu}, beta={self.beta}"
            )
        if self.mu0 is not None and self.mu0 <= 0:
            raise ConfigurationError(f"mu0 must be positive, got {self.mu0}")
        if self.beta0 is not None and self.beta0 <= 0:
            raise ConfigurationError(f"beta0 must be positive, got {self.beta0}")
        if self.tol < 0 or self.tol_inn < 0:
            raise ConfigurationError(
                f"Tolerances must be non-negative, got tol={self.tol}, "
                f"tol_inn={self.tol_inn}"
            )
        if self.maxit < 0 or self.maxin < 1 or self.maxcnt < 0:
            raise ConfigurationError(
                f"Invalid iteration caps: maxit={self.maxit}, maxin={self.maxin}, "
                f"maxcnt={self.maxcnt}"
            )
        if not 0 < self.gamma < 1:
            raise ConfigurationError(f"gamma must lie in (0, 1), got {self.gamma}")
        if not 0 <= self.gam <= 1 or not 0 < self.rate_gam <= 1:
            raise ConfigurationError(
                f"gam and rate_gam must lie in [0, 1], got gam={self.gam}, "
                f"rate_gam={self.rate_gam}"
            )
        if self.c < 0:
            raise ConfigurationError(f"c must be non-negative, got {self.c}")
        if self.rate_ctn < 1:
            raise ConfigurationError(f"rate_ctn must be >= 1, got {self.rate_ctn}")
        if self.disp < 0:
            raise ConfigurationError(f"disp must be non-negative, got {self.disp}")
        if not isinstance(self.init, (torch.Tensor, np.ndarray)) and self.init not in (0, 1):
            raise ConfigurationError(
                f"init must be 0, 1 or an array, got {self.init!r}"
            )


def resolve_options(
    options: Union[TVAL3Options, Mapping[str, Any], None],
) -> TVAL3Options:
    """Build a TVAL3Options from None, an options object or a mapping.

    Args:
        options: Options object, mapping of option names to values, or None
            for all defaults.

    Returns:
        Validated TVAL3Options.

    Raises:
        ConfigurationError: If a key is unknown or a value is invalid.
    """
    if options is None:
        return TVAL3Options()
    if isinstance(options, TVAL3Options):
        return options

    known = {f.name for f in fields(TVAL3Options)}
    kwargs = {}
    for key, value in options.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            raise ConfigurationError(f"Unknown TVAL3 option: {key!r}")
        kwargs[name] = value
    return TVAL3Options(**kwargs)

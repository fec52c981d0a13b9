"""Compressive sensing reconstruction with total variation.

This module recovers a signal U of shape (p, q, r) from linear measurements

    b = A U + noise

where A has far fewer rows than U has entries. The signal is assumed to have
a sparse gradient, and TVAL3 finds the U of least total variation consistent
with the measurements. All computation uses PyTorch; operator norm
estimation goes through SciPy.

Example:
    >>> import numpy as np
    >>> from csrecon.reconstruction import solve_tval3, TVAL3Options
    >>> from toy import piecewise_constant_image, gaussian_sensing_matrix
    >>>
    >>> rng = np.random.default_rng(0)
    >>> x_true = piecewise_constant_image((32, 32), rng=rng)
    >>> A = gaussian_sensing_matrix(400, 32 * 32, rng=rng)
    >>> b = A @ x_true.ravel()
    >>>
    >>> opts = TVAL3Options(mu=2**8, beta=2**5, mu0=4.0, beta0=1.0, nonneg=True)
    >>> result = solve_tval3(A, b, shape=(32, 32), options=opts)
    >>> restored = result.restored
"""

from .base import (
    ReconstructionResult,
    TVAL3History,
)
from .options import (
    ConfigurationError,
    TVAL3Options,
    resolve_options,
)
from .operators import (
    LinearOperator,
    MatrixOperator,
    FunctionOperator,
    ScaledOperator,
    as_operator,
)
from .transforms import (
    forward_diff,
    forward_diff_adj,
    gradient_2d,
    gradient_2d_adj,
    temporal_diff,
    temporal_diff_adj,
    TVTransform,
)
from .scaling import (
    is_near_orthonormal,
    estimate_operator_norm_sq,
    scale_operator,
    scale_measurements,
)
from .tval3 import (
    solve_tval3,
    soft_threshold,
    shrink,
)

__all__ = [
    # Base types
    "ReconstructionResult",
    "TVAL3History",
    # Options
    "ConfigurationError",
    "TVAL3Options",
    "resolve_options",
    # Operators
    "LinearOperator",
    "MatrixOperator",
    "FunctionOperator",
    "ScaledOperator",
    "as_operator",
    # Transforms
    "forward_diff",
    "forward_diff_adj",
    "gradient_2d",
    "gradient_2d_adj",
    "temporal_diff",
    "temporal_diff_adj",
    "TVTransform",
    # Scaling
    "is_near_orthonormal",
    "estimate_operator_norm_sq",
    "scale_operator",
    "scale_measurements",
    # TVAL3
    "solve_tval3",
    "soft_threshold",
    "shrink",
]

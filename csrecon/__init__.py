"""csrecon - Compressive sensing reconstruction by total variation.

Recovers images and videos from a small number of linear measurements
using TVAL3, an augmented Lagrangian TV solver.

- **reconstruction**: PyTorch-based TVAL3 solver, measurement operators,
  sparsifying transforms and conditioning helpers

Example:
    >>> import numpy as np
    >>> from csrecon import solve_tval3
    >>>
    >>> rng = np.random.default_rng(0)
    >>> A = rng.standard_normal((8, 16))
    >>> x = np.r_[np.zeros(8), np.ones(8)]
    >>> result = solve_tval3(A, A @ x, shape=(16,), options={"beta0": 1.0, "mu0": 1.0})

Reference:
    Li, C., Yin, W., Jiang, H. and Zhang, Y. (2013). "An efficient augmented
    Lagrangian method with applications to total variation minimization".
    Computational Optimization and Applications 56(3): 507-530.
"""

__version__ = "0.1.0"

from .reconstruction import (
    # Results
    ReconstructionResult,
    TVAL3History,
    # Options
    ConfigurationError,
    TVAL3Options,
    # Operators
    LinearOperator,
    MatrixOperator,
    FunctionOperator,
    as_operator,
    # Transforms
    TVTransform,
    # Solver
    solve_tval3,
)

__all__ = [
    "__version__",
    "ReconstructionResult",
    "TVAL3History",
    "ConfigurationError",
    "TVAL3Options",
    "LinearOperator",
    "MatrixOperator",
    "FunctionOperator",
    "as_operator",
    "TVTransform",
    "solve_tval3",
]

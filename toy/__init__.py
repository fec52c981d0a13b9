"""Synthetic compressive sensing problems for TV reconstruction research.

Example:
    >>> import numpy as np
    >>> import torch
    >>> from toy import step_signal, gaussian_sensing_matrix, measure
    >>> from csrecon.reconstruction import solve_tval3
    >>>
    >>> # 16-sample step signal, 8 random measurements
    >>> rng = np.random.default_rng(0)
    >>> x_true = step_signal(16)
    >>> A = gaussian_sensing_matrix(8, 16, rng=rng)
    >>> b = measure(A, x_true)
    >>>
    >>> result = solve_tval3(
    ...     A, b, shape=(16,),
    ...     options={"beta0": 1.0, "mu0": 1.0, "beta": 256.0, "mu": 256.0},
    ... )
"""

from .problems import (
    step_signal,
    piecewise_constant_image,
    moving_block_video,
    gaussian_sensing_matrix,
    orthonormal_sensing_matrix,
    add_gaussian_noise,
    measure,
    relative_error,
)

__all__ = [
    "step_signal",
    "piecewise_constant_image",
    "moving_block_video",
    "gaussian_sensing_matrix",
    "orthonormal_sensing_matrix",
    "add_gaussian_noise",
    "measure",
    "relative_error",
]

"""Synthetic compressive sensing problems.

Piecewise-constant signals have sparse gradients, so they are the natural
test objects for TV reconstruction. Each generator returns NumPy arrays;
sensing matrices act on the flattened (row-major) signal.

References:
    - E. Candes, J. Romberg and T. Tao, "Robust uncertainty principles:
      exact signal reconstruction from highly incomplete frequency
      information", IEEE Trans. Inf. Theory 52 (2006), pp. 489-509.
    - C. Li, "An efficient algorithm for total variation regularization
      with applications to the single pixel camera and compressive
      sensing", MSc thesis, Rice University (2009).
"""

from typing import Sequence, Tuple

import numpy as np


def step_signal(
    n: int = 16, jump: int = None, low: float = 0.0, high: float = 1.0
) -> np.ndarray:
    """1D signal with a single jump.

    Args:
        n: Signal length.
        jump: Index of the first sample at the high level. Defaults to n // 2.
        low: Value before the jump.
        high: Value from the jump on.

    Returns:
        (n,) float64 array.

    Example:
        >>> step_signal(4)
        array([0., 0., 1., 1.])
    """
    if jump is None:
        jump = n // 2
    x = np.full(n, low, dtype=np.float64)
    x[jump:] = high
    return x


def piecewise_constant_image(
    shape: Tuple[int, int] = (32, 32),
    n_blocks: int = 3,
    rng: np.random.Generator = None,
) -> np.ndarray:
    """2D image made of overlapping axis-aligned blocks on a zero background.

    Args:
        shape: Image shape (p, q).
        n_blocks: Number of rectangles to draw.
        rng: NumPy random generator. If None, uses default.

    Returns:
        (p, q) float64 image with values in [0, n_blocks].
    """
    if rng is None:
        rng = np.random.default_rng()

    p, q = shape
    image = np.zeros(shape, dtype=np.float64)
    for _ in range(n_blocks):
        r0, r1 = np.sort(rng.integers(0, p + 1, size=2))
        c0, c1 = np.sort(rng.integers(0, q + 1, size=2))
        # keep every block at least one pixel wide
        r1 = max(r1, r0 + 1)
        c1 = max(c1, c0 + 1)
        image[r0:r1, c0:c1] += rng.uniform(0.5, 1.0)
    return image


def moving_block_video(
    shape: Tuple[int, int] = (16, 16),
    n_frames: int = 4,
    block: int = 4,
    step: int = 1,
) -> np.ndarray:
    """Video of a bright square translating diagonally over a static background.

    Consecutive frames differ only along the block edges, so the temporal
    difference of the video is sparse.

    Args:
        shape: Frame shape (p, q).
        n_frames: Number of frames r.
        block: Side length of the square.
        step: Displacement in pixels between consecutive frames.

    Returns:
        (p, q, r) float64 array.
    """
    p, q = shape
    video = np.zeros((p, q, n_frames), dtype=np.float64)
    # static background half-plane
    video[p // 2 :, :, :] = 0.25
    for k in range(n_frames):
        r0 = (k * step) % max(p - block, 1)
        c0 = (k * step) % max(q - block, 1)
        video[r0 : r0 + block, c0 : c0 + block, k] = 1.0
    return video


def gaussian_sensing_matrix(
    m: int,
    n: int,
    rng: np.random.Generator = None,
    complex_valued: bool = False,
) -> np.ndarray:
    """Random Gaussian sensing matrix with N(0, 1/m) entries.

    Args:
        m: Number of measurements.
        n: Signal length.
        rng: NumPy random generator. If None, uses default.
        complex_valued: Draw circularly-symmetric complex entries.

    Returns:
        (m, n) float64 or complex128 matrix.
    """
    if rng is None:
        rng = np.random.default_rng()

    A = rng.standard_normal((m, n))
    if complex_valued:
        A = (A + 1j * rng.standard_normal((m, n))) / np.sqrt(2.0)
    return A / np.sqrt(m)


def orthonormal_sensing_matrix(
    m: int, n: int, rng: np.random.Generator = None
) -> np.ndarray:
    """Random sensing matrix with orthonormal rows (A A^T = I).

    Obtained from the QR factorization of a Gaussian (n, m) matrix.

    Args:
        m: Number of measurements (m <= n).
        n: Signal length.
        rng: NumPy random generator. If None, uses default.

    Returns:
        (m, n) float64 matrix.
    """
    if m > n:
        raise ValueError(f"orthonormal rows need m <= n, got m={m}, n={n}")
    if rng is None:
        rng = np.random.default_rng()

    Q, _ = np.linalg.qr(rng.standard_normal((n, m)))
    return np.ascontiguousarray(Q.T)


def add_gaussian_noise(
    b_exact: np.ndarray,
    noise_level: float = 0.01,
    rng: np.random.Generator = None,
) -> np.ndarray:
    """Add white Gaussian noise at a given relative level.

    Args:
        b_exact: Exact (noise-free) measurements, real or complex.
        noise_level: ||noise||_2 / ||b_exact||_2, e.g. 0.01 for 1% noise.
        rng: NumPy random generator. If None, uses default.

    Returns:
        Noisy measurements of the same dtype as b_exact.

    Example:
        >>> b_exact = np.array([1.0, 2.0, 3.0])
        >>> b_noisy = add_gaussian_noise(b_exact, noise_level=0.01)
    """
    if rng is None:
        rng = np.random.default_rng()

    b_norm = np.linalg.norm(b_exact)
    if b_norm <= 0:
        return b_exact.copy()

    noise = rng.standard_normal(b_exact.shape)
    if np.iscomplexobj(b_exact):
        noise = noise + 1j * rng.standard_normal(b_exact.shape)
    noise = noise * (noise_level * b_norm / np.linalg.norm(noise))

    return (b_exact + noise).astype(b_exact.dtype)


def measure(
    A: np.ndarray, x: np.ndarray, noise_level: float = 0.0, rng: np.random.Generator = None
) -> np.ndarray:
    """Measurements A @ x.ravel(), optionally with relative Gaussian noise."""
    b = A @ np.ravel(x)
    if noise_level > 0:
        b = add_gaussian_noise(b, noise_level, rng)
    return b


def relative_error(x: np.ndarray, x_true: np.ndarray) -> float:
    """||x - x_true|| / ||x_true||."""
    x = np.asarray(x).reshape(np.shape(x_true))
    return float(np.linalg.norm(x - x_true) / np.linalg.norm(x_true))

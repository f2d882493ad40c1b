"""Jacobi sweep kernels for the 5-point Laplace stencil.

Each kernel reads only ``uold`` and writes the interior of ``u``; the margin
of ``uold`` supplies halo and boundary values. The return value is the sum
of squared updates over the interior, accumulated in float64 whatever the
element type. Combining it across ranks is the caller's job.
"""

import numpy as np
import numba
from numba import njit, prange


@njit(parallel=True)
def _jacobi_sweep_numba(uold: np.ndarray, u: np.ndarray) -> float:
    """Numba JIT implementation of one Jacobi sweep."""
    err = 0.0
    for i in prange(1, u.shape[0] - 1):
        for j in range(1, u.shape[1] - 1):
            u[i, j] = 0.25 * (
                uold[i - 1, j] + uold[i + 1, j] + uold[i, j - 1] + uold[i, j + 1]
            )
            d = float(u[i, j]) - float(uold[i, j])
            err += d * d
    return err


class NumPyKernel:
    """NumPy-based Jacobi kernel."""

    def __init__(self, specified_numba_threads=None):
        self.observed_numba_threads = None  # Not applicable for NumPy

    def step(self, uold: np.ndarray, u: np.ndarray) -> float:
        """Perform one Jacobi sweep, return the local sum of squared updates."""
        u[1:-1, 1:-1] = 0.25 * (
            uold[0:-2, 1:-1]
            + uold[2:, 1:-1]
            + uold[1:-1, 0:-2]
            + uold[1:-1, 2:]
        )
        diff = u[1:-1, 1:-1].astype(np.float64) - uold[1:-1, 1:-1]
        return float(np.sum(diff * diff))

    def warmup(self, warmup_size: int = 10):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel:
    """Numba JIT-compiled Jacobi kernel."""

    def __init__(self, specified_numba_threads=None):
        # Set requested threads (may be clamped by NUMBA_NUM_THREADS env var)
        if specified_numba_threads is not None:
            numba.set_num_threads(specified_numba_threads)

        # Record what Numba actually reports
        self.observed_numba_threads = numba.get_num_threads()

    def step(self, uold: np.ndarray, u: np.ndarray) -> float:
        """Perform one Jacobi sweep, return the local sum of squared updates."""
        return float(_jacobi_sweep_numba(uold, u))

    def warmup(self, warmup_size: int = 10):
        """Trigger JIT compilation with a small problem."""
        for dtype in (np.float64, np.float32):
            u1 = np.random.randn(warmup_size, warmup_size).astype(dtype)
            u2 = np.zeros_like(u1)
            for _ in range(2):
                _jacobi_sweep_numba(u1, u2)
                u1, u2 = u2, u1


def create_kernel(name: str, numba_threads=None):
    """Factory: 'numpy' or 'numba'."""
    if name == "numba":
        return NumbaKernel(specified_numba_threads=numba_threads)
    return NumPyKernel()

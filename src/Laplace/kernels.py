"""Five-point Jacobi relaxation kernels.

Both kernels update ``next[i, j] = 0.25 * (prev[i+1, j] + prev[i-1, j] +
prev[i, j+1] + prev[i, j-1])`` on a ghosted ``(local_rows + 2, columns + 2)``
array, split into two passes:

- interior: rows ``2 .. local_rows - 1``, never reads a ghost row;
- boundary: rows ``1`` and ``local_rows``, reads the ghost rows.

Ghost rows and the two boundary columns are never written. The summation
order is fixed so every kernel, and every decomposition, produces bitwise
identical cells.
"""

import numpy as np
from numba import njit


@njit
def _relax_rows_numba(prev: np.ndarray, nxt: np.ndarray, lo: int, hi: int):
    """Numba JIT update of rows ``lo .. hi - 1``."""
    columns = prev.shape[1] - 2
    for i in range(lo, hi):
        for j in range(1, columns + 1):
            nxt[i, j] = 0.25 * (
                prev[i + 1, j] + prev[i - 1, j] + prev[i, j + 1] + prev[i, j - 1]
            )


def _boundary_rows(local_rows: int) -> tuple:
    """Row 1 and row ``local_rows``, once when they coincide."""
    return (1,) if local_rows == 1 else (1, local_rows)


class NumPyKernel:
    """NumPy-based relaxation kernel."""

    name = "numpy"

    def interior(self, prev: np.ndarray, nxt: np.ndarray):
        """Update rows that do not depend on ghost data."""
        n = prev.shape[0] - 2
        if n < 3:
            return
        nxt[2:n, 1:-1] = 0.25 * (
            prev[3 : n + 1, 1:-1] + prev[1 : n - 1, 1:-1] + prev[2:n, 2:] + prev[2:n, :-2]
        )

    def boundary(self, prev: np.ndarray, nxt: np.ndarray):
        """Update the first and last real row (needs fresh ghost rows)."""
        for i in _boundary_rows(prev.shape[0] - 2):
            nxt[i, 1:-1] = 0.25 * (
                prev[i + 1, 1:-1] + prev[i - 1, 1:-1] + prev[i, 2:] + prev[i, :-2]
            )

    def step(self, prev: np.ndarray, nxt: np.ndarray):
        """Full update of all real rows."""
        self.interior(prev, nxt)
        self.boundary(prev, nxt)

    def warmup(self, warmup_size: int = 10):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel(NumPyKernel):
    """Numba JIT-compiled relaxation kernel (serial)."""

    name = "numba"

    def interior(self, prev: np.ndarray, nxt: np.ndarray):
        n = prev.shape[0] - 2
        if n >= 3:
            _relax_rows_numba(prev, nxt, 2, n)

    def boundary(self, prev: np.ndarray, nxt: np.ndarray):
        for i in _boundary_rows(prev.shape[0] - 2):
            _relax_rows_numba(prev, nxt, i, i + 1)

    def warmup(self, warmup_size: int = 10):
        """Trigger JIT compilation with a small problem."""
        u1 = np.random.rand(warmup_size + 2, warmup_size + 2)
        u2 = np.zeros_like(u1)
        for _ in range(2):
            self.step(u1, u2)
            u1, u2 = u2, u1


def create_kernel(use_numba: bool = False) -> NumPyKernel:
    """Factory: NumbaKernel when ``use_numba`` else NumPyKernel."""
    return NumbaKernel() if use_numba else NumPyKernel()

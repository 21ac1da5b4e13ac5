"""Double-buffered rank-local grid.

Each rank owns two ``(local_rows + 2) x (columns + 2)`` arrays: *current*
(read by the stencil, source of halo sends, target of halo receives) and
*next* (written by the stencil). Row 0 and row ``local_rows + 1`` are ghost
rows; column 0 and column ``columns + 1`` are fixed boundary columns.
"""

from __future__ import annotations

import numpy as np

from ..datastructures import Partition
from ..errors import AllocationFailure

_GHOST_ROWS = ("top", "bottom")


class GridPair:
    """Two grid buffers with an O(1) current/next swap.

    Parameters
    ----------
    local_rows : int
        Real rows owned by this rank.
    columns : int
        Real columns of the global domain.
    rank : int
        Owning rank, used in error reports.

    Notes
    -----
    ``swap()`` flips an index; no data is copied. Views returned by
    ``current``, ``next``, ``ghost_row`` or ``edge_row`` refer to a specific
    buffer and must be fetched again after a swap.

    Example
    -------
    >>> grids = GridPair(local_rows=3, columns=4)
    >>> grids.initialize(partition, global_rows=12)
    >>> grids.write(1, 1, 2.5)   # into next
    >>> grids.swap()
    >>> grids.read(1, 1)         # from current
    2.5
    """

    def __init__(self, local_rows: int, columns: int, rank: int = 0, dtype=np.float64):
        self.local_rows = local_rows
        self.columns = columns
        self.rank = rank
        self.shape = (local_rows + 2, columns + 2)

        try:
            self._buffers = [np.zeros(self.shape, dtype=dtype) for _ in range(2)]
        except (MemoryError, ValueError) as exc:
            raise AllocationFailure(rank, self.shape, exc) from exc
        self._current = 0

    # =========================================================================
    # Buffers
    # =========================================================================

    @property
    def current(self) -> np.ndarray:
        return self._buffers[self._current]

    @property
    def next(self) -> np.ndarray:
        return self._buffers[1 - self._current]

    def swap(self):
        """Exchange current and next identities."""
        self._current = 1 - self._current

    # =========================================================================
    # Boundary conditions
    # =========================================================================

    def initialize(self, partition: Partition, global_rows: int, temperature: float = 100.0):
        """Zero both buffers and apply the fixed boundary values.

        Left column is 0. The right column is a linear gradient over this
        rank's slice of ``[0, temperature]``. At linear domain edges the top
        ghost row (first rank) is 0 and the bottom ghost row (last rank) is a
        gradient from 0 to ``temperature`` across the columns.
        """
        for buf in self._buffers:
            self._apply_boundary_conditions(buf, partition, global_rows, temperature)

    def _apply_boundary_conditions(self, arr, partition, global_rows, temperature):
        n = self.local_rows
        t_min = partition.global_start_row * temperature / global_rows
        t_max = partition.global_end_row * temperature / global_rows

        arr.fill(0.0)
        arr[:, 0] = 0.0
        arr[:, -1] = t_min + ((t_max - t_min) / n) * np.arange(n + 2)

        if partition.above is None:
            arr[0, :] = 0.0
        if partition.below is None:
            arr[-1, :] = (temperature / self.columns) * np.arange(self.columns + 2)

    # =========================================================================
    # Cell and row access
    # =========================================================================

    def _check_interior(self, i: int, j: int):
        if not (1 <= i <= self.local_rows and 1 <= j <= self.columns):
            raise IndexError(
                f"({i}, {j}) outside interior [1, {self.local_rows}] x [1, {self.columns}]"
            )

    def read(self, i: int, j: int) -> float:
        """Read an interior cell of the current buffer."""
        self._check_interior(i, j)
        return float(self.current[i, j])

    def write(self, i: int, j: int, value: float):
        """Write an interior cell of the next buffer."""
        self._check_interior(i, j)
        self.next[i, j] = value

    def ghost_row(self, which: str) -> np.ndarray:
        """Writable view of the current buffer's top or bottom ghost row.

        Only columns ``1..columns`` are included; the boundary-column corners
        are never exchanged.
        """
        return self.current[self._row_index(which, ghost=True), 1:-1]

    def edge_row(self, which: str) -> np.ndarray:
        """View of the current buffer's outermost real row (``top`` = row 1)."""
        return self.current[self._row_index(which, ghost=False), 1:-1]

    def _row_index(self, which: str, ghost: bool) -> int:
        if which not in _GHOST_ROWS:
            raise ValueError(f"Unknown row: {which}. Use 'top' or 'bottom'.")
        if which == "top":
            return 0 if ghost else 1
        return self.local_rows + 1 if ghost else self.local_rows

    def interior(self) -> np.ndarray:
        """Copy of the current buffer's real cells, shape ``(local_rows, columns)``."""
        return self.current[1:-1, 1:-1].copy()

    def get_halo_size_bytes(self, n_neighbors: int) -> int:
        """Bytes transferred per halo round (send + receive per neighbor)."""
        return n_neighbors * self.columns * self.current.itemsize * 2

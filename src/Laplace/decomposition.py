"""Domain decomposition for distributed parallel computation.

Partitions the rows of a 2D grid into contiguous bands, one per rank.
Pure geometric/mathematical decomposition with no MPI dependencies.
"""

from __future__ import annotations

from .datastructures import TOPOLOGIES, Partition
from .errors import ConfigurationError


def split_rows(global_rows: int, size: int, rank: int) -> tuple[int, int]:
    """Return ``(local_rows, global_start_row)`` for one rank.

    The first ``global_rows % size`` ranks receive one extra row.
    """
    base, extra = divmod(global_rows, size)
    if rank < extra:
        return base + 1, rank * (base + 1)
    return base, extra * (base + 1) + (rank - extra) * base


class RowDecomposition:
    """Row-band decomposition of a ``global_rows x columns`` grid.

    Parameters
    ----------
    global_rows : int
        Number of real rows in the global domain (ghost/boundary rows excluded).
    size : int
        Number of ranks.
    topology : str
        ``'linear'``: first and last rank are domain edges.
        ``'ring'``: first and last rank are neighbours (wrap-around).

    Examples
    --------
    >>> decomp = RowDecomposition(global_rows=10, size=4)
    >>> [(p.local_rows, p.global_start_row) for p in decomp.get_all_rank_info()]
    [(3, 0), (3, 3), (2, 6), (2, 8)]
    """

    def __init__(self, global_rows: int, size: int, topology: str = "linear"):
        if global_rows < 1:
            raise ConfigurationError(f"global_rows must be >= 1, got {global_rows}")
        if size < 1:
            raise ConfigurationError(f"process count must be >= 1, got {size}")
        if size > global_rows:
            raise ConfigurationError(
                f"{size} ranks cannot share {global_rows} rows: "
                "every rank needs at least one row"
            )
        if topology not in TOPOLOGIES:
            raise ConfigurationError(
                f"Unknown topology: {topology}. Use 'linear' or 'ring'."
            )

        self.global_rows = global_rows
        self.size = size
        self.topology = topology

        self._rank_info = [self._decompose(rank) for rank in range(size)]

    # =========================================================================
    # Query Interface
    # =========================================================================

    def get_rank_info(self, rank: int) -> Partition:
        """Get the partition owned by ``rank``."""
        if not 0 <= rank < self.size:
            raise ConfigurationError(f"rank {rank} outside [0, {self.size})")
        return self._rank_info[rank]

    def get_all_rank_info(self) -> list[Partition]:
        """Get partitions for all ranks, ordered by rank."""
        return list(self._rank_info)

    def get_neighbors(self, rank: int) -> dict:
        """Get neighbor dict for a rank (for halo exchange)."""
        return self.get_rank_info(rank).neighbors

    # =========================================================================
    # Internal Decomposition Logic
    # =========================================================================

    def _decompose(self, rank: int) -> Partition:
        local_rows, start = split_rows(self.global_rows, self.size, rank)
        return Partition(
            rank=rank,
            local_rows=local_rows,
            global_start_row=start,
            **NEIGHBOR_RULES[self.topology](rank, self.size),
        )


def linear_neighbors(rank: int, size: int) -> dict:
    """First and last rank border the fixed domain edges."""
    return {
        "above": rank - 1 if rank > 0 else None,
        "below": rank + 1 if rank < size - 1 else None,
    }


def ring_neighbors(rank: int, size: int) -> dict:
    """First and last rank exchange with each other."""
    return {
        "above": (rank - 1) % size,
        "below": (rank + 1) % size,
    }


NEIGHBOR_RULES = {
    "linear": linear_neighbors,
    "ring": ring_neighbors,
}

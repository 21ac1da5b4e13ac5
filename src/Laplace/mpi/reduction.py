"""Global convergence measure via all-reduce."""

from __future__ import annotations

import numpy as np
from mpi4py import MPI


def local_delta(prev: np.ndarray, nxt: np.ndarray) -> float:
    """Largest absolute change over this rank's real cells."""
    diff = np.abs(nxt[1:-1, 1:-1] - prev[1:-1, 1:-1])
    return float(diff.max()) if diff.size else 0.0


class ConvergenceReducer:
    """Combine per-rank deltas into one global maximum known to every rank.

    Uses a single ``Allreduce(MAX)`` rather than reduce + broadcast, so all
    ranks evaluate the stopping rule on the same value.
    """

    def __init__(self, comm: MPI.Comm):
        self.comm = comm
        self._send = np.zeros(1)
        self._recv = np.zeros(1)

    def global_delta(self, delta: float) -> float:
        self._send[0] = delta
        self.comm.Allreduce(self._send, self._recv, op=MPI.MAX)
        return float(self._recv[0])

    def reduce(self, prev: np.ndarray, nxt: np.ndarray) -> tuple[float, float]:
        """Return ``(local, global)`` delta for one iteration."""
        delta = local_delta(prev, nxt)
        return delta, self.global_delta(delta)

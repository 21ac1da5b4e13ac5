"""MPI buffers and communication.

This package provides:
- GridPair: Double-buffered rank-local grid with ghost rows
- HaloExchanger: Non-blocking ghost-row exchange (linear/ring)
- ConvergenceReducer: Global max-delta via Allreduce
"""

from .grid import GridPair
from .halo import (
    HaloExchanger,
    HaloState,
    LinearHaloExchanger,
    RingHaloExchanger,
    create_halo_exchanger,
)
from .reduction import ConvergenceReducer, local_delta

__all__ = [
    "GridPair",
    "HaloExchanger",
    "HaloState",
    "LinearHaloExchanger",
    "RingHaloExchanger",
    "create_halo_exchanger",
    "ConvergenceReducer",
    "local_delta",
]

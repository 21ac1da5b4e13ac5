"""MPI Laplace relaxation package.

Jacobi relaxation of a 2D Laplace field decomposed into row bands across MPI
ranks. Each rank exchanges ghost rows with its vertical neighbours using
non-blocking messages overlapped with the interior stencil pass, and all
ranks agree on termination through a global max-reduction.

Entry points
------------
- run: Solve on this rank and return a Result
- RelaxationSolver: Driver with metrics, field gathering and HDF5 output
- run_solver: Launch a run under mpiexec and collect the results
- sequential_relaxation: Single-array reference implementation
"""

from .datastructures import (
    RelaxationParams,
    GlobalMetrics,
    LocalParams,
    LocalMetrics,
    Partition,
    Result,
    Status,
)
from .errors import (
    RelaxationError,
    ConfigurationError,
    AllocationFailure,
    TransportFailure,
)
from .decomposition import RowDecomposition, split_rows
from .kernels import NumPyKernel, NumbaKernel, create_kernel
from .mpi import GridPair, HaloState, create_halo_exchanger, ConvergenceReducer
from .solver import RelaxationSolver, run
from .sequential import initial_field, sequential_relaxation
from .runner import load_field, mpiexec_available, run_mpi_module, run_solver

__all__ = [
    # Data structures
    "RelaxationParams",
    "GlobalMetrics",
    "LocalParams",
    "LocalMetrics",
    "Partition",
    "Result",
    "Status",
    # Errors
    "RelaxationError",
    "ConfigurationError",
    "AllocationFailure",
    "TransportFailure",
    # Decomposition
    "RowDecomposition",
    "split_rows",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    "create_kernel",
    # MPI
    "GridPair",
    "HaloState",
    "create_halo_exchanger",
    "ConvergenceReducer",
    # Solver
    "RelaxationSolver",
    "run",
    "run_solver",
    "run_mpi_module",
    "mpiexec_available",
    "load_field",
    # Reference
    "initial_field",
    "sequential_relaxation",
]

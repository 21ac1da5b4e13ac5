"""Distributed Jacobi relaxation driver.

Each step overlaps the halo exchange with the interior pass::

    halo.post -> kernel.interior -> halo.wait -> kernel.boundary
              -> local delta -> Allreduce(MAX) -> swap

and stops when the global delta drops to ``epsilon`` or after
``max_iterations`` steps.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import asdict
from typing import Callable, Optional

import numpy as np
import pandas as pd
from mpi4py import MPI

from .datastructures import (
    GlobalMetrics,
    LocalMetrics,
    LocalParams,
    RelaxationParams,
    Result,
    Status,
)
from .decomposition import RowDecomposition
from .errors import AllocationFailure, ConfigurationError, TransportFailure
from .kernels import create_kernel
from .mpi.grid import GridPair
from .mpi.halo import create_halo_exchanger
from .mpi.reduction import ConvergenceReducer

log = logging.getLogger(__name__)

ProgressHook = Callable[[int, dict], None]

# Diagonal cells approaching the bottom-right corner reported to on_progress
N_PROGRESS_SAMPLES = 6


class RelaxationSolver:
    """Row-decomposed Jacobi solver for the 2D Laplace equation.

    Parameters
    ----------
    params : RelaxationParams
        Problem and stopping configuration (identical on all ranks).
    comm : MPI.Comm, optional
        Communicator; defaults to ``MPI.COMM_WORLD``.
    on_progress : callable, optional
        ``on_progress(iteration, sample_cells)`` called every
        ``params.progress_interval`` iterations on the rank owning the
        bottom-right corner. ``sample_cells`` maps 1-based global
        ``(row, column)`` to value.

    Example
    -------
    >>> solver = RelaxationSolver(RelaxationParams(global_rows=100, columns=100))
    >>> result = solver.solve()
    >>> result.status, result.iterations_run
    """

    def __init__(
        self,
        params: RelaxationParams,
        comm: Optional[MPI.Comm] = None,
        on_progress: Optional[ProgressHook] = None,
    ):
        # MPI setup
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

        self.params = params
        self._check_process_layout()
        self.on_progress = on_progress

        # Metrics containers
        self.metrics = GlobalMetrics()
        self.timeseries = LocalMetrics()
        self.iteration = 0

        # Decomposition (raises ConfigurationError before any allocation)
        self.decomposition = RowDecomposition(params.global_rows, self.size, params.topology)
        self.partition = self.decomposition.get_rank_info(self.rank)

        self.kernel = create_kernel(params.use_numba)
        self.grids = self._allocate()
        self.grids.initialize(self.partition, params.global_rows, params.boundary_temperature)
        self.halo = create_halo_exchanger(params.topology, self.comm, self.partition)
        self.reducer = ConvergenceReducer(self.comm)
        halo_bytes = self.grids.get_halo_size_bytes(self.halo.n_neighbors)
        self.metrics.halo_size_mb = halo_bytes / (1024 * 1024)

    def _check_process_layout(self):
        if self.params.process_count is not None and self.params.process_count != self.size:
            raise ConfigurationError(
                f"process_count={self.params.process_count} but communicator has {self.size} ranks"
            )
        if self.params.rank is not None and self.params.rank != self.rank:
            raise ConfigurationError(
                f"rank={self.params.rank} but communicator rank is {self.rank}"
            )

    def _allocate(self) -> GridPair:
        try:
            return GridPair(self.partition.local_rows, self.params.columns, rank=self.rank)
        except AllocationFailure as exc:
            self._abort(exc)
            raise

    def _abort(self, exc: Exception):
        """Log a fatal failure and tear down peers that would block on us."""
        log.error(f"Rank {self.rank}: {exc}")
        if self.size > 1:
            self.comm.Abort(1)

    # =========================================================================
    # Iteration
    # =========================================================================

    def warmup(self, warmup_size: int = 10):
        """Warmup kernel (trigger Numba JIT if used)."""
        self.kernel.warmup(warmup_size=warmup_size)

    def step(self) -> float:
        """Run one relaxation step and return the global delta."""
        prev, nxt = self.grids.current, self.grids.next

        t0 = MPI.Wtime()
        self.halo.post(self.grids)
        t1 = MPI.Wtime()
        self.kernel.interior(prev, nxt)
        t2 = MPI.Wtime()
        self.halo.wait()
        t3 = MPI.Wtime()
        self.kernel.boundary(prev, nxt)
        _, global_delta = self.reducer.reduce(prev, nxt)
        t4 = MPI.Wtime()

        self.grids.swap()
        self.iteration += 1

        self.timeseries.halo_times.append((t1 - t0) + (t3 - t2))
        self.timeseries.compute_times.append((t2 - t1) + (t4 - t3))
        self.timeseries.delta_history.append(global_delta)
        return global_delta

    def solve(self) -> Result:
        """Iterate until convergence or the iteration cap."""
        self.timeseries.clear()
        self.iteration = 0
        status = Status.ITERATION_LIMIT_REACHED
        global_delta = float("inf")

        if self.rank == 0:
            log.info(
                f"Relaxing {self.params.global_rows}x{self.params.columns} on {self.size} "
                f"rank(s), topology={self.params.topology}, kernel={self.kernel.name}, "
                f"epsilon={self.params.epsilon}, max_iterations={self.params.max_iterations}"
            )

        self.comm.Barrier()
        t_start = MPI.Wtime()

        try:
            while self.iteration < self.params.max_iterations:
                global_delta = self.step()
                self._report_progress()
                if global_delta <= self.params.epsilon:
                    status = Status.CONVERGED
                    break
        except TransportFailure as exc:
            self._abort(exc)
            raise

        self._finalize(MPI.Wtime() - t_start, status, global_delta)

        if self.rank == 0:
            log.info(
                f"{status.value} after {self.iteration} iterations, "
                f"global delta {global_delta:.6g}"
            )

        return Result(
            iterations_run=self.iteration,
            final_global_delta=global_delta,
            status=status,
            local_grid=self.grids.current.copy(),
            partition=self.partition,
        )

    def _report_progress(self):
        interval = self.params.progress_interval
        if self.on_progress is None or not interval or self.iteration % interval:
            return
        if self.partition.global_end_row != self.params.global_rows:
            return
        self.on_progress(self.iteration, self.sample_cells())

    def sample_cells(self) -> dict:
        """Diagonal cells leading to the bottom-right corner owned by this rank."""
        u = self.grids.current
        n, columns = self.partition.local_rows, self.params.columns
        samples = {}
        for k in range(N_PROGRESS_SAMPLES - 1, -1, -1):
            i, j = n - k, columns - k
            if i >= 1 and j >= 1:
                samples[(self.partition.global_start_row + i, j)] = float(u[i, j])
        return samples

    def _finalize(self, wall_time: float, status: Status, global_delta: float):
        """Populate metrics after solve."""
        self.metrics.status = status.value
        self.metrics.converged = status is Status.CONVERGED
        self.metrics.iterations = self.iteration
        self.metrics.final_global_delta = global_delta
        self.metrics.wall_time = wall_time
        self.metrics.total_compute_time = sum(self.timeseries.compute_times)
        self.metrics.total_halo_time = sum(self.timeseries.halo_times)

        n_cells = self.params.global_rows * self.params.columns
        if self.iteration > 0 and wall_time > 0:
            self.metrics.mlups = n_cells * self.iteration / (wall_time * 1e6)

    # =========================================================================
    # Post-processing (collective)
    # =========================================================================

    def gather_field(self) -> Optional[np.ndarray]:
        """Assemble the global ``global_rows x columns`` field on rank 0.

        Collective: every rank must call it. Returns None on other ranks.
        """
        pieces = self.comm.gather(self.grids.interior(), root=0)
        if self.rank != 0:
            return None
        return np.vstack(pieces)

    def get_rank_info(self) -> LocalParams:
        """Topology info for this rank."""
        return LocalParams(
            rank=self.rank,
            hostname=MPI.Get_processor_name(),
            local_rows=self.partition.local_rows,
            global_start_row=self.partition.global_start_row,
            above=self.halo.above,
            below=self.halo.below,
        )

    def save_hdf5(self, path: str) -> None:
        """Save params, metrics, timeseries, rank layout and field to HDF5.

        Collective (gathers the field); only rank 0 writes.
        """
        field = self.gather_field()
        ranks = self.comm.gather(asdict(self.get_rank_info()), root=0)
        if self.rank != 0:
            return

        row = {**asdict(self.params), **asdict(self.metrics), "n_ranks": self.size}
        df_results = pd.DataFrame([row])

        # Convert string columns to avoid PyTables pickle warning
        for col in df_results.select_dtypes(include=["object"]).columns:
            df_results[col] = df_results[col].astype(str)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.PerformanceWarning)
            df_results.to_hdf(path, key="results", mode="w", format="table")
            pd.DataFrame(asdict(self.timeseries)).to_hdf(
                path, key="timeseries", mode="a", format="table"
            )
            pd.DataFrame(ranks).astype({"above": "float64", "below": "float64"}).to_hdf(
                path, key="ranks", mode="a", format="table"
            )
            pd.DataFrame(field).to_hdf(path, key="field", mode="a")


def run(
    config,
    comm: Optional[MPI.Comm] = None,
    on_progress: Optional[ProgressHook] = None,
) -> Result:
    """Solve on this rank and return its :class:`Result`.

    Parameters
    ----------
    config : RelaxationParams or mapping
        Mappings (including Hydra ``DictConfig``) are converted with
        ``RelaxationParams(**config)``.
    """
    params = config if isinstance(config, RelaxationParams) else RelaxationParams(**dict(config))
    solver = RelaxationSolver(params, comm=comm, on_progress=on_progress)
    solver.warmup()
    return solver.solve()

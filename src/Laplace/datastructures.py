"""Data structures for solver configuration and results.

Architecture: 2x2 matrix of Params vs Metrics × Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           RelaxationParams              GlobalMetrics
(same across     global_rows, columns,         status, iterations,
ranks / agg)     epsilon, topology...          final_global_delta...

Local            Partition / LocalParams       LocalMetrics
(per-rank)       rank, local_rows,             delta_history[],
                 neighbors, hostname...        compute_times[]...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from .errors import ConfigurationError

TOPOLOGIES = ("linear", "ring")


class Status(str, Enum):
    """Terminal state of a run. Both values are normal outcomes."""

    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass
class RelaxationParams:
    """Run configuration - built from Hydra config, logged to MLflow as params.

    Immutable configuration set before the run. Identical across all MPI ranks.
    ``process_count`` and ``rank`` are normally taken from the communicator;
    when given they are checked against it.
    """

    # Required
    global_rows: int
    columns: int

    # Stopping rule
    epsilon: float = 0.01
    max_iterations: int = 4000

    # Decomposition
    topology: str = "linear"  # "linear" | "ring"
    process_count: Optional[int] = None
    rank: Optional[int] = None

    # Problem
    boundary_temperature: float = 100.0

    # Collaborator hooks
    progress_interval: int = 100  # 0 disables on_progress

    # Kernel
    use_numba: bool = False

    # Experiment tracking
    experiment_name: str = "default"

    # Auto-detected at runtime (not from config)
    environment: str = field(init=False)

    def __post_init__(self):
        """Validate sizes and derive runtime values."""
        if self.global_rows < 1 or self.columns < 1:
            raise ConfigurationError(
                f"Grid dimensions must be positive, got {self.global_rows}x{self.columns}"
            )
        if self.max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.epsilon < 0:
            raise ConfigurationError(f"epsilon must be >= 0, got {self.epsilon}")
        if self.topology not in TOPOLOGIES:
            raise ConfigurationError(
                f"Unknown topology: {self.topology}. Use 'linear' or 'ring'."
            )
        if self.progress_interval < 0:
            raise ConfigurationError("progress_interval must be >= 0")
        self.environment = (
            "hpc"
            if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID")
            else "local"
        )

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible params dict (bools as int, no None)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


@dataclass
class GlobalMetrics:
    """Aggregated results - logged to MLflow as metrics.

    ``status`` and ``final_global_delta`` are identical on every rank because the
    delta comes from an all-reduce; timings are rank-local.
    """

    status: Optional[str] = None
    converged: bool = False
    iterations: int = 0
    final_global_delta: Optional[float] = None
    wall_time: Optional[float] = None

    # Timing breakdown (sum across all iterations)
    total_compute_time: Optional[float] = None
    total_halo_time: Optional[float] = None

    # Million Lattice Updates per Second
    mlups: Optional[float] = None

    # Bytes moved per halo round on this rank, in MiB
    halo_size_mb: Optional[float] = None

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible dict (numbers only)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None and not isinstance(v, str)
        }


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass(frozen=True)
class Partition:
    """Row band owned by one rank.

    Rows are 0-based global indices of the real (non-ghost) domain
    ``[global_start_row, global_end_row)``. ``above`` is the source of the
    top ghost row and ``below`` the source of the bottom ghost row, or
    ``None`` at a linear domain edge.
    """

    rank: int
    local_rows: int
    global_start_row: int
    above: Optional[int] = None
    below: Optional[int] = None

    @property
    def global_end_row(self) -> int:
        return self.global_start_row + self.local_rows

    @property
    def neighbors(self) -> Dict[str, Optional[int]]:
        return {"above": self.above, "below": self.below}

    @property
    def n_neighbors(self) -> int:
        return sum(1 for n in (self.above, self.below) if n is not None)


@dataclass
class LocalParams:
    """Per-rank geometry - gathered to rank 0, stored with the results."""

    rank: int
    hostname: str = ""
    local_rows: int = 0
    global_start_row: int = 0
    above: Optional[int] = None
    below: Optional[int] = None


@dataclass
class LocalMetrics:
    """Per-rank timeseries, accumulated during solve."""

    compute_times: List[float] = field(default_factory=list)
    halo_times: List[float] = field(default_factory=list)

    # Identical on every rank (all-reduced)
    delta_history: List[float] = field(default_factory=list)

    def clear(self):
        """Clear all timeseries data."""
        self.compute_times.clear()
        self.halo_times.clear()
        self.delta_history.clear()

    def to_mlflow_batch(self, timestamp: int = 0) -> list:
        """Convert timeseries to MLflow Metric objects for batch logging."""
        from mlflow.entities import Metric

        return [
            Metric(key=name, value=float(value), timestamp=timestamp, step=step)
            for name, values in self.__dict__.items()
            for step, value in enumerate(values)
        ]


# ============================================================================
# Public result
# ============================================================================


@dataclass
class Result:
    """Outcome of :func:`Laplace.run` on one rank.

    ``local_grid`` is this rank's current buffer including ghost rows and
    boundary columns, shape ``(local_rows + 2, columns + 2)``.
    """

    iterations_run: int
    final_global_delta: float
    status: Status
    local_grid: np.ndarray
    partition: Optional[Partition] = None

    @property
    def converged(self) -> bool:
        return self.status is Status.CONVERGED

"""
Relaxation Runner - runs in-process for one rank or re-launches under mpiexec.

Usage:
    python run_solver.py
    python run_solver.py global_rows=1000 columns=1000 n_ranks=4 topology=ring
    python run_solver.py n_ranks=1,2,4,7 --multirun
"""

import logging
import os
import subprocess
import sys
from dataclasses import fields

import hydra
from omegaconf import DictConfig, OmegaConf

log = logging.getLogger(__name__)

# Keys forwarded to the mpiexec subprocess as key=value overrides
_FORWARDED_KEYS = [
    "n_ranks", "global_rows", "columns", "epsilon", "max_iterations", "topology",
    "boundary_temperature", "progress_interval", "use_numba", "experiment_name", "output",
]


def _build_params(cfg: DictConfig):
    """Create RelaxationParams from the config keys it knows about."""
    from Laplace import RelaxationParams

    names = {f.name for f in fields(RelaxationParams) if f.init}
    return RelaxationParams(**{k: v for k, v in cfg.items() if k in names and v is not None})


def _print_progress(iteration: int, sample_cells: dict):
    """Format on_progress samples like the classic tracker output."""
    cells = "  ".join(f"[{r},{c}]: {v:5.2f}" for (r, c), v in sample_cells.items())
    log.info(f"---------- Iteration number: {iteration} ------------")
    log.info(cells)


def _log_results(cfg: DictConfig, solver, n_ranks: int):
    """Log solver results to MLflow (rank 0 only)."""
    from Laplace.tracking import (
        log_metrics_dict,
        log_parameters,
        log_timeseries_metrics,
        setup_mlflow_tracking,
        tracked_run,
    )

    enabled = setup_mlflow_tracking(mode=cfg.mlflow.mode)
    run_name = f"laplace_{cfg.global_rows}x{cfg.columns}_p{n_ranks}_{cfg.topology}"

    with tracked_run(enabled, cfg.experiment_name, f"{cfg.global_rows}x{cfg.columns}", run_name):
        if enabled:
            log_parameters({**solver.params.to_mlflow(), "n_ranks": n_ranks})
            log_metrics_dict(solver.metrics.to_mlflow())
            log_timeseries_metrics(solver.timeseries)

    m = solver.metrics
    log.info(
        f"Done: {m.status}, {m.iterations} iter, delta={m.final_global_delta:.6f}, "
        f"time={m.wall_time:.3f}s" + (f", {m.mlups:.1f} Mlup/s" if m.mlups else "")
    )


def _run_solver(cfg: DictConfig, comm):
    """Run the solver on this rank (in-process or inside mpiexec)."""
    from Laplace import RelaxationSolver

    rank, n_ranks = comm.Get_rank(), comm.Get_size()
    solver = RelaxationSolver(_build_params(cfg), comm=comm, on_progress=_print_progress)
    solver.warmup()
    solver.solve()

    if cfg.get("output"):
        solver.save_hdf5(cfg.output)

    if rank == 0:
        _log_results(cfg, solver, n_ranks)


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - runs in-process or spawns MPI based on n_ranks."""
    n_ranks = cfg.get("n_ranks", 1)
    log.info(f"laplace, {cfg.global_rows}x{cfg.columns}, n_ranks={n_ranks}, topology={cfg.topology}")

    if n_ranks == 1:
        from mpi4py import MPI

        _run_solver(cfg, MPI.COMM_WORLD)
    else:
        _spawn_mpi(cfg, n_ranks)


def _spawn_mpi(cfg: DictConfig, n_ranks: int):
    """Spawn MPI subprocess."""
    from Laplace.runner import mpi_env

    env = mpi_env()
    env["MPI_SUBPROCESS"] = "1"

    cmd = ["mpiexec", "-n", str(n_ranks), sys.executable, os.path.abspath(__file__)]
    for key in _FORWARDED_KEYS:
        val = cfg.get(key)
        if val is not None:
            cmd.append(f"{key}={val}")
    cmd.append(f"mlflow.mode={cfg.mlflow.mode}")

    result = subprocess.run(cmd, capture_output=True, text=True, env=env)
    for line in (result.stdout or "").strip().split("\n"):
        if line:
            log.info(line)
    for line in (result.stderr or "").strip().split("\n"):
        if line:
            log.warning(line) if "error" in line.lower() else log.info(line)
    if result.returncode != 0:
        log.error(f"mpiexec exited with status {result.returncode}")
        sys.exit(result.returncode)


def _parse_overrides(argv: list) -> dict:
    """Parse key=value args (dotted keys nest) with int/float/bool coercion."""
    cfg_dict = {}
    for arg in argv:
        if "=" not in arg or arg.startswith("-"):
            continue
        key, val = arg.split("=", 1)
        d = cfg_dict
        for k in key.split(".")[:-1]:
            d = d.setdefault(k, {})
        leaf = key.split(".")[-1]
        if val.lower() in ("true", "false"):
            d[leaf] = val.lower() == "true"
            continue
        try:
            d[leaf] = float(val) if ("." in val or "e" in val.lower()) else int(val)
        except ValueError:
            d[leaf] = val
    return cfg_dict


if __name__ == "__main__":
    if os.environ.get("MPI_SUBPROCESS"):
        from mpi4py import MPI

        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        _run_solver(OmegaConf.create(_parse_overrides(sys.argv[1:])), MPI.COMM_WORLD)
    else:
        main()

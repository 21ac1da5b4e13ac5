"""MLflow helpers for logging relaxation runs.

- Setting up MLflow tracking (local file store or disabled).
- Orchestrating MLflow runs (context manager for parent/nested runs).
- Logging parameters, metrics, and per-iteration timeseries.
"""

import logging
import os
import time
from contextlib import contextmanager, nullcontext
from pathlib import Path

import mlflow

from .datastructures import LocalMetrics

log = logging.getLogger(__name__)


def setup_mlflow_tracking(mode: str = "local") -> bool:
    """Configure MLflow tracking.

    Parameters
    ----------
    mode : str
        ``"local"`` for a ``./mlruns`` file store, ``"off"`` to disable.

    Returns
    -------
    bool
        True if tracking is enabled.
    """
    if mode == "off":
        return False
    if mode == "local":
        mlruns_uri = f"file://{Path.cwd() / 'mlruns'}"
        mlflow.set_tracking_uri(mlruns_uri)
        log.info(f"Using local file-based MLflow tracking backend: {mlruns_uri}")
        return True
    log.warning(f"Unknown MLflow mode '{mode}'. Using existing URI: {mlflow.get_tracking_uri()}")
    return True


@contextmanager
def start_mlflow_run_context(experiment_name: str, parent_run_name: str, child_run_name: str):
    """Start a child run nested under a (reused) parent run."""
    mlflow.set_experiment(experiment_name)
    client = mlflow.tracking.MlflowClient()
    exp = mlflow.get_experiment_by_name(experiment_name)

    parent_runs = client.search_runs(
        experiment_ids=[exp.experiment_id],
        filter_string=f"tags.mlflow.runName = '{parent_run_name}' AND tags.is_parent = 'true'",
        max_results=1,
    )
    parent_run_id = parent_runs[0].info.run_id if parent_runs else None

    with mlflow.start_run(run_id=parent_run_id, run_name=parent_run_name, tags={"is_parent": "true"}):
        with mlflow.start_run(run_name=child_run_name, nested=True) as child:
            env = "hpc" if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID") else "local"
            mlflow.set_tag("environment", env)
            log.info(f"Started MLflow run '{child.info.run_name}' ({child.info.run_id}) [{env}]")
            yield child


def log_parameters(params: dict):
    """Log a dictionary of parameters to the active MLflow run."""
    mlflow.log_params(params)


def log_metrics_dict(metrics: dict):
    """Log a dictionary of metrics, filtering out None values."""
    mlflow.log_metrics({k: v for k, v in metrics.items() if v is not None})


def log_timeseries_metrics(timeseries_data: LocalMetrics):
    """Log per-iteration series as step-based metrics."""
    if not mlflow.active_run():
        return
    client = mlflow.tracking.MlflowClient()
    run_id = mlflow.active_run().info.run_id
    metrics = timeseries_data.to_mlflow_batch(timestamp=int(time.time() * 1000))
    for i in range(0, len(metrics), 1000):
        client.log_batch(run_id=run_id, metrics=metrics[i : i + 1000], synchronous=True)
    if metrics:
        log.info(f"Logged {len(metrics)} time-series metrics.")


def tracked_run(enabled: bool, experiment_name: str, parent_run_name: str, child_run_name: str):
    """``start_mlflow_run_context`` when enabled, otherwise a no-op context."""
    if not enabled:
        return nullcontext()
    return start_mlflow_run_context(experiment_name, parent_run_name, child_run_name)

"""Tests for the mpiexec launch helpers and the Hydra entry script."""

import importlib.util
import subprocess
from pathlib import Path

import Laplace
import pytest
from Laplace.runner import mpi_env
from omegaconf import OmegaConf

ENTRY_SCRIPT = Path(__file__).resolve().parents[1] / "run_solver.py"

OVERSUBSCRIBE_VARS = [
    "OMPI_ALLOW_RUN_AS_ROOT",
    "OMPI_ALLOW_RUN_AS_ROOT_CONFIRM",
    "OMPI_MCA_rmaps_base_oversubscribe",
    "PRTE_MCA_rmaps_default_mapping_policy",
]


@pytest.fixture
def entry_script():
    spec = importlib.util.spec_from_file_location("laplace_entry", ENTRY_SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def clean_env(monkeypatch):
    for name in OVERSUBSCRIBE_VARS:
        monkeypatch.delenv(name, raising=False)


def test_public_names_resolve():
    """Everything exported by the package exists."""
    for name in Laplace.__all__:
        assert hasattr(Laplace, name), name


def test_mpi_env_allows_oversubscription(clean_env):
    env = mpi_env()
    assert env["OMPI_MCA_rmaps_base_oversubscribe"] == "1"
    assert env["OMPI_ALLOW_RUN_AS_ROOT"] == "1"
    assert env["PRTE_MCA_rmaps_default_mapping_policy"] == ":oversubscribe"


def test_mpi_env_keeps_user_settings(clean_env, monkeypatch):
    monkeypatch.setenv("OMPI_MCA_rmaps_base_oversubscribe", "0")
    assert mpi_env()["OMPI_MCA_rmaps_base_oversubscribe"] == "0"


def test_spawn_relaunches_with_mpi_env(entry_script, clean_env, monkeypatch):
    """Hydra multi-rank runs get the same launch environment as run_solver()."""
    captured = {}

    def fake_run(cmd, **kwargs):
        captured["cmd"] = cmd
        captured["env"] = kwargs["env"]
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(entry_script.subprocess, "run", fake_run)
    cfg = OmegaConf.create(
        {"global_rows": 20, "columns": 10, "topology": "ring", "mlflow": {"mode": "off"}}
    )

    entry_script._spawn_mpi(cfg, 7)

    assert captured["cmd"][:3] == ["mpiexec", "-n", "7"]
    assert "topology=ring" in captured["cmd"]
    assert captured["env"]["MPI_SUBPROCESS"] == "1"
    for name in OVERSUBSCRIBE_VARS:
        assert name in captured["env"]


def test_parse_overrides(entry_script):
    parsed = entry_script._parse_overrides(
        ["global_rows=100", "epsilon=0.01", "use_numba=true", "topology=ring", "mlflow.mode=off"]
    )
    assert parsed == {
        "global_rows": 100,
        "epsilon": 0.01,
        "use_numba": True,
        "topology": "ring",
        "mlflow": {"mode": "off"},
    }

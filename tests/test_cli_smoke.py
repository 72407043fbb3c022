import os
import subprocess
import sys
from pathlib import Path

import pandas as pd
import pytest

pytest.importorskip("typer")

SPEC_PATH = Path(__file__).parent / "data" / "spec_example.json"
PYTHONPATH = str(Path(__file__).resolve().parents[1] / "src")


def _run_cli(*args: str) -> subprocess.CompletedProcess:
    env = {**os.environ, "PYTHONPATH": PYTHONPATH}
    env.pop("TRENDLAB_OUT_DIR", None)
    return subprocess.run(
        [sys.executable, "-m", "trendlab.cli.main", *args],
        capture_output=True,
        text=True,
        env=env,
    )


def test_cli_run_smoke(tmp_path: Path) -> None:
    result = _run_cli("run", "--spec", str(SPEC_PATH), "--out-dir", str(tmp_path))
    assert result.returncode == 0, result.stderr
    assert "r_squared" in result.stdout
    assert "Tyler" in result.stdout
    assert (tmp_path / "glance.parquet").exists()


def test_cli_outliers_smoke() -> None:
    result = _run_cli("outliers", "--spec", str(SPEC_PATH), "--threshold", "0.5", "--limit", "5")
    assert result.returncode == 0, result.stderr
    assert "std_resid" in result.stdout


def test_cli_residuals_smoke(tmp_path: Path) -> None:
    out = tmp_path / "housing_resid.csv"
    result = _run_cli("residuals", "--spec", str(SPEC_PATH), "--out", str(out))
    assert result.returncode == 0, result.stderr
    df = pd.read_csv(out)
    assert len(df) == 109
    assert df["resid"].isna().sum() == 3

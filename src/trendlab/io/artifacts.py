"""Utilities to persist run tables, failures and summaries."""
from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd


def _write_rows(path: str | Path, rows: List[Dict[str, Any]]) -> None:
    Path(path).write_text(json.dumps(rows, default=str, indent=2))


def write_table(path: str | Path, df: pd.DataFrame) -> None:
    """Persist a tidy table to Parquet, or CSV when the suffix asks for it."""

    path = Path(path)
    if path.suffix.lower() == ".csv":
        df.to_csv(path, index=False)
        return
    out = df.copy()
    # Parquet needs uniform object columns; missing keys stay null.
    for col in out.columns:
        if out[col].dtype == object:
            out[col] = out[col].astype("string")
    out.to_parquet(path, index=False)


def write_failures(path: str | Path, failures: pd.DataFrame) -> None:
    _write_rows(path, failures.to_dict(orient="records"))


def write_summary(path: str | Path, summary: Dict[str, Any]) -> None:
    Path(path).write_text(json.dumps(summary, indent=2, default=str))

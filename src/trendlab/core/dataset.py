"""Observation table loading.

Tables are read with pandas from CSV, JSON (a list of records) or Parquet
files, chosen by file suffix.  Columns listed as categorical are converted to
the pandas ``category`` dtype so that level order, and therefore the
reference level of indicator expansion, is explicit.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

import pandas as pd

from ..errors import InvalidSpecificationError
from .spec import DataSpec

logger = logging.getLogger(__name__)


def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".json":
        raw = json.loads(path.read_text())
        return pd.DataFrame(raw)
    if suffix in {".parquet", ".pq"}:
        return pd.read_parquet(path)
    return pd.read_csv(path)


def ensure_columns(df: pd.DataFrame, columns: Iterable[str], *, group: Any = None) -> None:
    """Raise when any of ``columns`` is absent from ``df``."""

    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise InvalidSpecificationError(
            f"DataFrame is missing required columns: {', '.join(missing)}",
            group=group,
            column=missing[0],
        )


def as_categorical(
    df: pd.DataFrame,
    columns: Iterable[str],
    levels: Dict[str, List[Any]] | None = None,
) -> pd.DataFrame:
    """Return a copy of ``df`` with ``columns`` converted to ``category``.

    Declared ``levels`` fix the category order; otherwise pandas sorts the
    observed values.  Values outside the declared levels become missing.
    """

    levels = levels or {}
    out = df.copy()
    for col in columns:
        ensure_columns(out, [col])
        if col in levels:
            out[col] = pd.Categorical(out[col], categories=list(levels[col]))
        elif not isinstance(out[col].dtype, pd.CategoricalDtype):
            out[col] = out[col].astype("category")
    return out


def load_table(spec: DataSpec) -> pd.DataFrame:
    """Load the observation table described by ``spec``."""

    path = Path(spec.dataset_path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")
    df = _read_frame(path)
    if spec.columns:
        ensure_columns(df, spec.columns)
        df = df[list(spec.columns)]
    categorical = list(dict.fromkeys([*spec.categorical, *spec.levels]))
    if categorical:
        df = as_categorical(df, categorical, spec.levels)
    logger.info("Loaded %d rows x %d columns from %s", len(df), df.shape[1], path)
    return df.reset_index(drop=True)


__all__ = ["load_table", "as_categorical", "ensure_columns"]

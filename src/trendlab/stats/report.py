"""Reporting helpers over the flat summary tables."""
from __future__ import annotations

from typing import List, Sequence

import numpy as np
import pandas as pd

from ..core.dataset import ensure_columns

_AGGREGATIONS = {"mean", "median", "sum", "min", "max", "std", "count", "size"}


def _keys(keys: str | Sequence[str]) -> List[str]:
    return [keys] if isinstance(keys, str) else list(keys)


def filter_threshold(
    df: pd.DataFrame,
    column: str,
    threshold: float,
    absolute: bool = True,
    inclusive: bool = False,
) -> pd.DataFrame:
    """Return rows whose ``column`` exceeds ``threshold``.

    With ``absolute`` the magnitude is compared, so a threshold of 2 keeps
    standardised residuals below -2 as well as above 2.  Missing values never
    match.  Row order is preserved.
    """

    ensure_columns(df, [column])
    values = pd.to_numeric(df[column], errors="coerce")
    if absolute:
        values = values.abs()
    mask = values >= threshold if inclusive else values > threshold
    return df[mask.fillna(False).astype(bool)]


def count_by(df: pd.DataFrame, keys: str | Sequence[str], name: str = "n") -> pd.DataFrame:
    """Count rows per key, in order of first appearance."""

    cols = _keys(keys)
    ensure_columns(df, cols)
    if df.empty:
        return pd.DataFrame(columns=[*cols, name])
    return (
        df.groupby(cols, sort=False, dropna=False, observed=True)
        .size()
        .rename(name)
        .reset_index()
    )


def summarise_by(
    df: pd.DataFrame,
    keys: str | Sequence[str],
    column: str,
    how: str = "mean",
    name: str | None = None,
) -> pd.DataFrame:
    """Aggregate ``column`` per key with ``how`` (mean, median, sum, ...)."""

    if how not in _AGGREGATIONS:
        raise ValueError(f"Unsupported aggregation: {how}")
    cols = _keys(keys)
    ensure_columns(df, [*cols, column])
    out_name = name or column
    if df.empty:
        return pd.DataFrame(columns=[*cols, out_name])
    return (
        df.groupby(cols, sort=False, dropna=False, observed=True)[column]
        .agg(how)
        .rename(out_name)
        .reset_index()
    )


def order_by(df: pd.DataFrame, column: str, descending: bool = False) -> pd.DataFrame:
    """Return ``df`` sorted on ``column`` for display; ties keep their order."""

    ensure_columns(df, [column])
    return df.sort_values(column, ascending=not descending, kind="mergesort", na_position="last")


def back_transform(
    df: pd.DataFrame,
    column: str,
    base: float = 2.0,
    name: str | None = None,
) -> pd.DataFrame:
    """Return a copy of ``df`` with ``base ** column`` added."""

    ensure_columns(df, [column])
    out = df.copy()
    out[name or f"{column}_ratio"] = np.power(float(base), pd.to_numeric(out[column], errors="coerce"))
    return out


def outliers(
    augmented: pd.DataFrame,
    threshold: float,
    column: str = "std_resid",
    limit: int | None = None,
) -> pd.DataFrame:
    """Rows whose residual magnitude exceeds ``threshold``, largest first."""

    flagged = filter_threshold(augmented, column, threshold)
    ranked = flagged.assign(_magnitude=flagged[column].abs())
    ranked = order_by(ranked, "_magnitude", descending=True).drop(columns="_magnitude")
    if limit is not None:
        ranked = ranked.head(limit)
    return ranked


__all__ = [
    "filter_threshold",
    "count_by",
    "summarise_by",
    "order_by",
    "back_transform",
    "outliers",
]

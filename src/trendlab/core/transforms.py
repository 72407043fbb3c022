"""Derived column computations.

Every transform is a pure, row-wise function of existing columns.  Inputs
outside a function's domain (non-positive values for logarithms, a zero
denominator for ratios) produce a missing value rather than an infinity, so
those rows are later excluded from model fits instead of breaking them.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from ..errors import InvalidSpecificationError
from .dataset import ensure_columns
from .spec import TransformSpec


def _numeric(df: pd.DataFrame, column: str) -> pd.Series:
    ensure_columns(df, [column])
    return pd.to_numeric(df[column], errors="coerce").astype(float)


def log_base(df: pd.DataFrame, column: str, base: float = np.e) -> pd.Series:
    """Logarithm of ``column`` in ``base``; non-positive values become NaN."""

    if base <= 0 or base == 1:
        raise InvalidSpecificationError(f"Invalid logarithm base: {base}", column=column)
    values = _numeric(df, column)
    values = values.where(values > 0)
    if base == 2:
        return np.log2(values)
    if base == 10:
        return np.log10(values)
    return np.log(values) / np.log(base)


def log2(df: pd.DataFrame, column: str) -> pd.Series:
    return log_base(df, column, 2.0)


def log10(df: pd.DataFrame, column: str) -> pd.Series:
    return log_base(df, column, 10.0)


def log(df: pd.DataFrame, column: str) -> pd.Series:
    return log_base(df, column)


def _finite(values: pd.Series) -> pd.Series:
    return values.where(np.isfinite(values))


def power(df: pd.DataFrame, column: str, base: float = 2.0) -> pd.Series:
    """Return ``base ** column``, the inverse of :func:`log_base`.

    Results that overflow to infinity become NaN.
    """

    with np.errstate(over="ignore"):
        values = np.power(float(base), _numeric(df, column))
    return _finite(values)


def ratio(df: pd.DataFrame, numerator: str, denominator: str) -> pd.Series:
    """Row-wise ``numerator / denominator``; a zero denominator gives NaN."""

    num = _numeric(df, numerator)
    den = _numeric(df, denominator)
    with np.errstate(over="ignore"):
        values = num / den.where(den != 0)
    return _finite(values)


transforms_registry = {
    "log2": log2,
    "log10": log10,
    "log": log,
    "log_base": log_base,
    "exp2": power,
    "power": power,
    "ratio": ratio,
}


def derive(df: pd.DataFrame, specs: Sequence[TransformSpec]) -> pd.DataFrame:
    """Return a copy of ``df`` with every derived column appended in order."""

    out = df.copy()
    for tr in specs:
        func = transforms_registry.get(tr.name)
        if func is None:
            raise InvalidSpecificationError(f"Unknown transform: {tr.name}")
        try:
            values = func(out, **tr.params)
        except TypeError as exc:
            raise InvalidSpecificationError(f"Invalid parameters for transform {tr.name}: {exc}") from exc
        out[tr.output] = values
    return out


__all__ = [
    "log_base",
    "log2",
    "log10",
    "log",
    "power",
    "ratio",
    "transforms_registry",
    "derive",
]

"""Row selectors applied to the observation table before modelling."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import pandas as pd

from ..errors import InvalidSpecificationError
from .dataset import ensure_columns
from .spec import SelectorSpec

logger = logging.getLogger(__name__)


def not_null(df: pd.DataFrame, columns: str | Sequence[str]) -> pd.Series:
    """Return a mask of rows with a value in every one of ``columns``."""

    cols = [columns] if isinstance(columns, str) else list(columns)
    ensure_columns(df, cols)
    return df[cols].notna().all(axis=1)


def between(
    df: pd.DataFrame,
    column: str,
    lower: float | None = None,
    upper: float | None = None,
    inclusive: str = "both",
) -> pd.Series:
    """Return a mask of rows whose ``column`` lies within the bounds.

    Either bound may be omitted.  Missing values never match.
    """

    ensure_columns(df, [column])
    if inclusive not in {"both", "neither", "left", "right"}:
        raise InvalidSpecificationError(f"Unknown inclusive mode: {inclusive}", column=column)
    values = pd.to_numeric(df[column], errors="coerce")
    mask = values.notna()
    if lower is not None:
        mask &= values >= lower if inclusive in {"both", "left"} else values > lower
    if upper is not None:
        mask &= values <= upper if inclusive in {"both", "right"} else values < upper
    return mask.astype(bool)


def less_than(df: pd.DataFrame, column: str, value: float) -> pd.Series:
    return between(df, column, upper=value, inclusive="left")


def greater_than(df: pd.DataFrame, column: str, value: float) -> pd.Series:
    return between(df, column, lower=value, inclusive="right")


def isin(df: pd.DataFrame, column: str, values: Iterable[Any]) -> pd.Series:
    """Return a mask of rows whose ``column`` is one of ``values``."""

    ensure_columns(df, [column])
    return df[column].isin(list(values)).astype(bool)


selectors_registry = {
    "not_null": not_null,
    "between": between,
    "less_than": less_than,
    "greater_than": greater_than,
    "isin": isin,
}


def list_selector_types() -> list[str]:
    """Return the list of available selector identifiers."""

    return sorted(selectors_registry)


def apply_selectors(df: pd.DataFrame, specs: Sequence[SelectorSpec]) -> pd.DataFrame:
    """Return the rows of ``df`` matching every selector in ``specs``.

    Original index labels are preserved so that later residuals can be
    aligned back to the source table.
    """

    if not specs:
        return df
    mask = pd.Series(True, index=df.index)
    for sel in specs:
        func = selectors_registry.get(sel.name)
        if func is None:
            raise InvalidSpecificationError(f"Unknown selector: {sel.name}")
        try:
            mask &= func(df, **sel.params)
        except TypeError as exc:
            raise InvalidSpecificationError(f"Invalid parameters for selector {sel.name}: {exc}") from exc
    out = df[mask]
    logger.info("Selected %d of %d rows", len(out), len(df))
    return out


__all__ = [
    "not_null",
    "between",
    "less_than",
    "greater_than",
    "isin",
    "selectors_registry",
    "list_selector_types",
    "apply_selectors",
]

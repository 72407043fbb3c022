"""Independent per-group model fitting and summary aggregation.

The observation table is partitioned once into a mapping from group key to
row labels.  Every group is then fitted on its own rows only, so changing the
rows of one group can never alter another group's model.  Groups that cannot
be fitted are reported as :class:`FitFailure` records instead of aborting the
run, and simply contribute no summary rows.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..core.dataset import ensure_columns
from ..core.spec import ROW_COLUMN, ModelSpec
from ..errors import InsufficientDataError, InvalidSpecificationError, TrendlabError
from .ols import FittedModel, fit_ols
from . import tidy as tidy_mod

logger = logging.getLogger(__name__)

ALL_ROWS = "all"
FAILURE_COLUMNS = ["group", "kind", "column", "message"]


@dataclass(frozen=True)
class FitFailure:
    """A group whose model could not be fitted."""

    group: Any
    kind: str
    column: Optional[str]
    message: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group,
            "kind": self.kind,
            "column": self.column,
            "message": self.message,
        }


@dataclass
class GroupFits:
    """Fitted models keyed by group, in partition order, plus failures."""

    group_by: Tuple[str, ...]
    models: Dict[Any, FittedModel] = field(default_factory=dict)
    failures: List[FitFailure] = field(default_factory=list)

    def failed_groups(self) -> List[Any]:
        return [f.group for f in self.failures]


@dataclass
class SummaryTables:
    glance: pd.DataFrame
    tidy: pd.DataFrame
    augment: pd.DataFrame
    failures: pd.DataFrame


def _group_cols(group_by: str | Sequence[str] | None) -> List[str]:
    if group_by is None:
        return []
    if isinstance(group_by, str):
        return [group_by]
    return list(group_by)


def partition(df: pd.DataFrame, group_by: str | Sequence[str] | None) -> Dict[Any, pd.Index]:
    """Return group key -> row labels, in order of first appearance.

    A single grouping column yields scalar keys, several columns yield tuple
    keys.  Rows with a missing key value form their own group.
    """

    cols = _group_cols(group_by)
    if not cols:
        return {ALL_ROWS: df.index}
    ensure_columns(df, cols)
    grouped = df.groupby(cols, sort=False, dropna=False, observed=True)
    out: Dict[Any, pd.Index] = {}
    for key, sub in grouped:
        if len(cols) == 1 and isinstance(key, tuple):
            key = key[0]
        out[key] = sub.index
    return out


def _failure_kind(exc: TrendlabError) -> str:
    if isinstance(exc, InsufficientDataError):
        return "insufficient_data"
    return "invalid_specification"


def _fit_one(
    df: pd.DataFrame,
    key: Any,
    index: pd.Index,
    model: ModelSpec,
) -> Tuple[Any, FittedModel | None, FitFailure | None]:
    try:
        return key, fit_ols(df.loc[index], model, group=key), None
    except (InsufficientDataError, InvalidSpecificationError) as exc:
        failure = FitFailure(
            group=key,
            kind=_failure_kind(exc),
            column=exc.column,
            message=exc.message,
        )
        logger.warning("Group %r not fitted (%s): %s", key, failure.kind, exc.message)
        return key, None, failure


def fit_groups(
    df: pd.DataFrame,
    group_by: str | Sequence[str] | None,
    model: ModelSpec,
    max_workers: int = 1,
) -> GroupFits:
    """Fit ``model`` independently within every group of ``df``.

    With ``max_workers > 1`` fits run on a thread pool; results are gathered
    in partition order, so the output does not depend on scheduling.
    """

    if not df.index.is_unique:
        raise InvalidSpecificationError("Observation table index must be unique")
    cols = _group_cols(group_by)
    groups = partition(df, cols)

    if max_workers > 1 and len(groups) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(
                executor.map(lambda item: _fit_one(df, item[0], item[1], model), groups.items())
            )
    else:
        outcomes = [_fit_one(df, key, index, model) for key, index in groups.items()]

    fits = GroupFits(group_by=tuple(cols))
    for key, fitted, failure in outcomes:
        if fitted is not None:
            fits.models[key] = fitted
        if failure is not None:
            fits.failures.append(failure)
    logger.info(
        "Fitted %d of %d groups (%d failed)",
        len(fits.models),
        len(groups),
        len(fits.failures),
    )
    return fits


def _with_key(table: pd.DataFrame, cols: Sequence[str], key: Any) -> pd.DataFrame:
    values = key if len(cols) > 1 else (key,)
    for pos, (col, value) in enumerate(zip(cols, values)):
        if col not in table.columns:
            table.insert(pos, col, [value] * len(table))
    return table


def _concat(frames: List[pd.DataFrame], columns: List[str]) -> pd.DataFrame:
    if not frames:
        return pd.DataFrame(columns=columns)
    return pd.concat(frames, ignore_index=True)


def summarise_groups(fits: GroupFits, conf_level: float | None = None) -> SummaryTables:
    """Concatenate the tidy views of every fitted group, in group order."""

    cols = list(fits.group_by)
    glances: List[pd.DataFrame] = []
    tidies: List[pd.DataFrame] = []
    augments: List[pd.DataFrame] = []
    for key, fitted in fits.models.items():
        glances.append(_with_key(tidy_mod.glance(fitted), cols, key))
        tidies.append(_with_key(tidy_mod.tidy(fitted, conf_level=conf_level), cols, key))
        augments.append(_with_key(tidy_mod.augment(fitted), cols, key))
    failures = pd.DataFrame([f.as_dict() for f in fits.failures], columns=FAILURE_COLUMNS)
    return SummaryTables(
        glance=_concat(glances, cols + tidy_mod.GLANCE_COLUMNS),
        tidy=_concat(tidies, cols + tidy_mod.TIDY_COLUMNS),
        augment=_concat(augments, cols + [ROW_COLUMN] + tidy_mod.AUGMENT_COLUMNS),
        failures=failures,
    )


__all__ = [
    "ALL_ROWS",
    "FitFailure",
    "GroupFits",
    "SummaryTables",
    "partition",
    "fit_groups",
    "summarise_groups",
]

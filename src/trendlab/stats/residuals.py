"""Trend removal: residuals of a linear model aligned with the input table."""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from ..core.spec import ModelSpec
from .grouped import GroupFits, fit_groups
from .ols import fit_ols

logger = logging.getLogger(__name__)


def ratio_from_residual(resid: pd.Series | np.ndarray | float, base: float = 2.0):
    """Back-transform a residual of a log-``base`` response.

    The result is the multiplicative ratio "actual / predicted".
    """

    return np.power(float(base), resid)


def residuals_from_fits(fits: GroupFits, index: pd.Index) -> pd.Series:
    """Place each group's residuals at their source rows; other rows are NaN."""

    out = pd.Series(np.nan, index=index, dtype=float)
    for fitted in fits.models.values():
        out.loc[fitted.row_index] = fitted.resid
    return out


def residualize(
    df: pd.DataFrame,
    model: ModelSpec,
    group_by: str | Sequence[str] | None = None,
    max_workers: int = 1,
) -> pd.Series:
    """Return the residual of every row of ``df``, in the original order.

    Rows excluded from the fit (missing response or predictor, or belonging
    to a group that could not be fitted) hold ``NaN``; the result always has
    exactly the index of ``df``.
    """

    work = df.reset_index(drop=True)
    if group_by:
        fits = fit_groups(work, group_by, model, max_workers=max_workers)
        resid = residuals_from_fits(fits, work.index)
    else:
        fitted = fit_ols(work, model)
        resid = pd.Series(np.nan, index=work.index, dtype=float)
        resid.loc[fitted.row_index] = fitted.resid
    resid.index = df.index
    n_missing = int(resid.isna().sum())
    if n_missing:
        logger.info("%d of %d rows have no residual", n_missing, len(df))
    return resid


def add_residuals(
    df: pd.DataFrame,
    model: ModelSpec,
    name: str = "resid",
    group_by: str | Sequence[str] | None = None,
    back_transform: float | None = None,
    max_workers: int = 1,
) -> pd.DataFrame:
    """Return a copy of ``df`` with the model's residuals as column ``name``.

    ``back_transform`` (defaulting to ``model.log_base``) also adds
    ``<name>_ratio = back_transform ** residual``.
    """

    out = df.copy()
    out[name] = residualize(df, model, group_by=group_by, max_workers=max_workers)
    base = back_transform if back_transform is not None else model.log_base
    if base is not None:
        out[f"{name}_ratio"] = ratio_from_residual(out[name], base)
    return out


__all__ = ["ratio_from_residual", "residuals_from_fits", "residualize", "add_residuals"]

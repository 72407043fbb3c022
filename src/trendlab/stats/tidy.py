"""Tidy summary tables extracted from a :class:`FittedModel`.

* ``glance``: one row of fit-quality statistics.
* ``tidy``: one row per model term.
* ``augment``: one row per observation used in the fit.

Rows excluded for missing values are omitted from every view; ``glance``
reports how many there were and ``augment`` keeps the source row label so
results can be joined back to the input table.
"""
from __future__ import annotations

import numpy as np
import pandas as pd
from scipy import stats as sp_stats

from ..core.spec import ROW_COLUMN
from .ols import FittedModel

GLANCE_COLUMNS = [
    "r_squared",
    "adj_r_squared",
    "sigma",
    "statistic",
    "p_value",
    "df",
    "df_residual",
    "log_lik",
    "aic",
    "bic",
    "deviance",
    "nobs",
    "n_excluded",
]

TIDY_COLUMNS = ["term", "estimate", "std_error", "statistic", "p_value"]

AUGMENT_COLUMNS = ["fitted", "resid", "hat", "sigma_loo", "cooks_d", "std_resid"]


def glance(model: FittedModel) -> pd.DataFrame:
    """Return the single-row model-level summary."""

    row = {
        "r_squared": model.rsquared,
        "adj_r_squared": model.rsquared_adj,
        "sigma": model.sigma,
        "statistic": model.fvalue,
        "p_value": model.f_pvalue,
        "df": model.rank,
        "df_residual": int(model.df_resid),
        "log_lik": model.llf,
        "aic": model.aic,
        "bic": model.bic,
        "deviance": model.ssr,
        "nobs": model.nobs,
        "n_excluded": model.n_excluded,
    }
    return pd.DataFrame([row], columns=GLANCE_COLUMNS)


def tidy(
    model: FittedModel,
    conf_level: float | None = None,
    base: float | None = None,
) -> pd.DataFrame:
    """Return one row per term with estimate and standard error.

    ``conf_level`` adds ``conf_low``/``conf_high`` t intervals.  ``base``
    (defaulting to the model's ``log_base``) adds ``ratio = base ** estimate``,
    the multiplicative effect of a term on a log-transformed response.
    """

    out = pd.DataFrame(
        {
            "term": list(model.terms),
            "estimate": model.params,
            "std_error": model.bse,
            "statistic": model.tvalues,
            "p_value": model.pvalues,
        },
        columns=TIDY_COLUMNS,
    )
    if conf_level is not None:
        if not 0 < conf_level < 1:
            raise ValueError("conf_level must be between 0 and 1")
        t_crit = float(sp_stats.t.ppf((1 + conf_level) / 2, model.df_resid))
        out["conf_low"] = model.params - t_crit * model.bse
        out["conf_high"] = model.params + t_crit * model.bse
    base = base if base is not None else model.log_base
    if base is not None:
        out["ratio"] = np.power(float(base), model.params)
    return out


def augment(model: FittedModel) -> pd.DataFrame:
    """Return one row per fitted observation with residual diagnostics.

    ``std_resid`` is the residual divided by ``sigma * sqrt(1 - hat)``.  When
    the model has a ``log_base``, ``ratio`` holds ``log_base ** resid``, the
    observed value relative to the model's prediction.
    """

    out = model.data.reset_index(drop=True)
    out.insert(0, ROW_COLUMN, model.row_index.to_numpy())
    out["fitted"] = model.fitted
    out["resid"] = model.resid
    out["hat"] = model.hat
    out["sigma_loo"] = model.sigma_loo
    out["cooks_d"] = model.cooks_d
    out["std_resid"] = model.std_resid
    if model.log_base is not None:
        out["ratio"] = np.power(float(model.log_base), model.resid)
    return out


__all__ = [
    "GLANCE_COLUMNS",
    "TIDY_COLUMNS",
    "AUGMENT_COLUMNS",
    "glance",
    "tidy",
    "augment",
]

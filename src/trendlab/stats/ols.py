"""Ordinary least squares fits for trend removal.

``fit_ols`` turns the rows of one group into a :class:`FittedModel`, an
immutable value holding everything the tidy summaries need (estimates,
residual standard error, design rank, influence measures and the original
row labels).  Summaries are then pure functions of that value.

Rows with a missing or non-finite response or predictor are excluded before
fitting.  Categorical predictors are expanded into one indicator column per
level other than the reference (first) level, using only the levels observed
in the fitted rows.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ..core.dataset import ensure_columns
from ..core.spec import ModelSpec
from ..errors import InsufficientDataError, InvalidSpecificationError

logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Immutable result of one OLS fit."""

    group: Any
    response: str
    predictors: Tuple[str, ...]
    terms: Tuple[str, ...]
    params: np.ndarray
    bse: np.ndarray
    tvalues: np.ndarray
    pvalues: np.ndarray
    sigma: float
    rank: int
    nobs: int
    n_excluded: int
    df_resid: float
    rsquared: float
    rsquared_adj: float
    fvalue: float
    f_pvalue: float
    llf: float
    aic: float
    bic: float
    ssr: float
    row_index: pd.Index
    data: pd.DataFrame
    y: np.ndarray
    fitted: np.ndarray
    resid: np.ndarray
    hat: np.ndarray
    std_resid: np.ndarray
    sigma_loo: np.ndarray
    cooks_d: np.ndarray
    log_base: float | None = None

    def coefficients(self) -> Dict[str, float]:
        return dict(zip(self.terms, (float(v) for v in self.params)))


def _is_categorical(series: pd.Series, name: str, model: ModelSpec) -> bool:
    if name in model.categorical:
        return True
    if pd.api.types.is_bool_dtype(series):
        return False
    return not pd.api.types.is_numeric_dtype(series)


def _observed_levels(series: pd.Series) -> List[Any]:
    """Return the levels present in ``series``, reference level first."""

    present = set(series.dropna().unique().tolist())
    if isinstance(series.dtype, pd.CategoricalDtype):
        return [lvl for lvl in series.cat.categories if lvl in present]
    try:
        return sorted(present)
    except TypeError:
        return sorted(present, key=str)


def _fmt_level(level: Any) -> str:
    if isinstance(level, float) and level.is_integer():
        return str(int(level))
    return str(level)


def _dependent_term(X: pd.DataFrame) -> str:
    """Return the first column of ``X`` spanned by the columns before it."""

    values = X.to_numpy()
    for k in range(1, X.shape[1] + 1):
        if np.linalg.matrix_rank(values[:, :k]) < k:
            return X.columns[k - 1]
    return X.columns[-1]


def build_design(
    frame: pd.DataFrame,
    model: ModelSpec,
    group: Any = None,
) -> Tuple[pd.DataFrame, pd.Series, pd.DataFrame, int]:
    """Return ``(X, y, used_rows, n_excluded)`` for ``model`` on ``frame``.

    ``X`` carries an intercept column and one column per term.  ``used_rows``
    holds the response and predictor values of the rows kept for the fit.
    Rows with a missing value, or a non-finite value in a numeric column, are
    excluded and counted in ``n_excluded``.

    Raises
    ------
    InvalidSpecificationError
        A column is absent, the response is not numeric, a predictor has no
        variation, or the design is rank deficient.
    InsufficientDataError
        The rows left after exclusion do not leave at least one residual
        degree of freedom.
    """

    columns = list(dict.fromkeys(model.columns()))
    ensure_columns(frame, columns, group=group)
    response = frame[model.response]
    if not pd.api.types.is_numeric_dtype(response) or pd.api.types.is_bool_dtype(response):
        raise InvalidSpecificationError(
            f"Response column {model.response!r} is not numeric",
            group=group,
            column=model.response,
        )

    subset = frame[columns]
    categorical = [p for p in model.predictors if _is_categorical(subset[p], p, model)]
    usable = subset.notna().all(axis=1)
    for col in columns:
        if col not in categorical:
            usable &= np.isfinite(pd.to_numeric(subset[col], errors="coerce").astype(float))
    used = subset[usable]
    n_excluded = int((~usable).sum())
    n = len(used)

    levels: Dict[str, List[Any]] = {}
    n_terms = 1
    for pred in model.predictors:
        if pred in categorical:
            levels[pred] = _observed_levels(used[pred])
            n_terms += max(len(levels[pred]) - 1, 1)
        else:
            n_terms += 1

    if n <= n_terms:
        raise InsufficientDataError(
            f"{n} usable rows for a model with {n_terms} terms "
            f"({n_excluded} rows excluded for missing or non-finite values)",
            group=group,
        )

    encoded = pd.DataFrame(index=used.index)
    for pred in model.predictors:
        if pred in levels:
            if len(levels[pred]) < 2:
                raise InvalidSpecificationError(
                    f"Categorical predictor {pred!r} has a single level",
                    group=group,
                    column=pred,
                )
            series = used[pred]
            if isinstance(series.dtype, pd.CategoricalDtype):
                encoded[pred] = series.cat.remove_unused_categories()
            else:
                encoded[pred] = series.astype(pd.CategoricalDtype(levels[pred]))
        else:
            values = pd.to_numeric(used[pred], errors="coerce").astype(float)
            if values.nunique() < 2:
                raise InvalidSpecificationError(
                    f"Predictor {pred!r} has zero variance",
                    group=group,
                    column=pred,
                )
            encoded[pred] = values

    # get_dummies keeps the numeric columns first, then one block per
    # categorical column in level order with the reference level dropped.
    source: Dict[str, str] = {}
    order: List[str] = []
    for pred in model.predictors:
        if pred in levels:
            names = [f"{pred}[T.{_fmt_level(lvl)}]" for lvl in levels[pred][1:]]
        else:
            names = [pred]
        order.extend(names)
        source.update((name, pred) for name in names)
    dummy_cols = [p for p in model.predictors if p in levels]
    if dummy_cols:
        X = pd.get_dummies(encoded, columns=dummy_cols, drop_first=True, dtype=float)
        kept = [c for c in encoded.columns if c not in levels]
        dummy_names = [name for pred in dummy_cols for name in order if source[name] == pred]
        X = X.set_axis(kept + dummy_names, axis=1)[order]
    else:
        X = encoded
    X = sm.add_constant(X, prepend=True, has_constant="add")
    X = X.set_axis([INTERCEPT, *order], axis=1)

    rank = int(np.linalg.matrix_rank(X.to_numpy()))
    if rank < X.shape[1]:
        term = _dependent_term(X)
        raise InvalidSpecificationError(
            f"Design matrix is rank deficient (rank {rank} for {X.shape[1]} terms); "
            f"{term!r} is a linear combination of earlier terms",
            group=group,
            column=source.get(term),
        )
    y = used[model.response].astype(float)
    return X, y, used, n_excluded


def _finite(values: Any) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    return np.where(np.isfinite(arr), arr, np.nan)


def fit_ols(frame: pd.DataFrame, model: ModelSpec, group: Any = None) -> FittedModel:
    """Fit ``model`` by ordinary least squares on the rows of ``frame``."""

    X, y, used, n_excluded = build_design(frame, model, group=group)
    with np.errstate(divide="ignore", invalid="ignore"):
        results = sm.OLS(y, X).fit()
        influence = results.get_influence()
        hat = _finite(influence.hat_matrix_diag)
        std_resid = _finite(influence.resid_studentized_internal)
        sigma_loo = _finite(np.sqrt(influence.sigma2_not_obsi))
        cooks_d = _finite(influence.cooks_distance[0])
        rsquared = float(results.rsquared)
        rsquared_adj = float(results.rsquared_adj)
        fvalue = float(results.fvalue)
        f_pvalue = float(results.f_pvalue)

    logger.debug(
        "Fitted %s ~ %s for group %r on %d rows (r2=%.4f)",
        model.response,
        " + ".join(model.predictors),
        group,
        int(results.nobs),
        rsquared,
    )
    return FittedModel(
        group=group,
        response=model.response,
        predictors=tuple(model.predictors),
        terms=tuple(X.columns),
        params=np.asarray(results.params, dtype=float),
        bse=np.asarray(results.bse, dtype=float),
        tvalues=_finite(results.tvalues),
        pvalues=_finite(results.pvalues),
        sigma=float(np.sqrt(results.scale)),
        rank=int(results.df_model) + 1,
        nobs=int(results.nobs),
        n_excluded=n_excluded,
        df_resid=float(results.df_resid),
        rsquared=rsquared,
        rsquared_adj=rsquared_adj,
        fvalue=fvalue,
        f_pvalue=f_pvalue,
        llf=float(results.llf),
        aic=float(results.aic),
        bic=float(results.bic),
        ssr=float(results.ssr),
        row_index=used.index.copy(),
        data=used.copy(),
        y=y.to_numpy(dtype=float),
        fitted=np.asarray(results.fittedvalues, dtype=float),
        resid=np.asarray(results.resid, dtype=float),
        hat=hat,
        std_resid=std_resid,
        sigma_loo=sigma_loo,
        cooks_d=cooks_d,
        log_base=model.log_base,
    )


__all__ = ["INTERCEPT", "FittedModel", "build_design", "fit_ols"]

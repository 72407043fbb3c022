from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from ..config import get_settings
from ..core.dataset import load_table
from ..core.selectors import apply_selectors
from ..core.spec import RunSpec
from ..core.transforms import derive
from ..io import artifacts
from ..viz import plots
from . import report
from .grouped import GroupFits, SummaryTables, fit_groups, summarise_groups
from .residuals import ratio_from_residual, residuals_from_fits

logger = logging.getLogger(__name__)

RESIDUAL_COLUMN = "resid"


@dataclass
class RunResult:
    data: pd.DataFrame
    fits: GroupFits
    tables: SummaryTables
    outliers: pd.DataFrame
    outlier_counts: pd.DataFrame
    summary: Dict[str, Any]
    paths: Dict[str, Path] = field(default_factory=dict)


def prepare(spec: RunSpec) -> pd.DataFrame:
    """Load the table and apply the selectors and transforms of ``spec``."""

    df = load_table(spec.data)
    df = apply_selectors(df, spec.selectors)
    return derive(df, spec.transforms)


def _summary(spec: RunSpec, data: pd.DataFrame, fits: GroupFits, flagged: pd.DataFrame, threshold: float) -> Dict[str, Any]:
    n_groups = len(fits.models) + len(fits.failures)
    return {
        "response": spec.model.response,
        "predictors": list(spec.model.predictors),
        "group_by": list(spec.group_by),
        "n_rows": int(len(data)),
        "n_rows_fitted": int(data[RESIDUAL_COLUMN].notna().sum()),
        "n_groups": n_groups,
        "n_fitted": len(fits.models),
        "n_failed": len(fits.failures),
        "failed_groups": [str(g) for g in fits.failed_groups()],
        "threshold": threshold,
        "n_outliers": int(len(flagged)),
    }


def _write_artifacts(out_dir: Path, result: RunResult) -> Dict[str, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "glance": out_dir / "glance.parquet",
        "tidy": out_dir / "tidy.parquet",
        "augment": out_dir / "augment.parquet",
        "outliers": out_dir / "outliers.parquet",
        "failures": out_dir / "failures.json",
        "summary": out_dir / "summary.json",
    }
    artifacts.write_table(paths["glance"], result.tables.glance)
    artifacts.write_table(paths["tidy"], result.tables.tidy)
    artifacts.write_table(paths["augment"], result.tables.augment)
    artifacts.write_table(paths["outliers"], result.outliers)
    artifacts.write_failures(paths["failures"], result.tables.failures)
    artifacts.write_summary(paths["summary"], result.summary)
    return paths


def _render_plots(spec: RunSpec, out_dir: Path, result: RunResult) -> Dict[str, Path]:
    tables = {
        "data": result.data,
        "glance": result.tables.glance,
        "tidy": result.tables.tidy,
        "augment": result.tables.augment,
    }
    paths: Dict[str, Path] = {}
    for plot in spec.plots:
        paths[f"plot:{plot.filename}"] = plots.render(
            plot.kind, tables[plot.table], out_dir / plot.filename, **plot.params
        )
    return paths


def run(spec: RunSpec) -> RunResult:
    """Execute a trend-removal run described by ``spec``."""

    settings = get_settings()
    data = prepare(spec)
    max_workers = spec.execution.max_workers or settings.max_workers
    fits = fit_groups(data, spec.group_by, spec.model, max_workers=max_workers)
    tables = summarise_groups(fits)

    data = data.copy()
    data[RESIDUAL_COLUMN] = residuals_from_fits(fits, data.index)
    if spec.model.log_base is not None:
        data[f"{RESIDUAL_COLUMN}_ratio"] = ratio_from_residual(data[RESIDUAL_COLUMN], spec.model.log_base)

    threshold = spec.report.threshold if spec.report.threshold is not None else settings.std_resid_threshold
    if tables.augment.empty:
        flagged = tables.augment
    else:
        flagged = report.outliers(tables.augment, threshold, column=spec.report.column, limit=spec.report.limit)
    if spec.group_by:
        counts = report.count_by(flagged, spec.group_by)
    else:
        counts = pd.DataFrame({"n": [len(flagged)]})

    result = RunResult(
        data=data,
        fits=fits,
        tables=tables,
        outliers=flagged,
        outlier_counts=counts,
        summary=_summary(spec, data, fits, flagged, threshold),
    )
    logger.info(
        "Run complete: %d groups fitted, %d failed, %d outliers beyond %.2f",
        result.summary["n_fitted"],
        result.summary["n_failed"],
        result.summary["n_outliers"],
        threshold,
    )

    out_dir_value = spec.artifacts.out_dir if spec.artifacts and spec.artifacts.out_dir else settings.out_dir
    if out_dir_value:
        out_dir = Path(out_dir_value)
        result.paths.update(_write_artifacts(out_dir, result))
        result.paths.update(_render_plots(spec, out_dir, result))
    elif spec.plots:
        logger.warning("Plots requested but no output directory configured; skipping")
    return result


__all__: List[str] = ["RESIDUAL_COLUMN", "RunResult", "prepare", "run"]

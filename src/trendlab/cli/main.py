"""Command line interface entry points."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from ..config import configure_logging
from ..core import spec as spec_module
from ..errors import TrendlabError

app = typer.Typer()


def _load(spec: Path) -> spec_module.RunSpec:
    try:
        return spec_module.load_spec(spec)
    except ValueError as exc:
        typer.echo(f"Invalid spec: {exc}", err=True)
        raise typer.Exit(2)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default from TRENDLAB_LOG_LEVEL)"),
) -> None:
    """Remove trends from tabular data with per-group linear models."""

    configure_logging(log_level)


@app.command("run")
def run_cmd(
    spec: Path = typer.Option(..., "--spec", exists=True, file_okay=True, dir_okay=False),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Override artifacts.out_dir"),
) -> None:
    """Run a specification and print the model-level summary per group."""

    from ..core.spec import ArtifactsSpec
    from ..stats.runner import run

    sp = _load(spec)
    if out_dir is not None:
        sp.artifacts = ArtifactsSpec(out_dir=str(out_dir))
    try:
        result = run(sp)
    except (TrendlabError, FileNotFoundError) as exc:
        typer.echo(f"Run failed: {exc}", err=True)
        raise typer.Exit(1)
    glance = result.tables.glance
    if glance.empty:
        typer.echo("No groups could be fitted")
    else:
        cols = [*sp.group_by, "r_squared", "sigma", "df", "nobs", "n_excluded"]
        typer.echo(glance[[c for c in cols if c in glance.columns]].to_string(index=False))
    if not result.tables.failures.empty:
        typer.echo("Failed groups:")
        typer.echo(result.tables.failures.to_string(index=False))
    typer.echo(json.dumps(result.summary, separators=(",", ":"), default=str))


@app.command("outliers")
def outliers_cmd(
    spec: Path = typer.Option(..., "--spec", exists=True, file_okay=True, dir_okay=False),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Absolute standardised residual cut-off"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    """Display the observations with the largest standardised residuals."""

    from ..stats.runner import run

    sp = _load(spec)
    if threshold is not None:
        sp.report.threshold = threshold
    sp.report.limit = limit
    sp.artifacts = None
    sp.plots = []
    try:
        result = run(sp)
    except (TrendlabError, FileNotFoundError) as exc:
        typer.echo(f"Run failed: {exc}", err=True)
        raise typer.Exit(1)
    if result.outliers.empty:
        typer.echo("No outliers found")
        return
    cols = [*sp.group_by, spec_module.ROW_COLUMN, sp.model.response, "fitted", "resid", sp.report.column]
    shown = list(dict.fromkeys(c for c in cols if c in result.outliers.columns))
    typer.echo(result.outliers[shown].to_string(index=False))
    if sp.group_by:
        typer.echo(result.outlier_counts.to_string(index=False))


@app.command("residuals")
def residuals_cmd(
    spec: Path = typer.Option(..., "--spec", exists=True, file_okay=True, dir_okay=False),
    out: Path = typer.Option(..., "--out", help="CSV or Parquet destination"),
) -> None:
    """Write the selected table with its residual column aligned row by row."""

    from ..io import artifacts
    from ..stats.runner import run

    sp = _load(spec)
    sp.artifacts = None
    sp.plots = []
    try:
        result = run(sp)
    except (TrendlabError, FileNotFoundError) as exc:
        typer.echo(f"Run failed: {exc}", err=True)
        raise typer.Exit(1)
    out.parent.mkdir(parents=True, exist_ok=True)
    artifacts.write_table(out, result.data)
    typer.echo(f"Wrote {len(result.data)} rows to {out}")


if __name__ == "__main__":
    app()

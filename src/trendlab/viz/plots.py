"""Matplotlib figures for tidy model tables.

All builders take a DataFrame plus column names and return a
``matplotlib.figure.Figure``; use :func:`save_figure` to write it out.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
from matplotlib.figure import Figure  # noqa: E402

from ..core.dataset import ensure_columns  # noqa: E402
from ..errors import InvalidSpecificationError  # noqa: E402


def _groups(df: pd.DataFrame, column: Optional[str]):
    if column is None:
        yield None, df
        return
    for key, sub in df.groupby(column, sort=False, dropna=False, observed=True):
        yield (key[0] if isinstance(key, tuple) else key), sub


def scatter(
    df: pd.DataFrame,
    x: str,
    y: str,
    hue: Optional[str] = None,
    title: str = "",
    alpha: float = 0.6,
) -> Figure:
    """Scatter ``y`` against ``x``, one colour per ``hue`` value."""

    ensure_columns(df, [x, y] + ([hue] if hue else []))
    fig, ax = plt.subplots(figsize=(7, 5))
    for key, sub in _groups(df, hue):
        ax.scatter(sub[x], sub[y], s=12, alpha=alpha, label=None if key is None else str(key))
    if hue is not None:
        ax.legend(title=hue, fontsize="small")
    ax.set_xlabel(x)
    ax.set_ylabel(y)
    ax.set_title(title or f"{y} vs {x}")
    fig.tight_layout()
    return fig


def lines_by_group(
    df: pd.DataFrame,
    x: str,
    y: str,
    group: str,
    title: str = "",
    hline: Optional[float] = None,
) -> Figure:
    """Draw one line per ``group``, points ordered by ``x``."""

    ensure_columns(df, [x, y, group])
    fig, ax = plt.subplots(figsize=(8, 5))
    for key, sub in _groups(df, group):
        sub = sub.sort_values(x, kind="mergesort")
        ax.plot(sub[x], sub[y], linewidth=1, alpha=0.7, label=str(key))
    if hline is not None:
        ax.axhline(hline, color="black", linewidth=0.8, linestyle="--")
    if df[group].nunique(dropna=False) <= 12:
        ax.legend(title=group, fontsize="small")
    ax.set_xlabel(x)
    ax.set_ylabel(y)
    ax.set_title(title or f"{y} by {group}")
    fig.tight_layout()
    return fig


def histogram(df: pd.DataFrame, column: str, bins: int = 30, title: str = "") -> Figure:
    """Histogram of ``column`` ignoring missing values."""

    ensure_columns(df, [column])
    fig, ax = plt.subplots(figsize=(6, 4))
    values = pd.to_numeric(df[column], errors="coerce").dropna()
    ax.hist(values, bins=bins)
    ax.set_xlabel(column)
    ax.set_ylabel("Count")
    ax.set_title(title or f"Distribution of {column}")
    fig.tight_layout()
    return fig


def coefficients(
    tidy_df: pd.DataFrame,
    group: Optional[str] = None,
    value: str = "estimate",
    title: str = "",
) -> Figure:
    """Plot term estimates with +/- 2 standard error bars.

    With ``group`` the estimates of each group are offset side by side.
    """

    ensure_columns(tidy_df, ["term", value, "std_error"])
    terms = list(dict.fromkeys(tidy_df["term"]))
    positions = {term: i for i, term in enumerate(terms)}
    parts = list(_groups(tidy_df, group))
    width = 0.8 / max(len(parts), 1)
    fig, ax = plt.subplots(figsize=(max(6, len(terms) * 0.6), 4))
    for i, (key, sub) in enumerate(parts):
        xs = np.array([positions[t] for t in sub["term"]], dtype=float) + (i - (len(parts) - 1) / 2) * width
        ax.errorbar(
            xs,
            sub[value],
            yerr=2 * sub["std_error"],
            fmt="o",
            markersize=3,
            label=None if key is None else str(key),
        )
    ax.set_xticks(range(len(terms)))
    ax.set_xticklabels(terms, rotation=45, ha="right")
    ax.axhline(0.0, color="grey", linewidth=0.8)
    if group is not None and len(parts) <= 12:
        ax.legend(title=group, fontsize="small")
    ax.set_ylabel(value)
    ax.set_title(title or "Coefficient estimates")
    fig.tight_layout()
    return fig


def save_figure(fig: Figure, path: str | Path) -> Path:
    """Write ``fig`` to ``path`` and release it."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path)
    plt.close(fig)
    return path


plots_registry = {
    "scatter": scatter,
    "lines": lines_by_group,
    "histogram": histogram,
    "coefficients": coefficients,
}


def render(kind: str, df: pd.DataFrame, path: str | Path, **params) -> Path:
    """Build the ``kind`` figure from ``df`` and save it to ``path``."""

    func = plots_registry.get(kind)
    if func is None:
        raise InvalidSpecificationError(f"Unknown plot: {kind}")
    open_before = set(plt.get_fignums())
    try:
        fig = func(df, **params)
    except TypeError as exc:
        for num in set(plt.get_fignums()) - open_before:
            plt.close(num)
        raise InvalidSpecificationError(f"Invalid parameters for plot {kind} ({Path(path).name}): {exc}") from exc
    return save_figure(fig, path)

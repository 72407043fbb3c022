"""Figures built from tidy model tables."""
from __future__ import annotations

from .plots import coefficients, histogram, lines_by_group, plots_registry, render, save_figure, scatter

__all__ = [
    "scatter",
    "lines_by_group",
    "histogram",
    "coefficients",
    "save_figure",
    "plots_registry",
    "render",
]

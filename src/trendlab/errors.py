"""
Exceptions raised while selecting, transforming and fitting tables.
"""

from __future__ import annotations

from typing import Any


class TrendlabError(Exception):
    """Base exception for trend-removal failures."""

    def __init__(self, message: str, *, group: Any = None, column: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.group = group
        self.column = column


class InvalidSpecificationError(TrendlabError):
    """Raised when a column, selector, transform or predictor cannot be used."""


class InsufficientDataError(TrendlabError):
    """Raised when a group has too few usable rows for the requested model."""

"""Run specification models.

A run specification describes the whole trend-removal pipeline as JSON: where
the table lives, which rows to keep, which columns to derive, the linear
model to fit within each group, and what to report or write afterwards.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator


# Label of the source-row column in per-observation tables.
ROW_COLUMN = "row"


def _not_reserved(name: str) -> str:
    if name == ROW_COLUMN:
        raise ValueError(f"{ROW_COLUMN!r} is reserved for source row labels; rename the column")
    return name


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class DataSpec(BaseModel):
    """Location of the observation table and column typing hints."""

    dataset_path: str
    columns: Optional[List[str]] = None
    categorical: List[str] = Field(default_factory=list)
    levels: Dict[str, List[Any]] = Field(default_factory=dict)


class SelectorSpec(BaseModel):
    """A row filter applied before any transform."""

    name: str
    params: Dict[str, Any] = Field(default_factory=dict)


class TransformSpec(BaseModel):
    """A derived column computed row-wise from existing columns."""

    name: str
    output: str
    params: Dict[str, Any] = Field(default_factory=dict)


class ModelSpec(BaseModel):
    """Linear model relating one response column to its predictors.

    ``categorical`` lists predictors that must be expanded into indicator
    columns even when stored as numbers (e.g. a month number).  Non-numeric
    predictors are always treated as categorical.  ``log_base`` records the
    base the response was log-transformed with, enabling ratio columns.
    """

    response: str
    predictors: List[str]
    categorical: List[str] = Field(default_factory=list)
    log_base: Optional[float] = None

    @field_validator("predictors", "categorical", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> List[str]:
        return _as_list(value)

    @field_validator("response")
    @classmethod
    def _response_not_reserved(cls, value: str) -> str:
        return _not_reserved(value)

    @field_validator("predictors")
    @classmethod
    def _non_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("model.predictors must name at least one column")
        return [_not_reserved(v) for v in value]

    def columns(self) -> List[str]:
        return [self.response, *self.predictors]


class ReportSpec(BaseModel):
    """Residual outlier report settings."""

    threshold: Optional[float] = None
    column: str = "std_resid"
    limit: Optional[int] = None


class PlotSpec(BaseModel):
    """A figure rendered from one of the run tables."""

    kind: Literal["scatter", "lines", "histogram", "coefficients"]
    table: Literal["data", "glance", "tidy", "augment"] = "augment"
    filename: str
    params: Dict[str, Any] = Field(default_factory=dict)


class ArtifactsSpec(BaseModel):
    """Output directory for tables, failures and plots."""

    out_dir: Optional[str] = None


class ExecutionSpec(BaseModel):
    """Fitting resources."""

    max_workers: Optional[int] = None


class RunSpec(BaseModel):
    """Top-level specification for a trend-removal run."""

    data: DataSpec
    selectors: List[SelectorSpec] = Field(default_factory=list)
    transforms: List[TransformSpec] = Field(default_factory=list)
    model: ModelSpec
    group_by: List[str] = Field(default_factory=list)
    report: ReportSpec = Field(default_factory=ReportSpec)
    plots: List[PlotSpec] = Field(default_factory=list)
    artifacts: Optional[ArtifactsSpec] = None
    execution: ExecutionSpec = Field(default_factory=ExecutionSpec)

    @field_validator("group_by", mode="before")
    @classmethod
    def _listify_groups(cls, value: Any) -> List[str]:
        return [_not_reserved(v) for v in _as_list(value)]


# ---------------------------------------------------------------------------


def spec_from_dict(raw: Mapping[str, Any]) -> RunSpec:
    """Build a :class:`RunSpec` from a JSON-compatible mapping."""

    return RunSpec.model_validate(dict(raw))


def load_spec(path: str | Path) -> RunSpec:
    """Load a :class:`RunSpec` from a JSON file.

    A relative ``data.dataset_path`` is resolved against the spec file's
    directory when it does not exist relative to the working directory.
    """

    path = Path(path)
    raw = json.loads(path.read_text())
    spec = spec_from_dict(raw)
    dataset = Path(spec.data.dataset_path)
    if not dataset.is_absolute() and not dataset.exists():
        candidate = path.parent / dataset
        if candidate.exists():
            spec.data.dataset_path = str(candidate)
    return spec


__all__ = [
    "DataSpec",
    "SelectorSpec",
    "TransformSpec",
    "ModelSpec",
    "ReportSpec",
    "PlotSpec",
    "ArtifactsSpec",
    "ExecutionSpec",
    "RunSpec",
    "spec_from_dict",
    "load_spec",
]

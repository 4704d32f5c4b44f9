"""Command-specific result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SheetMeta(BaseModel):
    """Metadata for a single worksheet."""

    name: str
    index: int
    visible: str = "visible"  # visible / hidden / veryHidden
    used_range: str | None = None


class WorkbookMeta(BaseModel):
    """Metadata returned by ``inspect``."""

    path: str
    fingerprint: str
    sheets: list[SheetMeta] = Field(default_factory=list)
    has_macros: bool = False
    has_external_links: bool = False
    warnings: list[str] = Field(default_factory=list)


class AddedSheet(BaseModel):
    """A worksheet produced by merging one input."""

    source: str
    sheet_number: int
    name: str


class InputReport(BaseModel):
    """Outcome for a single input package."""

    path: str
    status: str = "merged"  # seed / merged / skipped / failed
    sheets: list[AddedSheet] = Field(default_factory=list)
    rows_appended: int = 0
    styles_added: dict[str, int] = Field(default_factory=dict)
    message: str | None = None


class ValidationResult(BaseModel):
    """Result of a validation command."""

    valid: bool = True
    checks: list[dict[str, Any]] = Field(default_factory=list)


class MergeResult(BaseModel):
    """Result of a ``merge`` command."""

    output: str
    mode: str
    fingerprint: str | None = None
    inputs: list[InputReport] = Field(default_factory=list)
    sheet_count: int = 0
    working_dir: str | None = None
    validation: ValidationResult | None = None

"""Common Pydantic models and the merge error taxonomy."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MergeError(Exception):
    """Base class for all merge failures."""


class InputError(MergeError):
    """Raised for an input that cannot be merged at all (bad extension, missing file).

    The input is skipped and the merge continues with the next one.
    """


class PackageParseError(MergeError):
    """Raised when a package part is malformed or cannot be read as XML.

    Fatal to the merge of the current input only.
    """


class PartNotFoundError(PackageParseError):
    """Raised when an expected package part does not exist."""


class PackageIOError(MergeError):
    """Raised on filesystem failures. Fatal to the whole session."""


class MergeAbortedError(MergeError):
    """Raised when a step fails after the destination package was mutated.

    The destination can no longer be trusted, so the session stops.
    """


class WorkbookCorruptError(Exception):
    """Raised when a workbook file cannot be parsed."""


class Target(BaseModel):
    """Identifies the files a command operates on."""

    file: str | None = None
    inputs: list[str] = Field(default_factory=list)


class WarningDetail(BaseModel):
    """Structured warning."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    """Structured error."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class Metrics(BaseModel):
    """Execution metrics."""

    duration_ms: int = 0


class ResponseEnvelope(BaseModel):
    """Standard response envelope returned by every command."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)

"""Pydantic models for responses and the merge error taxonomy."""

from xlmerge.contracts.common import (
    ErrorDetail,
    InputError,
    MergeAbortedError,
    MergeError,
    Metrics,
    PackageIOError,
    PackageParseError,
    PartNotFoundError,
    ResponseEnvelope,
    Target,
    WarningDetail,
    WorkbookCorruptError,
)
from xlmerge.contracts.responses import (
    AddedSheet,
    InputReport,
    MergeResult,
    SheetMeta,
    ValidationResult,
    WorkbookMeta,
)

__all__ = [
    "AddedSheet",
    "ErrorDetail",
    "InputError",
    "InputReport",
    "MergeAbortedError",
    "MergeError",
    "MergeResult",
    "Metrics",
    "PackageIOError",
    "PackageParseError",
    "PartNotFoundError",
    "ResponseEnvelope",
    "SheetMeta",
    "Target",
    "ValidationResult",
    "WarningDetail",
    "WorkbookCorruptError",
    "WorkbookMeta",
]

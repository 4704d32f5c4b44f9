"""Response envelope helpers and exit-code mapping."""

from __future__ import annotations

import sys
from typing import Any

import orjson

from xlmerge.contracts.common import (
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    Target,
)

# Exit code mapping
EXIT_CODES = {
    "success": 0,
    "validation": 10,
    "conflict": 40,
    "io": 50,
    "unsupported": 70,
    "internal": 90,
}

VALIDATION_CODE_MARKERS = (
    "VALIDATION",
    "CONFIG",
    "USAGE",
    "NO_INPUTS",
    "INVALID_ARGUMENT",
)

IO_CODE_MARKERS = ("FILE_EXISTS", "CORRUPT")


def success_envelope(
    command: str,
    result: Any,
    *,
    target: Target | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=True,
        command=command,
        target=target or Target(),
        result=result,
        warnings=warnings or [],
        metrics=Metrics(duration_ms=duration_ms),
    )


def error_envelope(
    command: str,
    code: str,
    message: str,
    *,
    target: Target | None = None,
    details: dict | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=False,
        command=command,
        target=target or Target(),
        warnings=warnings or [],
        errors=[ErrorDetail(code=code, message=message, details=details)],
        metrics=Metrics(duration_ms=duration_ms),
    )


def output_json(envelope: ResponseEnvelope) -> str:
    """Serialize envelope to JSON string using orjson."""
    data = envelope.model_dump(mode="json")
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode()


def print_response(envelope: ResponseEnvelope) -> None:
    """Print response as JSON to stdout."""
    sys.stdout.write(output_json(envelope) + "\n")


def exit_code_for(envelope: ResponseEnvelope) -> int:
    """Determine exit code from envelope errors."""
    if envelope.ok:
        return 0
    if not envelope.errors:
        return EXIT_CODES["internal"]
    code = envelope.errors[0].code.upper()
    if "LOCK" in code or "CONFLICT" in code:
        return EXIT_CODES["conflict"]
    if "UNSUPPORTED" in code:
        return EXIT_CODES["unsupported"]
    if any(marker in code for marker in VALIDATION_CODE_MARKERS):
        return EXIT_CODES["validation"]
    if any(marker in code for marker in IO_CODE_MARKERS):
        return EXIT_CODES["io"]
    if code.startswith("ERR_IO") or code.endswith("NOT_FOUND"):
        return EXIT_CODES["io"]
    return EXIT_CODES["internal"]

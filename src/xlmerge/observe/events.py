"""Structured logging, event emission, and trace support."""

from __future__ import annotations

import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO


class Timer:
    """Simple context-manager timer for measuring duration_ms."""

    def __init__(self) -> None:
        self.start: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)


class EventEmitter:
    """Emits NDJSON merge lifecycle events to stderr.

    Every event is also handed to an attached :class:`TraceRecorder`, so a
    debug session keeps a full trace even when stderr output is off.
    """

    def __init__(self, enabled: bool = False, *, stream: TextIO | None = None) -> None:
        self.enabled = enabled
        self.stream = stream
        self.trace: TraceRecorder | None = None

    def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        if self.trace is not None:
            self.trace.record(event, data or {})
        if not self.enabled:
            return
        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data or {},
        }
        stream = self.stream or sys.stderr
        stream.write(json.dumps(payload, default=str) + "\n")
        stream.flush()


class TraceRecorder:
    """Records trace data during a merge session."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []
        self._start = time.perf_counter()

    def record(self, category: str, data: dict[str, Any]) -> None:
        elapsed = int((time.perf_counter() - self._start) * 1000)
        self.entries.append({
            "category": category,
            "timestamp_ms": elapsed,
            **data,
        })

    def save(self, path: str | Path) -> str:
        """Save trace to a JSON file. Returns the path."""
        trace_path = Path(path)
        trace_data = {
            "trace_version": "1.0",
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "total_duration_ms": int((time.perf_counter() - self._start) * 1000),
            "entries": self.entries,
        }
        trace_path.write_text(json.dumps(trace_data, indent=2, default=str))
        return str(trace_path)

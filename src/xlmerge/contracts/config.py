"""Merge configuration model (``xlmerge.yaml``)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MergeMode = Literal["new-sheet", "append-rows"]


class MergeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: MergeMode = "new-sheet"
    debug: bool = False
    events: bool = False
    validate_output: bool = True
    lock_timeout: float = Field(default=0, ge=0)
    work_dir: str | None = None

    def with_overrides(self, **overrides: Any) -> "MergeConfig":
        """Return a copy with every non-None override applied (and validated)."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return MergeConfig(**data)

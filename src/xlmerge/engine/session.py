"""MergeSession: the working directory a merge runs in."""

from __future__ import annotations

import shutil
import tempfile
from datetime import datetime
from pathlib import Path

from xlmerge.contracts.common import PackageIOError


class MergeSession:
    """Creates ``xlmerge-<timestamp>-<random>/{tmp,result}`` and removes it on exit.

    ``result/`` holds the evolving destination package and ``tmp/`` one
    extraction directory per input.  With ``debug=True`` the directory is
    kept for inspection.  Removal is best-effort.
    """

    def __init__(self, *, debug: bool = False, base_dir: str | Path | None = None) -> None:
        self.debug = debug
        self.base_dir = Path(base_dir) if base_dir else None
        self.working_dir: Path | None = None

    def __enter__(self) -> "MergeSession":
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        try:
            if self.base_dir is not None:
                self.base_dir.mkdir(parents=True, exist_ok=True)
            self.working_dir = Path(tempfile.mkdtemp(prefix=f"xlmerge-{stamp}-", dir=self.base_dir))
            self.tmp_dir.mkdir()
            self.result_dir.mkdir()
        except OSError as e:
            raise PackageIOError(f"Cannot create working directory: {e}") from e
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self.working_dir is not None and not self.debug:
            shutil.rmtree(self.working_dir, ignore_errors=True)

    @property
    def tmp_dir(self) -> Path:
        if self.working_dir is None:
            raise RuntimeError("MergeSession is not active")
        return self.working_dir / "tmp"

    @property
    def result_dir(self) -> Path:
        if self.working_dir is None:
            raise RuntimeError("MergeSession is not active")
        return self.working_dir / "result"

    def input_dir(self, index: int, path: str | Path) -> Path:
        """Extraction directory for the input at *index*; unique per input."""
        return self.tmp_dir / f"file_{index}_{Path(path).name}"

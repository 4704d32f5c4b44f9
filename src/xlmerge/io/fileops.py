"""File operations: fingerprinting, destination locking, text reads."""

from __future__ import annotations

import hashlib
import os
import tempfile
import time
from datetime import datetime, timezone
from io import TextIOWrapper
from pathlib import Path

import portalocker

LOCK_SUFFIX = ".xlmerge.lock"


def fingerprint(path: str | Path) -> str:
    """Compute SHA-256 fingerprint of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def atomic_write(target: str | Path, data: bytes) -> None:
    """Write data to target atomically via temp file + rename."""
    target = Path(target)
    fd, tmp_path = tempfile.mkstemp(
        dir=target.parent, suffix=target.suffix, prefix=".xlmerge_tmp_"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def lock_path_for(path: str | Path) -> Path:
    path = Path(path).resolve()
    return path.parent / (path.name + LOCK_SUFFIX)


class PackageLock:
    """Exclusive sidecar lock held for a whole merge session.

    Two sessions writing the same output package would interleave their
    mutations, so the output path is locked through a ``<file>.xlmerge.lock``
    sidecar until the merged archive is in place.

    On process crash the OS releases the file lock.  The sidecar may stay on
    disk but is unlocked, so the next session acquires it normally.
    """

    def __init__(self, output_path: str | Path, *, timeout: float = 0) -> None:
        self.output_path = Path(output_path).resolve()
        self.timeout = timeout
        self._lock_path = lock_path_for(self.output_path)
        self._lock_file: TextIOWrapper | None = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    def __enter__(self) -> "PackageLock":
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock_file = open(self._lock_path, "a+")  # noqa: SIM115
        try:
            if self.timeout <= 0:
                portalocker.lock(self._lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
            else:
                deadline = time.monotonic() + self.timeout
                interval = min(0.1, max(0.01, self.timeout / 20))
                while True:
                    try:
                        portalocker.lock(self._lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
                        break
                    except portalocker.LockException:
                        if time.monotonic() >= deadline:
                            raise
                        time.sleep(interval)
        except portalocker.LockException:
            if self._lock_file is not None:
                self._lock_file.close()
                self._lock_file = None
            raise

        # Diagnostic info for lock-status
        self._lock_file.seek(0)
        self._lock_file.truncate()
        self._lock_file.write(f"pid={os.getpid()}\n")
        self._lock_file.write(f"time={datetime.now(timezone.utc).isoformat()}\n")
        self._lock_file.flush()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self._lock_file is not None:
            try:
                portalocker.unlock(self._lock_file)
            finally:
                self._lock_file.close()
                self._lock_file = None


def check_lock(path: str | Path) -> dict:
    """Best-effort check whether a merge session holds the lock for *path*.

    Returns a status dict with ``exists`` (whether the package exists),
    ``locked``, ``lock_file``, and optional ``holder`` info.
    """
    path = Path(path).resolve()
    lock_path = lock_path_for(path)
    pkg_exists = path.exists()

    if not lock_path.exists():
        return {"exists": pkg_exists, "locked": False, "lock_file": str(lock_path)}

    try:
        fd = open(lock_path, "a+")  # noqa: SIM115
        try:
            portalocker.lock(fd, portalocker.LOCK_EX | portalocker.LOCK_NB)
            portalocker.unlock(fd)
        finally:
            fd.close()
        return {"exists": pkg_exists, "locked": False, "lock_file": str(lock_path)}
    except portalocker.LockException:
        holder: dict[str, str] = {}
        try:
            content = lock_path.read_text()
            for line in content.strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    holder[k.strip()] = v.strip()
        except OSError:
            pass
        return {"exists": pkg_exists, "locked": True, "lock_file": str(lock_path), "holder": holder}
    except OSError:
        return {"exists": pkg_exists, "locked": False, "lock_file": str(lock_path), "check_error": True}


def read_text_safe(path: str | Path) -> str:
    """Read a text file with UTF-8 BOM tolerance."""
    return Path(path).read_text(encoding="utf-8-sig")

"""Package archive handling: extract inputs, zip the merged result."""

from __future__ import annotations

import os
import zipfile
from io import BytesIO
from pathlib import Path

from xlmerge.contracts.common import InputError, PackageIOError, PackageParseError
from xlmerge.io.fileops import atomic_write

SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm")
CONTENT_TYPES_PART = "[Content_Types].xml"


def is_supported(path: str | Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def extract(path: str | Path, directory: str | Path) -> Path:
    """Unzip a spreadsheet package into *directory*. Returns the directory."""
    src = Path(path)
    dest = Path(directory)
    if not is_supported(src):
        raise InputError(f"Can only merge .xlsx or .xlsm packages, skipping {src}")
    if not src.is_file():
        raise InputError(f"Input file not found: {src}")
    try:
        dest.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(src) as zf:
            zf.extractall(dest)
    except zipfile.BadZipFile as e:
        raise PackageParseError(f"Not a valid package archive: {src}: {e}") from e
    except OSError as e:
        raise PackageIOError(f"Cannot extract {src}: {e}") from e
    return dest


def _members(directory: Path) -> list[tuple[Path, str]]:
    members = []
    for root, _dirs, files in os.walk(directory):
        for name in files:
            full = Path(root) / name
            members.append((full, full.relative_to(directory).as_posix()))
    # The content-type registry goes first, as Office writes it.
    members.sort(key=lambda m: (m[1] != CONTENT_TYPES_PART, m[1]))
    return members


def create(directory: str | Path, target: str | Path) -> Path:
    """Zip *directory* into a package at *target*, written atomically."""
    src = Path(directory)
    target = Path(target)
    buf = BytesIO()
    try:
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for full, arcname in _members(src):
                zf.write(full, arcname)
        target.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(target, buf.getvalue())
    except OSError as e:
        raise PackageIOError(f"Cannot write {target}: {e}") from e
    return target

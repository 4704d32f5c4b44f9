"""Read a merged package back through openpyxl."""

from __future__ import annotations

from pathlib import Path

import openpyxl
from openpyxl.worksheet.worksheet import Worksheet

from xlmerge.contracts.common import WorkbookCorruptError
from xlmerge.contracts.responses import SheetMeta, WorkbookMeta
from xlmerge.io.fileops import fingerprint


def inspect_workbook(path: str | Path) -> WorkbookMeta:
    """Open *path* with openpyxl and report its sheets.

    Raises FileNotFoundError for a missing file and WorkbookCorruptError
    when openpyxl cannot load the package.
    """
    p = Path(path).resolve()
    if not p.exists():
        raise FileNotFoundError(f"Workbook not found: {p}")
    fp = fingerprint(p)
    try:
        wb = openpyxl.load_workbook(str(p), keep_vba=p.suffix.lower() == ".xlsm")
    except Exception as e:
        raise WorkbookCorruptError(f"Cannot open workbook {p}: {e}") from e

    try:
        sheets: list[SheetMeta] = []
        for idx, name in enumerate(wb.sheetnames):
            ws: Worksheet = wb[name]
            sheets.append(SheetMeta(
                name=name,
                index=idx,
                visible=ws.sheet_state,
                used_range=ws.dimensions or None,
            ))

        has_macros = p.suffix.lower() == ".xlsm" or wb.vba_archive is not None
        has_external = bool(getattr(wb, "_external_links", []))
    finally:
        wb.close()

    warnings: list[str] = []
    if has_macros:
        warnings.append("Workbook contains macros (VBA). They are copied, never executed.")
    if has_external:
        warnings.append("Workbook contains external links.")

    return WorkbookMeta(
        path=str(p),
        fingerprint=fp,
        sheets=sheets,
        has_macros=has_macros,
        has_external_links=has_external,
        warnings=warnings,
    )

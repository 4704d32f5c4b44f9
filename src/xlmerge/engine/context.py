"""PackageContext: an extracted package directory and the layout of its parts."""

from __future__ import annotations

import re
from pathlib import Path

_SHEET_FILE = re.compile(r"^sheet(\d+)\.xml$")


def sheet_ordinal(path: str | Path) -> int | None:
    """Return N for a ``sheetN.xml`` filename, else None."""
    m = _SHEET_FILE.match(Path(path).name)
    return int(m.group(1)) if m else None


class PackageContext:
    """Wraps an extracted package directory with part paths and helpers."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @property
    def styles_path(self) -> Path:
        return self.root / "xl" / "styles.xml"

    @property
    def workbook_path(self) -> Path:
        return self.root / "xl" / "workbook.xml"

    @property
    def workbook_rels_path(self) -> Path:
        return self.root / "xl" / "_rels" / "workbook.xml.rels"

    @property
    def content_types_path(self) -> Path:
        return self.root / "[Content_Types].xml"

    @property
    def app_path(self) -> Path:
        return self.root / "docProps" / "app.xml"

    @property
    def worksheets_dir(self) -> Path:
        return self.root / "xl" / "worksheets"

    def sheet_path(self, number: int) -> Path:
        return self.worksheets_dir / f"sheet{number}.xml"

    def sheet_rels_path(self, number: int) -> Path:
        return self.worksheets_dir / "_rels" / f"sheet{number}.xml.rels"

    def worksheet_parts(self) -> list[Path]:
        """All ``sheetN.xml`` parts in natural (numeric) order."""
        if not self.worksheets_dir.is_dir():
            return []
        parts = [p for p in self.worksheets_dir.iterdir() if sheet_ordinal(p) is not None]
        return sorted(parts, key=lambda p: sheet_ordinal(p) or 0)

    def sheet_numbers(self) -> list[int]:
        return [sheet_ordinal(p) or 0 for p in self.worksheet_parts()]

    def max_sheet_number(self) -> int:
        numbers = self.sheet_numbers()
        return max(numbers) if numbers else 0

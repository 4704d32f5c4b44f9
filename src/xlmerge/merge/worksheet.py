"""Worksheet composition: copy a sheet in as a new part, or fold its rows into sheet 1."""

from __future__ import annotations

import re
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from lxml import etree

from xlmerge.contracts.common import PackageIOError, PackageParseError, PartNotFoundError
from xlmerge.engine.context import PackageContext, sheet_ordinal
from xlmerge.merge.relationships import is_worksheet_relationship
from xlmerge.ooxml.namespaces import NSMAP, SPREADSHEETML, qn
from xlmerge.ooxml.xmlpart import XmlPart, clone

MERGED_SHEET_NUMBER = 1
MERGED_SHEET_NAME = "Merged Data"
HEADER_ROW = 1

_CELL_REF = re.compile(r"^([A-Z]+)(\d+)$")


def _remap_attribute(part: XmlPart, expr: str, attr: str, mapping: dict[int, int]) -> int:
    """Rewrite numeric *attr* on every node matched by *expr*; returns the count changed."""
    changed = 0
    for node in part.xpath(expr):
        value = node.get(attr)
        if value is None or not value.isdigit():
            continue
        old_id = int(value)
        if old_id in mapping:
            node.set(attr, str(mapping[old_id]))
            changed += 1
    return changed


def remap_sheet_styles(
    sheet: XmlPart,
    cell_styles: dict[int, int],
    conditional_styles: dict[int, int],
) -> None:
    _remap_attribute(sheet, "//m:sheetData/m:row/m:c[@s]", "s", cell_styles)
    _remap_attribute(sheet, "//m:sheetData/m:row[@s]", "s", cell_styles)
    _remap_attribute(sheet, "//m:cols/m:col[@style]", "style", cell_styles)
    _remap_attribute(
        sheet, "//m:conditionalFormatting/m:cfRule[@dxfId]", "dxfId", conditional_styles
    )


def source_sheet_name(sheet_path: str | Path) -> str:
    """Display name of a worksheet part, looked up in its own package's workbook.

    The sheet entry whose ``sheetId`` equals the part's ordinal wins; failing
    that, the entry reached through the relationship targeting the part.
    """
    sheet_path = Path(sheet_path)
    number = sheet_ordinal(sheet_path)
    default = f"Worksheet {number}"
    xl_dir = sheet_path.parent.parent
    workbook_path = xl_dir / "workbook.xml"
    if not workbook_path.is_file():
        return default
    workbook = XmlPart.load(workbook_path)

    found = workbook.root.xpath(
        "//m:sheets/m:sheet[@sheetId=$sid]", namespaces=NSMAP, sid=str(number)
    )
    if found:
        return found[0].get("name", default)

    rels_path = xl_dir / "_rels" / "workbook.xml.rels"
    if not rels_path.is_file():
        return default
    rels = XmlPart.load(rels_path)
    for rel in rels.xpath("//rel:Relationship"):
        target = rel.get("Target", "")
        if is_worksheet_relationship(rel) and target.endswith(f"worksheets/{sheet_path.name}"):
            found = workbook.root.xpath(
                "//m:sheets/m:sheet[@r:id=$rid]", namespaces=NSMAP, rid=rel.get("Id")
            )
            if found:
                return found[0].get("name", default)
    return default


class NewSheetComposer:
    """Copies a worksheet part into the destination as the next sheet number."""

    def __init__(self, ctx: PackageContext) -> None:
        self.ctx = ctx

    def merge(
        self,
        sheet_path: str | Path,
        cell_styles: dict[int, int],
        conditional_styles: dict[int, int],
    ) -> tuple[int, str]:
        src = Path(sheet_path)
        sheet = XmlPart.load(src)
        name = source_sheet_name(src)
        remap_sheet_styles(sheet, cell_styles, conditional_styles)

        number = self.ctx.max_sheet_number() + 1
        try:
            self.ctx.worksheets_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PackageIOError(f"Cannot create {self.ctx.worksheets_dir}: {e}") from e
        sheet.save(self.ctx.sheet_path(number))

        rels = src.parent / "_rels" / f"{src.name}.rels"
        if rels.is_file():
            dest_rels = self.ctx.sheet_rels_path(number)
            try:
                dest_rels.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(rels, dest_rels)
            except OSError as e:
                raise PackageIOError(f"Cannot copy {rels}: {e}") from e
        return number, name


def _row_numbers(rows: list[etree._Element]) -> list[int]:
    """Row numbers, following the implicit previous+1 rule for rows without ``r``."""
    numbers = []
    previous = 0
    for row in rows:
        value = row.get("r")
        if value is None:
            current = previous + 1
        elif value.isdigit():
            current = int(value)
        else:
            raise PackageParseError(f"Invalid row number r={value!r}")
        numbers.append(current)
        previous = current
    return numbers


def _rows(sheet_data: etree._Element) -> list[etree._Element]:
    return [row for row in sheet_data if row.tag == qn("m:row")]


def _sheet_data(sheet: XmlPart) -> etree._Element:
    sheet_data = sheet.first("m:sheetData")
    if sheet_data is None:
        raise PackageParseError(f"Worksheet has no <sheetData>: {sheet.path}")
    return sheet_data


def _renumber_row(row: etree._Element, number: int, cell_styles: dict[int, int]) -> etree._Element:
    row.set("r", str(number))
    style = row.get("s")
    if style is not None and style.isdigit() and int(style) in cell_styles:
        row.set("s", str(cell_styles[int(style)]))
    for cell in row.iter(qn("m:c")):
        ref = cell.get("r")
        if ref is not None:
            m = _CELL_REF.match(ref)
            if m:
                cell.set("r", f"{m.group(1)}{number}")
        style = cell.get("s")
        if style is not None and style.isdigit() and int(style) in cell_styles:
            cell.set("s", str(cell_styles[int(style)]))
    return row


def _set_dimension(sheet: XmlPart, sheet_data: etree._Element, last_row: int) -> str:
    max_col = "A"
    for cell in sheet_data.iter(qn("m:c")):
        m = _CELL_REF.match(cell.get("r") or "")
        # Column letters compare as plain strings, so "Z" beats "AA".
        if m and m.group(1) > max_col:
            max_col = m.group(1)
    ref = f"A1:{max_col}{max(last_row, 1)}"

    dimension = sheet.first("m:dimension")
    if dimension is None:
        dimension = etree.Element(f"{{{SPREADSHEETML}}}dimension")
        sheet_pr = sheet.first("m:sheetPr")
        if sheet_pr is not None:
            sheet_pr.addnext(dimension)
        else:
            sheet.root.insert(0, dimension)
    dimension.set("ref", ref)
    return ref


class AppendBatch:
    """Destination sheet 1, held open while rows from several inputs are appended."""

    def __init__(self, destination: XmlPart) -> None:
        self.destination = destination
        self.sheet_data = _sheet_data(destination)
        numbers = _row_numbers(_rows(self.sheet_data))
        self.last_row = max(numbers) if numbers else 0
        self.inputs = 0
        self.rows_appended = 0

    def append(
        self,
        sheet_path: str | Path,
        cell_styles: dict[int, int],
        conditional_styles: dict[int, int],
    ) -> int:
        """Append every non-header row of *sheet_path*. Returns the number of rows added.

        Conditional formatting of the source sheet is not carried over, so
        *conditional_styles* is unused here.
        """
        source = XmlPart.load(sheet_path)
        rows = _rows(_sheet_data(source))

        copies = []
        next_row = self.last_row
        for row, number in zip(rows, _row_numbers(rows)):
            if number <= HEADER_ROW:
                continue
            next_row += 1
            copies.append(_renumber_row(clone(row), next_row, cell_styles))

        for row in copies:
            self.sheet_data.append(row)
        self.last_row = next_row
        self.inputs += 1
        self.rows_appended += len(copies)
        return len(copies)

    def finish(self) -> str | None:
        if not self.inputs:
            return None
        ref = _set_dimension(self.destination, self.sheet_data, self.last_row)
        self.destination.save()
        return ref


class AppendRowsComposer:
    """Folds the data rows of incoming sheets into the destination's first sheet."""

    def __init__(self, ctx: PackageContext) -> None:
        self.ctx = ctx

    @contextmanager
    def batch(self) -> Iterator[AppendBatch]:
        """Load destination sheet 1 once, append from many inputs, save once."""
        batch = AppendBatch(XmlPart.load(self.ctx.sheet_path(MERGED_SHEET_NUMBER)))
        yield batch
        batch.finish()

    def append_to_first_sheet(
        self,
        sheet_path: str | Path,
        cell_styles: dict[int, int],
        conditional_styles: dict[int, int],
    ) -> tuple[int, str]:
        if not Path(sheet_path).is_file():
            raise PartNotFoundError(f"Worksheet not found: {sheet_path}")
        with self.batch() as batch:
            batch.append(sheet_path, cell_styles, conditional_styles)
        return MERGED_SHEET_NUMBER, MERGED_SHEET_NAME

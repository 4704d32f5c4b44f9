"""Consistency checks for an extracted package.

These cover the cross-part invariants a merge must keep: sheet numbering
and naming, relationship links from the workbook and its worksheets,
content-type registration and style id resolution.  They do not validate against the OOXML schema.
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Any

from xlmerge.contracts.common import PackageParseError
from xlmerge.contracts.responses import ValidationResult
from xlmerge.engine.context import PackageContext, sheet_ordinal
from xlmerge.merge.content_types import worksheet_part_name
from xlmerge.merge.relationships import WORKSHEET_TARGET, is_worksheet_relationship
from xlmerge.merge.styles import FIRST_CUSTOM_NUMFMT_ID, XF_REFERENCES, load_table
from xlmerge.ooxml.namespaces import qn
from xlmerge.ooxml.xmlpart import XmlPart

# Sheet attributes holding a style id, and the style category they index.
_SHEET_STYLE_REFERENCES = (
    ("//m:sheetData/m:row/m:c[@s]", "s", "cellXfs"),
    ("//m:sheetData/m:row[@s]", "s", "cellXfs"),
    ("//m:cols/m:col[@style]", "style", "cellXfs"),
    ("//m:conditionalFormatting/m:cfRule[@dxfId]", "dxfId", "dxfs"),
)


def _check(name: str, passed: bool, message: str, **extra: Any) -> dict[str, Any]:
    return {"type": name, "passed": passed, "message": message, **extra}


def _worksheet_relationships(ctx: PackageContext) -> dict[str, int]:
    """Relationship id -> sheet number, for worksheet relationships."""
    rels = XmlPart.load(ctx.workbook_rels_path)
    found: dict[str, int] = {}
    for rel in rels.xpath("//rel:Relationship"):
        m = WORKSHEET_TARGET.search(rel.get("Target", ""))
        if is_worksheet_relationship(rel) and m:
            found[rel.get("Id", "")] = int(m.group(1))
    return found


def check_sheet_numbers(ctx: PackageContext) -> dict[str, Any]:
    numbers = ctx.sheet_numbers()
    expected = list(range(1, len(numbers) + 1))
    ok = numbers == expected
    return _check(
        "sheet_numbers_contiguous",
        ok,
        f"{len(numbers)} worksheet part(s) numbered 1..{len(numbers)}"
        if ok else f"Worksheet numbers are not contiguous from 1: {numbers}",
        sheet_numbers=numbers,
    )


def _part_path(ctx: PackageContext, source_dir: str, target: str) -> Path:
    """Extracted location of a relationship target, relative to *source_dir*."""
    if target.startswith("/"):
        return ctx.root / target.lstrip("/")
    return ctx.root / posixpath.normpath(posixpath.join(source_dir, target))


def check_worksheet_rids(ctx: PackageContext) -> dict[str, Any]:
    """Every ``<sheet>`` entry points at a workbook relationship whose part exists.

    Chartsheets, dialogsheets and macrosheets are listed in ``<sheets>`` too,
    so entries resolve against all relationships.
    """
    workbook = XmlPart.load(ctx.workbook_path)
    rels = XmlPart.load(ctx.workbook_rels_path)
    targets = {
        rel.get("Id"): rel.get("Target", "")
        for rel in rels.xpath("//rel:Relationship")
        if rel.get("TargetMode") != "External"
    }
    broken = []
    for sheet in workbook.xpath("//m:sheets/m:sheet"):
        rid = sheet.get(qn("r:id"))
        target = targets.get(rid)
        if target is None or not _part_path(ctx, "xl", target).is_file():
            broken.append({"name": sheet.get("name"), "r:id": rid})
    return _check(
        "worksheet_rids_match",
        not broken,
        "Every sheet entry resolves to a part"
        if not broken else f"{len(broken)} sheet entr(y/ies) do not resolve",
        broken=broken,
    )


def check_sheet_names_unique(ctx: PackageContext) -> dict[str, Any]:
    """No two ``<sheet>`` entries share a name, compared case-insensitively."""
    workbook = XmlPart.load(ctx.workbook_path)
    seen: set[str] = set()
    duplicates: list[str] = []
    for sheet in workbook.xpath("//m:sheets/m:sheet"):
        name = sheet.get("name", "")
        if name.casefold() in seen:
            duplicates.append(name)
        seen.add(name.casefold())
    return _check(
        "sheet_names_unique",
        not duplicates,
        "Sheet names are unique"
        if not duplicates else f"Duplicate sheet names: {duplicates}",
        duplicates=duplicates,
    )


def check_sheet_relationships(ctx: PackageContext) -> dict[str, Any]:
    """Every worksheet part is the target of a workbook relationship."""
    targeted = set(_worksheet_relationships(ctx).values())
    orphans = [n for n in ctx.sheet_numbers() if n not in targeted]
    return _check(
        "sheet_relationships",
        not orphans,
        "Every worksheet part has a relationship"
        if not orphans else f"Worksheet parts without a relationship: {orphans}",
        orphans=orphans,
    )


def check_sheet_relationship_targets(ctx: PackageContext) -> dict[str, Any]:
    """Internal targets of each worksheet's own relationships exist in the package.

    Flags an added sheet whose drawings, comments or tables were not copied
    along with its relationships part.
    """
    dangling: list[str] = []
    for path in ctx.worksheet_parts():
        number = sheet_ordinal(path)
        rels_path = ctx.sheet_rels_path(number)
        if not rels_path.is_file():
            continue
        rels = XmlPart.load(rels_path)
        for rel in rels.xpath("//rel:Relationship"):
            if rel.get("TargetMode") == "External":
                continue
            target = rel.get("Target", "")
            if not _part_path(ctx, "xl/worksheets", target).is_file():
                dangling.append(f"sheet{number}:{rel.get('Id')}->{target}")
    return _check(
        "sheet_relationship_targets",
        not dangling,
        "Every worksheet relationship target exists"
        if not dangling else f"{len(dangling)} worksheet relationship target(s) missing",
        dangling=dangling,
    )


def check_sheet_content_types(ctx: PackageContext) -> dict[str, Any]:
    types = XmlPart.load(ctx.content_types_path)
    registered = {o.get("PartName") for o in types.xpath("//ct:Override")}
    missing = [
        worksheet_part_name(n) for n in ctx.sheet_numbers()
        if worksheet_part_name(n) not in registered
    ]
    return _check(
        "sheet_content_types",
        not missing,
        "Every worksheet part has a content-type override"
        if not missing else f"Missing content-type overrides: {missing}",
        missing=missing,
    )


def check_style_ids(ctx: PackageContext) -> dict[str, Any]:
    """Every style id used by cellXfs and worksheets resolves in the style tables."""
    styles = XmlPart.load(ctx.styles_path)
    sizes = {
        category: len(load_table(styles, category))
        for category in ("fonts", "fills", "borders", "cellXfs", "dxfs")
    }
    num_fmt_ids = {record.id for record in load_table(styles, "numFmts").records}

    unresolved: list[str] = []
    for index, xf in enumerate(load_table(styles, "cellXfs").records):
        for attr, category in XF_REFERENCES.items():
            value = xf.element.get(attr)
            if value is None or not value.isdigit():
                continue
            ref = int(value)
            if category == "numFmts":
                ok = ref < FIRST_CUSTOM_NUMFMT_ID or ref in num_fmt_ids
            else:
                ok = ref < sizes[category]
            if not ok:
                unresolved.append(f"cellXfs[{index}]/@{attr}={ref}")

    for path in ctx.worksheet_parts():
        sheet = XmlPart.load(path)
        for expr, attr, category in _SHEET_STYLE_REFERENCES:
            for node in sheet.xpath(expr):
                value = node.get(attr)
                if value.isdigit() and int(value) >= sizes[category]:
                    unresolved.append(f"sheet{sheet_ordinal(path)}/@{attr}={value}")

    return _check(
        "style_ids_resolve",
        not unresolved,
        "All style ids resolve"
        if not unresolved else f"{len(unresolved)} style reference(s) do not resolve",
        unresolved=unresolved[:50],
    )


CHECKS = (
    ("sheet_numbers_contiguous", check_sheet_numbers),
    ("worksheet_rids_match", check_worksheet_rids),
    ("sheet_names_unique", check_sheet_names_unique),
    ("sheet_relationships", check_sheet_relationships),
    ("sheet_relationship_targets", check_sheet_relationship_targets),
    ("sheet_content_types", check_sheet_content_types),
    ("style_ids_resolve", check_style_ids),
)


def validate_package(ctx: PackageContext) -> ValidationResult:
    """Run every package check. A part that cannot be read fails its check."""
    checks: list[dict[str, Any]] = []
    for name, check in CHECKS:
        try:
            checks.append(check(ctx))
        except PackageParseError as e:
            checks.append(_check(name, False, str(e)))
    return ValidationResult(valid=all(c["passed"] for c in checks), checks=checks)

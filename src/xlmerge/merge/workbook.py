"""Registers new sheets in ``xl/workbook.xml`` and repairs relationship references."""

from __future__ import annotations

from lxml import etree

from xlmerge.contracts.common import PackageParseError
from xlmerge.engine.context import PackageContext
from xlmerge.merge.properties import MAX_SHEET_NAME, PREVIOUS_PREFIX, previous_name
from xlmerge.merge.relationships import RelationshipRewriter, worksheet_rid
from xlmerge.ooxml.namespaces import qn
from xlmerge.ooxml.xmlpart import XmlPart

# Workbook elements whose r:id follows the ordinal of a numbered target part.
ORDINAL_REFERENCES = (
    ("//m:externalReferences/m:externalReference", "externalLinks/externalLink{}.xml"),
    ("//m:pivotCaches/m:pivotCache", "pivotCache/pivotCacheDefinition{}.xml"),
)


def _resolve_by_ordinal(workbook: XmlPart, rels: XmlPart, expr: str, target_pattern: str) -> int:
    relationships = rels.xpath("//rel:Relationship")
    resolved = 0
    for ordinal, ref in enumerate(workbook.xpath(expr), start=1):
        target = target_pattern.format(ordinal)
        for rel in relationships:
            if rel.get("Target", "").endswith(target):
                ref.set(qn("r:id"), rel.get("Id"))
                resolved += 1
                break
    return resolved


def unused_previous_name(name: str, taken: set[str]) -> str:
    """``Previous_{name}``, or ``Previous_{k}_{name}`` when that is taken.

    *taken* holds casefolded sheet names; Excel compares them case-insensitively.
    """
    candidate = previous_name(name)
    k = 2
    while candidate.casefold() in taken:
        candidate = f"{PREVIOUS_PREFIX}{k}_{name}"[:MAX_SHEET_NAME]
        k += 1
    return candidate


class WorkbookRegistrar:
    """Appends the ``<sheet>`` entry for a new worksheet.

    When *relationships* is given, existing entries follow the ids its last
    merge renumbered, so chartsheets, dialogsheets and macrosheets listed in
    ``<sheets>`` keep pointing at their parts.
    """

    def __init__(self, ctx: PackageContext, relationships: RelationshipRewriter | None = None) -> None:
        self.ctx = ctx
        self.relationships = relationships

    def merge(self, sheet_number: int, name: str) -> None:
        workbook = XmlPart.load(self.ctx.workbook_path)
        sheets = workbook.first("//m:sheets")
        if sheets is None:
            raise PackageParseError(f"No <sheets> in {workbook.path}")

        existing = list(sheets.iterchildren(qn("m:sheet")))
        renumbered = self.relationships.renumbered if self.relationships else {}
        for sheet in existing:
            rid = sheet.get(qn("r:id"))
            if rid in renumbered:
                sheet.set(qn("r:id"), renumbered[rid])

        taken = {s.get("name", "").casefold() for s in existing} | {name.casefold()}
        for sheet in existing:
            if sheet.get("name", "").casefold() == name.casefold():
                sheet.set("name", unused_previous_name(sheet.get("name"), taken))
                break

        entry = etree.SubElement(sheets, qn("m:sheet"))
        entry.set("name", name)
        entry.set("sheetId", str(sheet_number))
        entry.set(qn("r:id"), worksheet_rid(sheet_number))

        # Ordinal references are resolved by target, independent of the old ids.
        rels = XmlPart.load(self.ctx.workbook_rels_path)
        for expr, target_pattern in ORDINAL_REFERENCES:
            _resolve_by_ordinal(workbook, rels, expr, target_pattern)

        workbook.save()

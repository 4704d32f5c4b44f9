"""Renumbers ``xl/_rels/workbook.xml.rels`` and registers a new worksheet."""

from __future__ import annotations

import re

from lxml import etree

from xlmerge.engine.context import PackageContext
from xlmerge.ooxml.namespaces import WORKSHEET_RELATIONSHIP_TYPE, qn
from xlmerge.ooxml.xmlpart import XmlPart

WORKSHEET_TARGET = re.compile(r"worksheets/sheet(\d+)\.xml$")


def worksheet_rid(sheet_number: int) -> str:
    return f"rId{sheet_number}"


def is_worksheet_relationship(rel: etree._Element) -> bool:
    # Transitional and strict packages use different namespaces for the type.
    return rel.get("Type", "").endswith("/worksheet")


class RelationshipRewriter:
    """Keeps worksheet relationship ids equal to their sheet numbers.

    Worksheet relationships become ``rId{N}`` with N taken from the target
    filename; every other relationship is renumbered after the new sheet.
    """

    def __init__(self, ctx: PackageContext) -> None:
        self.ctx = ctx
        # Old id -> new id from the last merge, for parts that reference these ids.
        self.renumbered: dict[str, str] = {}

    def merge(self, sheet_number: int, name: str) -> None:
        rels = XmlPart.load(self.ctx.workbook_rels_path)

        self.renumbered = {}
        rest_id = sheet_number + 1
        for rel in rels.xpath("//rel:Relationship"):
            old = rel.get("Id", "")
            m = WORKSHEET_TARGET.search(rel.get("Target", ""))
            if is_worksheet_relationship(rel) and m:
                rel.set("Id", worksheet_rid(int(m.group(1))))
            else:
                rel.set("Id", f"rId{rest_id}")
                rest_id += 1
            self.renumbered[old] = rel.get("Id")

        new = etree.SubElement(rels.root, qn("rel:Relationship"))
        new.set("Id", worksheet_rid(sheet_number))
        new.set("Type", WORKSHEET_RELATIONSHIP_TYPE)
        new.set("Target", f"worksheets/sheet{sheet_number}.xml")
        rels.save()

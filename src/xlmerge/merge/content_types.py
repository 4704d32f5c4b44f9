"""Registers new worksheet parts in ``[Content_Types].xml``."""

from __future__ import annotations

from lxml import etree

from xlmerge.engine.context import PackageContext
from xlmerge.ooxml.namespaces import WORKSHEET_CONTENT_TYPE, qn
from xlmerge.ooxml.xmlpart import XmlPart


def worksheet_part_name(sheet_number: int) -> str:
    return f"/xl/worksheets/sheet{sheet_number}.xml"


class ContentTypeRegistrar:
    def __init__(self, ctx: PackageContext) -> None:
        self.ctx = ctx

    def merge(self, sheet_number: int, name: str) -> None:
        types = XmlPart.load(self.ctx.content_types_path)
        override = etree.SubElement(types.root, qn("ct:Override"))
        override.set("PartName", worksheet_part_name(sheet_number))
        override.set("ContentType", WORKSHEET_CONTENT_TYPE)
        types.save()

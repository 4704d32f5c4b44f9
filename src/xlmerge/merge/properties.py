"""Keeps ``docProps/app.xml`` sheet titles and counts in step with the workbook."""

from __future__ import annotations

from lxml import etree

from xlmerge.engine.context import PackageContext
from xlmerge.ooxml.namespaces import qn
from xlmerge.ooxml.xmlpart import XmlPart

PREVIOUS_PREFIX = "Previous_"
MAX_SHEET_NAME = 31
WORKSHEETS_HEADING = "Worksheets"


def previous_name(name: str) -> str:
    """Name given to an existing sheet that collides with an incoming one."""
    return (PREVIOUS_PREFIX + name)[:MAX_SHEET_NAME]


def _heading_count(app: XmlPart) -> etree._Element | None:
    variants = app.xpath("//ep:HeadingPairs/vt:vector/vt:variant")
    for index, variant in enumerate(variants[:-1]):
        label = variant.find(qn("vt:lpstr"))
        if label is not None and label.text == WORKSHEETS_HEADING:
            return variants[index + 1].find(qn("vt:i4"))
    return app.first("//ep:HeadingPairs/vt:vector/vt:variant[2]/vt:i4")


class PropertySynchronizer:
    """Updates the worksheet heading count and the titles-of-parts list.

    Packages without ``docProps/app.xml`` are left alone; the part is optional.
    """

    def __init__(self, ctx: PackageContext) -> None:
        self.ctx = ctx

    def merge(self, sheet_number: int, name: str) -> None:
        if not self.ctx.app_path.is_file():
            return
        app = XmlPart.load(self.ctx.app_path)

        count = _heading_count(app)
        if count is not None:
            count.text = str(sheet_number)

        for vector in app.xpath("//ep:TitlesOfParts/vt:vector"):
            for title in vector.iterchildren(qn("vt:lpstr")):
                if title.text == name:
                    title.text = previous_name(name)
                    break
            vector.set("size", str(sheet_number))
            etree.SubElement(vector, qn("vt:lpstr")).text = name

        app.save()

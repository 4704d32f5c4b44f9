"""Style merging: fold an incoming ``xl/styles.xml`` into the destination's.

Every simple style category is deduplicated by canonical signature.  The
resulting id mappings are used to rewrite the incoming ``cellXfs`` records,
which are then deduplicated the same way.  The caller receives two mappings:

* cell styles: old ``cellXfs`` index -> merged ``cellXfs`` index
* conditional styles: old ``dxfs`` index -> merged ``dxfs`` index

The destination part is changed in memory and written once at the end, so a
failure before the final save leaves the destination on disk untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from lxml import etree

from xlmerge.contracts.common import PackageParseError
from xlmerge.engine.context import PackageContext
from xlmerge.ooxml.canonical import canonicalize
from xlmerge.ooxml.namespaces import SPREADSHEETML
from xlmerge.ooxml.xmlpart import XmlPart, clone

SIMPLE_CATEGORIES = ("numFmts", "fonts", "fills", "borders", "dxfs")
CELL_XFS = "cellXfs"

# Child order of <styleSheet>.
STYLESHEET_ORDER = (
    "numFmts", "fonts", "fills", "borders", "cellStyleXfs", "cellXfs",
    "cellStyles", "dxfs", "tableStyles", "colors", "extLst",
)

# cellXfs attributes and the category each one points into.
XF_REFERENCES = {
    "fontId": "fonts",
    "numFmtId": "numFmts",
    "fillId": "fills",
    "borderId": "borders",
}

# Ids below this are built-in number formats and never declared in numFmts.
FIRST_CUSTOM_NUMFMT_ID = 164


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _records(container: etree._Element | None) -> list[etree._Element]:
    if container is None:
        return []
    return [child for child in container if isinstance(child.tag, str)]


def _int_attr(element: etree._Element, name: str) -> int:
    value = element.get(name)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise PackageParseError(
            f"Invalid {name}={value!r} on <{_local(element.tag)}>"
        ) from e


def _container(styles: XmlPart, category: str) -> etree._Element | None:
    for child in styles.root:
        if isinstance(child.tag, str) and _local(child.tag) == category:
            return child
    return None


def _ensure_container(styles: XmlPart, category: str) -> etree._Element:
    """Return the category container, creating it at its schema position."""
    existing = _container(styles, category)
    if existing is not None:
        return existing
    created = etree.Element(f"{{{SPREADSHEETML}}}{category}")
    created.set("count", "0")
    later = STYLESHEET_ORDER[STYLESHEET_ORDER.index(category) + 1:]
    for child in styles.root:
        if isinstance(child.tag, str) and _local(child.tag) in later:
            child.addprevious(created)
            return created
    styles.root.append(created)
    return created


@dataclass
class StyleRecord:
    """A style entry owned by one document."""

    category: str
    id: int
    signature: bytes
    element: etree._Element


class IdMapping:
    """Per-input mapping of (category, old id) -> new id."""

    def __init__(self) -> None:
        self._map: dict[str, dict[int, int]] = {}

    def add(self, category: str, old_id: int, new_id: int) -> None:
        self._map.setdefault(category, {})[old_id] = new_id

    def for_category(self, category: str) -> dict[int, int]:
        return dict(self._map.get(category, {}))

    def remap(self, category: str, old_id: int) -> int:
        """Return the new id, or *old_id* when it has no entry."""
        return self._map.get(category, {}).get(old_id, old_id)

    def __contains__(self, key: tuple[str, int]) -> bool:
        category, old_id = key
        return old_id in self._map.get(category, {})


class StyleTable:
    """Ordered style records of one category; the index is the id."""

    def __init__(self, category: str, container: etree._Element | None) -> None:
        self.category = category
        self.container = container
        self.records: list[StyleRecord] = []
        self.added = 0
        for position, element in enumerate(_records(container)):
            self.records.append(StyleRecord(
                category=category,
                id=self.record_id(element, position),
                signature=self.signature(element),
                element=element,
            ))

    def __len__(self) -> int:
        return len(self.records)

    def record_id(self, element: etree._Element, position: int) -> int:
        return position

    def signature(self, element: etree._Element) -> bytes:
        return canonicalize(element)

    def find(self, signature: bytes) -> StyleRecord | None:
        """First record with *signature*, in insertion order."""
        for record in self.records:
            if record.signature == signature:
                return record
        return None

    def next_id(self) -> int:
        return len(self.records)

    def import_record(self, element: etree._Element) -> int:
        """Return the id of an identical record, appending a clone if none exists."""
        signature = self.signature(element)
        match = self.find(signature)
        if match is not None:
            return match.id
        if self.container is None:
            raise ValueError(f"No <{self.category}> container to import into")
        new_id = self.next_id()
        owned = clone(element)
        self.container.append(owned)
        self.records.append(StyleRecord(self.category, new_id, signature, owned))
        self.added += 1
        self.container.set("count", str(len(self.records)))
        return new_id


class NumFmtTable(StyleTable):
    """numFmts are addressed by their ``numFmtId`` attribute, not by position."""

    def record_id(self, element: etree._Element, position: int) -> int:
        return _int_attr(element, "numFmtId")

    def signature(self, element: etree._Element) -> bytes:
        anonymous = clone(element)
        anonymous.attrib.pop("numFmtId", None)
        return canonicalize(anonymous)

    def next_id(self) -> int:
        used = [r.id for r in self.records]
        return max([FIRST_CUSTOM_NUMFMT_ID - 1, *used]) + 1

    def import_record(self, element: etree._Element) -> int:
        signature = self.signature(element)
        match = self.find(signature)
        if match is not None:
            return match.id
        renumbered = clone(element)
        renumbered.set("numFmtId", str(self.next_id()))
        return super().import_record(renumbered)


def load_table(styles: XmlPart, category: str, *, create: bool = False) -> StyleTable:
    container = _ensure_container(styles, category) if create else _container(styles, category)
    table_cls = NumFmtTable if category == "numFmts" else StyleTable
    return table_cls(category, container)


class MergedStyles(NamedTuple):
    cell_styles: dict[int, int]
    conditional_styles: dict[int, int]
    added: dict[str, int]


class StyleMerger:
    """Merges incoming style parts into the destination package's styles."""

    def __init__(self, ctx: PackageContext) -> None:
        self.ctx = ctx

    def merge(self, incoming_styles: str | Path) -> MergedStyles:
        destination = XmlPart.load(self.ctx.styles_path)
        source = XmlPart.load(incoming_styles)

        mapping = IdMapping()
        added: dict[str, int] = {}
        for category in SIMPLE_CATEGORIES:
            added[category] = self._merge_category(destination, source, category, mapping)

        cell_styles, added[CELL_XFS] = self._merge_cell_xfs(destination, source, mapping)

        destination.save()
        return MergedStyles(cell_styles, mapping.for_category("dxfs"), added)

    def _merge_category(
        self,
        destination: XmlPart,
        source: XmlPart,
        category: str,
        mapping: IdMapping,
    ) -> int:
        incoming = load_table(source, category)
        if not incoming.records:
            return 0
        table = load_table(destination, category, create=True)
        for record in incoming.records:
            mapping.add(category, record.id, table.import_record(record.element))
        return table.added

    def _merge_cell_xfs(
        self,
        destination: XmlPart,
        source: XmlPart,
        mapping: IdMapping,
    ) -> tuple[dict[int, int], int]:
        incoming = _records(_container(source, CELL_XFS))
        if not incoming:
            return {}, 0
        table = load_table(destination, CELL_XFS, create=True)
        cell_styles: dict[int, int] = {}
        for old_id, xf in enumerate(incoming):
            rewritten = clone(xf)
            for attr, category in XF_REFERENCES.items():
                if rewritten.get(attr) is None:
                    continue
                old_ref = _int_attr(rewritten, attr)
                if (category, old_ref) in mapping:
                    rewritten.set(attr, str(mapping.remap(category, old_ref)))
            cell_styles[old_id] = table.import_record(rewritten)
        return cell_styles, table.added

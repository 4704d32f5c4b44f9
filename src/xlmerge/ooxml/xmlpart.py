"""Owned XML documents for package parts."""

from __future__ import annotations

import copy
from pathlib import Path

from lxml import etree

from xlmerge.contracts.common import PackageIOError, PackageParseError, PartNotFoundError
from xlmerge.io.fileops import atomic_write
from xlmerge.ooxml.namespaces import NSMAP


def _parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)


def clone(element: etree._Element) -> etree._Element:
    """Deep-copy *element* so it can be attached to another document.

    lxml moves a node when it is appended elsewhere; importing always goes
    through this copy so the source tree is never modified.
    """
    return copy.deepcopy(element)


class XmlPart:
    """One XML part of a package, loaded into its own element tree."""

    def __init__(self, path: str | Path, tree: etree._ElementTree) -> None:
        self.path = Path(path)
        self.tree = tree

    @classmethod
    def load(cls, path: str | Path) -> "XmlPart":
        p = Path(path)
        if not p.is_file():
            raise PartNotFoundError(f"Package part not found: {p}")
        try:
            tree = etree.parse(str(p), _parser())
        except etree.XMLSyntaxError as e:
            raise PackageParseError(f"Malformed XML in {p}: {e}") from e
        except OSError as e:
            raise PackageIOError(f"Cannot read {p}: {e}") from e
        return cls(p, tree)

    @property
    def root(self) -> etree._Element:
        return self.tree.getroot()

    def xpath(self, expr: str) -> list:
        return self.root.xpath(expr, namespaces=NSMAP)

    def first(self, expr: str) -> etree._Element | None:
        found = self.xpath(expr)
        return found[0] if found else None

    def to_bytes(self) -> bytes:
        return etree.tostring(
            self.tree, xml_declaration=True, encoding="UTF-8", standalone=True
        )

    def save(self, path: str | Path | None = None) -> None:
        target = Path(path) if path is not None else self.path
        try:
            atomic_write(target, self.to_bytes())
        except OSError as e:
            raise PackageIOError(f"Cannot write {target}: {e}") from e

"""Canonical serialization of XML subtrees, used as a content-equality key.

The output depends only on the information content of the subtree:

* element and attribute names are written in ``{namespace-uri}local`` form,
  so two documents that bind different prefixes to the same namespace produce
  the same bytes;
* attributes are sorted by that expanded name;
* text is stripped and whitespace-only text is dropped;
* comments and processing instructions are ignored.

The walk is explicit rather than relying on a serializer's default ordering.
"""

from __future__ import annotations

from lxml import etree


def _escape(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _write(element: etree._Element, out: list[str]) -> None:
    if not isinstance(element.tag, str):
        return
    out.append("<")
    out.append(element.tag)
    for name, value in sorted(element.attrib.items()):
        out.append(f' {name}="{_escape(value)}"')
    out.append(">")
    text = (element.text or "").strip()
    if text:
        out.append(_escape(text))
    for child in element:
        _write(child, out)
        tail = (child.tail or "").strip()
        if tail:
            out.append(_escape(tail))
    out.append("</")
    out.append(element.tag)
    out.append(">")


def canonicalize(element: etree._Element) -> bytes:
    """Return the canonical byte signature of *element* and its descendants."""
    out: list[str] = []
    _write(element, out)
    return "".join(out).encode("utf-8")

"""Namespace URIs, relationship types and content types used by spreadsheet packages."""

from __future__ import annotations

SPREADSHEETML = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
PACKAGE_RELATIONSHIPS = "http://schemas.openxmlformats.org/package/2006/relationships"
DOCUMENT_RELATIONSHIPS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
CONTENT_TYPES = "http://schemas.openxmlformats.org/package/2006/content-types"
EXTENDED_PROPERTIES = "http://schemas.openxmlformats.org/officeDocument/2006/extended-properties"
DOC_PROPS_VTYPES = "http://schemas.openxmlformats.org/officeDocument/2006/docPropsVTypes"

WORKSHEET_RELATIONSHIP_TYPE = DOCUMENT_RELATIONSHIPS + "/worksheet"
WORKSHEET_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"

# Prefixes used in XPath expressions only; documents keep their own prefixes.
NSMAP = {
    "m": SPREADSHEETML,
    "r": DOCUMENT_RELATIONSHIPS,
    "rel": PACKAGE_RELATIONSHIPS,
    "ct": CONTENT_TYPES,
    "ep": EXTENDED_PROPERTIES,
    "vt": DOC_PROPS_VTYPES,
}


def qn(prefixed: str) -> str:
    """Expand ``m:sheet`` into lxml's ``{uri}sheet`` notation."""
    prefix, local = prefixed.split(":", 1)
    return f"{{{NSMAP[prefix]}}}{local}"

"""Merge steps: styles, worksheets and the four package registrars."""

from xlmerge.merge.content_types import ContentTypeRegistrar
from xlmerge.merge.properties import PropertySynchronizer
from xlmerge.merge.relationships import RelationshipRewriter
from xlmerge.merge.styles import IdMapping, MergedStyles, StyleMerger, StyleRecord, StyleTable
from xlmerge.merge.workbook import WorkbookRegistrar
from xlmerge.merge.worksheet import AppendRowsComposer, NewSheetComposer

__all__ = [
    "AppendRowsComposer",
    "ContentTypeRegistrar",
    "IdMapping",
    "MergedStyles",
    "NewSheetComposer",
    "PropertySynchronizer",
    "RelationshipRewriter",
    "StyleMerger",
    "StyleRecord",
    "StyleTable",
    "WorkbookRegistrar",
]

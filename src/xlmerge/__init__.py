"""Merge OOXML spreadsheet packages while keeping styles and references consistent."""

__version__ = "0.1.0"

"""CLI presentation helpers."""

from xlmerge.help.custom_types import patch_typer_errors

__all__ = ["patch_typer_errors"]

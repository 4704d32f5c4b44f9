"""Monkey-patch Typer so CLI usage errors come back as JSON envelopes."""

from __future__ import annotations

import click


def patch_typer_errors() -> None:
    """Patch TyperGroup.invoke to emit JSON envelopes for CLI usage errors.

    Without this, click prints a plain-text usage message and exits 2, which
    machine consumers of ``xlmerge`` cannot parse.
    """
    import typer.core

    _orig_invoke = typer.core.TyperGroup.invoke

    def _json_invoke(self, ctx):
        try:
            return _orig_invoke(self, ctx)
        except click.exceptions.UsageError as e:
            from xlmerge.engine.dispatcher import error_envelope, exit_code_for, print_response

            command = ctx.invoked_subcommand or "unknown"
            env = error_envelope(command, "ERR_USAGE", str(e.format_message()))
            print_response(env)
            raise SystemExit(exit_code_for(env)) from e

    typer.core.TyperGroup.invoke = _json_invoke

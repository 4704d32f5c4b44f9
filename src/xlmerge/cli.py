"""Typer CLI application for merging spreadsheet packages."""

from __future__ import annotations

import tempfile
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Optional

import portalocker
import typer

from xlmerge.help import patch_typer_errors

patch_typer_errors()

import xlmerge
from xlmerge.contracts.common import (
    InputError,
    MergeAbortedError,
    PackageIOError,
    PackageParseError,
    ResponseEnvelope,
    Target,
    WarningDetail,
    WorkbookCorruptError,
)
from xlmerge.contracts.config import MergeConfig
from xlmerge.engine.dispatcher import (
    error_envelope,
    exit_code_for,
    print_response,
    success_envelope,
)
from xlmerge.io.archive import is_supported
from xlmerge.observe.events import Timer

_MAIN_HELP = """\
Merge .xlsx/.xlsm spreadsheet packages into one workbook, keeping formatting intact.

**Modes:**
- `new-sheet` (default): every worksheet of every input becomes its own sheet.
- `append-rows`: data rows of each input's first sheet are appended to the
  first input's first sheet; row 1 of each later input is treated as a header and dropped.

**Examples:**

`xlmerge merge jan.xlsx feb.xlsx mar.xlsx --out q1.xlsx`

`xlmerge merge a.xlsx b.xlsx --out all.xlsx --mode append-rows --events`

`xlmerge inspect -f q1.xlsx` reports sheet names, used ranges and the fingerprint.

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "errors": [...], "warnings": [...], "metrics": {"duration_ms": N}}`

**Exit codes:** 0=success, 10=validation, 40=conflict, 50=io, 70=unsupported, 90=internal
"""


class Mode(str, Enum):
    new_sheet = "new-sheet"
    append_rows = "append-rows"


app = typer.Typer(
    name="xlmerge",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)


@app.callback(invoke_without_command=True)
def _root(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
) -> None:
    if version:
        typer.echo(xlmerge.__version__)
        raise typer.Exit()


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Path to .xlsx/.xlsm package file")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _emit(envelope: ResponseEnvelope) -> None:
    print_response(envelope)
    raise typer.Exit(exit_code_for(envelope))


def _resolve_config(
    config_path: str | None,
    **overrides: object,
) -> MergeConfig:
    """Config file (explicit, else ``xlmerge.yaml`` in cwd) with CLI flags on top."""
    from xlmerge.engine.config import load_config, load_config_from_dir

    if config_path:
        if not Path(config_path).is_file():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        base = load_config(config_path)
    else:
        base = load_config_from_dir(Path.cwd()) or MergeConfig()
    return base.with_overrides(**overrides)


def _check_package_arg(file: str, cmd: str) -> None:
    """Emit an error envelope unless *file* is an existing .xlsx/.xlsm file."""
    target = Target(file=file)
    if not is_supported(file):
        _emit(error_envelope(cmd, "ERR_UNSUPPORTED_FORMAT", f"Not an .xlsx/.xlsm package: {file}", target=target))
    if not Path(file).is_file():
        _emit(error_envelope(cmd, "ERR_FILE_NOT_FOUND", f"File not found: {file}", target=target))


# ---------------------------------------------------------------------------
# xlmerge version
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print the xlmerge version.

    Example: `xlmerge version`
    """
    env = success_envelope("version", {"version": xlmerge.__version__})
    _emit(env)


# ---------------------------------------------------------------------------
# xlmerge merge
# ---------------------------------------------------------------------------
@app.command("merge")
def merge_cmd(
    inputs: Annotated[List[str], typer.Argument(help="Input packages, in merge order. The first usable one is the seed.")],
    out: Annotated[str, typer.Option("--out", "-o", help="Path of the merged .xlsx/.xlsm package")],
    mode: Annotated[Optional[Mode], typer.Option("--mode", "-m", help="How inputs are combined")] = None,
    config: Annotated[Optional[str], typer.Option("--config", "-c", help="YAML config file (default: ./xlmerge.yaml if present)")] = None,
    debug: Annotated[Optional[bool], typer.Option("--debug", help="Keep the working directory and write trace.json into it")] = None,
    events: Annotated[Optional[bool], typer.Option("--events", help="Emit NDJSON lifecycle events on stderr")] = None,
    lock_timeout: Annotated[Optional[float], typer.Option("--lock-timeout", help="Seconds to wait for the output lock")] = None,
    validate: Annotated[Optional[bool], typer.Option("--validate/--no-validate", help="Check package consistency before writing")] = None,
):
    """Merge spreadsheet packages into one.

    Styles are deduplicated across inputs and every style, relationship and
    sheet reference is rewritten so the result opens cleanly. Inputs that
    cannot be read are skipped or reported as failed in `warnings`; the rest
    are still merged.

    Example: `xlmerge merge a.xlsx b.xlsx --out merged.xlsx`

    Example: `xlmerge merge a.xlsx b.xlsx --out merged.xlsx --mode append-rows`
    """
    from xlmerge.engine.orchestrator import merge_files
    from xlmerge.observe.events import EventEmitter

    target = Target(file=out, inputs=inputs)
    try:
        cfg = _resolve_config(
            config,
            mode=mode.value if mode is not None else None,
            debug=debug,
            events=events,
            lock_timeout=lock_timeout,
            validate_output=validate,
        )
    except FileNotFoundError as e:
        _emit(error_envelope("merge", "ERR_CONFIG_NOT_FOUND", str(e), target=target))
        return
    except ValueError as e:
        _emit(error_envelope("merge", "ERR_CONFIG_INVALID", str(e), target=target))
        return

    if not is_supported(out):
        _emit(error_envelope("merge", "ERR_UNSUPPORTED_FORMAT", f"Output must be .xlsx or .xlsm: {out}", target=target))
        return

    with Timer() as t:
        try:
            result, warnings = merge_files(inputs, out, cfg, events=EventEmitter(enabled=cfg.events))
        except portalocker.LockException:
            _emit(error_envelope(
                "merge", "ERR_LOCK_HELD",
                f"Another merge is writing {out}. Check with `xlmerge lock-status -f {out}`.",
                target=target,
            ))
            return
        except InputError as e:
            _emit(error_envelope("merge", "ERR_NO_INPUTS", str(e), target=target))
            return
        except PackageIOError as e:
            _emit(error_envelope("merge", "ERR_IO", str(e), target=target))
            return
        except MergeAbortedError as e:
            _emit(error_envelope("merge", "ERR_MERGE_ABORTED", str(e), target=target))
            return

    env = success_envelope(
        "merge",
        result.model_dump(),
        target=target,
        warnings=warnings,
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmerge inspect
# ---------------------------------------------------------------------------
@app.command("inspect")
def inspect_cmd(
    file: FilePath,
):
    """Inspect a package with openpyxl: sheet names, used ranges, fingerprint.

    Use it on a merge result to confirm it opens and holds the expected sheets.

    Example: `xlmerge inspect -f merged.xlsx`
    """
    from xlmerge.engine.inspect import inspect_workbook

    target = Target(file=file)
    with Timer() as t:
        try:
            meta = inspect_workbook(file)
        except FileNotFoundError:
            _emit(error_envelope("inspect", "ERR_WORKBOOK_NOT_FOUND", f"File not found: {file}", target=target))
            return
        except WorkbookCorruptError as e:
            _emit(error_envelope("inspect", "ERR_WORKBOOK_CORRUPT", str(e), target=target))
            return

    env = success_envelope("inspect", meta.model_dump(), target=target, duration_ms=t.elapsed_ms)
    if meta.warnings:
        env.warnings = [WarningDetail(code="WORKBOOK_WARNING", message=w) for w in meta.warnings]
    _emit(env)


# ---------------------------------------------------------------------------
# xlmerge validate
# ---------------------------------------------------------------------------
@app.command("validate")
def validate_cmd(
    file: FilePath,
):
    """Check a package's cross-part consistency.

    Verifies contiguous sheet numbering, that every sheet entry resolves
    through a relationship, that every worksheet has a relationship and a
    content-type override, and that every style id resolves.

    Example: `xlmerge validate -f merged.xlsx`
    """
    from xlmerge.engine.context import PackageContext
    from xlmerge.io.archive import extract
    from xlmerge.validation.validators import validate_package

    target = Target(file=file)
    _check_package_arg(file, "validate")
    with Timer() as t:
        with tempfile.TemporaryDirectory(prefix="xlmerge-validate-") as tmp:
            try:
                result = validate_package(PackageContext(extract(file, tmp)))
            except PackageParseError as e:
                _emit(error_envelope("validate", "ERR_WORKBOOK_CORRUPT", str(e), target=target))
                return
            except PackageIOError as e:
                _emit(error_envelope("validate", "ERR_IO", str(e), target=target))
                return

    env = success_envelope("validate", result.model_dump(), target=target, duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# xlmerge lock-status
# ---------------------------------------------------------------------------
@app.command("lock-status")
def lock_status_cmd(
    file: FilePath,
):
    """Check whether a merge currently holds the lock for an output package.

    Example: `xlmerge lock-status -f merged.xlsx`
    """
    from xlmerge.io.fileops import check_lock

    with Timer() as t:
        result = check_lock(file)

    env = success_envelope("lock-status", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# Entrypoint (for `python -m xlmerge`)
# ---------------------------------------------------------------------------
def main() -> None:
    try:
        app()
    except SystemExit:
        raise
    except Exception as exc:
        # Machine consumers never see raw tracebacks.
        env = error_envelope(
            "unknown",
            "ERR_INTERNAL",
            str(exc),
        )
        print_response(env)
        raise SystemExit(90) from exc


if __name__ == "__main__":
    main()

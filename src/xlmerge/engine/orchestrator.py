"""MergeOrchestrator: drives the per-input merge pipeline over a session."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Sequence

from xlmerge.contracts.common import (
    InputError,
    MergeAbortedError,
    PackageParseError,
    PartNotFoundError,
    WarningDetail,
)
from xlmerge.contracts.config import MergeConfig, MergeMode
from xlmerge.contracts.responses import AddedSheet, InputReport, MergeResult, ValidationResult
from xlmerge.engine.context import PackageContext, sheet_ordinal
from xlmerge.engine.session import MergeSession
from xlmerge.io import archive
from xlmerge.io.fileops import PackageLock, fingerprint
from xlmerge.merge.content_types import ContentTypeRegistrar
from xlmerge.merge.properties import PropertySynchronizer
from xlmerge.merge.relationships import RelationshipRewriter
from xlmerge.merge.styles import MergedStyles, StyleMerger
from xlmerge.merge.workbook import WorkbookRegistrar
from xlmerge.merge.worksheet import (
    MERGED_SHEET_NUMBER,
    AppendBatch,
    AppendRowsComposer,
    NewSheetComposer,
    source_sheet_name,
)
from xlmerge.observe.events import EventEmitter, Timer, TraceRecorder
from xlmerge.validation.validators import validate_package

TRACE_FILENAME = "trace.json"


class MergeOrchestrator:
    """Folds input packages one at a time into the session's result package.

    The first input that extracts cleanly is the seed and is kept verbatim.
    Every later input runs StyleMerger and then the worksheet composer for
    the chosen mode.  In ``new-sheet`` mode each copied worksheet is then
    registered by RelationshipRewriter, ContentTypeRegistrar,
    PropertySynchronizer and WorkbookRegistrar, in that order.

    Input-level problems are collected in :attr:`warnings`; filesystem
    failures and failures after the destination was partly updated propagate.
    """

    def __init__(
        self,
        session: MergeSession,
        *,
        mode: MergeMode = "new-sheet",
        events: EventEmitter | None = None,
        validate_output: bool = True,
    ) -> None:
        self.session = session
        self.mode = mode
        self.events = events or EventEmitter()
        self.validate_output = validate_output
        self.ctx = PackageContext(session.result_dir)
        self.warnings: list[WarningDetail] = []
        relationships = RelationshipRewriter(self.ctx)
        self._registrars = (
            relationships,
            ContentTypeRegistrar(self.ctx),
            PropertySynchronizer(self.ctx),
            WorkbookRegistrar(self.ctx, relationships),
        )

    def run(self, inputs: Sequence[str | Path], output: str | Path) -> MergeResult:
        self.events.emit("merge.start", {"mode": self.mode, "inputs": [str(p) for p in inputs]})
        with Timer() as t:
            reports = self._merge_all(inputs)
            validation = self._validate()
            written = archive.create(self.ctx.root, output)

        result = MergeResult(
            output=str(written),
            mode=self.mode,
            fingerprint=fingerprint(written),
            inputs=reports,
            sheet_count=len(self.ctx.sheet_numbers()),
            working_dir=str(self.session.working_dir) if self.session.debug else None,
            validation=validation,
        )
        self.events.emit("merge.done", {
            "output": result.output, "sheet_count": result.sheet_count, "duration_ms": t.elapsed_ms,
        })
        return result

    def _merge_all(self, inputs: Sequence[str | Path]) -> list[InputReport]:
        reports: list[InputReport] = []
        position = 0
        seed: InputReport | None = None
        while seed is None and position < len(inputs):
            seed = self._seed(inputs[position], reports)
            position += 1
        if seed is None:
            raise InputError("No input could be used as the merge seed")

        remaining = list(enumerate(inputs[position:], start=position))
        if self.mode == "append-rows":
            self._merge_append_rows(remaining, reports)
        else:
            for index, path in remaining:
                reports.append(self._merge_new_sheets(index, path))
        return reports

    def _validate(self) -> ValidationResult | None:
        if not self.validate_output:
            return None
        validation = validate_package(self.ctx)
        if not validation.valid:
            failed = [c["type"] for c in validation.checks if not c["passed"]]
            self.warnings.append(WarningDetail(
                code="VALIDATION_FAILED",
                message=f"Merged package failed checks: {', '.join(failed)}",
            ))
        return validation

    # ------------------------------------------------------------------
    # Seed and input extraction
    # ------------------------------------------------------------------
    def _seed(self, path: str | Path, reports: list[InputReport]) -> InputReport | None:
        try:
            archive.extract(path, self.ctx.root)
            sheets = [
                AddedSheet(source=str(path), sheet_number=sheet_ordinal(p) or 0, name=source_sheet_name(p))
                for p in self.ctx.worksheet_parts()
            ]
        except InputError as e:
            reports.append(self._skipped(path, e))
            return None
        except PackageParseError as e:
            self._reset_result_dir()
            reports.append(self._failed(path, e))
            return None

        report = InputReport(path=str(path), status="seed", sheets=sheets)
        reports.append(report)
        self.events.emit("input.seed", {"path": str(path), "sheets": len(sheets)})
        return report

    def _reset_result_dir(self) -> None:
        shutil.rmtree(self.ctx.root)
        self.ctx.root.mkdir()

    def _extract(self, index: int, path: str | Path) -> PackageContext:
        src = PackageContext(archive.extract(path, self.session.input_dir(index, path)))
        self.events.emit("input.extracted", {
            "path": str(path), "index": index, "sheets": len(src.sheet_numbers()),
        })
        return src

    def _merge_styles(self, path: str | Path, src: PackageContext, report: InputReport) -> MergedStyles:
        styles = StyleMerger(self.ctx).merge(src.styles_path)
        report.styles_added = {k: v for k, v in styles.added.items() if v}
        self.events.emit("styles.merged", {"path": str(path), "added": styles.added})
        return styles

    def _skipped(self, path: str | Path, error: Exception) -> InputReport:
        self.warnings.append(WarningDetail(code="INPUT_SKIPPED", message=str(error), path=str(path)))
        self.events.emit("input.skipped", {"path": str(path), "reason": str(error)})
        return InputReport(path=str(path), status="skipped", message=str(error))

    def _failed(self, path: str | Path, error: Exception, report: InputReport | None = None) -> InputReport:
        self.warnings.append(WarningDetail(code="INPUT_FAILED", message=str(error), path=str(path)))
        self.events.emit("input.failed", {"path": str(path), "reason": str(error)})
        report = report or InputReport(path=str(path))
        report.status = "failed"
        report.message = str(error)
        return report

    # ------------------------------------------------------------------
    # new-sheet
    # ------------------------------------------------------------------
    def _merge_new_sheets(self, index: int, path: str | Path) -> InputReport:
        report = InputReport(path=str(path))
        try:
            src = self._extract(index, path)
            styles = self._merge_styles(path, src, report)
            composer = NewSheetComposer(self.ctx)
            for sheet in src.worksheet_parts():
                number, name = composer.merge(sheet, styles.cell_styles, styles.conditional_styles)
                self._register(number, name)
                report.sheets.append(AddedSheet(source=str(path), sheet_number=number, name=name))
                self.events.emit("sheet.added", {"path": str(path), "sheet_number": number, "name": name})
        except InputError as e:
            return self._skipped(path, e)
        except PackageParseError as e:
            return self._failed(path, e, report)
        return report

    def _register(self, sheet_number: int, name: str) -> None:
        """Run the registrars for a worksheet part already written to the destination."""
        try:
            for registrar in self._registrars:
                registrar.merge(sheet_number, name)
        except PackageParseError as e:
            raise MergeAbortedError(
                f"Registering sheet{sheet_number}.xml ({name!r}) failed: {e}"
            ) from e

    # ------------------------------------------------------------------
    # append-rows
    # ------------------------------------------------------------------
    def _merge_append_rows(
        self,
        remaining: list[tuple[int, str | Path]],
        reports: list[InputReport],
    ) -> None:
        if not remaining:
            return
        # Input-level parse errors are handled per input, so one escaping
        # here comes from the destination sheet itself.
        try:
            with AppendRowsComposer(self.ctx).batch() as batch:
                for index, path in remaining:
                    reports.append(self._append_input(batch, index, path))
        except PackageParseError as e:
            raise MergeAbortedError(
                f"Destination sheet{MERGED_SHEET_NUMBER}.xml is unusable: {e}"
            ) from e

    def _append_input(self, batch: AppendBatch, index: int, path: str | Path) -> InputReport:
        report = InputReport(path=str(path))
        try:
            src = self._extract(index, path)
            styles = self._merge_styles(path, src, report)
            sheet = src.sheet_path(MERGED_SHEET_NUMBER)
            if not sheet.is_file():
                raise PartNotFoundError(f"Worksheet not found: {sheet}")
            report.rows_appended = batch.append(sheet, styles.cell_styles, styles.conditional_styles)
        except InputError as e:
            return self._skipped(path, e)
        except PackageParseError as e:
            return self._failed(path, e, report)
        self.events.emit("rows.appended", {"path": str(path), "rows": report.rows_appended})
        return report


def merge_files(
    inputs: Sequence[str | Path],
    output: str | Path,
    config: MergeConfig | None = None,
    *,
    events: EventEmitter | None = None,
) -> tuple[MergeResult, list[WarningDetail]]:
    """Merge *inputs* into *output* under the destination lock.

    Returns the merge result and the input-level warnings.  In debug mode
    the working directory is kept and a ``trace.json`` is written into it.
    """
    config = config or MergeConfig()
    events = events or EventEmitter(enabled=config.events)
    if config.debug and events.trace is None:
        events.trace = TraceRecorder()

    with PackageLock(output, timeout=config.lock_timeout):
        with MergeSession(debug=config.debug, base_dir=config.work_dir) as session:
            orchestrator = MergeOrchestrator(
                session,
                mode=config.mode,
                events=events,
                validate_output=config.validate_output,
            )
            try:
                result = orchestrator.run(inputs, output)
            finally:
                if config.debug and events.trace is not None:
                    events.trace.save(session.working_dir / TRACE_FILENAME)
    return result, orchestrator.warnings

"""End-to-end merge tests through merge_files."""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import openpyxl
import portalocker
import pytest
from lxml import etree

from xlmerge.contracts.common import InputError, MergeAbortedError
from xlmerge.contracts.config import MergeConfig
from xlmerge.engine.orchestrator import TRACE_FILENAME, merge_files
from xlmerge.io.fileops import PackageLock
from xlmerge.observe.events import EventEmitter

from conftest import (
    MAIN_NS,
    PKG_REL_NS,
    REL_NS,
    XML_DECL,
    add_chartsheet,
    package_parts,
    read_part,
    table_sheet,
    write_package,
    zip_parts,
)


def _sheet_names(package: Path) -> list[str]:
    root = etree.fromstring(read_part(package, "xl/workbook.xml").encode("utf-8"))
    return [s.get("name") for s in root.iter(f"{{{MAIN_NS}}}sheet")]


def _worksheet_members(package: Path) -> list[str]:
    with zipfile.ZipFile(package) as zf:
        return sorted(n for n in zf.namelist() if n.startswith("xl/worksheets/sheet"))


# ---------------------------------------------------------------------------
# new-sheet
# ---------------------------------------------------------------------------


def test_new_sheet_merge_numbers_sheets_contiguously(
    tmp_path: Path, plain_package: Path, two_sheet_package: Path, styled_package: Path,
):
    out = tmp_path / "merged.xlsx"

    result, warnings = merge_files([plain_package, two_sheet_package, styled_package], out)

    assert warnings == []
    assert result.sheet_count == 4
    assert _worksheet_members(out) == [f"xl/worksheets/sheet{n}.xml" for n in range(1, 5)]
    assert _sheet_names(out) == ["Previous_Sheet1", "Data", "Notes", "Sheet1"]
    assert [r.status for r in result.inputs] == ["seed", "merged", "merged"]
    assert [s.sheet_number for s in result.inputs[1].sheets] == [2, 3]
    assert result.validation is not None and result.validation.valid
    assert result.fingerprint.startswith("sha256:")


def test_new_sheet_merge_reports_added_styles(tmp_path: Path, plain_package: Path, styled_package: Path):
    result, _ = merge_files([plain_package, styled_package], tmp_path / "merged.xlsx")

    added = result.inputs[1].styles_added
    assert added["fonts"] == 2
    assert added["dxfs"] == 1


def test_seed_only_merge_copies_parts_unchanged(tmp_path: Path, two_sheet_package: Path):
    out = tmp_path / "merged.xlsx"

    result, _ = merge_files([two_sheet_package], out)

    assert result.sheet_count == 2
    with zipfile.ZipFile(two_sheet_package) as original, zipfile.ZipFile(out) as merged:
        assert sorted(merged.namelist()) == sorted(original.namelist())
        for name in original.namelist():
            assert merged.read(name) == original.read(name), name
        assert merged.namelist()[0] == "[Content_Types].xml"


def test_unusable_inputs_become_warnings(tmp_path: Path, plain_package: Path, two_sheet_package: Path):
    csv = tmp_path / "notes.csv"
    csv.write_text("a,b\n1,2\n")
    broken = tmp_path / "broken.xlsx"
    broken.write_bytes(b"not a zip archive")
    out = tmp_path / "merged.xlsx"

    result, warnings = merge_files([plain_package, csv, broken, two_sheet_package], out)

    assert [w.code for w in warnings] == ["INPUT_SKIPPED", "INPUT_FAILED"]
    assert [r.status for r in result.inputs] == ["seed", "skipped", "failed", "merged"]
    assert result.sheet_count == 3
    assert result.validation.valid


def test_first_usable_input_becomes_seed(tmp_path: Path, plain_package: Path):
    broken = tmp_path / "broken.xlsx"
    broken.write_bytes(b"PK garbage")

    result, warnings = merge_files([broken, plain_package], tmp_path / "merged.xlsx")

    assert [r.status for r in result.inputs] == ["failed", "seed"]
    assert result.sheet_count == 1
    assert len(warnings) == 1


def test_no_usable_input(tmp_path: Path):
    missing = tmp_path / "missing.xlsx"
    with pytest.raises(InputError):
        merge_files([missing], tmp_path / "merged.xlsx")
    assert not (tmp_path / "merged.xlsx").exists()


def test_merged_output_opens_in_openpyxl(tmp_path: Path, openpyxl_packages: list[Path]):
    out = tmp_path / "merged.xlsx"

    result, warnings = merge_files(openpyxl_packages, out)

    assert warnings == []
    assert result.validation.valid
    wb = openpyxl.load_workbook(str(out))
    try:
        assert wb.sheetnames == ["Q1", "Q2", "Q3"]
        q2 = wb["Q2"]
        assert q2["A2"].value == 10
        assert q2["A1"].font.b is True
        assert q2["B2"].fill.fill_type == "solid"
        assert q2["B2"].fill.start_color.rgb == "FF00FF00"
        assert wb["Q3"]["B2"].fill.start_color.rgb == "FFFF0000"
    finally:
        wb.close()


def test_repeated_sheet_names_stay_unique(tmp_path: Path, plain_package: Path):
    second = write_package(tmp_path / "second.xlsx", [("Sheet1", table_sheet(["c", 3]))])
    third = write_package(tmp_path / "third.xlsx", [("Sheet1", table_sheet(["d", 4]))])

    result, warnings = merge_files([plain_package, second, third], tmp_path / "merged.xlsx")

    assert warnings == []
    assert _sheet_names(tmp_path / "merged.xlsx") == ["Previous_Sheet1", "Previous_2_Sheet1", "Sheet1"]
    assert result.validation.valid


def test_chartsheet_in_seed_keeps_its_relationship(tmp_path: Path, two_sheet_package: Path):
    seed = zip_parts(
        tmp_path / "charted.xlsx",
        add_chartsheet(package_parts([("Sheet1", table_sheet(["a", 1]))]), rid="rId9"),
    )
    out = tmp_path / "merged.xlsx"

    result, warnings = merge_files([seed, two_sheet_package], out)

    assert warnings == []
    assert result.validation.valid
    workbook = etree.fromstring(read_part(out, "xl/workbook.xml").encode("utf-8"))
    rels = etree.fromstring(read_part(out, "xl/_rels/workbook.xml.rels").encode("utf-8"))
    ids = {r.get("Target"): r.get("Id") for r in rels}
    chart = workbook.find(f".//{{{MAIN_NS}}}sheet[@name='Chart1']")
    assert chart.get(f"{{{REL_NS}}}id") == ids["chartsheets/sheet1.xml"]


def test_sheet_relationship_to_uncopied_part_fails_validation(tmp_path: Path, plain_package: Path):
    parts = package_parts([("Drawn", table_sheet(["a", 1]))])
    parts["xl/worksheets/_rels/sheet1.xml.rels"] = (
        XML_DECL
        + f'<Relationships xmlns="{PKG_REL_NS}">'
        + f'<Relationship Id="rId1" Type="{REL_NS}/drawing" Target="../drawings/drawing1.xml"/>'
        + f'<Relationship Id="rId2" Type="{REL_NS}/hyperlink" Target="https://example.com" TargetMode="External"/>'
        + "</Relationships>"
    )
    parts["xl/drawings/drawing1.xml"] = XML_DECL + "<wsDr/>"
    drawn = zip_parts(tmp_path / "drawn.xlsx", parts)

    result, warnings = merge_files([plain_package, drawn], tmp_path / "merged.xlsx")

    failed = [c for c in result.validation.checks if not c["passed"]]
    assert [c["type"] for c in failed] == ["sheet_relationship_targets"]
    assert failed[0]["dangling"] == ["sheet2:rId1->../drawings/drawing1.xml"]
    assert [w.code for w in warnings] == ["VALIDATION_FAILED"]


def test_registration_failure_aborts_merge(tmp_path: Path, sheetless_package: Path, plain_package: Path):
    out = tmp_path / "merged.xlsx"

    with pytest.raises(MergeAbortedError, match="sheet2.xml"):
        merge_files([sheetless_package, plain_package], out)

    assert not out.exists()


# ---------------------------------------------------------------------------
# append-rows
# ---------------------------------------------------------------------------


def test_append_rows_merge(tmp_path: Path, plain_package: Path, styled_package: Path):
    out = tmp_path / "merged.xlsx"

    result, warnings = merge_files(
        [plain_package, styled_package], out, MergeConfig(mode="append-rows"),
    )

    assert warnings == []
    assert result.sheet_count == 1
    assert result.inputs[1].rows_appended == 2
    assert result.validation.valid
    sheet = read_part(out, "xl/worksheets/sheet1.xml")
    assert 'ref="A1:B5"' in sheet
    assert "conditionalFormatting" not in sheet


def test_append_rows_through_openpyxl(tmp_path: Path, openpyxl_packages: list[Path]):
    out = tmp_path / "merged.xlsx"

    merge_files(openpyxl_packages, out, MergeConfig(mode="append-rows"))

    wb = openpyxl.load_workbook(str(out))
    try:
        ws = wb[wb.sheetnames[0]]
        assert ws.max_row == 10
        assert [ws.cell(row=r, column=1).value for r in range(5, 11)] == [10, 11, 12, 20, 21, 22]
    finally:
        wb.close()


def test_append_rows_fails_input_without_first_sheet(tmp_path: Path, plain_package: Path):
    parts = package_parts([("Only", "")])
    lonely = tmp_path / "lonely.xlsx"
    with zipfile.ZipFile(lonely, "w") as zf:
        for name, content in parts.items():
            if name != "xl/worksheets/sheet1.xml":
                zf.writestr(name, content)

    result, warnings = merge_files(
        [plain_package, lonely], tmp_path / "merged.xlsx", MergeConfig(mode="append-rows"),
    )

    assert result.inputs[1].status == "failed"
    assert warnings[0].code == "INPUT_FAILED"


def test_append_rows_aborts_without_destination_sheet(tmp_path: Path, plain_package: Path):
    parts = package_parts([("Only", table_sheet(["a", 1]))])
    del parts["xl/worksheets/sheet1.xml"]
    seed = zip_parts(tmp_path / "empty.xlsx", parts)
    out = tmp_path / "merged.xlsx"

    with pytest.raises(MergeAbortedError, match="Destination sheet1.xml"):
        merge_files([seed, plain_package], out, MergeConfig(mode="append-rows"))

    assert not out.exists()


# ---------------------------------------------------------------------------
# Session, events and locking
# ---------------------------------------------------------------------------


def test_working_directory_removed(tmp_path: Path, plain_package: Path, two_sheet_package: Path):
    work = tmp_path / "work"
    result, _ = merge_files(
        [plain_package, two_sheet_package], tmp_path / "merged.xlsx", MergeConfig(work_dir=str(work)),
    )
    assert result.working_dir is None
    assert list(work.iterdir()) == []


def test_debug_keeps_working_directory_and_trace(
    tmp_path: Path, plain_package: Path, two_sheet_package: Path,
):
    config = MergeConfig(debug=True, work_dir=str(tmp_path / "work"))

    result, _ = merge_files([plain_package, two_sheet_package], tmp_path / "merged.xlsx", config)

    working = Path(result.working_dir)
    assert (working / "result" / "xl" / "workbook.xml").is_file()
    assert (working / "tmp").is_dir()
    trace = json.loads((working / TRACE_FILENAME).read_text())
    categories = [e["category"] for e in trace["entries"]]
    assert categories[0] == "merge.start"
    assert categories[-1] == "merge.done"
    assert "sheet.added" in categories


def test_events_written_as_ndjson(tmp_path: Path, plain_package: Path, two_sheet_package: Path):
    stream = io.StringIO()

    merge_files(
        [plain_package, two_sheet_package], tmp_path / "merged.xlsx",
        events=EventEmitter(enabled=True, stream=stream),
    )

    events = [json.loads(line)["event"] for line in stream.getvalue().splitlines()]
    assert events[0] == "merge.start"
    assert events.count("sheet.added") == 2
    assert events[-1] == "merge.done"


def test_held_lock_blocks_merge(tmp_path: Path, plain_package: Path):
    out = tmp_path / "merged.xlsx"
    with PackageLock(out):
        with pytest.raises(portalocker.LockException):
            merge_files([plain_package], out)
    assert not out.exists()

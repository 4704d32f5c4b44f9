"""Shared test fixtures: spreadsheet packages built from raw XML parts or openpyxl."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
EP_NS = "http://schemas.openxmlformats.org/officeDocument/2006/extended-properties"
VT_NS = "http://schemas.openxmlformats.org/officeDocument/2006/docPropsVTypes"

XML_DECL = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'

FONT_CALIBRI = '<font><sz val="11"/><name val="Calibri"/></font>'
FONT_BOLD = '<font><b/><sz val="11"/><name val="Calibri"/></font>'
FONT_ITALIC = '<font><i/><sz val="11"/><name val="Calibri"/></font>'
FONT_RED = '<font><color rgb="FFFF0000"/><sz val="11"/><name val="Calibri"/></font>'

DEFAULT_FILLS = (
    '<fill><patternFill patternType="none"/></fill>',
    '<fill><patternFill patternType="gray125"/></fill>',
)
DEFAULT_BORDERS = ('<border><left/><right/><top/><bottom/><diagonal/></border>',)
DEFAULT_XF = '<xf numFmtId="0" fontId="0" fillId="0" borderId="0" xfId="0"/>'

DXF_RED = '<dxf><font><color rgb="FFFF0000"/></font></dxf>'
DXF_GREEN = '<dxf><fill><patternFill><bgColor rgb="FF00FF00"/></patternFill></fill></dxf>'


def xf(font: int = 0, fill: int = 0, border: int = 0, num_fmt: int = 0) -> str:
    return (
        f'<xf numFmtId="{num_fmt}" fontId="{font}" fillId="{fill}" borderId="{border}" '
        f'xfId="0" applyFont="1"/>'
    )


def _collection(tag: str, items) -> str:
    return f'<{tag} count="{len(items)}">{"".join(items)}</{tag}>'


def styles_xml(
    *,
    fonts=(FONT_CALIBRI,),
    fills=DEFAULT_FILLS,
    borders=DEFAULT_BORDERS,
    num_fmts=(),
    cell_xfs=(DEFAULT_XF,),
    dxfs=(),
) -> str:
    """A styles part; ``numFmts`` and ``dxfs`` are omitted when empty."""
    return (
        XML_DECL
        + f'<styleSheet xmlns="{MAIN_NS}">'
        + (_collection("numFmts", num_fmts) if num_fmts else "")
        + _collection("fonts", fonts)
        + _collection("fills", fills)
        + _collection("borders", borders)
        + '<cellStyleXfs count="1"><xf numFmtId="0" fontId="0" fillId="0" borderId="0"/></cellStyleXfs>'
        + _collection("cellXfs", cell_xfs)
        + '<cellStyles count="1"><cellStyle name="Normal" xfId="0" builtinId="0"/></cellStyles>'
        + (_collection("dxfs", dxfs) if dxfs else "")
        + "</styleSheet>"
    )


def cell(ref: str, value=None, style: int | None = None) -> str:
    attrs = f' r="{ref}"' + (f' s="{style}"' if style is not None else "")
    if value is None:
        return f"<c{attrs}/>"
    if isinstance(value, str):
        return f'<c{attrs} t="inlineStr"><is><t>{value}</t></is></c>'
    return f"<c{attrs}><v>{value}</v></c>"


def row(number: int, *cells: str, style: int | None = None) -> str:
    attrs = f' r="{number}"'
    if style is not None:
        attrs += f' s="{style}" customFormat="1"'
    return f"<row{attrs}>{''.join(cells)}</row>"


def worksheet_xml(*rows: str, dimension: str = "A1", cols: str = "", after: str = "") -> str:
    return (
        XML_DECL
        + f'<worksheet xmlns="{MAIN_NS}" xmlns:r="{REL_NS}">'
        + f'<dimension ref="{dimension}"/>'
        + cols
        + f"<sheetData>{''.join(rows)}</sheetData>"
        + after
        + "</worksheet>"
    )


def table_sheet(*data_rows: list, header=("Name", "Value")) -> str:
    """Row 1 holds *header*; each item of *data_rows* becomes one following row."""
    rows = [row(1, *(cell(f"{chr(65 + i)}1", h) for i, h in enumerate(header)))]
    for number, values in enumerate(data_rows, start=2):
        rows.append(row(number, *(cell(f"{chr(65 + i)}{number}", v) for i, v in enumerate(values))))
    return worksheet_xml(*rows, dimension=f"A1:{chr(64 + len(header))}{len(data_rows) + 1}")


def app_xml(names: list[str]) -> str:
    titles = "".join(f"<vt:lpstr>{n}</vt:lpstr>" for n in names)
    return (
        XML_DECL
        + f'<Properties xmlns="{EP_NS}" xmlns:vt="{VT_NS}">'
        + "<Application>Microsoft Excel</Application>"
        + '<HeadingPairs><vt:vector size="2" baseType="variant">'
        + "<vt:variant><vt:lpstr>Worksheets</vt:lpstr></vt:variant>"
        + f"<vt:variant><vt:i4>{len(names)}</vt:i4></vt:variant>"
        + "</vt:vector></HeadingPairs>"
        + f'<TitlesOfParts><vt:vector size="{len(names)}" baseType="lpstr">{titles}</vt:vector></TitlesOfParts>'
        + "</Properties>"
    )


def package_parts(
    sheets: list[tuple[str, str]],
    *,
    styles: str | None = None,
    app: bool = True,
    external_links: int = 0,
) -> dict[str, str]:
    """All parts of a package holding *sheets* as ``(name, worksheet xml)`` pairs.

    Relationships are ordered worksheets, external links, styles, so renumbering
    after a new sheet moves the external-link ids.
    """
    n = len(sheets)
    ws_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"
    overrides = [
        ("/xl/workbook.xml", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"),
        ("/xl/styles.xml", "application/vnd.openxmlformats-officedocument.spreadsheetml.styles+xml"),
    ]
    overrides += [(f"/xl/worksheets/sheet{i}.xml", ws_type) for i in range(1, n + 1)]
    overrides += [
        (f"/xl/externalLinks/externalLink{k}.xml",
         "application/vnd.openxmlformats-officedocument.spreadsheetml.externalLink+xml")
        for k in range(1, external_links + 1)
    ]
    if app:
        overrides.append(("/docProps/app.xml", "application/vnd.openxmlformats-officedocument.extended-properties+xml"))

    parts: dict[str, str] = {}
    parts["[Content_Types].xml"] = (
        XML_DECL
        + f'<Types xmlns="{CT_NS}">'
        + '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
        + '<Default Extension="xml" ContentType="application/xml"/>'
        + "".join(f'<Override PartName="{p}" ContentType="{t}"/>' for p, t in overrides)
        + "</Types>"
    )
    root_rels = [
        f'<Relationship Id="rId1" Type="{REL_NS}/officeDocument" Target="xl/workbook.xml"/>',
    ]
    if app:
        root_rels.append(
            '<Relationship Id="rId2" '
            'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/extended-properties" '
            'Target="docProps/app.xml"/>'
        )
    parts["_rels/.rels"] = XML_DECL + f'<Relationships xmlns="{PKG_REL_NS}">' + "".join(root_rels) + "</Relationships>"

    sheet_entries = "".join(
        f'<sheet name="{name}" sheetId="{i}" r:id="rId{i}"/>' for i, (name, _) in enumerate(sheets, start=1)
    )
    external_refs = ""
    if external_links:
        external_refs = "<externalReferences>" + "".join(
            f'<externalReference r:id="rId{n + k}"/>' for k in range(1, external_links + 1)
        ) + "</externalReferences>"
    parts["xl/workbook.xml"] = (
        XML_DECL
        + f'<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}">'
        + f"<sheets>{sheet_entries}</sheets>{external_refs}"
        + "</workbook>"
    )

    rels = [
        f'<Relationship Id="rId{i}" Type="{REL_NS}/worksheet" Target="worksheets/sheet{i}.xml"/>'
        for i in range(1, n + 1)
    ]
    rels += [
        f'<Relationship Id="rId{n + k}" Type="{REL_NS}/externalLink" Target="externalLinks/externalLink{k}.xml"/>'
        for k in range(1, external_links + 1)
    ]
    rels.append(f'<Relationship Id="rId{n + external_links + 1}" Type="{REL_NS}/styles" Target="styles.xml"/>')
    parts["xl/_rels/workbook.xml.rels"] = (
        XML_DECL + f'<Relationships xmlns="{PKG_REL_NS}">' + "".join(rels) + "</Relationships>"
    )

    parts["xl/styles.xml"] = styles or styles_xml()
    for i, (_, xml) in enumerate(sheets, start=1):
        parts[f"xl/worksheets/sheet{i}.xml"] = xml
    for k in range(1, external_links + 1):
        parts[f"xl/externalLinks/externalLink{k}.xml"] = (
            XML_DECL + f'<externalLink xmlns="{MAIN_NS}"><externalBook xmlns:r="{REL_NS}" r:id="rId1"/></externalLink>'
        )
    if app:
        parts["docProps/app.xml"] = app_xml([name for name, _ in sheets])
    return parts


def add_chartsheet(parts: dict[str, str], name: str = "Chart1", rid: str = "rId9") -> dict[str, str]:
    """List a chartsheet in ``<sheets>`` of *parts*, reached through relationship *rid*."""
    parts["xl/chartsheets/sheet1.xml"] = XML_DECL + f'<chartsheet xmlns="{MAIN_NS}" xmlns:r="{REL_NS}"/>'
    parts["[Content_Types].xml"] = parts["[Content_Types].xml"].replace(
        "</Types>",
        '<Override PartName="/xl/chartsheets/sheet1.xml" '
        'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.chartsheet+xml"/></Types>',
    )
    parts["xl/_rels/workbook.xml.rels"] = parts["xl/_rels/workbook.xml.rels"].replace(
        "</Relationships>",
        f'<Relationship Id="{rid}" Type="{REL_NS}/chartsheet" Target="chartsheets/sheet1.xml"/></Relationships>',
    )
    parts["xl/workbook.xml"] = parts["xl/workbook.xml"].replace(
        "</sheets>", f'<sheet name="{name}" sheetId="9" r:id="{rid}"/></sheets>',
    )
    return parts


def zip_parts(path: Path, parts: dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in parts.items():
            zf.writestr(name, content)
    return path


def write_package(path: Path, sheets: list[tuple[str, str]], **kwargs) -> Path:
    """Zip the parts of :func:`package_parts` into *path*."""
    return zip_parts(path, package_parts(sheets, **kwargs))


def extract_dir(path: Path, parts: dict[str, str]) -> Path:
    """Write *parts* as an extracted package under *path*."""
    for name, content in parts.items():
        target = path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return path


def read_part(package: Path, name: str) -> str:
    with zipfile.ZipFile(package) as zf:
        return zf.read(name).decode("utf-8")


@pytest.fixture()
def plain_package(tmp_path: Path) -> Path:
    """One sheet "Sheet1" with a header row and two data rows."""
    return write_package(
        tmp_path / "plain.xlsx",
        [("Sheet1", table_sheet(["a", 1], ["b", 2]))],
    )


@pytest.fixture()
def styled_package(tmp_path: Path) -> Path:
    """One sheet "Sheet1" using a bold and a red font, plus a conditional format."""
    styles = styles_xml(
        fonts=(FONT_CALIBRI, FONT_BOLD, FONT_RED),
        cell_xfs=(DEFAULT_XF, xf(font=1), xf(font=2)),
        dxfs=(DXF_RED,),
    )
    sheet = worksheet_xml(
        row(1, cell("A1", "Name", 1), cell("B1", "Value", 1)),
        row(2, cell("A2", "x", 2), cell("B2", 5)),
        row(3, cell("A3", "y"), cell("B3", 6, 2), style=1),
        dimension="A1:B3",
        cols='<cols><col min="1" max="1" width="20" style="2" customWidth="1"/></cols>',
        after=(
            '<conditionalFormatting sqref="B2:B3">'
            '<cfRule type="cellIs" dxfId="0" priority="1" operator="greaterThan"><formula>5</formula></cfRule>'
            "</conditionalFormatting>"
        ),
    )
    return write_package(tmp_path / "styled.xlsx", [("Sheet1", sheet)], styles=styles)


@pytest.fixture()
def two_sheet_package(tmp_path: Path) -> Path:
    return write_package(
        tmp_path / "two.xlsx",
        [
            ("Data", table_sheet(["c", 3])),
            ("Notes", table_sheet(["d", 4], ["e", 5])),
        ],
    )


@pytest.fixture()
def openpyxl_packages(tmp_path: Path) -> list[Path]:
    """Three workbooks saved by openpyxl, numeric data only, differently styled."""
    paths = []
    for index, (title, color) in enumerate((("Q1", "FFFF0000"), ("Q2", "FF00FF00"), ("Q3", "FFFF0000"))):
        wb = Workbook()
        ws = wb.active
        ws.title = title
        ws.append([1, 2, 3])
        for value in range(3):
            ws.append([index * 10 + value, value * 2, value * 3])
        ws["A1"].font = Font(bold=True)
        ws["B2"].fill = PatternFill(fill_type="solid", start_color=color, end_color=color)
        path = tmp_path / f"openpyxl_{index}.xlsx"
        wb.save(str(path))
        wb.close()
        paths.append(path)
    return paths


@pytest.fixture()
def sheetless_package(tmp_path: Path) -> Path:
    """A worksheet part, but a workbook part without ``<sheets>``."""
    parts = package_parts([("Sheet1", table_sheet(["a", 1]))])
    parts["xl/workbook.xml"] = XML_DECL + f'<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}"/>'
    return zip_parts(tmp_path / "sheetless.xlsx", parts)

from __future__ import annotations

from pathlib import Path

import pandas as pd
from openpyxl import load_workbook

from planning_extract.db.row_source import ResultSet
from planning_extract.excel.writer import ExtractWorkbook, finalise_sheet, safe_sheet_title
from planning_extract.models.extract_options import ExtractOptions, title_header
from planning_extract.services.dispatcher import Dispatcher
from planning_extract.sinks.base import SinkTarget


def _fill(sheet, rows, options=None) -> int:
    result = ResultSet(columns=["form_name", "description", "formula"], rows=rows)
    return Dispatcher(source=None).write(  # type: ignore[arg-type]
        result, SinkTarget.sheet(sheet), options or ExtractOptions(header_map=title_header)
    )


def test_sheet_sink_writes_styled_header_and_rows(tmp_path: Path):
    wb = ExtractWorkbook()
    sheet = wb.add_sheet("Forms")
    assert _fill(sheet, [["Input", "x" * 120, "=A+B"], ["Review", None, "00123"]]) == 2
    finalise_sheet(sheet, freeze_cols=1, max_width=40)
    path = wb.save(tmp_path / "out" / "Planning_Extract.xlsx")

    loaded = load_workbook(path)
    ws = loaded["Forms"]
    assert [c.value for c in ws[1]] == ["Form Name", "Description", "Formula"]
    assert ws["A1"].font.bold
    assert ws["C2"].value == "'=A+B"
    assert ws["C3"].value == "00123"
    assert ws.freeze_panes == "B2"
    assert ws.auto_filter.ref == "A1:C3"
    assert ws.column_dimensions["B"].width == 40

    df = pd.read_excel(path, sheet_name="Forms", dtype=str)
    assert df["Form Name"].tolist() == ["Input", "Review"]


def test_frozen_columns_not_capped():
    wb = ExtractWorkbook()
    sheet = wb.add_sheet("Wide")
    _fill(sheet, [["y" * 60, "z" * 60, None]])
    finalise_sheet(sheet, freeze_cols=1, max_width=20)
    assert sheet.column_dimensions["A"].width == 62
    assert sheet.column_dimensions["B"].width == 20


def test_workbook_reuses_default_sheet():
    wb = ExtractWorkbook()
    assert wb.sheet_names == []
    wb.add_sheet("One")
    wb.add_sheet("Two")
    assert wb.sheet_names == ["One", "Two"]


def test_safe_sheet_title():
    assert safe_sheet_title("A/B:C") == "A_B_C"
    assert len(safe_sheet_title("x" * 40)) == 31


def test_remove_sheet(tmp_path: Path):
    wb = ExtractWorkbook()
    first = wb.add_sheet("One")
    wb.add_sheet("Two")
    wb.remove_sheet(first)
    assert wb.sheet_names == ["Two"]
    loaded = load_workbook(wb.save(tmp_path / "Planning_Extract.xlsx"))
    assert loaded.sheetnames == ["Two"]


def test_remove_only_sheet_leaves_nothing_to_save():
    wb = ExtractWorkbook()
    wb.remove_sheet(wb.add_sheet("One"))
    assert wb.sheet_names == []

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..sinks.base import Sink

"""Spreadsheet sink and workbook helpers (openpyxl).

One worksheet per logical extract. The first row is a styled title row; after
the extract the sheet is finalised: leading columns frozen, auto-filter over
the used range, and every non-frozen column capped at a maximum width.
"""

__all__ = [
    "ExtractWorkbook",
    "SheetSink",
    "finalise_sheet",
    "safe_sheet_title",
]

TITLE_FONT = Font(bold=True, color="FFFFFF")
TITLE_FILL = PatternFill(fill_type="solid", start_color="1F4E78", end_color="1F4E78")
TITLE_ALIGNMENT = Alignment(vertical="top", wrap_text=True)

DEFAULT_MAX_WIDTH = 40
MIN_WIDTH = 8

_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def safe_sheet_title(name: str) -> str:
    """Worksheet titles are limited to 31 chars and exclude ``[]:*?/\\``."""
    return _INVALID_TITLE_CHARS.sub("_", name)[:31] or "Sheet"


def _cell_value(value: Any) -> Any:
    if isinstance(value, str):
        value = ILLEGAL_CHARACTERS_RE.sub("", value)
        # openpyxl stores strings with a leading '=' as formulas
        if value.startswith("="):
            value = "'" + value
    return value


class SheetSink(Sink):
    """Appends rows to an openpyxl worksheet."""

    def __init__(self, worksheet: Worksheet) -> None:
        super().__init__()
        self.worksheet = worksheet

    def write_header(self, headers: Sequence[str]) -> None:
        self.worksheet.append([_cell_value(h) for h in headers])
        for cell in self.worksheet[self.worksheet.max_row]:
            cell.font = TITLE_FONT
            cell.fill = TITLE_FILL
            cell.alignment = TITLE_ALIGNMENT

    def _write(self, row: Sequence[Any]) -> None:
        self.worksheet.append([_cell_value(v) for v in row])


def _content_width(value: Any) -> int:
    if value is None:
        return 0
    return max(len(line) for line in str(value).splitlines() or [""])


def finalise_sheet(
    worksheet: Worksheet, freeze_cols: int = 1, max_width: int = DEFAULT_MAX_WIDTH
) -> None:
    """Freeze title row + ``freeze_cols`` columns, add an auto-filter, size columns.

    Frozen columns are sized to fit their content; the remaining columns are
    capped at ``max_width``.
    """
    if worksheet.max_row < 1 or worksheet.max_column < 1:
        return
    for idx, column in enumerate(worksheet.iter_cols(), start=0):
        width = max((_content_width(c.value) for c in column), default=0) + 2
        width = max(width, MIN_WIDTH)
        if idx >= freeze_cols:
            width = min(width, max_width)
        worksheet.column_dimensions[get_column_letter(idx + 1)].width = width
    worksheet.freeze_panes = worksheet.cell(row=2, column=freeze_cols + 1)
    worksheet.auto_filter.ref = worksheet.dimensions


class ExtractWorkbook:
    """A workbook collecting several extract sheets before being saved once."""

    def __init__(self) -> None:
        self.workbook = Workbook()
        self._fresh = True

    def add_sheet(self, name: str) -> Worksheet:
        title = safe_sheet_title(name)
        if self._fresh:
            # reuse the default empty sheet openpyxl creates
            sheet = self.workbook.active
            sheet.title = title
            self._fresh = False
            return sheet
        return self.workbook.create_sheet(title=title)

    def remove_sheet(self, sheet: Worksheet) -> None:
        """Drop a sheet, e.g. one left half-written by a failed extract."""
        self.workbook.remove(sheet)
        if self.workbook.worksheets:
            self.workbook.active = 0

    @property
    def sheet_names(self) -> list[str]:
        return [] if self._fresh else list(self.workbook.sheetnames)

    def save(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        self.workbook.save(p)
        return p

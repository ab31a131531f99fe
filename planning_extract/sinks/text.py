from __future__ import annotations

import re
from collections.abc import Sequence
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..models.extract_options import ExtractOptions
from .base import Sink

"""Delimited text sink.

Cell rendering rules:
- None -> configured null placeholder
- numbers -> fixed decimal places when ``decimals`` is set, else str()
- strings -> CR/LF collapsed to a space when ``strip_line_breaks`` is set;
  wrapped in double quotes (internal quotes doubled) when quoting is on and
  the value contains the separator, a quote or a line break, or consists of
  digits only (keeps leading zeros intact in spreadsheet tools)
"""

__all__ = [
    "TextSink",
    "format_cell",
    "quote_string",
]

_LINE_BREAKS = re.compile(r"\r\n|[\n\r]")
_DIGITS_ONLY = re.compile(r"^\d+$")


def quote_string(value: str, field_sep: str) -> str:
    """Quote ``value`` if a consumer could misread it."""
    if (
        field_sep in value
        or '"' in value
        or "\n" in value
        or "\r" in value
        or _DIGITS_ONLY.match(value)
    ):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_cell(cell: Any, options: ExtractOptions) -> str:
    if cell is None:
        return options.null_value
    if isinstance(cell, str):
        val = _LINE_BREAKS.sub(" ", cell) if options.strip_line_breaks else cell
        if options.quote_ambiguous_strings:
            val = quote_string(val, options.field_sep)
        return val
    if isinstance(cell, (int, float, Decimal)) and not isinstance(cell, bool):
        if options.decimals is not None:
            return f"{cell:.{options.decimals}f}"
        return str(cell)
    return str(cell)


class TextSink(Sink):
    """Writes rows to a delimited text file.

    The file is opened on construction (append or truncate per options); the
    byte-order marker is written only when a fresh file is started.
    """

    def __init__(self, path: str | Path, options: ExtractOptions) -> None:
        super().__init__()
        self.path = Path(path)
        self.options = options
        mode = "a" if options.append else "w"
        # newline="" -> line terminator is written verbatim
        self._file = self.path.open(mode, encoding=options.encoding or "utf-8", newline="")
        if options.bom and not options.append:
            self._file.write("\ufeff")

    def write_header(self, headers: Sequence[str]) -> None:
        self._file.write(self.options.field_sep.join(headers) + self.options.line_terminator)

    def _write(self, row: Sequence[Any]) -> None:
        fields = [format_cell(cell, self.options) for cell in row]
        self._file.write(self.options.field_sep.join(fields) + self.options.line_terminator)

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
        super().close()

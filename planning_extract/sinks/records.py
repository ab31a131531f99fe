from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .base import Sink

"""In-memory sinks.

RecordSink appends rows to a caller-owned list so that several extract calls
(e.g. one per hierarchy top member) can accumulate into the same collector.
NullSink discards rows and only counts them.
"""

__all__ = [
    "NullSink",
    "RecordSink",
]


class NullSink(Sink):
    def write_header(self, headers: Sequence[str]) -> None:
        pass

    def _write(self, row: Sequence[Any]) -> None:
        pass


class RecordSink(Sink):
    """Ordered-record collector.

    The header, when written, is stored as a pseudo-row; ``row_count`` only
    counts data rows appended by this sink, never the header or rows that were
    already in the list.
    """

    def __init__(self, rows: list[list[Any]]) -> None:
        super().__init__()
        self.rows = rows

    def write_header(self, headers: Sequence[str]) -> None:
        self.rows.append(list(headers))

    def _write(self, row: Sequence[Any]) -> None:
        self.rows.append(list(row))

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

"""Sink interface and target descriptor.

A sink is where extracted rows go. Every variant exposes the same four
operations (write_header, write_row, close, row_count) and is a context
manager so that the destination is released on every exit path.
"""

__all__ = [
    "Sink",
    "SinkError",
    "SinkKind",
    "SinkTarget",
]


class SinkError(Exception):
    """Raised when a sink target cannot be opened or is not supported."""


class SinkKind(Enum):
    NONE = "none"  # iterate + count only
    RECORDS = "records"  # in-memory list of rows
    TEXT = "text"  # delimited text file
    SHEET = "sheet"  # spreadsheet worksheet


@dataclass(frozen=True)
class SinkTarget:
    """Closed set of destinations the dispatcher can write to."""
    kind: SinkKind
    destination: Any = None

    @classmethod
    def none(cls) -> SinkTarget:
        return cls(SinkKind.NONE)

    @classmethod
    def records(cls, rows: list[list[Any]]) -> SinkTarget:
        return cls(SinkKind.RECORDS, rows)

    @classmethod
    def text(cls, path: str | Path) -> SinkTarget:
        return cls(SinkKind.TEXT, Path(path))

    @classmethod
    def sheet(cls, worksheet: Any) -> SinkTarget:
        return cls(SinkKind.SHEET, worksheet)

    @property
    def is_text(self) -> bool:
        return self.kind is SinkKind.TEXT

    def describe(self) -> str:
        if self.kind is SinkKind.TEXT:
            return str(self.destination)
        if self.kind is SinkKind.SHEET:
            return str(getattr(self.destination, "title", "sheet"))
        return self.kind.value


class Sink(ABC):
    """Common behaviour: row counting and context management."""

    def __init__(self) -> None:
        self._row_count = 0
        self.closed = False

    @property
    def row_count(self) -> int:
        """Data rows written through this sink (header excluded)."""
        return self._row_count

    @abstractmethod
    def write_header(self, headers: Sequence[str]) -> None:
        ...

    def write_row(self, row: Sequence[Any]) -> None:
        self._write(row)
        self._row_count += 1

    @abstractmethod
    def _write(self, row: Sequence[Any]) -> None:
        ...

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> Sink:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

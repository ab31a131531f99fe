from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

"""ExtractOptions model and default header strategies.

ExtractOptions is built once per dispatcher call and is read-only afterwards.
Header handling is split into two named strategies:

- ``set_headers``: receives the source field names and returns the output field
  names (insert / remove / reorder, e.g. splice in per-plan-type columns).
- ``header_map``: maps a single output field name to its display text.

``transform_row`` is the per-row counterpart of ``set_headers`` and must keep
the row aligned with the field list it returned.
"""

__all__ = [
    "ExtractOptions",
    "upper_header",
    "title_header",
    "titleize",
]

HeaderMap = Callable[[str], str]
SetHeaders = Callable[[list[str]], list[str]]
TransformRow = Callable[[list[Any]], list[Any]]


def titleize(text: str) -> str:
    """Title-case a field name: ``smart_list`` -> ``Smart List``."""
    text = text.replace("_", " ")
    text = re.sub(r"^\w", lambda m: m.group(0).upper(), text)
    return re.sub(r"\b('?[a-z])", lambda m: m.group(1).capitalize(), text)


def upper_header(field_name: str) -> str:
    return str(field_name).upper()


def title_header(field_name: str) -> str:
    return titleize(str(field_name))


@dataclass(frozen=True)
class ExtractOptions:
    """Configuration for one dispatcher invocation.

    ``include_headers`` is forced to False when ``append`` is True: an appended
    extract continues a file that already carries its header line.
    """
    field_sep: str = "\t"
    encoding: str | None = None  # None -> utf-8
    bom: bool = False  # byte-order marker, fresh (non-append) files only
    append: bool = False
    include_headers: bool = True
    null_value: str = ""
    decimals: int | None = None
    strip_line_breaks: bool = False
    quote_ambiguous_strings: bool = True
    line_terminator: str = "\n"
    header_map: HeaderMap = upper_header
    set_headers: SetHeaders | None = None
    transform_row: TransformRow | None = None
    bind_params: Sequence[Any] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.append and self.include_headers:
            object.__setattr__(self, "include_headers", False)
        object.__setattr__(self, "bind_params", tuple(self.bind_params))

    def output_fields(self, source_fields: Sequence[str]) -> list[str]:
        """Apply the header-set mutation to the source field names."""
        fields = [str(f) for f in source_fields]
        if self.set_headers is not None:
            fields = list(self.set_headers(fields))
        return fields

    def header_text(self, fields: Sequence[str]) -> list[str]:
        return [self.header_map(f) for f in fields]

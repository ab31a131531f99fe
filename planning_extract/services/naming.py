from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

"""Output naming and command-line dimension selection.

Extract file names are ``<name><selection><levels>_Extract.<ext>`` where
selection is empty (whole dimension), ``_<member>`` (single top member) or
``_Subset`` (several top members).
"""

__all__ = [
    "get_extract_file",
    "parse_dimensions",
    "wildcard_to_like",
]


def get_extract_file(
    folder: Path | str,
    name: str,
    top_members: Sequence[str] | None = None,
    level_based: bool = False,
    extension: str = "csv",
) -> Path:
    if not top_members or (len(top_members) == 1 and top_members[0] == name):
        selection = ""
    elif len(top_members) == 1:
        selection = f"_{top_members[0]}"
    else:
        selection = "_Subset"
    levels = "_Levels" if level_based else ""
    return Path(folder) / f"{name}{selection}{levels}_Extract.{extension.lower()}"


def parse_dimensions(value: str) -> tuple[list[str], dict[str, list[str]]]:
    """Parse ``DIM[:MBR1~MBR2|:FILE][,DIM2...]``.

    Returns the dimension names in order plus the top members selected per
    dimension. When the text after the colon names an existing file, the file
    is read one member per line.
    """
    dims: list[str] = []
    top_members: dict[str, list[str]] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        dim, sep, top = item.partition(":")
        if sep and top:
            path = Path(top)
            if path.is_file():
                lines = path.read_text(encoding="utf-8").splitlines()
                top_members[dim] = [line for line in lines if line.strip()]
            else:
                top_members[dim] = top.split("~")
        dims.append(dim)
    return dims, top_members


def wildcard_to_like(pattern: str | bool | None) -> str:
    """Translate a ``*``/``?`` wildcard into a SQL LIKE pattern."""
    if not pattern or pattern is True:
        return "%"
    return str(pattern).replace("*", "%").replace("?", "_")

from __future__ import annotations

from ..excel.writer import SheetSink
from ..models.extract_options import ExtractOptions
from .base import Sink, SinkError, SinkKind, SinkTarget
from .records import NullSink, RecordSink
from .text import TextSink

"""Sink factory: selects the concrete sink for a SinkTarget."""

__all__ = [
    "open_sink",
]


def open_sink(target: SinkTarget, options: ExtractOptions) -> Sink:
    """Open the sink described by ``target``.

    Raises:
        SinkError: unsupported kind or missing destination
        OSError: text destination cannot be opened (propagated as-is)
    """
    if target.kind is SinkKind.NONE:
        return NullSink()
    if target.destination is None:
        raise SinkError(f"sink target '{target.kind.value}' has no destination")
    if target.kind is SinkKind.RECORDS:
        return RecordSink(target.destination)
    if target.kind is SinkKind.TEXT:
        return TextSink(target.destination, options)
    if target.kind is SinkKind.SHEET:
        return SheetSink(target.destination)
    raise SinkError(f"unsupported sink kind: {target.kind!r}")

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..db.row_source import ResultSet, RowSource
from ..models.extract_options import ExtractOptions
from ..sinks.base import SinkTarget
from ..sinks.factory import open_sink

"""Extraction dispatcher.

Single entry point for every extract: pull rows from the row source, run the
row transform (enrichment), hand a read-only copy of the enriched row to the
optional per-row callback, then write the row to the selected sink.

Return value is always the number of data rows written by this call: header
rows and rows already present in a record collector are not counted.
"""

__all__ = [
    "Dispatcher",
    "RowCallback",
]

logger = logging.getLogger(__name__)

# Receives the enriched row keyed by output field name. The dict is a copy;
# changing it has no effect on what is written.
RowCallback = Callable[[dict[str, Any]], None]


class Dispatcher:
    def __init__(self, source: RowSource) -> None:
        self.source = source

    def execute(
        self,
        query_id: str,
        target: SinkTarget,
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        """Run ``query_id`` with ``options.bind_params`` and write every row."""
        options = options or ExtractOptions()
        result = self.source.fetch(query_id, options.bind_params)
        logger.debug("query=%s target=%s", query_id, target.describe())
        return self.write(result, target, options, on_row)

    def write(
        self,
        result: ResultSet,
        target: SinkTarget,
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        """Write an already-fetched result set to ``target``.

        The result is closed on return, also when the sink cannot be opened.
        """
        options = options or ExtractOptions()
        try:
            fields = options.output_fields(result.columns)
            with open_sink(target, options) as sink:
                if options.include_headers:
                    sink.write_header(options.header_text(fields))
                for raw in result.rows:
                    row = list(raw)
                    if options.transform_row is not None:
                        row = options.transform_row(row)
                    if on_row is not None:
                        on_row(dict(zip(fields, row, strict=False)))
                    sink.write_row(row)
                return sink.row_count
        finally:
            result.close()

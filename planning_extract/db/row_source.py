from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .queries import QUERY_COLUMNS

"""Row source: executes a named query and yields its rows.

DbRowSource works with any DB-API 2.0 connection (psycopg2 in production,
sqlite3 in tests). Bind parameter placeholders in the configured SQL must
match the driver's paramstyle.

Results are single-pass: rows are fetched in ``arraysize`` batches and the
cursor is closed once the iteration finishes, or by ``ResultSet.close`` when
the rows are never read. Queries listed in QUERY_COLUMNS must return at least
those columns.
"""

__all__ = [
    "ResultSet",
    "RowSource",
    "DbRowSource",
    "RowSourceError",
]


class RowSourceError(Exception):
    """Unknown query id or driver failure while fetching rows."""


@dataclass
class ResultSet:
    """Column names (lower-cased) plus a single-pass row iterable."""
    columns: list[str]
    rows: Iterable[Sequence[Any]]
    on_close: Callable[[], None] | None = field(default=None, repr=False, compare=False)

    def __iter__(self) -> Iterator[Sequence[Any]]:
        return iter(self.rows)

    def close(self) -> None:
        """Release the underlying cursor; safe to call more than once."""
        if self.on_close is not None:
            self.on_close()


class RowSource(Protocol):
    def fetch(self, query_id: str, params: Sequence[Any] = ()) -> ResultSet:
        ...


class DbRowSource:
    """Row source backed by a DB-API connection and a query catalogue."""

    def __init__(self, connection: Any, queries: Mapping[str, str], arraysize: int = 500) -> None:
        self.connection = connection
        self.queries = dict(queries)
        self.arraysize = arraysize

    def sql_for(self, query_id: str) -> str:
        try:
            return self.queries[query_id]
        except KeyError:
            raise RowSourceError(f"no SQL configured for query '{query_id}'") from None

    def fetch(self, query_id: str, params: Sequence[Any] = ()) -> ResultSet:
        sql = self.sql_for(query_id)
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, tuple(params))
        except Exception as e:
            cursor.close()
            raise RowSourceError(f"query '{query_id}' failed: {e}") from e
        columns = [str(d[0]).lower() for d in (cursor.description or [])]
        missing = [c for c in QUERY_COLUMNS.get(query_id, ()) if c not in columns]
        if missing:
            cursor.close()
            raise RowSourceError(f"query '{query_id}' is missing columns: {', '.join(missing)}")
        return ResultSet(columns=columns, rows=self._iter_rows(cursor, query_id), on_close=cursor.close)

    def _iter_rows(self, cursor: Any, query_id: str) -> Iterator[Sequence[Any]]:
        try:
            while True:
                try:
                    batch = cursor.fetchmany(self.arraysize)
                except Exception as e:
                    raise RowSourceError(f"query '{query_id}' fetch failed: {e}") from e
                if not batch:
                    break
                yield from batch
        finally:
            cursor.close()

from __future__ import annotations

import pytest

from planning_extract.db.row_source import DbRowSource, ResultSet, RowSourceError
from planning_extract.models.extract_options import ExtractOptions
from planning_extract.services.dispatcher import Dispatcher
from planning_extract.sinks.base import SinkError, SinkKind, SinkTarget
from planning_extract.sinks.records import RecordSink


@pytest.fixture()
def dispatcher(stub_source) -> Dispatcher:
    source = stub_source(
        {
            "items": (["name", "qty"], [["a", 1], ["b", 2], ["c", 3]]),
            "empty": (["name"], []),
        }
    )
    return Dispatcher(source)


def test_none_sink_iterates_and_counts(dispatcher):
    seen = []
    assert dispatcher.execute("items", SinkTarget.none(), on_row=seen.append) == 3
    assert [r["name"] for r in seen] == ["a", "b", "c"]


def test_record_sink_count_excludes_header_and_existing_rows(dispatcher):
    rows: list[list] = [["already", "there"]]
    target = SinkTarget.records(rows)
    assert dispatcher.execute("items", target) == 3
    assert rows[1] == ["NAME", "QTY"]
    assert dispatcher.execute("items", target, ExtractOptions(append=True)) == 3
    assert len(rows) == 1 + 1 + 3 + 3


def test_callback_sees_enriched_row_and_cannot_change_output(dispatcher):
    rows: list[list] = []
    opts = ExtractOptions(
        set_headers=lambda f: [*f, "double"],
        transform_row=lambda r: [*r, r[1] * 2],
        include_headers=False,
    )

    def meddle(record):
        assert record["double"] == record["qty"] * 2
        record["name"] = "changed"

    dispatcher.execute("items", SinkTarget.records(rows), opts, meddle)
    assert rows == [["a", 1, 2], ["b", 2, 4], ["c", 3, 6]]


def test_bind_params_passed_to_source(dispatcher):
    dispatcher.execute("empty", SinkTarget.none(), ExtractOptions(bind_params=["x", 1]))
    assert dispatcher.source.calls[-1] == ("empty", ("x", 1))


def test_unknown_query_propagates(dispatcher):
    with pytest.raises(RowSourceError):
        dispatcher.execute("missing", SinkTarget.none())


def test_missing_destination_is_sink_error(dispatcher):
    with pytest.raises(SinkError):
        dispatcher.execute("items", SinkTarget(SinkKind.RECORDS))


def test_sink_closed_when_transform_fails(monkeypatch):
    rows: list[list] = []
    closed = []

    class TrackingSink(RecordSink):
        def close(self) -> None:
            closed.append(True)
            super().close()

    def boom(row):
        raise ValueError("bad row")

    monkeypatch.setattr(
        "planning_extract.services.dispatcher.open_sink", lambda target, options: TrackingSink(rows)
    )
    result = ResultSet(columns=["a"], rows=[[1]])
    with pytest.raises(ValueError):
        Dispatcher(source=None).write(  # type: ignore[arg-type]
            result, SinkTarget.records(rows), ExtractOptions(transform_row=boom)
        )
    assert closed == [True]


def test_result_closed_when_sink_cannot_open(tmp_path):
    closed = []
    result = ResultSet(columns=["a"], rows=iter([[1]]), on_close=lambda: closed.append(True))
    with pytest.raises(OSError):
        Dispatcher(source=None).write(  # type: ignore[arg-type]
            result, SinkTarget.text(tmp_path / "missing" / "out.csv")
        )
    assert closed == [True]


def test_execute_releases_cursor_when_sink_fails(tmp_path):
    class Cursor:
        description = (("name",),)
        closed = False

        def execute(self, sql, params):
            pass

        def fetchmany(self, size):
            return []

        def close(self):
            self.closed = True

    cursor = Cursor()

    class Connection:
        def cursor(self):
            return cursor

    dispatcher = Dispatcher(DbRowSource(Connection(), {"items": "SELECT name FROM items"}))
    with pytest.raises(OSError):
        dispatcher.execute("items", SinkTarget.text(tmp_path / "missing" / "items.csv"))
    assert cursor.closed is True

# Shared pytest fixtures
from __future__ import annotations

import sqlite3
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
import yaml

from planning_extract.db.row_source import DbRowSource, ResultSet, RowSourceError
from planning_extract.logging.init import reset_logging

SCHEMA = """
CREATE TABLE dims (name TEXT, type TEXT);
CREATE TABLE plan_types (name TEXT, ord INTEGER);
CREATE TABLE members (
    member_id INTEGER, dim TEXT, parent_id INTEGER, position INTEGER, name TEXT,
    data_storage TEXT, formula TEXT, used_in INTEGER, consol_op INTEGER, uda TEXT
);
CREATE TABLE aliases (dim TEXT, tbl TEXT, mbr_id INTEGER, alias TEXT);
CREATE TABLE udas (dim TEXT, mbr_id INTEGER, uda TEXT);
CREATE TABLE attrs (dim TEXT, attr_dim TEXT, mbr_id INTEGER, attr_name TEXT);
CREATE TABLE forms (form_name TEXT, form_type TEXT, folder TEXT, cube_name TEXT);
CREATE TABLE form_usage (form_name TEXT, task_list TEXT, composite_form TEXT, folder TEXT);
CREATE TABLE task_lists (task_list TEXT, task TEXT, instructions TEXT);
CREATE TABLE smart_lists (smartlist_name TEXT, label TEXT);
CREATE TABLE security (name TEXT, object TEXT, access TEXT);
CREATE TABLE rules (object_type TEXT, object_name TEXT);
CREATE TABLE rule_usage (object_type TEXT, object_name TEXT, user_type TEXT, user_name TEXT);
"""

# Account: consol_op packs '+' for Plan1 and '-' for Plan2 (1 << 6)
DATA: dict[str, list[tuple[Any, ...]]] = {
    "dims": [("Account", "Dimension"), ("Region", "Attribute Dimension")],
    "plan_types": [("Plan1", 1), ("Plan2", 2)],
    "members": [
        (1, "Account", None, 0, "Account", "Never Share", None, 3, 0, "UDA_Placeholder"),
        (3, "Account", 1, 2, "Expenses", "Store", None, 3, 1 << 6, "UDA_Placeholder"),
        (2, "Account", 1, 1, "Revenue", "Store", None, 3, 1 << 6, "UDA_Placeholder"),
        (4, "Account", 2, 1, "Sales", "Store", "=Units*Price", 1, 0, "UDA_Placeholder"),
        (5, "Account", 3, 1, "Sales", "Shared", None, 1, 0, "UDA_Placeholder"),
        (10, "Region", None, 0, "Region", "Never Share", None, 0, 0, "UDA_Placeholder"),
        (11, "Region", 10, 1, "North", "Store", None, 0, 0, "UDA_Placeholder"),
        (12, "Region", 10, 2, "South", "Store", None, 0, 0, "UDA_Placeholder"),
    ],
    "aliases": [
        ("Account", "Default", 2, "Rev"),
        ("Account", "Default", 3, "Exp"),
        ("Account", "French", 2, "Revenu"),
    ],
    "udas": [("Account", 2, "HSP_NOLINK"), ("Account", 2, "KEEP")],
    "attrs": [("Account", "Region", 4, "North")],
    "forms": [
        ("Input Revenue", "Simple", "/Input", "Plan1"),
        ("Review", "Composite", "/Review", None),
        ("Other", "Simple", "", "Plan2"),
    ],
    "form_usage": [
        ("Input Revenue", "Budget Tasks", None, None),
        ("Input Revenue", None, "Review", "/Review"),
    ],
    "task_lists": [("Budget Tasks", "Enter revenue", "Line one\nLine two")],
    "smart_lists": [("Status", "Approval status"), ("Codes", "00123")],
    "security": [("Planners", "Revenue", "WRITE")],
    "rules": [("Rule", "CalcAll"), ("Rule", "CalcRev"), ("Sequence", "Nightly"), ("Macro", "MacroA")],
    "rule_usage": [
        ("Macro", "MacroA", "Rule", "CalcAll"),
        ("Rule", "CalcAll", "Sequence", "Nightly"),
    ],
}

FORM_FILTER = "WHERE UPPER(form_name) LIKE UPPER(?) ORDER BY form_name"

QUERIES = {
    "dimensions": "SELECT name AS dimension_name, type AS dimension_type FROM dims ORDER BY name",
    "plan_types": "SELECT name AS plan_type FROM plan_types ORDER BY ord",
    "aliases": "SELECT tbl AS alias_tbl_name, mbr_id, alias FROM aliases WHERE dim = ? ORDER BY tbl, mbr_id",
    "udas": "SELECT mbr_id AS object_id, uda AS uda_value FROM udas WHERE dim = ? ORDER BY uda",
    "attributes": "SELECT attr_dim AS attr_dim_name, mbr_id, attr_name FROM attrs WHERE dim = ?",
    "dimension_members": (
        "SELECT member_id, parent_id, position, name AS member_name, data_storage, formula, "
        "used_in, consol_op, uda FROM members WHERE dim = ? ORDER BY member_id"
    ),
    "forms": f"SELECT form_name, form_type, folder, cube_name FROM forms {FORM_FILTER}",
    "form_panes": f"SELECT form_name, folder FROM forms {FORM_FILTER}",
    "form_layout": f"SELECT form_name, cube_name FROM forms {FORM_FILTER}",
    "form_members": f"SELECT form_name, form_type FROM forms {FORM_FILTER}",
    "form_calcs": f"SELECT form_name FROM forms {FORM_FILTER}",
    "form_menus": f"SELECT form_name FROM forms {FORM_FILTER}",
    "form_usage": (
        "SELECT task_list, composite_form, folder FROM form_usage "
        "WHERE form_name LIKE ? OR form_name LIKE ?"
    ),
    "task_lists": "SELECT task_list, task, instructions FROM task_lists",
    "smart_lists": "SELECT smartlist_name, label FROM smart_lists ORDER BY smartlist_name",
    "smart_list_items": "SELECT smartlist_name, label FROM smart_lists ORDER BY label",
    "menu_items": "SELECT form_name AS menu_item FROM forms ORDER BY form_name",
    "user_variables": "SELECT name AS variable_name, object AS dimension FROM security",
    "security_access": "SELECT name, object, access FROM security",
    "business_rules": "SELECT object_type, object_name FROM rules WHERE object_name LIKE ? ORDER BY object_name",
    "business_rule_usage": "SELECT object_type, object_name, user_type, user_name FROM rule_usage",
}


def build_planning_db(path: str | Path = ":memory:") -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA)
    for table, rows in DATA.items():
        if rows:
            marks = ", ".join("?" * len(rows[0]))
            conn.executemany(f"INSERT INTO {table} VALUES ({marks})", rows)
    conn.commit()
    return conn


class StubRowSource:
    """In-memory row source: query id -> (columns, rows)."""

    def __init__(self, results: dict[str, tuple[list[str], list[Sequence[Any]]]]) -> None:
        self.results = results
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def fetch(self, query_id: str, params: Sequence[Any] = ()) -> ResultSet:
        self.calls.append((query_id, tuple(params)))
        if query_id not in self.results:
            raise RowSourceError(f"no SQL configured for query '{query_id}'")
        columns, rows = self.results[query_id]
        return ResultSet(columns=list(columns), rows=iter([list(r) for r in rows]))


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def planning_db():
    conn = build_planning_db()
    yield conn
    conn.close()


@pytest.fixture()
def row_source(planning_db) -> DbRowSource:
    return DbRowSource(planning_db, QUERIES)


@pytest.fixture()
def sample_config() -> dict[str, Any]:
    return {
        "application": "Budget",
        "output_directory": "out",
        "format": "text",
        "extracts": {
            "outline_load": True,
            "levels": True,
            "forms": "Input*",
            "task_lists": True,
            "smart_lists": True,
            "security_access": True,
            "business_rules": ["Calc*"],
        },
        "dimensions": {"Account": None},
        "lcm": {"enabled": True, "include_dependents": True, "project": "Budgeting"},
        "queries": dict(QUERIES),
    }


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config: dict[str, Any]):
    def _write(**overrides: Any) -> Path:
        data = {**sample_config, **overrides}
        cfg = temp_workdir / "config" / "extract.yml"
        cfg.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return cfg

    return _write


@pytest.fixture()
def db_file(temp_workdir: Path) -> Path:
    path = temp_workdir / "planning.db"
    build_planning_db(path).close()
    return path


@pytest.fixture()
def stub_source():
    """Factory for StubRowSource instances."""
    return StubRowSource


@pytest.fixture()
def queries() -> dict[str, str]:
    return dict(QUERIES)

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml
from openpyxl import load_workbook

from planning_extract.config.loader import load_config
from planning_extract.db.row_source import DbRowSource
from planning_extract.logging.error_log import ErrorLogBuffer
from planning_extract.models.extract_result import StepStatus
from planning_extract.services.dispatcher import Dispatcher
from planning_extract.services.extractor import PlanningExtractor
from planning_extract.services.orchestrator import ExtractRun, process_all

"""Integration: complete extract runs against the fixture planning database."""

EXPECTED_STEPS = [
    "Dimension:Account",
    "Levels:Account",
    "Forms",
    "Composite Form Layout",
    "Form Layout",
    "Form Members",
    "Form Calcs",
    "Form Menus",
    "Task Lists",
    "Smart Lists",
    "Smart List Items",
    "Security Access",
    "Business Rules",
    "Migration Scripts",
]


@pytest.fixture
def run_setup(temp_workdir: Path, write_config: Any, planning_db) -> dict[str, Any]:
    def _setup(data: dict[str, Any] | None = None, **overrides: Any) -> tuple[Any, PlanningExtractor]:
        if data is None:
            path = write_config(**overrides)
        else:
            path = temp_workdir / "config" / "extract.yml"
            path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        cfg = load_config(path)
        extractor = PlanningExtractor(Dispatcher(DbRowSource(planning_db, cfg.queries)))
        return cfg, extractor

    return {"setup": _setup, "out": temp_workdir / "out", "logs": temp_workdir / "logs"}


def test_text_run_success(run_setup: dict[str, Any]) -> None:
    cfg, extractor = run_setup["setup"]()
    error_log = ErrorLogBuffer(run_setup["logs"])
    result = process_all(cfg, extractor, error_log=error_log)

    assert [s.name for s in result.step_stats] == EXPECTED_STEPS
    assert all(s.status is StepStatus.SUCCESS for s in result.step_stats)
    assert result.failed_steps == 0
    assert result.success_steps == len(EXPECTED_STEPS)
    # 5 + 5 outline/levels, 6 form extracts, 1 task list, 2 + 2 smart lists,
    # 1 security, 2 business rules
    assert result.total_rows == 24
    assert result.artifacts == 6
    assert result.throughput_rows_per_sec >= 0
    assert list(run_setup["logs"].iterdir()) == []

    out: Path = run_setup["out"]
    for name in [
        "Account_Extract.csv",
        "Account_Levels_Extract.csv",
        "Forms_Extract.csv",
        "Form_Composite_Layout_Extract.csv",
        "Form_Layout_Extract.csv",
        "Form_Members_Extract.csv",
        "Form_Calcs_Extract.csv",
        "Form_Menus_Extract.csv",
        "Task_Lists_Extract.csv",
        "Smart_Lists_Extract.csv",
        "Smart_List_Items_Extract.csv",
        "Security_Access_Extract.csv",
        "Business_Rules_Extract.csv",
        "LCM_Export.xml",
        "LCM_Import.xml",
        "LCM_Delete.yaml",
    ]:
        assert (out / name).exists(), name

    assert (out / "Security_Access_Extract.csv").read_text(encoding="utf-8").splitlines() == [
        "Planners,Revenue,WRITE"
    ]
    assert (out / "Task_Lists_Extract.csv").read_text(encoding="utf-8").splitlines() == [
        "TASK_LIST,TASK,INSTRUCTIONS",
        "Budget Tasks,Enter revenue,Line one Line two",
    ]
    assert (out / "Smart_Lists_Extract.csv").read_text(encoding="utf-8").splitlines() == [
        "SMARTLIST_NAME,LABEL",
        'Codes,"00123"',
        "Status,Approval status",
    ]


def test_text_run_lcm_outputs(run_setup: dict[str, Any]) -> None:
    cfg, extractor = run_setup["setup"]()
    process_all(cfg, extractor, error_log=ErrorLogBuffer(run_setup["logs"]))
    out: Path = run_setup["out"]

    deletions = yaml.safe_load((out / "LCM_Delete.yaml").read_text(encoding="utf-8"))
    assert deletions == {
        "Composite Forms": ["Review"],
        "Data Forms": ["Input Revenue"],
        "Rules": ["CalcAll", "CalcRev"],
        "Sequences": ["Nightly"],
        "Task Lists": ["Budget Tasks"],
    }

    export = (out / "LCM_Export.xml").read_bytes()
    assert export.startswith(b"\xef\xbb\xbf")
    text = export.decode("utf-8-sig")
    assert 'description="LCM Export"' in text
    assert 'filePath="LCM_Extract"' in text
    assert 'project="Budgeting"' in text
    assert 'application="Budget"' in text
    assert 'parentPath="/Plan Type/Plan1/Data Forms/Input" pattern="Input Revenue"' in text
    assert 'parentPath="/Global Artifacts/Business Rules/Sequences" pattern="Nightly"' in text
    assert text.count("<Artifact ") == 6
    assert '<Source connection="AppConnection">' in text

    imported = (out / "LCM_Import.xml").read_text(encoding="utf-8-sig")
    assert '<Source connection="FileSystemConnection">' in imported
    assert '<Target connection="AppConnection">' in imported


def test_dependents_not_recorded_when_disabled(run_setup: dict[str, Any], sample_config) -> None:
    lcm = {**sample_config["lcm"], "include_dependents": False}
    cfg, extractor = run_setup["setup"](lcm=lcm)
    run = ExtractRun(cfg, extractor, error_log=ErrorLogBuffer(run_setup["logs"]))
    result = run.run()

    assert result.artifacts == 3
    paths = [e.path for e in run.manifest]
    assert "/Global Artifacts/Task Lists/Budget Tasks" not in paths
    assert "/Global Artifacts/Business Rules/Sequences/Nightly" not in paths


def test_lcm_disabled_skips_migration_scripts(run_setup: dict[str, Any]) -> None:
    cfg, extractor = run_setup["setup"](lcm={"enabled": False})
    result = process_all(cfg, extractor, error_log=ErrorLogBuffer(run_setup["logs"]))

    assert "Migration Scripts" not in [s.name for s in result.step_stats]
    assert result.artifacts == 0
    assert not (run_setup["out"] / "LCM_Export.xml").exists()


def test_subset_dimension_file_name(run_setup: dict[str, Any]) -> None:
    cfg, extractor = run_setup["setup"](
        extracts={"outline_load": True, "levels": True},
        dimensions={"Account": ["Revenue", "Expenses"]},
    )
    result = process_all(cfg, extractor, error_log=ErrorLogBuffer(run_setup["logs"]))

    assert result.total_rows == 8
    out: Path = run_setup["out"]
    assert (out / "Account_Subset_Extract.csv").exists()
    assert (out / "Account_Subset_Levels_Extract.csv").exists()


def test_all_dimensions_when_none_configured(run_setup: dict[str, Any], sample_config) -> None:
    data = {k: v for k, v in sample_config.items() if k != "dimensions"}
    data["extracts"] = {"outline_load": True}
    cfg, extractor = run_setup["setup"](data)
    assert cfg.dimensions is None
    result = process_all(cfg, extractor, error_log=ErrorLogBuffer(run_setup["logs"]))

    assert [s.name for s in result.step_stats] == ["Dimension:Account", "Dimension:Region"]
    assert (run_setup["out"] / "Region_Extract.csv").exists()


def test_xlsx_run_writes_one_workbook_per_group(run_setup: dict[str, Any]) -> None:
    cfg, extractor = run_setup["setup"](format="xlsx")
    result = process_all(cfg, extractor, error_log=ErrorLogBuffer(run_setup["logs"]))
    assert result.failed_steps == 0

    out: Path = run_setup["out"]
    assert not list(out.glob("*.csv"))
    dims = load_workbook(out / "Dimensions_Extract.xlsx")
    assert dims.sheetnames == ["Account"]
    sheet = dims["Account"]
    assert sheet.freeze_panes == "C2"
    header = [c.value for c in sheet[1]]
    assert header[:3] == ["Account", "Parent", "Alias: Default"]
    sales = [c.value for c in sheet[4]]
    assert sales[0] == "Sales"
    assert sales[header.index("Formula")] == "'=Units*Price"

    planning = load_workbook(out / "Planning_Extract.xlsx")
    assert planning.sheetnames == [
        "Forms",
        "Composite Form Layout",
        "Form Layout",
        "Form Members",
        "Form Calcs",
        "Form Menus",
        "Task Lists",
        "Smart Lists",
        "Smart List Items",
        "Security Access",
    ]
    assert [c.value for c in planning["Forms"][1]] == ["Form Name", "Form Type", "Folder", "Cube Name"]

    rules = load_workbook(out / "Business_Rules_Extract.xlsx")
    assert [[c.value for c in row] for row in rules["Business Rules"].iter_rows()] == [
        ["Object Type", "Object Name"],
        ["Rule", "CalcAll"],
        ["Rule", "CalcRev"],
    ]
    assert (out / "Levels_Extract.xlsx").exists()

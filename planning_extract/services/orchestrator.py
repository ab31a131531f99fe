from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..config.loader import ExtractConfig
from ..excel.writer import ExtractWorkbook, finalise_sheet
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import DETAIL
from ..models.artifact import ArtifactKind, ArtifactRef, business_rule_ref
from ..models.error_record import ErrorRecord
from ..models.extract_options import ExtractOptions, title_header
from ..models.extract_result import ExtractStat, RunResult, StepStatus
from ..sinks.base import SinkTarget
from .deletion import write_delete_list
from .extractor import PlanningExtractor
from .lcm_definition import write_definition
from .manifest import MigrationManifest, UsageGraph
from .naming import get_extract_file, wildcard_to_like
from .progress import ProgressTracker

"""Run orchestration.

Builds the ordered list of extract steps from the configuration and runs
them one after another:

1. outline load extracts (one per dimension)
2. level-based extracts (one per dimension)
3. form extracts, task lists, smart lists, menu items, user variables,
   security access
4. business rules
5. migration definitions + deletion list (when LCM output is enabled and
   something was recorded)

A failing step is logged, buffered in the error log and counted as failed;
the run continues with the next step. For xlsx output each step becomes a
worksheet and the workbook of a group is saved once the group is complete.
"""

__all__ = [
    "ExtractRun",
    "ExtractStep",
    "ProcessingError",
    "process_all",
]

logger = logging.getLogger(__name__)

GROUP_DIMENSIONS = "Dimensions"
GROUP_LEVELS = "Levels"
GROUP_PLANNING = "Planning"
GROUP_BUSINESS_RULES = "Business_Rules"

LCM_EXPORT_FILE = "LCM_Export.xml"
LCM_IMPORT_FILE = "LCM_Import.xml"
LCM_DELETE_FILE = "LCM_Delete.yaml"
LCM_EXTRACT_FOLDER = "LCM_Extract"


class ProcessingError(Exception):
    """Fatal run error (cannot prepare output or plan the run)."""


@dataclass
class ExtractStep:
    """One logical extract.

    ``file_name`` names the text output; ``sheet_name`` the worksheet used
    for xlsx output.
    """
    name: str
    group: str
    run: Callable[[SinkTarget, ExtractOptions], int]
    file_name: str
    sheet_name: str
    freeze_cols: int = 1
    top_members: list[str] | None = None
    level_based: bool = False
    text_options: ExtractOptions = field(default_factory=lambda: ExtractOptions(field_sep=","))
    sheet_options: ExtractOptions = field(default_factory=lambda: ExtractOptions(header_map=title_header))


class ExtractRun:
    def __init__(
        self,
        config: ExtractConfig,
        extractor: PlanningExtractor,
        *,
        manifest: MigrationManifest | None = None,
        usage: UsageGraph | None = None,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.config = config
        self.extractor = extractor
        self.manifest = manifest if manifest is not None else MigrationManifest()
        self._usage = usage
        self.error_log = error_log if error_log is not None else ErrorLogBuffer()
        self.stats: list[ExtractStat] = []
        self.outputs: list[Path] = []

    @property
    def usage(self) -> UsageGraph:
        if self._usage is None:
            logger.log(DETAIL, "Retrieving business rule usage...")
            self._usage = UsageGraph.load(self.extractor.dispatcher)
        return self._usage

    @property
    def xlsx(self) -> bool:
        return self.config.format == "xlsx"

    def _output_path(self, name: str, top_members: list[str] | None = None, level_based: bool = False) -> Path:
        return get_extract_file(
            self.config.output_directory, name, top_members, level_based, self.config.extension
        )

    # --- LCM recording -------------------------------------------------

    def _record_form(self, row: dict[str, Any]) -> None:
        form_type = row.get("form_type")
        folder = row.get("folder") or ""
        if form_type == "Simple":
            ref = ArtifactRef(ArtifactKind.DATA_FORM, row["form_name"], folder, row.get("cube_name"))
        elif form_type == "Composite":
            ref = ArtifactRef(ArtifactKind.COMPOSITE_FORM, row["form_name"], folder)
        else:
            logger.debug("Skipping form %s of type %s", row.get("form_name"), form_type)
            return
        self.manifest.record_ref(ref)

    def _record_form_user(self, row: dict[str, Any]) -> None:
        if row.get("task_list"):
            ref = ArtifactRef(ArtifactKind.TASK_LIST, row["task_list"])
        else:
            ref = ArtifactRef(ArtifactKind.COMPOSITE_FORM, row["composite_form"], row.get("folder") or "")
        self.manifest.record(ref.path, migrate=True, delete=True, is_dependent=True)

    def _record_business_rule(self, row: dict[str, Any]) -> None:
        ref = business_rule_ref(row["object_type"], row["object_name"])
        if ref is None:
            logger.warning("Skipping business rule %s %s: data form path needs a plan type", row["object_type"], row["object_name"])
            return
        self.manifest.record_ref(ref)
        if self.config.lcm.include_dependents:
            self.manifest.expand_dependents(ref, self.usage)

    # --- step plan -----------------------------------------------------

    def plan(self) -> list[ExtractStep]:
        cfg = self.config
        sel = cfg.extracts
        ex = self.extractor
        lcm = cfg.lcm.enabled
        steps: list[ExtractStep] = []

        if sel.outline_load or sel.levels:
            dims = cfg.dimensions if cfg.dimensions is not None else list(ex.dimension_names)
        else:
            dims = []

        for dim in dims if sel.outline_load else []:
            top = cfg.top_members.get(dim) or [dim]
            steps.append(
                ExtractStep(
                    name=f"Dimension:{dim}",
                    group=GROUP_DIMENSIONS,
                    run=lambda t, o, dim=dim, top=top: ex.extract_dimension(t, dim, top, o),
                    file_name=dim,
                    sheet_name=dim,
                    freeze_cols=2,
                    top_members=top,
                    text_options=ExtractOptions(),
                    sheet_options=ExtractOptions(),
                )
            )
        for dim in dims if sel.levels else []:
            top = cfg.top_members.get(dim) or [dim]
            steps.append(
                ExtractStep(
                    name=f"Levels:{dim}",
                    group=GROUP_LEVELS,
                    run=lambda t, o, dim=dim, top=top: ex.extract_dimension_levels(t, dim, top, o),
                    file_name=dim,
                    sheet_name=dim,
                    freeze_cols=2,
                    top_members=top,
                    level_based=True,
                    text_options=ExtractOptions(),
                    sheet_options=ExtractOptions(),
                )
            )

        if sel.forms:
            pattern = wildcard_to_like(sel.forms)
            record_form = self._record_form if lcm else None

            def run_forms(t: SinkTarget, o: ExtractOptions) -> int:
                count = ex.extract_forms(t, pattern, o, record_form)
                if lcm and cfg.lcm.include_dependents:
                    logger.info("Locating form dependents...")
                    found = ex.form_usage(pattern, self._record_form_user)
                    logger.log(DETAIL, "Found %d form dependents", found)
                return count

            steps += [
                ExtractStep("Forms", GROUP_PLANNING, run_forms, "Forms", "Forms", 3),
                ExtractStep(
                    "Composite Form Layout",
                    GROUP_PLANNING,
                    lambda t, o: ex.extract_composite_form(t, pattern, o),
                    "Form_Composite_Layout",
                    "Composite Form Layout",
                    3,
                ),
                ExtractStep(
                    "Form Layout",
                    GROUP_PLANNING,
                    lambda t, o: ex.extract_form_layout(t, pattern, o),
                    "Form_Layout",
                    "Form Layout",
                    3,
                ),
                ExtractStep(
                    "Form Members",
                    GROUP_PLANNING,
                    lambda t, o: ex.extract_form_members(t, pattern, o),
                    "Form_Members",
                    "Form Members",
                    3,
                ),
                ExtractStep(
                    "Form Calcs",
                    GROUP_PLANNING,
                    lambda t, o: ex.extract_form_calcs(t, pattern, o),
                    "Form_Calcs",
                    "Form Calcs",
                    2,
                ),
                ExtractStep(
                    "Form Menus",
                    GROUP_PLANNING,
                    lambda t, o: ex.extract_form_menus(t, pattern, o),
                    "Form_Menus",
                    "Form Menus",
                    1,
                ),
            ]
        if sel.task_lists:
            steps.append(
                ExtractStep(
                    "Task Lists",
                    GROUP_PLANNING,
                    ex.extract_task_lists,
                    "Task_Lists",
                    "Task Lists",
                    3,
                    text_options=ExtractOptions(field_sep=",", strip_line_breaks=True),
                )
            )
        if sel.smart_lists:
            steps.append(
                ExtractStep("Smart Lists", GROUP_PLANNING, ex.extract_smart_lists, "Smart_Lists", "Smart Lists")
            )
            steps.append(
                ExtractStep(
                    "Smart List Items",
                    GROUP_PLANNING,
                    ex.extract_smart_list_items,
                    "Smart_List_Items",
                    "Smart List Items",
                )
            )
        if sel.menu_items:
            steps.append(
                ExtractStep("Menu Items", GROUP_PLANNING, ex.extract_menu_items, "Menu_Items", "Menu Items", 3)
            )
        if sel.user_variables:
            steps.append(
                ExtractStep(
                    "User Variables", GROUP_PLANNING, ex.extract_user_variables, "User_Variables", "User Variables"
                )
            )
        if sel.security_access:
            # secFile.txt layout: no header line
            steps.append(
                ExtractStep(
                    "Security Access",
                    GROUP_PLANNING,
                    ex.extract_security,
                    "Security_Access",
                    "Security Access",
                    3,
                    text_options=ExtractOptions(field_sep=",", include_headers=False),
                )
            )
        if sel.business_rules:
            patterns = [wildcard_to_like(p) for p in sel.business_rules]
            record_rule = self._record_business_rule if lcm else None
            steps.append(
                ExtractStep(
                    "Business Rules",
                    GROUP_BUSINESS_RULES,
                    lambda t, o: ex.extract_business_rules(t, patterns, o, record_rule),
                    "Business_Rules",
                    "Business Rules",
                )
            )
        return steps

    # --- execution -----------------------------------------------------

    def _fail(self, name: str, target: str, exc: Exception) -> None:
        logger.error("%s failed: %s", name, exc)
        logger.debug("%s failure detail", name, exc_info=True)
        self.error_log.append(
            ErrorRecord.create(
                extract=name,
                target=target,
                error_type=ErrorRecord.error_type_for(exc),
                message=str(exc),
            )
        )

    def _run_step(self, step: ExtractStep, workbook: ExtractWorkbook | None) -> ExtractStat:
        start = time.perf_counter()
        target_label = ""
        sheet = None
        try:
            if workbook is not None:
                sheet = workbook.add_sheet(step.sheet_name)
                target = SinkTarget.sheet(sheet)
                target_label = sheet.title
                rows = step.run(target, step.sheet_options)
                finalise_sheet(sheet, step.freeze_cols, self.config.max_column_width)
            else:
                path = self._output_path(step.file_name, step.top_members, step.level_based)
                target = SinkTarget.text(path)
                target_label = str(path)
                rows = step.run(target, step.text_options)
                self.outputs.append(path)
        except Exception as e:
            if workbook is not None and sheet is not None:
                workbook.remove_sheet(sheet)
            self._fail(step.name, target_label, e)
            return ExtractStat(
                step.name, StepStatus.FAILED, 0, time.perf_counter() - start, target_label, str(e)
            )
        return ExtractStat(step.name, StepStatus.SUCCESS, rows, time.perf_counter() - start, target_label)

    def _save_workbook(self, group: str, workbook: ExtractWorkbook) -> None:
        if not workbook.sheet_names:
            return
        path = self._output_path(group)
        workbook.save(path)
        self.outputs.append(path)
        logger.log(DETAIL, "Saved %s workbook to %s", group, path)

    def _migration_scripts(self) -> ExtractStat:
        start = time.perf_counter()
        lcm = self.config.lcm
        out = self.config.output_directory
        logger.info("Generating LCM migration and deletion scripts...")
        try:
            common: dict[str, Any] = {
                "extract_path": out / LCM_EXTRACT_FOLDER,
                "project": lcm.project,
                "application": self.config.application,
                "recursive": lcm.recursive,
                "user_id": lcm.user_id,
                "password": lcm.password,
            }
            count = write_definition(out / LCM_EXPORT_FILE, self.manifest, export=True, **common)
            write_definition(out / LCM_IMPORT_FILE, self.manifest, export=False, **common)
            write_delete_list(out / LCM_DELETE_FILE, self.manifest)
        except Exception as e:
            self._fail("Migration Scripts", str(out), e)
            return ExtractStat(
                "Migration Scripts", StepStatus.FAILED, 0, time.perf_counter() - start, str(out), str(e)
            )
        self.outputs += [out / LCM_EXPORT_FILE, out / LCM_IMPORT_FILE, out / LCM_DELETE_FILE]
        return ExtractStat("Migration Scripts", StepStatus.SUCCESS, count, time.perf_counter() - start, str(out))

    def run(self) -> RunResult:
        start_time = datetime.now(UTC)
        t0 = time.perf_counter()
        try:
            self.config.output_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProcessingError(f"cannot create output directory {self.config.output_directory}: {e}") from e
        try:
            steps = self.plan()
        except Exception as e:
            raise ProcessingError(f"cannot plan extract run: {e}") from e

        logger.info("Output path: %s", self.config.output_directory)
        logger.info("Output format: %s", self.config.format.upper())
        logger.info("LCM migration output: %s", "Yes" if self.config.lcm.enabled else "No")
        logger.info("Running %d extracts", len(steps))

        workbook: ExtractWorkbook | None = None
        group: str | None = None
        with ProgressTracker(len(steps)) as progress:
            for step in steps:
                if self.xlsx and step.group != group:
                    if workbook is not None and group is not None:
                        self._save_workbook(group, workbook)
                    workbook, group = ExtractWorkbook(), step.group
                progress.start_step(step.name)
                stat = self._run_step(step, workbook)
                self.stats.append(stat)
                progress.finish_step(stat.status is StepStatus.SUCCESS, stat.rows)
            if workbook is not None and group is not None:
                self._save_workbook(group, workbook)

        if self.config.lcm.enabled and len(self.manifest) > 0:
            self.stats.append(self._migration_scripts())

        self.error_log.flush()
        elapsed = time.perf_counter() - t0
        success = sum(1 for s in self.stats if s.status is StepStatus.SUCCESS)
        failed = sum(1 for s in self.stats if s.status is StepStatus.FAILED)
        total_rows = sum(s.rows for s in self.stats if s.name != "Migration Scripts")
        return RunResult(
            success_steps=success,
            failed_steps=failed,
            total_rows=total_rows,
            artifacts=len(self.manifest),
            start_time=start_time,
            end_time=datetime.now(UTC),
            elapsed_seconds=elapsed,
            throughput_rows_per_sec=total_rows / elapsed if elapsed > 0 else 0.0,
            step_stats=list(self.stats),
            outputs=[str(p) for p in self.outputs],
        )


def process_all(
    config: ExtractConfig,
    extractor: PlanningExtractor,
    *,
    usage: UsageGraph | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> RunResult:
    """Run every configured extract and return the aggregated result."""
    run = ExtractRun(config, extractor, usage=usage, error_log=error_log)
    return run.run()

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

"""Run result models.

ExtractStat records one extract step; RunResult aggregates the whole run for
the SUMMARY line and the CLI exit code.
"""


class StepStatus(Enum):
    """pending -> running -> (success | failed)"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ExtractStat:
    """Per-step statistics."""
    name: str
    status: StepStatus
    rows: int
    elapsed_seconds: float
    target: str = ""  # file path or sheet name
    error: str | None = None


@dataclass(frozen=True)
class RunResult:
    """Aggregated results of one extraction run."""
    success_steps: int
    failed_steps: int
    total_rows: int
    artifacts: int  # manifest entries recorded during the run
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    step_stats: list[ExtractStat] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)  # files written

    @property
    def total_steps(self) -> int:
        return self.success_steps + self.failed_steps

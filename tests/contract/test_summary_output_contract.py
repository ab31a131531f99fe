from __future__ import annotations

import re
import sqlite3
from pathlib import Path

from planning_extract.cli.__main__ import main as cli_main

"""SUMMARY line format contract."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+extracts=([0-9]+)\s+success=([0-9]+)\s+failed=([0-9]+)\s+"
    r"rows=([0-9]+)\s+artifacts=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)\s+"
    r"throughput_rps=([0-9]+\.?[0-9]*)$"
)


def test_summary_pattern_example_line():
    line = (
        "SUMMARY extracts=14 success=13 failed=1 rows=23 artifacts=6 "
        "elapsed_sec=0.84 throughput_rps=27.381"
    )
    m = SUMMARY_PATTERN.match(line)
    assert m, "SUMMARY line should match contract regex"
    assert int(m.group(1)) == int(m.group(2)) + int(m.group(3))


def test_summary_pattern_rejects_scientific_notation():
    line = (
        "SUMMARY extracts=1 success=1 failed=0 rows=1 artifacts=0 "
        "elapsed_sec=1e-05 throughput_rps=100000"
    )
    assert SUMMARY_PATTERN.match(line) is None


def test_cli_emits_single_summary_line(temp_workdir: Path, write_config, db_file: Path, capsys):
    cfg = write_config()
    code = cli_main(["--config", str(cfg)], connect=lambda c: sqlite3.connect(str(db_file)))
    out = capsys.readouterr().out
    assert code == 0

    summary_lines = [line for line in out.splitlines() if line.startswith("SUMMARY")]
    assert len(summary_lines) == 1, f"Expected exactly one SUMMARY line, got: {summary_lines}"
    m = SUMMARY_PATTERN.match(summary_lines[0])
    assert m, f"SUMMARY line should match contract regex: {summary_lines[0]}"
    extracts, success, failed, rows, artifacts = (int(m.group(i)) for i in range(1, 6))
    assert (extracts, success, failed, rows, artifacts) == (14, 14, 0, 24, 6)
    assert out.rstrip().splitlines()[-1] == summary_lines[0]

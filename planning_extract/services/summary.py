from __future__ import annotations

from ..models.extract_result import RunResult

"""SUMMARY line rendering."""

__all__ = [
    "format_number",
    "render_summary_line",
]


def format_number(value: float) -> str:
    """Integers without a fraction, small values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: RunResult) -> str:
    """Render the SUMMARY line.

    Format::

        SUMMARY extracts=N success=S failed=F rows=R artifacts=A elapsed_sec=E throughput_rps=T

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = RunResult(
        ...     success_steps=3, failed_steps=1, total_rows=1000, artifacts=4,
        ...     start_time=start, end_time=end, elapsed_seconds=2.0,
        ...     throughput_rows_per_sec=500.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY extracts=4 success=3 failed=1 rows=1000 artifacts=4 elapsed_sec=2 throughput_rps=500'
    """
    return (
        f"SUMMARY extracts={result.total_steps} "
        f"success={result.success_steps} "
        f"failed={result.failed_steps} "
        f"rows={result.total_rows} "
        f"artifacts={result.artifacts} "
        f"elapsed_sec={format_number(result.elapsed_seconds)} "
        f"throughput_rps={format_number(result.throughput_rows_per_sec)}"
    )

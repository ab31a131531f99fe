from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Progress display over extract steps with tqdm (TTY only).

In a non-TTY environment (CI, redirected output) no bar is created so the log
stays free of control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """One bar, one tick per extract step."""

    def __init__(self, total_steps: int, *, description: str = "Extracting") -> None:
        self.total_steps = total_steps
        self.description = description
        self.current_step = 0
        self.enabled = is_tty_enabled()
        self.pbar: Any | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_steps,
                desc=description,
                unit="extract",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def start_step(self, name: str) -> None:
        self.current_step += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({name})")

    def finish_step(self, success: bool = True, rows: int = 0) -> None:
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(rows=rows, ok=success)
            self.pbar.set_description(self.description)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

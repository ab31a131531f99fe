from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the run error log.

One record per failed extract step. Serialized as a single JSON Lines entry
with a fixed key set (no extra keys).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        extract: Logical extract step name (e.g. ``Forms``, ``Dimension:Entity``)
        target: Output destination (file path or sheet name), empty if not opened
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Exception text
    """
    timestamp: str
    extract: str
    target: str
    error_type: str
    message: str

    @staticmethod
    def create(extract: str, target: str, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            extract=extract,
            target=target,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def error_type_for(exc: BaseException) -> str:
        """``EnrichmentError`` -> ``ENRICHMENT_ERROR``."""
        name = type(exc).__name__
        snake = re.sub(r"(?<!^)(?=[A-Z][a-z])", "_", name)
        return snake.upper()

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

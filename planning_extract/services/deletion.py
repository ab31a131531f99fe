from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from ..models.artifact import MigrationArtifact
from ..logging.init import DETAIL
from .manifest import MigrationManifest

"""Deletion classifier: groups manifest entries flagged for deletion by kind."""

__all__ = [
    "classify_deletions",
    "write_delete_list",
]

logger = logging.getLogger(__name__)

_KIND_PATTERNS: list[tuple[re.Pattern[str], str | None]] = [
    (re.compile(r"^/Global Artifacts/Business Rules/([^/]+)/"), None),
    (re.compile(r"^/Global Artifacts/Task Lists/"), "Task Lists"),
    (re.compile(r"^/Global Artifacts/Composite Forms/"), "Composite Forms"),
    (re.compile(r"^/Plan Type/[^/]+/Data Forms/"), "Data Forms"),
]


def deletion_kind(path: str) -> str | None:
    for pattern, kind in _KIND_PATTERNS:
        m = pattern.match(path)
        if m:
            return kind if kind is not None else m.group(1)
    return None


def classify_deletions(manifest: MigrationManifest) -> tuple[dict[str, list[str]], int]:
    """Return ``(kind -> sorted unique leaf names, included entry count)``.

    Entries whose path matches no known kind are logged and left out.
    """
    grouped: dict[str, set[str]] = {}
    count = 0
    entry: MigrationArtifact
    for entry in manifest.items():
        if not entry.delete:
            continue
        kind = deletion_kind(entry.path)
        if kind is None:
            logger.warning("Unknown artifact type for deletion: %s", entry.path)
            continue
        grouped.setdefault(kind, set()).add(entry.leaf)
        count += 1
    return {k: sorted(v) for k, v in sorted(grouped.items())}, count


def write_delete_list(path: Path, manifest: MigrationManifest) -> int:
    logger.info("Generating deletion list...")
    groups, count = classify_deletions(manifest)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(groups, f, default_flow_style=False, allow_unicode=True, sort_keys=True)
    logger.log(DETAIL, "Output %d deletions", count)
    return count

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator

from ..db import queries
from ..models.artifact import ArtifactRef, MigrationArtifact, business_rule_ref
from ..models.extract_options import ExtractOptions
from ..sinks.base import SinkTarget
from .dispatcher import Dispatcher

"""Migration manifest and dependency closure.

The manifest is owned by one run and keyed by artifact path. Recording an
artifact unions its flags with whatever was recorded before; flags are never
cleared.

Dependent expansion walks the usage relation breadth-first from one object.
The visited set is keyed by ArtifactRef, so two distinct objects sharing a
path are both walked and cycles in the usage relation terminate.
"""

__all__ = [
    "MigrationManifest",
    "UsageGraph",
    "UsageLookup",
]

logger = logging.getLogger(__name__)

UsageLookup = Callable[[ArtifactRef], Iterable[ArtifactRef]]


class MigrationManifest:
    def __init__(self) -> None:
        self._entries: dict[str, MigrationArtifact] = {}

    def get_or_insert(self, path: str) -> MigrationArtifact:
        entry = self._entries.get(path)
        if entry is None:
            entry = MigrationArtifact(path)
            self._entries[path] = entry
        return entry

    def record(
        self, path: str, migrate: bool = False, delete: bool = False, is_dependent: bool = False
    ) -> MigrationArtifact:
        entry = self.get_or_insert(path)
        entry.migrate = entry.migrate or migrate
        entry.delete = entry.delete or delete
        entry.is_dependent = entry.is_dependent or is_dependent
        return entry

    def record_ref(self, ref: ArtifactRef, migrate: bool = True, delete: bool = True) -> MigrationArtifact:
        return self.record(ref.path, migrate=migrate, delete=delete)

    def get(self, path: str) -> MigrationArtifact | None:
        return self._entries.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MigrationArtifact]:
        return iter(self.items())

    def items(self) -> list[MigrationArtifact]:
        """Entries in path order."""
        return [self._entries[p] for p in sorted(self._entries)]

    def expand_dependents(self, obj: ArtifactRef, usage: UsageLookup) -> list[ArtifactRef]:
        """Record every transitive user of ``obj`` as a dependent.

        Users whose path is already in the manifest keep their flags but are
        still walked. Returns the newly recorded refs in discovery order.
        """
        added: list[ArtifactRef] = []
        seen = {obj}
        queue = deque([obj])
        while queue:
            current = queue.popleft()
            for dep in usage(current):
                if dep in seen:
                    continue
                seen.add(dep)
                if dep.path not in self._entries:
                    self.record(dep.path, migrate=True, delete=True, is_dependent=True)
                    added.append(dep)
                    logger.debug("Added dependent %s of %s", dep.path, current.path)
                queue.append(dep)
        return added


class UsageGraph:
    """In-memory 'object is used by' relation."""

    def __init__(self) -> None:
        self._users: dict[ArtifactRef, list[ArtifactRef]] = {}

    def add_edge(self, obj: ArtifactRef, user: ArtifactRef) -> None:
        users = self._users.setdefault(obj, [])
        if user not in users:
            users.append(user)

    def users_of(self, obj: ArtifactRef) -> list[ArtifactRef]:
        return list(self._users.get(obj, []))

    __call__ = users_of

    def __len__(self) -> int:
        return sum(len(u) for u in self._users.values())

    def add_record(self, record: dict) -> None:
        obj = business_rule_ref(record["object_type"], record["object_name"])
        user = business_rule_ref(record["user_type"], record["user_name"])
        if obj is None or user is None:
            logger.warning(
                "Skipping usage of %s %s by %s %s: data form path needs a plan type",
                record["object_type"],
                record["object_name"],
                record["user_type"],
                record["user_name"],
            )
            return
        self.add_edge(obj, user)

    @classmethod
    def load(cls, dispatcher: Dispatcher) -> UsageGraph:
        """Pre-load business rule usage through a discard sink."""
        graph = cls()
        count = dispatcher.execute(
            queries.BUSINESS_RULE_USAGE, SinkTarget.none(), ExtractOptions(), graph.add_record
        )
        logger.debug("Loaded %d business rule usage edges", count)
        return graph

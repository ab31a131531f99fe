from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from ..db import queries
from ..db.row_source import ResultSet, RowSource
from ..models.hierarchy_node import HierarchyNode

"""Hierarchy walker: member tables and depth-first subtree traversal.

A dimension's members are loaded once into a MemberTable (parent linkage +
sibling position). Top members are resolved by name; a name can match more
than one node when the member is shared, non-shared matches come first.

Traversal is depth-first in sibling-position order. Nodes already visited in
the current walk are skipped so a malformed parent chain cannot loop.
"""

__all__ = [
    "DbHierarchySource",
    "HierarchySource",
    "HierarchyWalker",
    "MemberTable",
    "WalkStep",
]

logger = logging.getLogger(__name__)

SHARED_STORAGE = "Shared"
INDENT = "    "


class MemberTable:
    """All members of one dimension indexed by id, name and parent."""

    def __init__(self, dim_name: str, nodes: Iterable[HierarchyNode], property_columns: Sequence[str] = ()) -> None:
        self.dim_name = dim_name
        self.property_columns = list(property_columns)
        self._nodes: dict[Any, HierarchyNode] = {}
        self._children: dict[Any, list[HierarchyNode]] = {}
        self._by_name: dict[str, list[HierarchyNode]] = {}
        for node in nodes:
            self._nodes[node.node_id] = node
            self._children.setdefault(node.parent_id, []).append(node)
            self._by_name.setdefault(node.name, []).append(node)
        for siblings in self._children.values():
            siblings.sort(key=lambda n: n.position)

    @classmethod
    def from_result(cls, dim_name: str, result: ResultSet, shared_column: str = "data_storage") -> MemberTable:
        """Build from a DIMENSION_MEMBERS result.

        The first four columns are member_id, parent_id, position and
        member_name; everything after them is kept as node properties.
        """
        property_columns = list(result.columns[4:])
        nodes = []
        for row in result:
            props = dict(zip(property_columns, row[4:], strict=False))
            nodes.append(
                HierarchyNode(
                    node_id=row[0],
                    parent_id=row[1],
                    name=row[3],
                    position=row[2] or 0,
                    shared=props.get(shared_column) == SHARED_STORAGE,
                    properties=props,
                )
            )
        return cls(dim_name, nodes, property_columns)

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: Any) -> HierarchyNode:
        return self._nodes[node_id]

    def children(self, node_id: Any) -> list[HierarchyNode]:
        return self._children.get(node_id, [])

    def parent_name(self, node: HierarchyNode) -> str | None:
        parent = self._nodes.get(node.parent_id)
        return parent.name if parent else None

    def lookup(self, name: str) -> list[HierarchyNode]:
        """All nodes named ``name``, non-shared before shared."""
        return sorted(self._by_name.get(name, []), key=lambda n: n.shared)


class HierarchySource(Protocol):
    def members(self, dim_name: str) -> MemberTable:
        ...


class DbHierarchySource:
    """Loads member tables through the row source, one fetch per dimension."""

    def __init__(self, row_source: RowSource) -> None:
        self.row_source = row_source
        self._tables: dict[str, MemberTable] = {}

    def members(self, dim_name: str) -> MemberTable:
        if dim_name not in self._tables:
            result = self.row_source.fetch(queries.DIMENSION_MEMBERS, (dim_name,))
            table = MemberTable.from_result(dim_name, result)
            logger.debug("Loaded %d %s members", len(table), dim_name)
            self._tables[dim_name] = table
        return self._tables[dim_name]


@dataclass(frozen=True)
class WalkStep:
    node: HierarchyNode
    depth: int
    path: tuple[str, ...]


class HierarchyWalker:
    def __init__(self, source: HierarchySource) -> None:
        self.source = source

    def resolve(self, dim_name: str, top_members: Sequence[str] | None = None) -> list[HierarchyNode]:
        """Resolve top member names to nodes; unmatched names are logged and skipped."""
        table = self.source.members(dim_name)
        roots: list[HierarchyNode] = []
        for name in top_members or [dim_name]:
            matches = table.lookup(name)
            if not matches:
                logger.warning("No %s member found with name '%s'", dim_name, name)
            roots.extend(matches)
        return roots

    def walk(self, table: MemberTable, root: HierarchyNode, include_root: bool = True) -> Iterator[WalkStep]:
        if include_root:
            stack = [WalkStep(root, 0, (root.name,))]
        else:
            stack = [WalkStep(c, 0, (c.name,)) for c in reversed(table.children(root.node_id))]
        visited = {root.node_id}
        while stack:
            step = stack.pop()
            if step.node is not root:
                if step.node.node_id in visited:
                    continue
                visited.add(step.node.node_id)
            yield step
            for child in reversed(table.children(step.node.node_id)):
                if child.node_id not in visited:
                    stack.append(WalkStep(child, step.depth + 1, step.path + (child.name,)))

    def outline_result(self, dim_name: str, root: HierarchyNode, include_root: bool = True) -> ResultSet:
        """Rows ``[member_id, <dim_name>, parent, *properties]`` for one subtree."""
        table = self.source.members(dim_name)
        columns = ["member_id", dim_name, "parent", *table.property_columns]

        def rows() -> Iterator[list[Any]]:
            for step in self.walk(table, root, include_root):
                node = step.node
                yield [
                    node.node_id,
                    node.name,
                    table.parent_name(node),
                    *(node.properties.get(c) for c in table.property_columns),
                ]

        return ResultSet(columns=columns, rows=rows())

    def max_depth(self, dim_name: str, roots: Sequence[HierarchyNode]) -> int:
        table = self.source.members(dim_name)
        depth = 0
        for root in roots:
            for step in self.walk(table, root):
                depth = max(depth, step.depth + 1)
        return depth

    def level_result(
        self,
        dim_name: str,
        root: HierarchyNode,
        levels: int,
        alias_of: Callable[[Any], Any] | None = None,
    ) -> ResultSet:
        """Level-based rows: indented name, default alias, generation, path split per level.

        ``levels`` fixes the number of path columns so several subtrees can
        share one header.
        """
        table = self.source.members(dim_name)
        columns = ["member_name", "default_alias", "gen", *(f"level_{i}" for i in range(1, levels + 1))]

        def rows() -> Iterator[list[Any]]:
            for step in self.walk(table, root):
                segments = list(step.path[:levels])
                segments += [None] * (levels - len(segments))
                yield [
                    INDENT * step.depth + step.node.name,
                    alias_of(step.node.node_id) if alias_of else None,
                    step.depth + 1,
                    *segments,
                ]

        return ResultSet(columns=columns, rows=rows())

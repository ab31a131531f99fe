from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""HierarchyNode model.

One member of a tree (dimension member, task, menu item, form). Nodes are
owned by the hierarchy source; the walker only reads them.
"""

__all__ = [
    "HierarchyNode",
]


@dataclass(frozen=True)
class HierarchyNode:
    """A single tree member.

    ``properties`` carries the non-structural columns of the source row in
    source column order (e.g. data storage, formula, used_in, consol_op).
    """
    node_id: Any
    parent_id: Any | None
    name: str
    position: int = 0
    shared: bool = False
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

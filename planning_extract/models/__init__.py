"""Domain models for the planning metadata extractor.

Extract configuration, tree members, migration artifacts and run results.
"""

from .artifact import ArtifactKind, ArtifactRef, MigrationArtifact, business_rule_ref
from .extract_options import ExtractOptions, title_header, titleize, upper_header
from .extract_result import ExtractStat, RunResult, StepStatus
from .hierarchy_node import HierarchyNode

__all__ = [
    # Extract configuration
    "ExtractOptions",
    "title_header",
    "titleize",
    "upper_header",
    # Hierarchy
    "HierarchyNode",
    # Migration manifest
    "ArtifactKind",
    "ArtifactRef",
    "MigrationArtifact",
    "business_rule_ref",
    # Run results
    "ExtractStat",
    "RunResult",
    "StepStatus",
]

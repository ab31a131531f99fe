from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .extract_options import titleize

"""Migration artifact models.

An artifact is a path-addressed object in the target application that can be
selected for migration and/or deletion. Paths are slash-delimited logical
paths, e.g. ``/Global Artifacts/Business Rules/Rules/CalcAll``.

ArtifactRef is the stable object identity used by the dependency closure walk;
its ``path`` is derived and is only used as the manifest key.
"""

__all__ = [
    "ArtifactKind",
    "ArtifactRef",
    "MigrationArtifact",
    "business_rule_ref",
]

GLOBAL_ARTIFACTS = "/Global Artifacts"
BUSINESS_RULES = f"{GLOBAL_ARTIFACTS}/Business Rules"


class ArtifactKind(Enum):
    """Kinds of objects that can appear in a migration manifest."""
    RULE = "rule"
    SEQUENCE = "sequence"
    MACRO = "macro"
    PROJECT = "project"
    VARIABLE = "variable"
    DATA_FORM = "data_form"
    COMPOSITE_FORM = "composite_form"
    TASK_LIST = "task_list"
    # business rule object of any other type, kept under its own folder
    BUSINESS_RULE_OBJECT = "business_rule_object"

    @classmethod
    def parse(cls, value: str) -> ArtifactKind:
        """Accept enum values as well as loose spellings (``Rules``, ``Data Form``)."""
        key = str(value).strip().lower().replace(" ", "_")
        if key.startswith("global_"):
            key = key[len("global_"):]
        for kind in cls:
            if key in (kind.value, f"{kind.value}s"):
                return kind
        raise ValueError(f"unknown artifact kind: {value!r}")

    @property
    def is_business_rule(self) -> bool:
        return self in _BUSINESS_RULE_FOLDERS or self is ArtifactKind.BUSINESS_RULE_OBJECT


# Business Rules sub-folder per kind
_BUSINESS_RULE_FOLDERS = {
    ArtifactKind.RULE: "Rules",
    ArtifactKind.SEQUENCE: "Sequences",
    ArtifactKind.MACRO: "Macros",
    ArtifactKind.PROJECT: "Projects",
    ArtifactKind.VARIABLE: "Global Variables",
}


@dataclass(frozen=True)
class ArtifactRef:
    """Identity of one object that can be migrated or deleted.

    ``folder`` is the form folder path (leading slash, may be empty), or the
    Business Rules sub-folder of a BUSINESS_RULE_OBJECT. ``plan_type`` is the
    plan type owning a simple data form.
    """
    kind: ArtifactKind
    name: str
    folder: str = ""
    plan_type: str | None = None

    @property
    def path(self) -> str:
        if self.kind is ArtifactKind.BUSINESS_RULE_OBJECT:
            return f"{BUSINESS_RULES}/{self.folder}/{self.name}"
        if self.kind.is_business_rule:
            return f"{BUSINESS_RULES}/{_BUSINESS_RULE_FOLDERS[self.kind]}/{self.name}"
        if self.kind is ArtifactKind.TASK_LIST:
            return f"{GLOBAL_ARTIFACTS}/Task Lists/{self.name}"
        if self.kind is ArtifactKind.COMPOSITE_FORM:
            return f"{GLOBAL_ARTIFACTS}/Composite Forms{self.folder}/{self.name}"
        # simple data forms live below their plan type
        return f"/Plan Type/{self.plan_type}/Data Forms{self.folder}/{self.name}"


def business_rule_ref(type_name: str, name: str) -> ArtifactRef | None:
    """Ref for an object named by the business rule catalogue or its usage relation.

    Types outside ArtifactKind get a folder of their own (``Template`` ->
    ``Templates``). Returns None for data forms: their path needs a plan type
    these rows do not carry.
    """
    try:
        kind = ArtifactKind.parse(type_name)
    except ValueError:
        return ArtifactRef(ArtifactKind.BUSINESS_RULE_OBJECT, name, f"{titleize(str(type_name).strip())}s")
    if kind is ArtifactKind.DATA_FORM:
        return None
    return ArtifactRef(kind, name)


@dataclass
class MigrationArtifact:
    """Flags recorded against one manifest path.

    Entries are created all-false on first reference and only ever have flags
    raised afterwards.
    """
    path: str
    migrate: bool = False
    delete: bool = False
    is_dependent: bool = False

    @property
    def leaf(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def parent_path(self) -> str:
        return self.path.rsplit("/", 1)[0]

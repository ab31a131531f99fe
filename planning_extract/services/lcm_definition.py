from __future__ import annotations

import logging
from html import escape
from pathlib import Path

from ..logging.init import DETAIL
from ..models.artifact import MigrationArtifact
from .manifest import MigrationManifest

"""Migration definition files.

The same document is written twice: the export definition copies from the
application connection to the file system connection, the import definition
the other way round. Only entries flagged ``migrate`` are listed.
"""

__all__ = [
    "APP_CONNECTION",
    "DefinitionError",
    "FILE_SYSTEM_CONNECTION",
    "artifact_selector",
    "render_definition",
    "write_definition",
]

logger = logging.getLogger(__name__)

APP_CONNECTION = "AppConnection"
FILE_SYSTEM_CONNECTION = "FileSystemConnection"

_HEADER = """\
<?xml version="1.0" encoding="UTF-8" ?>
<Package name="web-migration" description="{description}">
  <LOCALE>en_GB</LOCALE>
  <Connections>
    <ConnectionInfo name="HSSConnection" type="HSS" description="Hyperion Shared Service connection"
                    user="{user}" password="{password}" />
    <ConnectionInfo name="FileSystemConnection" type="FileSystem" description="File system connection"
                    HSSConnection="HSSConnection" filePath="{file_path}" />
    <ConnectionInfo name="AppConnection" type="Application" product="HP" project="{project}"
                    application="{application}" HSSConnection="HSSConnection"
                    description="Planning Application connection" />
  </Connections>
  <Tasks>
    <Task seqID="-1">
      <Source connection="{source}">
        <Options />
"""

_ARTIFACT = '        <Artifact recursive="{recursive}" parentPath="{parent}" pattern="{pattern}" />\n'

_FOOTER = """\
      </Source>
      <Target connection="{target}">
        <Options />
      </Target>
    </Task>
  </Tasks>
</Package>
"""


class DefinitionError(Exception):
    """Required migration definition settings are missing."""


def artifact_selector(entry: MigrationArtifact, recursive: bool = False) -> tuple[str, str]:
    """Return ``(parent path, leaf pattern)`` for one manifest entry.

    With ``recursive`` the parent collapses to the artifact group
    (``/Global Artifacts/<group>`` or ``/Plan Type/<plan type>/<group>``).
    """
    segments = entry.path.strip("/").split("/")
    if recursive and segments[0] == "Global Artifacts":
        parent = segments[:2]
    elif recursive and segments[0] == "Plan Type":
        parent = segments[:3]
    else:
        parent = segments[:-1]
    return "/" + "/".join(parent), segments[-1]


def render_definition(
    manifest: MigrationManifest,
    *,
    description: str,
    extract_path: Path,
    project: str | None,
    application: str | None,
    source: str,
    target: str,
    recursive: bool = False,
    user_id: str | None = None,
    password: str | None = None,
) -> tuple[str, int]:
    """Render the definition XML; returns ``(text, artifact count)``."""
    if not project:
        raise DefinitionError("Shared Services project folder must be specified")
    if not application:
        raise DefinitionError("Application name must be specified")

    parts = [
        _HEADER.format(
            description=escape(description),
            user=escape(user_id or ""),
            password=escape(password or ""),
            file_path=escape(Path(extract_path).stem),
            project=escape(project),
            application=escape(application),
            source=source,
        )
    ]
    count = 0
    for entry in manifest.items():
        if not entry.migrate:
            continue
        parent, pattern = artifact_selector(entry, recursive)
        parts.append(
            _ARTIFACT.format(
                recursive=str(recursive).lower(),
                parent=escape(parent),
                pattern=escape(pattern),
            )
        )
        count += 1
    parts.append(_FOOTER.format(target=target))
    return "".join(parts), count


def write_definition(
    path: Path,
    manifest: MigrationManifest,
    *,
    extract_path: Path,
    project: str | None,
    application: str | None,
    export: bool = True,
    recursive: bool = False,
    user_id: str | None = None,
    password: str | None = None,
) -> int:
    """Write an export (or import) definition as UTF-8 with BOM."""
    kind = "export" if export else "import"
    logger.info("Generating LCM %s definition...", kind)
    source, target = (APP_CONNECTION, FILE_SYSTEM_CONNECTION)
    if not export:
        source, target = target, source
    text, count = render_definition(
        manifest,
        description=path.stem.replace("_", " "),
        extract_path=extract_path,
        project=project,
        application=application,
        source=source,
        target=target,
        recursive=recursive,
        user_id=user_id,
        password=password,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Writing LCM definition to %s", path)
    with path.open("w", encoding="utf-8-sig") as f:
        f.write(text)
    logger.log(DETAIL, "Output %s definition for %d artifacts", kind, count)
    return count

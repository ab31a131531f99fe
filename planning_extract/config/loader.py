from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..db.queries import REQUIRED_QUERIES

"""Config loader.

Responsibilities:
- Load the YAML run configuration (default ``config/extract.yml``)
- Validate it against ``extract_schema.json`` shipped with the package
- Apply defaults (text format, ``extracts/<application>`` output folder)
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "ExtractConfig",
    "ExtractSelection",
    "LcmConfig",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("extract_schema.json")
DEFAULT_CONFIG_PATH = Path("config/extract.yml")
DEFAULT_MAX_COLUMN_WIDTH = 40


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class LcmConfig:
    enabled: bool = False
    include_dependents: bool = False
    recursive: bool = False
    project: str | None = None
    user_id: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class ExtractSelection:
    """Which extracts to run.

    ``forms`` is None when disabled, otherwise a ``*``/``?`` wildcard.
    ``business_rules`` is None when disabled, otherwise name wildcards.
    """
    outline_load: bool = False
    levels: bool = False
    task_lists: bool = False
    smart_lists: bool = False
    menu_items: bool = False
    user_variables: bool = False
    security_access: bool = False
    forms: str | None = None
    business_rules: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ExtractConfig:
    application: str
    output_directory: Path
    format: str
    extracts: ExtractSelection
    dimensions: list[str] | None  # None -> every dimension in the application
    top_members: dict[str, list[str]]
    lcm: LcmConfig
    queries: dict[str, str]
    database: DatabaseConfig
    max_column_width: int = DEFAULT_MAX_COLUMN_WIDTH
    source_path: Path | None = field(default=None, compare=False)

    @property
    def extension(self) -> str:
        return "xlsx" if self.format == "xlsx" else "csv"

    def with_overrides(self, **changes: Any) -> ExtractConfig:
        return replace(self, **changes)


def _validate_config_schema(data: dict[str, Any]) -> None:
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        where = f" at '{location}'" if location else ""
        raise ConfigError(f"config validation failed{where}: {e.message}") from e


def _selection(raw: dict[str, Any]) -> ExtractSelection:
    forms = raw.get("forms", False)
    if forms is True:
        forms = "*"
    rules = raw.get("business_rules", False)
    if rules is True:
        rules = ["*"]
    return ExtractSelection(
        outline_load=bool(raw.get("outline_load", False)),
        levels=bool(raw.get("levels", False)),
        task_lists=bool(raw.get("task_lists", False)),
        smart_lists=bool(raw.get("smart_lists", False)),
        menu_items=bool(raw.get("menu_items", False)),
        user_variables=bool(raw.get("user_variables", False)),
        security_access=bool(raw.get("security_access", False)),
        forms=forms or None,
        business_rules=tuple(rules) if rules else None,
    )


def _dimensions(raw: Any) -> tuple[list[str] | None, dict[str, list[str]]]:
    if raw is None:
        return None, {}
    if isinstance(raw, list):
        return list(raw), {}
    dims = list(raw)
    top = {dim: list(members) for dim, members in raw.items() if members}
    return dims, top


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ExtractConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    queries = dict(data["queries"])
    missing = [q for q in REQUIRED_QUERIES if q not in queries]
    if missing:
        raise ConfigError(f"config validation failed: missing queries {', '.join(missing)}")

    application = data["application"]
    dims, top_members = _dimensions(data.get("dimensions"))
    lcm_raw = data.get("lcm", {})
    db_raw = data.get("database", {})
    return ExtractConfig(
        application=application,
        output_directory=Path(data.get("output_directory") or Path("extracts") / application),
        format=data.get("format", "text"),
        extracts=_selection(data.get("extracts", {})),
        dimensions=dims,
        top_members=top_members,
        lcm=LcmConfig(
            enabled=lcm_raw.get("enabled", False),
            include_dependents=lcm_raw.get("include_dependents", False),
            recursive=lcm_raw.get("recursive", False),
            project=lcm_raw.get("project"),
            user_id=lcm_raw.get("user_id"),
            password=lcm_raw.get("password"),
        ),
        queries=queries,
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        max_column_width=data.get("spreadsheet", {}).get("max_column_width", DEFAULT_MAX_COLUMN_WIDTH),
        source_path=path,
    )

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from ..db import queries
from ..models.extract_options import ExtractOptions, titleize
from ..sinks.base import SinkTarget
from .dispatcher import Dispatcher

"""Row enrichment for dimension extracts.

The member query returns one row per member with the member id first and two
packed integer fields:

- ``used_in``: bit i set -> member is used in plan type i
- ``consol_op``: plan type i occupies bits [6i, 6i+5] and holds the
  consolidation operator code (see CONSOL_OPERATORS)

Aliases, UDAs and attribute associations live in separate tables. They are
scanned once per dimension into EnrichmentLookups; row-time enrichment is a
dict lookup per inserted cell.
"""

__all__ = [
    "CONSOL_OPERATORS",
    "DimensionEnricher",
    "EnrichmentError",
    "EnrichmentLookups",
    "decode_consol_op",
    "decode_used_in",
]

logger = logging.getLogger(__name__)

CONSOL_OPERATORS = {
    0: "+",
    1: "-",
    2: "*",
    3: "/",
    4: "%",
    5: "~",
    6: "Never",
}
CONSOL_OP_BITS = 6
CONSOL_OP_MASK = (1 << CONSOL_OP_BITS) - 1

USED_IN_COLUMN = "used_in"
CONSOL_OP_COLUMN = "consol_op"
UDA_COLUMN = "uda"
UDA_PLACEHOLDER = "UDA_Placeholder"


class EnrichmentError(Exception):
    """A packed field holds a value that cannot be rendered."""


def decode_used_in(value: Any, categories: Sequence[str]) -> list[str | None]:
    """Expand the ``used_in`` bitmask into one 'True'/'False' cell per category."""
    if value is None:
        return [None] * len(categories)
    mask = int(value)
    return ["True" if (mask >> i) & 1 else "False" for i in range(len(categories))]


def decode_consol_op(value: Any, categories: Sequence[str]) -> list[str | None]:
    """Decode the packed consolidation operator into one symbol per category.

    Raises:
        EnrichmentError: a slot holds a code outside CONSOL_OPERATORS
    """
    if value is None:
        return [None] * len(categories)
    packed = int(value)
    result: list[str | None] = []
    for i, category in enumerate(categories):
        code = (packed >> (i * CONSOL_OP_BITS)) & CONSOL_OP_MASK
        try:
            result.append(CONSOL_OPERATORS[code])
        except KeyError:
            raise EnrichmentError(
                f"unknown consolidation operator code {code} for plan type '{category}' "
                f"(packed value {packed})"
            ) from None
    return result


@dataclass
class EnrichmentLookups:
    """Side-table lookups for one dimension.

    ``aliases`` keeps alias tables in first-encounter order.
    """
    aliases: dict[str, dict[Any, Any]] = field(default_factory=dict)
    udas: dict[Any, list[str]] = field(default_factory=dict)
    attributes: dict[str, dict[Any, Any]] = field(default_factory=dict)

    def add_alias(self, record: dict[str, Any]) -> None:
        table = self.aliases.setdefault(record["alias_tbl_name"], {})
        table[record["mbr_id"]] = record["alias"]

    def add_uda(self, record: dict[str, Any]) -> None:
        values = self.udas.setdefault(record["object_id"], [])
        if record["uda_value"] not in values:
            values.append(record["uda_value"])

    def add_attribute(self, record: dict[str, Any]) -> None:
        attr_dim = self.attributes.setdefault(record["attr_dim_name"], {})
        attr_dim[record["mbr_id"]] = record["attr_name"]

    @property
    def alias_tables(self) -> list[str]:
        return list(self.aliases)

    @property
    def attribute_dimensions(self) -> list[str]:
        return sorted(self.attributes)

    def alias(self, table: str, member_id: Any) -> Any:
        return self.aliases.get(table, {}).get(member_id)

    def uda_text(self, member_id: Any) -> str:
        return ",".join(self.udas.get(member_id, []))

    def attribute(self, attr_dim: str, member_id: Any) -> Any:
        return self.attributes.get(attr_dim, {}).get(member_id)

    @classmethod
    def load(
        cls, dispatcher: Dispatcher, dim_name: str, include_associations: bool = True
    ) -> EnrichmentLookups:
        """Scan the alias (and, unless disabled, UDA/attribute) tables for ``dim_name``."""
        lookups = cls()
        opts = ExtractOptions(bind_params=(dim_name,))
        count = dispatcher.execute(queries.ALIASES, SinkTarget.none(), opts, lookups.add_alias)
        logger.debug("Found %d aliases in %d alias tables", count, len(lookups.aliases))
        if include_associations:
            count = dispatcher.execute(queries.UDAS, SinkTarget.none(), opts, lookups.add_uda)
            logger.debug("Found %d UDA associations", count)
            count = dispatcher.execute(
                queries.ATTRIBUTES, SinkTarget.none(), opts, lookups.add_attribute
            )
            logger.debug(
                "Found %d attribute associations in %d attribute dimensions",
                count,
                len(lookups.attributes),
            )
        return lookups


class DimensionEnricher:
    """Header mutation + row transform for an outline-load dimension extract.

    Output layout, from the member query layout ``[member_id, name, parent, ...]``:
    member id dropped, one ``Alias: <table>`` column per alias table after the
    parent column, ``consol_op`` -> ``Aggregation (<plan type>)`` columns,
    ``used_in`` -> ``Plan Type (<plan type>)`` columns, UDA placeholder filled,
    and one column per attribute dimension appended.
    """

    def __init__(
        self,
        dim_name: str,
        plan_types: Sequence[str],
        lookups: EnrichmentLookups,
        escape_formulas: bool = False,
    ) -> None:
        self.dim_name = dim_name
        self.plan_types = list(plan_types)
        self.lookups = lookups
        self.escape_formulas = escape_formulas
        self._base_fields: list[str] | None = None

    def header_map(self, field_name: str) -> str:
        field_name = str(field_name)
        if field_name.lower() == self.dim_name.lower():
            return self.dim_name
        return titleize(field_name)

    def set_headers(self, fields: list[str]) -> list[str]:
        base = list(fields[1:])
        base[2:2] = [f"Alias: {tbl}" for tbl in self.lookups.alias_tables]
        self._base_fields = base
        out: list[str] = []
        for f in base:
            if f == CONSOL_OP_COLUMN:
                out.extend(f"Aggregation ({pt})" for pt in self.plan_types)
            elif f == USED_IN_COLUMN:
                out.extend(f"Plan Type ({pt})" for pt in self.plan_types)
            else:
                out.append(f)
        out.extend(self.lookups.attribute_dimensions)
        return out

    def transform_row(self, row: list[Any]) -> list[Any]:
        if self._base_fields is None:
            raise RuntimeError("set_headers must run before transform_row")
        member_id = row[0]
        values = list(row[1:])
        values[2:2] = [self.lookups.alias(tbl, member_id) for tbl in self.lookups.alias_tables]
        out: list[Any] = []
        for f, value in zip(self._base_fields, values, strict=False):
            if f == CONSOL_OP_COLUMN:
                out.extend(decode_consol_op(value, self.plan_types))
            elif f == USED_IN_COLUMN:
                out.extend(decode_used_in(value, self.plan_types))
            elif f == UDA_COLUMN and value == UDA_PLACEHOLDER:
                out.append(self.lookups.uda_text(member_id))
            elif self.escape_formulas and isinstance(value, str) and value.startswith("="):
                out.append("'" + value)
            else:
                out.append(value)
        out.extend(self.lookups.attribute(ad, member_id) for ad in self.lookups.attribute_dimensions)
        return out

    def options(self, base: ExtractOptions) -> ExtractOptions:
        """Return ``base`` with this enricher's header/row strategies plugged in."""
        return replace(
            base,
            header_map=self.header_map,
            set_headers=self.set_headers,
            transform_row=self.transform_row,
        )

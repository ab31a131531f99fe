from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from ..db import queries
from ..logging.init import DETAIL
from ..models.extract_options import ExtractOptions, title_header
from ..sinks.base import SinkTarget
from .dispatcher import Dispatcher, RowCallback
from .enrichment import DimensionEnricher, EnrichmentLookups
from .hierarchy import DbHierarchySource, HierarchySource, HierarchyWalker

"""Planning metadata extracts.

Each ``extract_*`` method writes one logical extract to ``target`` and returns
the number of data rows written. Form extracts take a SQL LIKE pattern
(see ``naming.wildcard_to_like``).
"""

__all__ = [
    "ATTRIBUTE_DIMENSION",
    "DEFAULT_ALIAS_TABLE",
    "PlanningExtractor",
]

logger = logging.getLogger(__name__)

ATTRIBUTE_DIMENSION = "Attribute Dimension"
DEFAULT_ALIAS_TABLE = "Default"


def outline_text_options(options: ExtractOptions) -> ExtractOptions:
    """Outline load wants comma separated UTF-8 with a byte-order marker."""
    return replace(options, field_sep=",", strip_line_breaks=True, encoding="utf-8", bom=True)


class PlanningExtractor:
    def __init__(self, dispatcher: Dispatcher, hierarchy: HierarchySource | None = None) -> None:
        self.dispatcher = dispatcher
        self.walker = HierarchyWalker(hierarchy or DbHierarchySource(dispatcher.source))
        self._dimensions: dict[str, str] | None = None
        self._plan_types: list[str] | None = None

    @property
    def dimension_names(self) -> dict[str, str]:
        """Dimension name -> ``Dimension`` | ``Attribute Dimension``."""
        if self._dimensions is None:
            logger.log(DETAIL, "Retrieving dimension names...")
            dims: dict[str, str] = {}
            self.dispatcher.execute(
                queries.DIMENSIONS,
                SinkTarget.none(),
                on_row=lambda r: dims.__setitem__(r["dimension_name"], r["dimension_type"]),
            )
            self._dimensions = dims
        return self._dimensions

    @property
    def plan_types(self) -> list[str]:
        if self._plan_types is None:
            logger.log(DETAIL, "Retrieving plan type names...")
            names: list[str] = []
            self.dispatcher.execute(
                queries.PLAN_TYPES, SinkTarget.none(), on_row=lambda r: names.append(r["plan_type"])
            )
            self._plan_types = names
        return self._plan_types

    def is_attribute_dimension(self, dim_name: str) -> bool:
        return self.dimension_names.get(dim_name) == ATTRIBUTE_DIMENSION

    def extract_dimension(
        self,
        target: SinkTarget,
        dim_name: str,
        top_members: Sequence[str] | None = None,
        options: ExtractOptions | None = None,
    ) -> int:
        """Outline-load extract of ``dim_name`` below each top member."""
        top_members = list(top_members or [dim_name])
        if top_members == [dim_name]:
            logger.info("Extracting outline load metadata for %s...", dim_name)
        else:
            logger.info(
                "Extracting outline load metadata for %s below %s...", dim_name, ", ".join(top_members)
            )

        attribute_dim = self.is_attribute_dimension(dim_name)
        logger.log(DETAIL, "Retrieving %s aliases and associations...", dim_name)
        lookups = EnrichmentLookups.load(self.dispatcher, dim_name, include_associations=not attribute_dim)
        enricher = DimensionEnricher(
            dim_name, self.plan_types, lookups, escape_formulas=not target.is_text
        )
        base = options or ExtractOptions()
        if target.is_text:
            base = outline_text_options(base)
        base = enricher.options(base)

        logger.log(DETAIL, "Retrieving %s members...", dim_name)
        row_count = 0
        first = True
        for root in self.walker.resolve(dim_name, top_members):
            result = self.walker.outline_result(dim_name, root, include_root=not attribute_dim)
            opts = replace(base, append=not first, include_headers=first)
            row_count += self.dispatcher.write(result, target, opts)
            first = False
        logger.log(DETAIL, "Output %d %s members", row_count, dim_name)
        return row_count

    def extract_dimension_levels(
        self,
        target: SinkTarget,
        dim_name: str,
        top_members: Sequence[str] | None = None,
        options: ExtractOptions | None = None,
    ) -> int:
        """Indented level-based extract with one column per hierarchy level."""
        logger.info("Extracting level-based %s extract...", dim_name)
        base = options or ExtractOptions()
        if target.is_text:
            base = outline_text_options(base)
        base = replace(base, header_map=title_header)

        lookups = EnrichmentLookups.load(self.dispatcher, dim_name, include_associations=False)
        roots = self.walker.resolve(dim_name, list(top_members or [dim_name]))
        levels = self.walker.max_depth(dim_name, roots)

        row_count = 0
        first = True
        for root in roots:
            result = self.walker.level_result(
                dim_name, root, levels, alias_of=lambda mid: lookups.alias(DEFAULT_ALIAS_TABLE, mid)
            )
            opts = replace(base, append=not first, include_headers=first)
            row_count += self.dispatcher.write(result, target, opts)
            first = False
        logger.log(DETAIL, "Output %d %s members", row_count, dim_name)
        return row_count

    def _run(
        self,
        query_id: str,
        label: str,
        target: SinkTarget,
        options: ExtractOptions | None,
        on_row: RowCallback | None,
        bind_params: Sequence[object] = (),
    ) -> int:
        logger.info("Extracting %s...", label)
        opts = options or ExtractOptions()
        if bind_params:
            opts = replace(opts, bind_params=tuple(bind_params))
        row_count = self.dispatcher.execute(query_id, target, opts, on_row)
        logger.log(DETAIL, "Output %d %s records", row_count, label)
        return row_count

    def extract_task_lists(
        self, target: SinkTarget, options: ExtractOptions | None = None, on_row: RowCallback | None = None
    ) -> int:
        return self._run(queries.TASK_LISTS, "task lists", target, options, on_row)

    def extract_forms(
        self,
        target: SinkTarget,
        pattern: str = "%",
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        return self._run(queries.FORMS, "forms", target, options, on_row, (pattern,))

    def extract_composite_form(
        self,
        target: SinkTarget,
        pattern: str = "%",
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        return self._run(
            queries.FORM_PANES, "composite form contents", target, options, on_row, (pattern,)
        )

    def extract_form_layout(
        self,
        target: SinkTarget,
        pattern: str = "%",
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        return self._run(queries.FORM_LAYOUT, "form layout", target, options, on_row, (pattern,))

    def extract_form_members(
        self,
        target: SinkTarget,
        pattern: str = "%",
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        return self._run(queries.FORM_MEMBERS, "form member", target, options, on_row, (pattern,))

    def extract_form_calcs(
        self,
        target: SinkTarget,
        pattern: str = "%",
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        return self._run(queries.FORM_CALCS, "form calc", target, options, on_row, (pattern,))

    def extract_form_menus(
        self,
        target: SinkTarget,
        pattern: str = "%",
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        return self._run(queries.FORM_MENUS, "form menu", target, options, on_row, (pattern,))

    def form_usage(self, pattern: str = "%", on_row: RowCallback | None = None) -> int:
        """Task lists and composite forms that use forms matching ``pattern``."""
        opts = ExtractOptions(bind_params=(pattern, pattern))
        return self.dispatcher.execute(queries.FORM_USAGE, SinkTarget.none(), opts, on_row)

    def extract_smart_lists(
        self, target: SinkTarget, options: ExtractOptions | None = None, on_row: RowCallback | None = None
    ) -> int:
        opts = options or ExtractOptions(header_map=title_header)
        return self._run(queries.SMART_LISTS, "smart list", target, opts, on_row)

    def extract_smart_list_items(
        self, target: SinkTarget, options: ExtractOptions | None = None, on_row: RowCallback | None = None
    ) -> int:
        opts = options or ExtractOptions(header_map=title_header)
        return self._run(queries.SMART_LIST_ITEMS, "smart list item", target, opts, on_row)

    def extract_menu_items(
        self, target: SinkTarget, options: ExtractOptions | None = None, on_row: RowCallback | None = None
    ) -> int:
        return self._run(queries.MENU_ITEMS, "menu item", target, options, on_row)

    def extract_user_variables(
        self, target: SinkTarget, options: ExtractOptions | None = None, on_row: RowCallback | None = None
    ) -> int:
        return self._run(queries.USER_VARIABLES, "user variable", target, options, on_row)

    def extract_security(
        self, target: SinkTarget, options: ExtractOptions | None = None, on_row: RowCallback | None = None
    ) -> int:
        return self._run(queries.SECURITY_ACCESS, "security", target, options, on_row)

    def extract_business_rules(
        self,
        target: SinkTarget,
        patterns: Sequence[str] = ("%",),
        options: ExtractOptions | None = None,
        on_row: RowCallback | None = None,
    ) -> int:
        """Business rule objects matching any of ``patterns`` (LIKE syntax).

        Patterns are queried in turn into the same target; only the first
        query writes a header.
        """
        logger.info("Extracting business rules...")
        base = options or ExtractOptions()
        row_count = 0
        for i, pattern in enumerate(patterns or ("%",)):
            opts = replace(
                base,
                bind_params=(pattern,),
                append=i > 0,
                include_headers=base.include_headers and i == 0,
            )
            row_count += self.dispatcher.execute(queries.BUSINESS_RULES, target, opts, on_row)
        logger.log(DETAIL, "Output %d business rule records", row_count)
        return row_count

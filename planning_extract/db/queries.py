from __future__ import annotations

"""Query identifiers used by the extractor.

The literal SQL is supplied by configuration (``queries:`` in extract.yml) so
that the same extractor can run against any schema/driver. Each identifier
documents the columns the query must return; column names are matched
case-insensitively.
"""

__all__ = [
    "QUERY_COLUMNS",
    "REQUIRED_QUERIES",
]

# dimension_name, dimension_type ('Dimension' | 'Attribute Dimension')
DIMENSIONS = "dimensions"
# plan_type, in plan type order
PLAN_TYPES = "plan_types"
# bind: (dimension) -> alias_tbl_name, mbr_id, alias
ALIASES = "aliases"
# bind: (dimension) -> object_id, uda_value
UDAS = "udas"
# bind: (dimension) -> attr_dim_name, mbr_id, attr_name
ATTRIBUTES = "attributes"
# bind: (dimension) -> member_id, parent_id, position, member_name, then the
# member property columns in output order (data_storage, ..., used_in,
# consol_op, uda)
DIMENSION_MEMBERS = "dimension_members"
TASK_LISTS = "task_lists"
# bind: (form pattern) for the form queries below
FORMS = "forms"  # form_name, form_type ('Simple' | 'Composite'), folder, cube_name, ...
FORM_PANES = "form_panes"
FORM_LAYOUT = "form_layout"
FORM_MEMBERS = "form_members"
FORM_CALCS = "form_calcs"
FORM_MENUS = "form_menus"
# bind: (form pattern, form pattern) -> task_list, composite_form, folder
FORM_USAGE = "form_usage"
SMART_LISTS = "smart_lists"
SMART_LIST_ITEMS = "smart_list_items"
MENU_ITEMS = "menu_items"
USER_VARIABLES = "user_variables"
SECURITY_ACCESS = "security_access"
# object_type, object_name, ... (one row per business rule object)
BUSINESS_RULES = "business_rules"
# object_type, object_name, user_type, user_name (object is used by user)
BUSINESS_RULE_USAGE = "business_rule_usage"

QUERY_COLUMNS: dict[str, tuple[str, ...]] = {
    DIMENSIONS: ("dimension_name", "dimension_type"),
    PLAN_TYPES: ("plan_type",),
    ALIASES: ("alias_tbl_name", "mbr_id", "alias"),
    UDAS: ("object_id", "uda_value"),
    ATTRIBUTES: ("attr_dim_name", "mbr_id", "attr_name"),
    DIMENSION_MEMBERS: ("member_id", "parent_id", "position", "member_name"),
    FORMS: ("form_name", "form_type", "folder", "cube_name"),
    FORM_USAGE: ("task_list", "composite_form", "folder"),
    BUSINESS_RULES: ("object_type", "object_name"),
    BUSINESS_RULE_USAGE: ("object_type", "object_name", "user_type", "user_name"),
}

# Queries every run needs regardless of which extracts are enabled
REQUIRED_QUERIES = (DIMENSIONS, PLAN_TYPES)

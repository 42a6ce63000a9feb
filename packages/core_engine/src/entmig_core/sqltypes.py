from typing import List, Set

from entmig_core.model import Entity, Field, IDENTITY_ALWAYS, IDENTITY_BY_DEFAULT

TYPE_ALIASES = {
    "string": "text",
    "int": "integer",
    "float": "double",
    "bool": "boolean",
    "bytes": "bytea",
    "double_precision": "double",
    "uuidv7": "uuid",
}

_SIMPLE_TYPES = {
    "uuid": "uuid",
    "text": "text",
    "boolean": "boolean",
    "smallint": "smallint",
    "integer": "integer",
    "bigint": "bigint",
    "smallserial": "smallserial",
    "serial": "serial",
    "bigserial": "bigserial",
    "real": "real",
    "double": "double precision",
    "money": "money",
    "bytea": "bytea",
    "date": "date",
    "time": "time",
    "timetz": "timetz",
    "timestamp": "timestamp",
    "timestamptz": "timestamptz",
    "interval": "interval",
    "json": "json",
    "jsonb": "jsonb",
    "xml": "xml",
    "inet": "inet",
    "cidr": "cidr",
    "macaddr": "macaddr",
    "macaddr8": "macaddr8",
    "tsvector": "tsvector",
    "tsquery": "tsquery",
    "point": "point",
    "line": "line",
    "lseg": "lseg",
    "box": "box",
    "path": "path",
    "polygon": "polygon",
    "circle": "circle",
    "int4range": "int4range",
    "int8range": "int8range",
    "numrange": "numrange",
    "tsrange": "tsrange",
    "tstzrange": "tstzrange",
    "daterange": "daterange",
    "enum": "text",
}

_LENGTH_TYPES = {"varchar", "char", "bit", "varbit"}
_NUMERIC_TYPES = {"decimal", "numeric"}
_SPATIAL_TYPES = {"geometry", "geography"}

# Foreign keys reference serial columns through their underlying integer type.
REFERENCE_TYPES = {
    "smallserial": "smallint",
    "serial": "integer",
    "bigserial": "bigint",
}

IDENTITY_TYPES = {"smallint", "integer", "bigint"}
TIMESTAMP_TYPES = {"timestamp", "timestamptz", "date"}

KNOWN_TYPES = sorted(
    set(_SIMPLE_TYPES)
    | _LENGTH_TYPES
    | _NUMERIC_TYPES
    | _SPATIAL_TYPES
    | {"array", "vector"}
    | set(TYPE_ALIASES)
)


def canonical_type(type_name: str) -> str:
    value = type_name.strip().lower()
    return TYPE_ALIASES.get(value, value)


def _base_sql_type(type_name: str, field: Field) -> str:
    value = canonical_type(type_name)
    if value in _SIMPLE_TYPES:
        return _SIMPLE_TYPES[value]
    if value in _LENGTH_TYPES:
        if field.length:
            return f"{value}({field.length})"
        return value
    if value in _NUMERIC_TYPES:
        if field.precision is not None and field.scale is not None:
            return f"{value}({field.precision},{field.scale})"
        if field.precision is not None:
            return f"{value}({field.precision})"
        return value
    if value in _SPATIAL_TYPES:
        if field.geometry_type and field.srid:
            return f"{value}({field.geometry_type},{field.srid})"
        if field.geometry_type:
            return f"{value}({field.geometry_type})"
        return value
    if value == "vector":
        if field.dimension:
            return f"vector({field.dimension})"
        return "vector"
    if value == "array":
        element = field.element_type or "text"
        return f"{_base_sql_type(element, field)}[]"
    # Unknown tags pass through verbatim so custom domain types keep working.
    return type_name


def field_sql_type(field: Field) -> str:
    """Render the column type, identity clause included.

    Generated-column expressions are not part of the type; they travel
    separately as ``ColumnSnapshot.generated_expr``.
    """
    base = _base_sql_type(field.type, field)
    if field.identity == IDENTITY_ALWAYS:
        return f"{base} GENERATED ALWAYS AS IDENTITY"
    if field.identity == IDENTITY_BY_DEFAULT:
        return f"{base} GENERATED BY DEFAULT AS IDENTITY"
    return base


def reference_sql_type(field: Field) -> str:
    """Type a foreign-key column needs to reference ``field``."""
    base = _base_sql_type(field.type, field)
    return REFERENCE_TYPES.get(base, base)


def reference_type_tag(field: Field) -> str:
    value = canonical_type(field.type)
    return REFERENCE_TYPES.get(value, value)


def is_timestamp_type(field: Field) -> bool:
    return canonical_type(field.type) in TIMESTAMP_TYPES


def required_extensions(entities: List[Entity]) -> List[str]:
    found: Set[str] = set()
    for entity in entities:
        for item in entity.fields:
            kind = canonical_type(item.type)
            element = canonical_type(item.element_type) if item.element_type else ""
            if kind in _SPATIAL_TYPES or element in _SPATIAL_TYPES:
                found.add("postgis")
            if kind == "vector":
                found.add("vector")
            if item.timeseries:
                found.add("timescaledb")
    return sorted(found)


def format_default(value: object) -> str:
    """Format a literal default value as a SQL expression."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"



def sql_action(action: str) -> str:
    """``set_null`` -> ``SET NULL``; empty stays empty."""
    if not action:
        return ""
    return action.replace("_", " ").upper()

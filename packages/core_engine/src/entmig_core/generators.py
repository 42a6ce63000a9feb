from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set

from entmig_core import operations as ops
from entmig_core.model import Entity
from entmig_core.naming import unique_constraint_name
from entmig_core.operations import Operation
from entmig_core.planner import order_tables
from entmig_core.snapshot import (
    ColumnSnapshot,
    ForeignKeySnapshot,
    IndexSnapshot,
    SchemaSnapshot,
    TableSnapshot,
    build_schema_snapshot,
)

INDENT = "    "


def render_column_definition(col: ColumnSnapshot) -> str:
    if col.generated_expr:
        parts = [f"{col.name} {col.type} GENERATED ALWAYS AS ({col.generated_expr}) STORED"]
    else:
        parts = [f"{col.name} {col.type}"]
        if not col.nullable:
            parts.append("NOT NULL")
        if col.default:
            parts.append(f"DEFAULT {col.default}")
    if col.unique:
        parts.append("UNIQUE")
    return " ".join(parts)


def _reference_clause(fk: ForeignKeySnapshot) -> str:
    clause = f"FOREIGN KEY ({fk.column}) REFERENCES {fk.target_table} ({fk.target_column})"
    if fk.on_delete:
        clause += f" ON DELETE {fk.on_delete}"
    if fk.on_update:
        clause += f" ON UPDATE {fk.on_update}"
    return clause


def render_create_table(table: TableSnapshot, skip_constraints: Optional[Set[str]] = None) -> str:
    skip = skip_constraints or set()
    lines = [f"{INDENT}{render_column_definition(col)}" for col in table.columns]
    if table.primary_key:
        lines.append(f"{INDENT}PRIMARY KEY ({', '.join(table.primary_key)})")
    for fk in table.foreign_keys:
        if fk.constraint in skip:
            continue
        lines.append(f"{INDENT}CONSTRAINT {fk.constraint} {_reference_clause(fk)}")
    return f"CREATE TABLE IF NOT EXISTS {table.name} (\n" + ",\n".join(lines) + "\n);"


def render_drop_table(table: str) -> str:
    return f"DROP TABLE IF EXISTS {table} CASCADE;"


def render_add_column(table: str, col: ColumnSnapshot) -> str:
    return f"ALTER TABLE {table} ADD COLUMN {render_column_definition(col)};"


def render_drop_column(table: str, column: str) -> str:
    return f"ALTER TABLE {table} DROP COLUMN IF EXISTS {column} CASCADE;"


def render_alter_column_type(table: str, column: str, sql_type: str) -> str:
    return f"ALTER TABLE {table} ALTER COLUMN {column} TYPE {sql_type};"


def render_alter_column_nullability(table: str, column: str, nullable: bool) -> str:
    clause = "DROP NOT NULL" if nullable else "SET NOT NULL"
    return f"ALTER TABLE {table} ALTER COLUMN {column} {clause};"


def render_alter_column_default(table: str, column: str, default: str) -> str:
    if default:
        return f"ALTER TABLE {table} ALTER COLUMN {column} SET DEFAULT {default};"
    return f"ALTER TABLE {table} ALTER COLUMN {column} DROP DEFAULT;"


def render_add_unique(table: str, column: str) -> str:
    return f"ALTER TABLE {table} ADD CONSTRAINT {unique_constraint_name(table, column)} UNIQUE ({column});"


def render_drop_unique(table: str, column: str) -> str:
    return f"ALTER TABLE {table} DROP CONSTRAINT IF EXISTS {unique_constraint_name(table, column)};"


def render_create_index(table: str, idx: IndexSnapshot) -> str:
    parts = ["CREATE"]
    if idx.unique:
        parts.append("UNIQUE")
    parts.extend(["INDEX IF NOT EXISTS", idx.name, "ON", table])
    if idx.method:
        parts.extend(["USING", idx.method])
    parts.append(f"({', '.join(idx.columns)})")
    if idx.where:
        parts.extend(["WHERE", idx.where])
    if idx.nulls_not_distinct:
        parts.append("NULLS NOT DISTINCT")
    return " ".join(parts) + ";"


def render_drop_index(name: str) -> str:
    return f"DROP INDEX IF EXISTS {name};"


def render_add_foreign_key(table: str, fk: ForeignKeySnapshot) -> str:
    return f"ALTER TABLE {table} ADD CONSTRAINT {fk.constraint} {_reference_clause(fk)};"


def render_drop_foreign_key(table: str, constraint: str) -> str:
    return f"ALTER TABLE {table} DROP CONSTRAINT IF EXISTS {constraint};"


def render_create_extension(name: str) -> str:
    return f"CREATE EXTENSION IF NOT EXISTS {name};"


def render_drop_extension(name: str) -> str:
    return f"DROP EXTENSION IF EXISTS {name};"


def render_create_hypertable(table: str, column: str) -> str:
    return f"SELECT create_hypertable('{table}', '{column}', if_not_exists => TRUE);"


def render_drop_hypertable(table: str) -> str:
    return f"SELECT remove_hypertable('{table}');"


def create_table_operations(tables: Sequence[TableSnapshot]) -> List[Operation]:
    """CREATE statements for ``tables`` in dependency order.

    Foreign keys are declared inline unless a cycle forces them to be
    added with ALTER TABLE once every table exists.
    """
    ordered, deferred = order_tables(tables)
    postponed: Set[str] = {fk.constraint for _, fk in deferred}
    result: List[Operation] = []
    for table in ordered:
        result.append(Operation(ops.CREATE_TABLE, table.name, render_create_table(table, postponed)))
        for idx in table.indexes:
            result.append(Operation(ops.ADD_INDEX, idx.name, render_create_index(table.name, idx)))
        if table.hypertable_column:
            result.append(
                Operation(ops.CREATE_HYPERTABLE, table.name, render_create_hypertable(table.name, table.hypertable_column))
            )
    for table_name, fk in deferred:
        result.append(
            Operation(ops.ADD_FOREIGN_KEY, f"{table_name}.{fk.constraint}", render_add_foreign_key(table_name, fk))
        )
    return result


def initial_operations(snapshot: SchemaSnapshot) -> List[Operation]:
    result = [
        Operation(ops.CREATE_EXTENSION, name, render_create_extension(name))
        for name in sorted(snapshot.extensions)
    ]
    result.extend(create_table_operations(snapshot.tables))
    return result


def render_initial_migration(entities: List[Entity], extra_extensions: Iterable[str] = ()) -> str:
    snapshot = build_schema_snapshot(entities, extra_extensions)
    return "\n\n".join(op.sql for op in initial_operations(snapshot)) + "\n"


def render_migration(operations: Sequence[Operation], name: str, generated_at: datetime) -> str:
    header = [
        f"-- Migration: {name}",
        f"-- Generated at: {generated_at.strftime('%Y-%m-%dT%H:%M:%SZ')}",
        f"-- Operations: {len(operations)}",
    ]
    body = "\n\n".join(op.sql for op in operations)
    return "\n".join(header) + "\n\n" + body + "\n"

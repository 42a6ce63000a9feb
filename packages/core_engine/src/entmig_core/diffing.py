import logging
from typing import AbstractSet, Any, Dict, List, Sequence, Tuple

from entmig_core import operations as ops
from entmig_core.generators import (
    create_table_operations,
    render_add_column,
    render_add_foreign_key,
    render_add_unique,
    render_alter_column_default,
    render_alter_column_nullability,
    render_alter_column_type,
    render_create_extension,
    render_create_hypertable,
    render_create_index,
    render_drop_column,
    render_drop_extension,
    render_drop_foreign_key,
    render_drop_hypertable,
    render_drop_index,
    render_drop_table,
    render_drop_unique,
)
from entmig_core.operations import Operation
from entmig_core.snapshot import (
    ColumnSnapshot,
    ForeignKeySnapshot,
    IndexSnapshot,
    SchemaSnapshot,
    TableSnapshot,
)

logger = logging.getLogger(__name__)


def diff_schema(prev: SchemaSnapshot, next_: SchemaSnapshot) -> List[Operation]:
    result = diff_extensions(prev.extensions, next_.extensions)
    result.extend(diff_tables(prev.tables, next_.tables))
    return result


def diff_extensions(prev: Sequence[str], next_: Sequence[str]) -> List[Operation]:
    old, new = set(prev), set(next_)
    result = [Operation(ops.DROP_EXTENSION, name, render_drop_extension(name)) for name in sorted(old - new)]
    result.extend(Operation(ops.CREATE_EXTENSION, name, render_create_extension(name)) for name in sorted(new - old))
    return result


def _join_last(table: TableSnapshot) -> Tuple[bool, str]:
    return (table.is_join_table, table.name)


def identity_changed(prev: TableSnapshot, next_: TableSnapshot) -> bool:
    return (
        prev.name != next_.name
        or prev.primary_key != next_.primary_key
        or prev.is_join_table != next_.is_join_table
    )


def diff_tables(prev: Sequence[TableSnapshot], next_: Sequence[TableSnapshot]) -> List[Operation]:
    """Dropped tables, then every table to (re)create, then in-place changes.

    Keys on unchanged tables that point at a recreated table are re-added,
    since dropping that table with CASCADE removed them.
    """
    old = {table.name: table for table in prev}
    new = {table.name: table for table in next_}
    shared = sorted(name for name in old if name in new)
    recreated = [name for name in shared if identity_changed(old[name], new[name])]

    result: List[Operation] = []
    for table in sorted((old[name] for name in old if name not in new), key=_join_last):
        result.append(Operation(ops.DROP_TABLE, table.name, render_drop_table(table.name)))
    for name in recreated:
        logger.debug("table %s changed identity; recreating", name)
        result.append(Operation(ops.DROP_TABLE, name, render_drop_table(name)))

    created = [new[name] for name in new if name not in old] + [new[name] for name in recreated]
    if created:
        logger.debug("creating %d table(s): %s", len(created), ", ".join(sorted(table.name for table in created)))
        result.extend(create_table_operations(created))

    for name in shared:
        if name not in recreated:
            result.extend(diff_table(old[name], new[name], rebuilt=set(recreated)))
    return result


def diff_table(
    prev: TableSnapshot, next_: TableSnapshot, rebuilt: AbstractSet[str] = frozenset()
) -> List[Operation]:
    if identity_changed(prev, next_):
        return [Operation(ops.DROP_TABLE, prev.name, render_drop_table(prev.name))] + create_table_operations([next_])

    drop_indexes, add_indexes = diff_indexes(next_.name, prev.indexes, next_.indexes)
    drop_keys, add_keys = diff_foreign_keys(next_.name, prev.foreign_keys, next_.foreign_keys, rebuilt)

    result: List[Operation] = []
    result.extend(drop_indexes)
    result.extend(drop_keys)
    result.extend(diff_columns(prev, next_))
    result.extend(add_indexes)
    result.extend(add_keys)
    result.extend(diff_hypertable(prev, next_))
    return result


def diff_columns(prev: TableSnapshot, next_: TableSnapshot) -> List[Operation]:
    old = {col.name: col for col in prev.columns}
    new = {col.name: col for col in next_.columns}
    table = next_.name

    result: List[Operation] = []
    for name in sorted(name for name in old if name in new):
        result.extend(diff_column(table, old[name], new[name]))
    for name in sorted(name for name in new if name not in old):
        result.append(Operation(ops.ADD_COLUMN, f"{table}.{name}", render_add_column(table, new[name])))
    for name in sorted(name for name in old if name not in new):
        result.append(Operation(ops.DROP_COLUMN, f"{table}.{name}", render_drop_column(table, name)))
    return result


def _is_generated(col: ColumnSnapshot) -> bool:
    return bool(col.generated_expr) or col.read_only


def diff_column(table: str, prev: ColumnSnapshot, next_: ColumnSnapshot) -> List[Operation]:
    """Operations turning column ``prev`` into ``next_``.

    Generated columns cannot be altered in place, so any change to one of
    them is a drop followed by an add.
    """
    target = f"{table}.{prev.name}"
    if _is_generated(prev) or _is_generated(next_):
        changed = (
            prev.generated_expr != next_.generated_expr
            or prev.type != next_.type
            or prev.nullable != next_.nullable
            or prev.unique != next_.unique
            or prev.read_only != next_.read_only
        )
        if not changed:
            return []
        return [
            Operation(ops.DROP_COLUMN, target, render_drop_column(table, prev.name)),
            Operation(ops.ADD_COLUMN, f"{table}.{next_.name}", render_add_column(table, next_)),
        ]

    result: List[Operation] = []
    if prev.type != next_.type:
        result.append(Operation(ops.ALTER_COLUMN, target, render_alter_column_type(table, prev.name, next_.type)))
    if prev.nullable != next_.nullable:
        result.append(
            Operation(ops.ALTER_COLUMN, target, render_alter_column_nullability(table, prev.name, next_.nullable))
        )
    if prev.default != next_.default:
        result.append(Operation(ops.ALTER_COLUMN, target, render_alter_column_default(table, prev.name, next_.default)))
    if prev.unique != next_.unique:
        sql = render_add_unique(table, prev.name) if next_.unique else render_drop_unique(table, prev.name)
        result.append(Operation(ops.ALTER_COLUMN, target, sql))
    return result


def index_equal(a: IndexSnapshot, b: IndexSnapshot) -> bool:
    return (
        a.name == b.name
        and a.unique == b.unique
        and a.method == b.method
        and a.where == b.where
        and list(a.columns) == list(b.columns)
        and a.nulls_not_distinct == b.nulls_not_distinct
    )


def diff_indexes(
    table: str, prev: Sequence[IndexSnapshot], next_: Sequence[IndexSnapshot]
) -> Tuple[List[Operation], List[Operation]]:
    old = {idx.name: idx for idx in prev}
    new = {idx.name: idx for idx in next_}
    drops = [
        Operation(ops.DROP_INDEX, name, render_drop_index(name))
        for name in sorted(old)
        if name not in new or not index_equal(old[name], new[name])
    ]
    adds = [
        Operation(ops.ADD_INDEX, name, render_create_index(table, new[name]))
        for name in sorted(new)
        if name not in old or not index_equal(old[name], new[name])
    ]
    return drops, adds


def foreign_key_equal(a: ForeignKeySnapshot, b: ForeignKeySnapshot) -> bool:
    return (
        a.column == b.column
        and a.target_table == b.target_table
        and a.target_column == b.target_column
        and a.constraint == b.constraint
        and a.on_delete == b.on_delete
        and a.on_update == b.on_update
    )


def diff_foreign_keys(
    table: str,
    prev: Sequence[ForeignKeySnapshot],
    next_: Sequence[ForeignKeySnapshot],
    rebuilt: AbstractSet[str] = frozenset(),
) -> Tuple[List[Operation], List[Operation]]:
    old = {fk.constraint: fk for fk in prev}
    new = {fk.constraint: fk for fk in next_}
    drops = [
        Operation(ops.DROP_FOREIGN_KEY, f"{table}.{name}", render_drop_foreign_key(table, name))
        for name in sorted(old)
        if name not in new or not foreign_key_equal(old[name], new[name])
    ]
    adds = [
        Operation(ops.ADD_FOREIGN_KEY, f"{table}.{name}", render_add_foreign_key(table, new[name]))
        for name in sorted(new)
        if name not in old
        or not foreign_key_equal(old[name], new[name])
        or new[name].target_table in rebuilt
    ]
    return drops, adds


def diff_hypertable(prev: TableSnapshot, next_: TableSnapshot) -> List[Operation]:
    if prev.hypertable_column == next_.hypertable_column:
        return []
    result: List[Operation] = []
    if prev.hypertable_column:
        result.append(Operation(ops.DROP_HYPERTABLE, next_.name, render_drop_hypertable(next_.name)))
    if next_.hypertable_column:
        result.append(
            Operation(
                ops.CREATE_HYPERTABLE,
                next_.name,
                render_create_hypertable(next_.name, next_.hypertable_column),
            )
        )
    return result


_DESTRUCTIVE = {ops.DROP_TABLE, ops.DROP_COLUMN, ops.DROP_EXTENSION, ops.DROP_HYPERTABLE}


def summarize_operations(operations: Sequence[Operation]) -> Dict[str, Any]:
    """Count operations per kind and flag the ones that can lose data."""
    counts: Dict[str, int] = {kind: 0 for kind in ops.OPERATION_KINDS}
    breaking: List[str] = []
    for op in operations:
        counts[op.kind] = counts.get(op.kind, 0) + 1
        if op.kind in _DESTRUCTIVE:
            breaking.append(f"{op.kind.replace('_', ' ')}: {op.target}")
        elif op.kind == ops.ALTER_COLUMN and (" TYPE " in op.sql or op.sql.endswith("SET NOT NULL;")):
            breaking.append(f"alter column: {op.target}")
    return {
        "summary": {kind: count for kind, count in counts.items() if count},
        "operation_count": len(operations),
        "operations": [op.as_dict() for op in operations],
        "breaking_changes": sorted(set(breaking)),
        "has_breaking_changes": bool(breaking),
    }

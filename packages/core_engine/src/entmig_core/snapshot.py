"""Persisted relational shape of the database, the baseline for every diff."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from entmig_core.errors import SnapshotError
from entmig_core.model import Entity, field_column
from entmig_core.planner import ForeignKey, build_migration_plan
from entmig_core.schema import snapshot_issues
from entmig_core.sqltypes import field_sql_type, required_extensions

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "schema.snapshot.json"


@dataclass
class ColumnSnapshot:
    name: str
    type: str
    nullable: bool = False
    unique: bool = False
    default: str = ""
    generated_expr: str = ""
    read_only: bool = False


@dataclass
class IndexSnapshot:
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False
    where: str = ""
    method: str = ""
    nulls_not_distinct: bool = False


@dataclass
class ForeignKeySnapshot:
    constraint: str
    column: str
    target_table: str
    target_column: str
    on_delete: str = ""
    on_update: str = ""


@dataclass
class TableSnapshot:
    name: str
    columns: List[ColumnSnapshot] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)
    indexes: List[IndexSnapshot] = field(default_factory=list)
    foreign_keys: List[ForeignKeySnapshot] = field(default_factory=list)
    hypertable_column: str = ""
    is_join_table: bool = False

    def column(self, name: str) -> Optional[ColumnSnapshot]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass
class SchemaSnapshot:
    tables: List[TableSnapshot] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)

    def table(self, name: str) -> Optional[TableSnapshot]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def is_empty(self) -> bool:
        return not self.tables and not self.extensions


def snapshot_path(root: str, migrations_dir: str = "migrations") -> Path:
    return Path(root) / migrations_dir / SNAPSHOT_FILENAME


def normalize_snapshot(snapshot: SchemaSnapshot) -> SchemaSnapshot:
    """Sort the order-insensitive parts in place; column and key order are kept."""
    snapshot.extensions = sorted(set(snapshot.extensions))
    snapshot.tables.sort(key=lambda table: (table.is_join_table, table.name))
    for table in snapshot.tables:
        table.indexes.sort(key=lambda idx: idx.name)
        table.foreign_keys.sort(key=lambda fk: fk.constraint)
    return snapshot


def to_dict(snapshot: SchemaSnapshot) -> Dict[str, Any]:
    return {
        "extensions": list(snapshot.extensions),
        "tables": [
            {
                "name": table.name,
                "columns": [
                    {
                        "name": col.name,
                        "type": col.type,
                        "nullable": col.nullable,
                        "unique": col.unique,
                        "default": col.default,
                        "generatedExpr": col.generated_expr,
                        "readOnly": col.read_only,
                    }
                    for col in table.columns
                ],
                "primaryKey": list(table.primary_key),
                "indexes": [
                    {
                        "name": idx.name,
                        "columns": list(idx.columns),
                        "unique": idx.unique,
                        "where": idx.where,
                        "method": idx.method,
                        "nullsNotDistinct": idx.nulls_not_distinct,
                    }
                    for idx in table.indexes
                ],
                "foreignKeys": [
                    {
                        "constraint": fk.constraint,
                        "column": fk.column,
                        "targetTable": fk.target_table,
                        "targetColumn": fk.target_column,
                        "onDelete": fk.on_delete,
                        "onUpdate": fk.on_update,
                    }
                    for fk in table.foreign_keys
                ],
                "hypertableColumn": table.hypertable_column,
                "isJoinTable": table.is_join_table,
            }
            for table in snapshot.tables
        ],
    }


def from_dict(data: Dict[str, Any]) -> SchemaSnapshot:
    tables: List[TableSnapshot] = []
    for raw in data.get("tables") or []:
        tables.append(
            TableSnapshot(
                name=raw["name"],
                columns=[
                    ColumnSnapshot(
                        name=col["name"],
                        type=col.get("type", ""),
                        nullable=bool(col.get("nullable", False)),
                        unique=bool(col.get("unique", False)),
                        default=col.get("default") or "",
                        generated_expr=col.get("generatedExpr") or "",
                        read_only=bool(col.get("readOnly", False)),
                    )
                    for col in raw.get("columns") or []
                ],
                primary_key=list(raw.get("primaryKey") or []),
                indexes=[
                    IndexSnapshot(
                        name=idx["name"],
                        columns=list(idx.get("columns") or []),
                        unique=bool(idx.get("unique", False)),
                        where=idx.get("where") or "",
                        method=idx.get("method") or "",
                        nulls_not_distinct=bool(idx.get("nullsNotDistinct", False)),
                    )
                    for idx in raw.get("indexes") or []
                ],
                foreign_keys=[
                    ForeignKeySnapshot(
                        constraint=fk["constraint"],
                        column=fk["column"],
                        target_table=fk["targetTable"],
                        target_column=fk["targetColumn"],
                        on_delete=fk.get("onDelete") or "",
                        on_update=fk.get("onUpdate") or "",
                    )
                    for fk in raw.get("foreignKeys") or []
                ],
                hypertable_column=raw.get("hypertableColumn") or "",
                is_join_table=bool(raw.get("isJoinTable", False)),
            )
        )
    return SchemaSnapshot(tables=tables, extensions=list(data.get("extensions") or []))


def load_schema_snapshot(path: Path) -> SchemaSnapshot:
    """Read the snapshot at ``path``; a missing or empty file is an empty snapshot."""
    path = Path(path)
    if not path.exists():
        logger.debug("no snapshot at %s; treating as first run", path)
        return SchemaSnapshot()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SnapshotError(str(path), "cannot be read", exc) from exc
    if not raw.strip():
        return SchemaSnapshot()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SnapshotError(str(path), f"invalid JSON ({exc.msg} at line {exc.lineno})", exc) from exc
    if not isinstance(data, dict):
        raise SnapshotError(str(path), "root must be an object")
    issues = snapshot_issues(data)
    if issues:
        first = issues[0]
        raise SnapshotError(str(path), f"{first.path}: {first.message}")
    return normalize_snapshot(from_dict(data))


def write_schema_snapshot(path: Path, snapshot: SchemaSnapshot) -> None:
    path = Path(path)
    normalize_snapshot(snapshot)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(to_dict(snapshot), indent=2) + "\n"
    fd, tmp_name = tempfile.mkstemp(prefix=".schema.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.info("wrote schema snapshot %s", path)


def _foreign_key_snapshot(fk: ForeignKey) -> ForeignKeySnapshot:
    return ForeignKeySnapshot(
        constraint=fk.constraint,
        column=fk.column,
        target_table=fk.target_table,
        target_column=fk.target_column,
        on_delete=fk.on_delete,
        on_update=fk.on_update,
    )


def build_schema_snapshot(entities: List[Entity], extra_extensions: Iterable[str] = ()) -> SchemaSnapshot:
    plans, join_tables = build_migration_plan(entities)
    tables: List[TableSnapshot] = []
    for plan in plans:
        table = TableSnapshot(name=plan.table)
        for item in plan.fields:
            column = field_column(item)
            table.columns.append(
                ColumnSnapshot(
                    name=column,
                    type=field_sql_type(item),
                    nullable=item.nullable,
                    unique=item.unique,
                    default=item.default or "",
                    generated_expr=item.computed,
                    read_only=item.read_only or bool(item.computed),
                )
            )
            if item.primary:
                table.primary_key.append(column)
            if item.timeseries:
                table.hypertable_column = column
        table.indexes = [
            IndexSnapshot(
                name=idx.name,
                columns=list(idx.columns),
                unique=idx.unique,
                where=idx.where,
                method=idx.method,
                nulls_not_distinct=idx.nulls_not_distinct,
            )
            for idx in plan.entity.indexes
        ]
        table.foreign_keys = [_foreign_key_snapshot(fk) for fk in plan.foreign_keys]
        tables.append(table)

    for join in join_tables:
        tables.append(
            TableSnapshot(
                name=join.name,
                columns=[
                    ColumnSnapshot(name=join.left.column, type=join.left.sql_type),
                    ColumnSnapshot(name=join.right.column, type=join.right.sql_type),
                ],
                primary_key=[join.left.column, join.right.column],
                foreign_keys=[_foreign_key_snapshot(fk) for fk in join.foreign_keys()],
                is_join_table=True,
            )
        )

    extensions = set(required_extensions(entities)) | set(extra_extensions)
    return normalize_snapshot(SchemaSnapshot(tables=tables, extensions=sorted(extensions)))

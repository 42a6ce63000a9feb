"""Migration run orchestration.

One run loads the last snapshot, derives the next one from the finalized
entities, renders the difference as a timestamped SQL file and only then
replaces the snapshot. A failure at any step leaves the snapshot untouched.
Concurrent runs against one project directory are not supported.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from entmig_core.diffing import diff_schema
from entmig_core.generators import render_migration
from entmig_core.model import Entity
from entmig_core.naming import normalize_identifier
from entmig_core.operations import Operation
from entmig_core.snapshot import (
    SNAPSHOT_FILENAME,
    SchemaSnapshot,
    build_schema_snapshot,
    load_schema_snapshot,
    write_schema_snapshot,
)
from entmig_core.synthesize import finalize_entities

logger = logging.getLogger(__name__)

REASON_INITIAL = "initial"
REASON_CHANGED = "changed"
REASON_UP_TO_DATE = "up-to-date"
REASON_UNCHANGED = "unchanged"
REASON_DRY_RUN = "dry-run"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GenerateOptions:
    name: str = "schema"
    dry_run: bool = False
    migrations_dir: str = "migrations"
    snapshot_file: str = ""
    extensions: List[str] = field(default_factory=list)


@dataclass
class GenerationContext:
    root: Path
    options: GenerateOptions = field(default_factory=GenerateOptions)
    clock: Callable[[], datetime] = _utc_now
    written: List[str] = field(default_factory=list)

    def migrations_path(self) -> Path:
        return Path(self.root) / self.options.migrations_dir

    def snapshot_path(self) -> Path:
        if self.options.snapshot_file:
            return Path(self.root) / self.options.snapshot_file
        return self.migrations_path() / SNAPSHOT_FILENAME

    def record(self, path: Path) -> None:
        self.written.append(str(path))


@dataclass
class MigrationResult:
    operations: List[Operation] = field(default_factory=list)
    sql: str = ""
    file_path: str = ""
    snapshot: Optional[SchemaSnapshot] = None
    reason: str = ""

    @property
    def changed(self) -> bool:
        return bool(self.operations)


def migration_filename(name: str, stamp: datetime) -> str:
    slug = normalize_identifier(name) or "migration"
    return f"{stamp.strftime('%Y%m%d%H%M%S')}_{slug}.sql"


def write_migration_file(context: GenerationContext, sql: str, stamp: datetime) -> Path:
    """Write ``sql`` under a new name; existing migration files are never replaced."""
    directory = context.migrations_path()
    directory.mkdir(parents=True, exist_ok=True)
    base = migration_filename(context.options.name, stamp)
    candidate = directory / base
    suffix = 1
    while True:
        try:
            with candidate.open("x", encoding="utf-8") as handle:
                handle.write(sql)
            break
        except FileExistsError:
            candidate = directory / f"{base[:-4]}_{suffix}.sql"
            suffix += 1
    context.record(candidate)
    logger.info("wrote migration %s", candidate)
    return candidate


def plan_migration(
    context: GenerationContext, entities: List[Entity], stamp: Optional[datetime] = None
) -> MigrationResult:
    """Compute operations and SQL without touching the filesystem."""
    finalize_entities(entities)
    previous = load_schema_snapshot(context.snapshot_path())
    current = build_schema_snapshot(entities, context.options.extensions)
    operations = diff_schema(previous, current)
    if not operations:
        return MigrationResult(snapshot=previous, reason=REASON_UP_TO_DATE)
    reason = REASON_INITIAL if previous.is_empty() else REASON_CHANGED
    sql = render_migration(operations, context.options.name, stamp or context.clock())
    return MigrationResult(operations=operations, sql=sql, snapshot=current, reason=reason)


def generate_migrations(
    context: GenerationContext, entities: List[Entity], regenerate: bool = True
) -> MigrationResult:
    if not regenerate:
        logger.debug("schema inputs unchanged; skipping migration generation")
        return MigrationResult(reason=REASON_UNCHANGED)

    stamp = context.clock()
    result = plan_migration(context, entities, stamp)
    if not result.changed:
        logger.info("schema is up to date; no migration written")
        return result
    if context.options.dry_run:
        result.reason = REASON_DRY_RUN
        return result

    path = write_migration_file(context, result.sql, stamp)
    result.file_path = str(path)
    write_schema_snapshot(context.snapshot_path(), result.snapshot)
    context.record(context.snapshot_path())
    return result

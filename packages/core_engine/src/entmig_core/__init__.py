from entmig_core.canonical import compile_document, schema_input_hash
from entmig_core.config import ProjectConfig, load_config
from entmig_core.diffing import diff_schema, summarize_operations
from entmig_core.doctor import diagnostics_as_json, format_diagnostics, run_diagnostics
from entmig_core.errors import (
    ConfigError,
    EntmigError,
    EnumConflictError,
    InvariantViolation,
    SchemaValidationError,
    SnapshotError,
)
from entmig_core.generators import render_initial_migration, render_migration
from entmig_core.loader import entities_from_document, find_schema_files, load_schema_files, load_yaml_document
from entmig_core.migrate import GenerateOptions, GenerationContext, MigrationResult, generate_migrations, plan_migration
from entmig_core.model import Edge, Entity, Field, Index
from entmig_core.naming import normalize_identifier
from entmig_core.operations import Operation
from entmig_core.planner import build_migration_plan, order_tables
from entmig_core.schema import document_issues, load_schema, schema_issues
from entmig_core.snapshot import (
    SchemaSnapshot,
    build_schema_snapshot,
    from_dict,
    load_schema_snapshot,
    to_dict,
    write_schema_snapshot,
)
from entmig_core.state import record_generation, regeneration_required, state_path
from entmig_core.synthesize import finalize_entities
from entmig_core.validation import collect_problems, validate_entities

__all__ = [
    "build_migration_plan",
    "build_schema_snapshot",
    "collect_problems",
    "compile_document",
    "ConfigError",
    "diagnostics_as_json",
    "diff_schema",
    "document_issues",
    "Edge",
    "entities_from_document",
    "Entity",
    "EntmigError",
    "EnumConflictError",
    "Field",
    "finalize_entities",
    "find_schema_files",
    "format_diagnostics",
    "from_dict",
    "GenerateOptions",
    "generate_migrations",
    "GenerationContext",
    "Index",
    "InvariantViolation",
    "load_config",
    "load_schema",
    "load_schema_files",
    "load_schema_snapshot",
    "load_yaml_document",
    "MigrationResult",
    "normalize_identifier",
    "Operation",
    "order_tables",
    "plan_migration",
    "ProjectConfig",
    "record_generation",
    "regeneration_required",
    "render_initial_migration",
    "render_migration",
    "run_diagnostics",
    "schema_input_hash",
    "schema_issues",
    "SchemaSnapshot",
    "SchemaValidationError",
    "SnapshotError",
    "state_path",
    "summarize_operations",
    "to_dict",
    "validate_entities",
    "write_schema_snapshot",
]

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from entmig_core import (
    EntmigError,
    GenerateOptions,
    GenerationContext,
    InvariantViolation,
    ProjectConfig,
    SchemaSnapshot,
    SchemaValidationError,
    build_schema_snapshot,
    diagnostics_as_json,
    diff_schema,
    entities_from_document,
    finalize_entities,
    find_schema_files,
    format_diagnostics,
    generate_migrations,
    load_config,
    load_schema_files,
    load_schema_snapshot,
    plan_migration,
    record_generation,
    regeneration_required,
    run_diagnostics,
    schema_input_hash,
    state_path,
    summarize_operations,
    to_dict,
)
from entmig_core.config import CONFIG_FILENAME, DEFAULT_CONFIG
from entmig_core.issues import Issue, as_dicts, from_problems, has_errors, to_lines
from entmig_core.migrate import REASON_DRY_RUN
from entmig_core.model import Entity

logger = logging.getLogger("entmig")

STARTER_SCHEMA = """entities:
  - name: User
    fields:
      - name: id
        type: uuid
        primary: true
        default_expr: gen_random_uuid()
      - name: email
        type: varchar
        length: 255
        unique: true
      - name: created_at
        type: timestamptz
        default_now: true
    edges:
      - name: pets
        target: Pet
        kind: to_many
        on_delete: cascade

  - name: Pet
    fields:
      - name: id
        type: uuid
        primary: true
        default_expr: gen_random_uuid()
      - name: name
        type: text
"""

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_FATAL = 2


def _print_issues(issues: List[Issue]) -> None:
    if not issues:
        print("No issues found.")
        return
    for line in to_lines(issues):
        print(line)


def _project_root(args: argparse.Namespace) -> Path:
    return Path(getattr(args, "project", ".") or ".").resolve()


def _load_project(args: argparse.Namespace) -> Tuple[ProjectConfig, Dict[str, Any], List[Issue]]:
    root = _project_root(args)
    config = load_config(str(root))
    files = find_schema_files(str(root), config.schema)
    if not files:
        raise EntmigError(f"No schema files match {config.schema} under {root}")
    document, issues = load_schema_files(files)
    return config, document, issues


def _finalized_entities(document: Dict[str, Any]) -> List[Entity]:
    entities = entities_from_document(document)
    finalize_entities(entities)
    return entities


def _context(config: ProjectConfig, document: Dict[str, Any], name: str = "schema", dry_run: bool = False) -> GenerationContext:
    extensions = list(config.extensions)
    for ext in document.get("extensions", []) or []:
        if ext not in extensions:
            extensions.append(ext)
    options = GenerateOptions(
        name=name,
        dry_run=dry_run,
        migrations_dir=config.migrations_dir,
        snapshot_file=config.snapshot,
        extensions=extensions,
    )
    return GenerationContext(root=config.root, options=options)


def _snapshot_from_path(path: str) -> SchemaSnapshot:
    """Read either a stored snapshot (.json) or a schema YAML file."""
    source = Path(path)
    if source.suffix == ".json":
        return load_schema_snapshot(source)
    document, issues = load_schema_files([source])
    if has_errors(issues):
        raise EntmigError("\n".join(to_lines(issues)))
    entities = _finalized_entities(document)
    return build_schema_snapshot(entities, document.get("extensions", []) or [])


def cmd_init(args: argparse.Namespace) -> int:
    root = _project_root(args)
    created = []
    (root / "schema").mkdir(parents=True, exist_ok=True)

    config_dst = root / CONFIG_FILENAME
    if not config_dst.exists():
        config_dst.write_text(DEFAULT_CONFIG, encoding="utf-8")
        created.append(config_dst)

    sample_dst = root / "schema" / "starter.yaml"
    if not sample_dst.exists():
        sample_dst.write_text(STARTER_SCHEMA, encoding="utf-8")
        created.append(sample_dst)

    print(f"Initialized entmig project at {root}")
    for path in created:
        print(f"- {path}")
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    _, document, issues = _load_project(args)
    if not has_errors(issues):
        try:
            _finalized_entities(document)
        except SchemaValidationError as exc:
            issues.extend(from_problems(exc.problems))
    if getattr(args, "output_json", False):
        print(json.dumps({"issues": as_dicts(issues), "valid": not has_errors(issues)}, indent=2))
    else:
        _print_issues(issues)
    return EXIT_INVALID if has_errors(issues) else EXIT_OK


def cmd_generate(args: argparse.Namespace) -> int:
    config, document, issues = _load_project(args)
    if has_errors(issues):
        _print_issues(issues)
        return EXIT_INVALID

    context = _context(config, document, name=args.name, dry_run=args.dry_run)
    input_hash = schema_input_hash(document, extra=context.options.extensions)
    cache = state_path(str(config.root), config.cache_dir)

    regenerate, why = True, "forced"
    if not args.force:
        regenerate, why = regeneration_required(cache, input_hash, context.snapshot_path())
    logger.debug("regeneration required: %s (%s)", regenerate, why)

    entities = entities_from_document(document)
    result = generate_migrations(context, entities, regenerate=regenerate)

    if result.reason == REASON_DRY_RUN:
        print(result.sql, end="")
        return EXIT_OK
    if not result.changed:
        print(f"No changes ({result.reason}).")
    else:
        print(f"Wrote migration: {result.file_path} ({len(result.operations)} operations)")
    if regenerate:
        record_generation(cache, input_hash, result.file_path)
    return EXIT_OK


def cmd_plan(args: argparse.Namespace) -> int:
    config, document, issues = _load_project(args)
    if has_errors(issues):
        _print_issues(issues)
        return EXIT_INVALID

    context = _context(config, document, dry_run=True)
    result = plan_migration(context, entities_from_document(document))
    if getattr(args, "output_json", False):
        payload = summarize_operations(result.operations)
        payload["reason"] = result.reason
        print(json.dumps(payload, indent=2))
    elif not result.changed:
        print("Schema is up to date.")
    else:
        print(result.sql, end="")
    return EXIT_OK


def cmd_snapshot(args: argparse.Namespace) -> int:
    config, document, issues = _load_project(args)
    if has_errors(issues):
        _print_issues(issues)
        return EXIT_INVALID

    context = _context(config, document)
    entities = _finalized_entities(document)
    snapshot = build_schema_snapshot(entities, context.options.extensions)
    output = json.dumps(to_dict(snapshot), indent=2)
    if args.out:
        Path(args.out).write_text(output + "\n", encoding="utf-8")
        print(f"Wrote schema snapshot: {args.out}")
    else:
        print(output)
    return EXIT_OK


def cmd_diff(args: argparse.Namespace) -> int:
    previous = _snapshot_from_path(args.old)
    current = _snapshot_from_path(args.new)
    operations = diff_schema(previous, current)
    if args.output_json:
        print(json.dumps(summarize_operations(operations), indent=2))
    elif not operations:
        print("No differences.")
    else:
        for operation in operations:
            print(operation.sql)
    return EXIT_OK


def cmd_doctor(args: argparse.Namespace) -> int:
    results = run_diagnostics(str(_project_root(args)))
    report = diagnostics_as_json(results)
    print(json.dumps(report, indent=2) if args.output_json else format_diagnostics(results))
    return EXIT_OK if report["healthy"] else EXIT_INVALID


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="entmig", description="Entity schema migration generator")
    parser.add_argument("--project", default=".", help="Project directory (default: current directory)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    init_parser = sub.add_parser("init", help="Scaffold entmig.yaml and a starter schema")
    init_parser.set_defaults(func=cmd_init)

    validate_parser = sub.add_parser("validate", help="Validate schema documents and relationships")
    validate_parser.add_argument("--output-json", action="store_true", help="Print issues as JSON")
    validate_parser.set_defaults(func=cmd_validate)

    generate_parser = sub.add_parser("generate", help="Write the next migration and update the snapshot")
    generate_parser.add_argument("--name", default="schema", help="Migration name used in the file name")
    generate_parser.add_argument("--dry-run", action="store_true", help="Print SQL without writing files")
    generate_parser.add_argument("--force", action="store_true", help="Ignore the cached schema hash")
    generate_parser.set_defaults(func=cmd_generate)

    plan_parser = sub.add_parser("plan", help="Show pending operations against the stored snapshot")
    plan_parser.add_argument("--output-json", action="store_true", help="Print an operation summary as JSON")
    plan_parser.set_defaults(func=cmd_plan)

    snapshot_parser = sub.add_parser("snapshot", help="Print the snapshot derived from the current schema")
    snapshot_parser.add_argument("--out", help="Write the snapshot JSON to this file")
    snapshot_parser.set_defaults(func=cmd_snapshot)

    diff_parser = sub.add_parser("diff", help="Diff two snapshots or schema files")
    diff_parser.add_argument("old", help="Old snapshot JSON or schema YAML")
    diff_parser.add_argument("new", help="New snapshot JSON or schema YAML")
    diff_parser.add_argument("--output-json", action="store_true", help="Print an operation summary as JSON")
    diff_parser.set_defaults(func=cmd_diff)

    doctor_parser = sub.add_parser("doctor", help="Run project diagnostics")
    doctor_parser.add_argument("--output-json", action="store_true", help="Print diagnostics as JSON")
    doctor_parser.set_defaults(func=cmd_doctor)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except SchemaValidationError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_INVALID
    except InvariantViolation as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL
    except (EntmigError, OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":
    raise SystemExit(main())

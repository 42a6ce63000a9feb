"""Project health diagnostics for ``entmig doctor``.

Checks:
  - entmig.yaml parses
  - schema files are discoverable, parse as YAML and match the document schema
  - the entity set synthesizes and validates
  - the persisted snapshot is readable
  - Python dependencies are importable
"""

import importlib
from collections import Counter
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml

from entmig_core.config import CONFIG_FILENAME, load_config
from entmig_core.errors import EntmigError
from entmig_core.loader import entities_from_document, find_schema_files, load_yaml_document, merge_documents
from entmig_core.schema import document_issues
from entmig_core.snapshot import load_schema_snapshot
from entmig_core.synthesize import finalize_entities

OK, WARN, ERROR = "ok", "warn", "error"
_MARKERS = {OK: "+", WARN: "!", ERROR: "x"}


@dataclass
class DiagnosticResult:
    name: str
    status: str
    message: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def _check_importable(module_name: str) -> DiagnosticResult:
    label = f"import {module_name}"
    try:
        importlib.import_module(module_name)
    except ImportError as exc:
        return DiagnosticResult(label, ERROR, str(exc))
    return DiagnosticResult(label, OK)


def _check_schema_file(path: Path, root: Path) -> DiagnosticResult:
    label = f"schema:{path.relative_to(root)}"
    try:
        document = load_yaml_document(str(path))
    except (yaml.YAMLError, ValueError, OSError) as exc:
        return DiagnosticResult(label, ERROR, f"Invalid YAML: {exc}")
    issues = document_issues(document)
    if issues:
        first = issues[0]
        return DiagnosticResult(label, ERROR, f"{len(issues)} issue(s), first at {first.path}: {first.message}")
    return DiagnosticResult(label, OK)


def _check_entities(files: List[Path]) -> DiagnosticResult:
    entities = entities_from_document(merge_documents(load_yaml_document(str(path)) for path in files))
    try:
        finalize_entities(entities)
    except EntmigError as exc:
        return DiagnosticResult("entities", ERROR, str(exc).splitlines()[0])
    return DiagnosticResult("entities", OK, f"{len(entities)} entities validate")


def _check_snapshot(snapshot_file: Path) -> DiagnosticResult:
    if not snapshot_file.exists():
        return DiagnosticResult("snapshot", WARN, "No snapshot yet; next generate is a first run")
    try:
        snapshot = load_schema_snapshot(snapshot_file)
    except EntmigError as exc:
        return DiagnosticResult("snapshot", ERROR, str(exc))
    return DiagnosticResult("snapshot", OK, f"{len(snapshot.tables)} table(s) recorded")


def run_diagnostics(project_dir: str) -> List[DiagnosticResult]:
    root = Path(project_dir).resolve()
    if not root.is_dir():
        return [DiagnosticResult("project_directory", ERROR, f"Not a directory: {root}")]
    results = [DiagnosticResult("project_directory", OK, str(root))]

    config_file = root / CONFIG_FILENAME
    try:
        config = load_config(str(root))
    except EntmigError as exc:
        results.append(DiagnosticResult("config", ERROR, str(exc)))
        return results
    if config_file.exists():
        results.append(DiagnosticResult("config", OK, str(config_file)))
    else:
        results.append(DiagnosticResult("config", WARN, f"No {CONFIG_FILENAME}; using defaults"))

    files = find_schema_files(str(root), config.schema)
    if files:
        results.append(DiagnosticResult("schema_files", OK, f"Found {len(files)} schema file(s)"))
        per_file = [_check_schema_file(path, root) for path in files]
        results.extend(per_file)
        # entity checks only make sense once every file parses
        if all(item.status == OK for item in per_file):
            results.append(_check_entities(files))
    else:
        results.append(DiagnosticResult("schema_files", WARN, f"No files match {config.schema}"))

    results.append(_check_snapshot(root / config.snapshot_file))
    results.extend(_check_importable(name) for name in ("yaml", "jsonschema", "networkx", "entmig_core"))
    return results



def _tally(results: List[DiagnosticResult]) -> Counter:
    counts = Counter({OK: 0, WARN: 0, ERROR: 0})
    counts.update(result.status for result in results)
    return counts


def format_diagnostics(results: List[DiagnosticResult]) -> str:
    lines = ["entmig doctor", "=" * 40]
    for result in results:
        line = f"  [{_MARKERS.get(result.status, '?')}] {result.name}"
        lines.append(f"{line}: {result.message}" if result.message else line)

    counts = _tally(results)
    if counts[ERROR]:
        status = "UNHEALTHY"
    elif counts[WARN]:
        status = "OK (with warnings)"
    else:
        status = "HEALTHY"
    lines += [
        "",
        f"Summary: {counts[OK]} ok, {counts[WARN]} warnings, {counts[ERROR]} errors",
        f"Status: {status}",
    ]
    return "\n".join(lines)


def diagnostics_as_json(results: List[DiagnosticResult]) -> Dict[str, Any]:
    counts = _tally(results)
    return {
        "checks": [result.to_dict() for result in results],
        "summary": {OK: counts[OK], WARN: counts[WARN], ERROR: counts[ERROR]},
        "healthy": counts[ERROR] == 0,
    }


import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import yaml

from entmig_core.issues import Issue
from entmig_core.model import Cascade, Edge, EdgeTarget, Entity, Field, Index, TO_ONE
from entmig_core.schema import document_issues
from entmig_core.sqltypes import KNOWN_TYPES, format_default

logger = logging.getLogger(__name__)


def load_yaml_document(path: str) -> Dict[str, Any]:
    doc_path = Path(path)
    if not doc_path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")

    with doc_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ValueError(f"Schema YAML must parse to an object/map at root: {path}")

    return data


def find_schema_files(root: str, pattern: str) -> List[Path]:
    base = Path(root)
    candidate = Path(pattern)
    if candidate.is_absolute():
        return sorted(Path(candidate.anchor).glob(str(candidate.relative_to(candidate.anchor))))
    return sorted(base.glob(pattern))


def merge_documents(documents: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {"entities": [], "extensions": []}
    for doc in documents:
        merged["entities"].extend(doc.get("entities", []) or [])
        for ext in doc.get("extensions", []) or []:
            if ext not in merged["extensions"]:
                merged["extensions"].append(ext)
    return merged


def _field_from_dict(raw: Dict[str, Any]) -> Field:
    type_name = str(raw.get("type", "text"))
    if type_name.lower() not in KNOWN_TYPES:
        logger.debug("field %s uses unregistered type %r; rendering verbatim", raw.get("name"), type_name)

    default = None
    if raw.get("default_now"):
        default = "now()"
    elif raw.get("default_expr"):
        default = str(raw["default_expr"])
    elif "default" in raw:
        default = format_default(raw["default"])

    identity = raw.get("identity") or ""
    if identity is True:
        identity = "by_default"

    values = raw.get("values") or raw.get("enum_values") or []
    if values and type_name == "text":
        type_name = "enum"

    return Field(
        name=str(raw.get("name", "")),
        type=type_name,
        column=str(raw.get("column", "") or ""),
        primary=bool(raw.get("primary", False)),
        nullable=bool(raw.get("nullable", False)),
        unique=bool(raw.get("unique", False)),
        default=default,
        computed=str(raw.get("computed", "") or ""),
        identity=str(identity),
        read_only=bool(raw.get("read_only", False)),
        length=raw.get("length"),
        precision=raw.get("precision"),
        scale=raw.get("scale"),
        element_type=str(raw.get("element_type", "") or ""),
        dimension=raw.get("dimension"),
        srid=raw.get("srid"),
        geometry_type=str(raw.get("geometry_type", "") or ""),
        enum_name=str(raw.get("enum_name", "") or ""),
        enum_values=[str(value) for value in values],
        lang_type=str(raw.get("lang_type", "") or ""),
        timeseries=bool(raw.get("timeseries", False)),
        annotations=dict(raw.get("annotations", {}) or {}),
    )


def _edge_from_dict(raw: Dict[str, Any]) -> Edge:
    annotations = dict(raw.get("annotations", {}) or {})
    if raw.get("shared_column"):
        annotations["shared_column"] = True
    return Edge(
        name=str(raw.get("name", "")),
        target=str(raw.get("target", "") or ""),
        kind=str(raw.get("kind", TO_ONE)),
        column=str(raw.get("column", "") or ""),
        ref_name=str(raw.get("ref", "") or ""),
        inverse_name=str(raw.get("inverse", "") or ""),
        through=str(raw.get("through", "") or ""),
        nullable=bool(raw.get("nullable", False)),
        unique=bool(raw.get("unique", False)),
        cascade=Cascade(
            on_delete=str(raw.get("on_delete", "") or ""),
            on_update=str(raw.get("on_update", "") or ""),
        ),
        polymorphic_targets=[
            EdgeTarget(entity=str(item.get("entity", "")), condition=str(item.get("condition", "") or ""))
            for item in raw.get("polymorphic", []) or []
        ],
        annotations=annotations,
    )


def _index_from_dict(raw: Dict[str, Any]) -> Index:
    return Index(
        name=str(raw.get("name", "")),
        columns=[str(col) for col in raw.get("columns", []) or []],
        unique=bool(raw.get("unique", False)),
        where=str(raw.get("where", "") or ""),
        method=str(raw.get("method", "") or ""),
        nulls_not_distinct=bool(raw.get("nulls_not_distinct", False)),
    )


def entities_from_document(document: Dict[str, Any]) -> List[Entity]:
    entities: List[Entity] = []
    for raw in document.get("entities", []) or []:
        entities.append(
            Entity(
                name=str(raw.get("name", "")),
                fields=[_field_from_dict(item) for item in raw.get("fields", []) or []],
                edges=[_edge_from_dict(item) for item in raw.get("edges", []) or []],
                indexes=[_index_from_dict(item) for item in raw.get("indexes", []) or []],
                annotations=dict(raw.get("annotations", {}) or {}),
            )
        )
    return entities


def load_schema_files(paths: Iterable[Path]) -> Tuple[Dict[str, Any], List[Issue]]:
    """Load and merge schema files, checking each against the document schema."""
    documents: List[Dict[str, Any]] = []
    issues: List[Issue] = []
    for path in paths:
        document = load_yaml_document(str(path))
        for issue in document_issues(document):
            issues.append(
                Issue(
                    severity=issue.severity,
                    code=issue.code,
                    message=issue.message,
                    path=f"{Path(path).name}:{issue.path}",
                    hint=issue.hint,
                )
            )
        documents.append(document)
    return merge_documents(documents), issues

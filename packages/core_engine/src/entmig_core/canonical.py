import hashlib
import json
from copy import deepcopy
from typing import Any, Dict, List


def _sort_by_name(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(deepcopy(items), key=lambda item: str(item.get("name", "")))


def _canonical_entity(entity: Dict[str, Any]) -> Dict[str, Any]:
    cloned = deepcopy(entity)
    # Field order decides column order, so it is kept as declared.
    cloned["fields"] = list(cloned.get("fields", []) or [])
    cloned["edges"] = _sort_by_name(cloned.get("edges", []) or [])
    cloned["indexes"] = _sort_by_name(cloned.get("indexes", []) or [])
    annotations = cloned.get("annotations")
    if isinstance(annotations, dict):
        cloned["annotations"] = {key: annotations[key] for key in sorted(annotations)}
    return cloned


def compile_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Order-insensitive form of a schema document."""
    entities = [_canonical_entity(entity) for entity in document.get("entities", []) or []]
    return {
        "entities": sorted(entities, key=lambda item: str(item.get("name", ""))),
        "extensions": sorted(set(document.get("extensions", []) or [])),
    }


def schema_input_hash(document: Dict[str, Any], extra: Any = None) -> str:
    payload = {"document": compile_document(document), "extra": extra}
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

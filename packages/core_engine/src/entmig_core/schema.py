import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from entmig_core.issues import DOCUMENT_INVALID, Issue, SNAPSHOT_INVALID

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
ENTITY_SCHEMA = SCHEMA_DIR / "entity.schema.json"
SNAPSHOT_SCHEMA = SCHEMA_DIR / "snapshot.schema.json"


@lru_cache(maxsize=None)
def load_schema(schema_path: str) -> Dict[str, Any]:
    """Read a bundled JSON Schema; results are cached per path."""
    path = Path(schema_path)
    if not path.is_file():
        raise FileNotFoundError(f"JSON schema missing: {schema_path}")
    return json.loads(path.read_text(encoding="utf-8"))


def json_pointer(parts: List[Any]) -> str:
    return "/" + "/".join(str(part) for part in parts)


def schema_issues(document: Dict[str, Any], schema: Dict[str, Any], code: str = DOCUMENT_INVALID) -> List[Issue]:
    """Structural problems of ``document`` against ``schema``, ordered by location."""
    errors = sorted(
        Draft202012Validator(schema).iter_errors(document),
        key=lambda err: ([str(part) for part in err.absolute_path], err.message),
    )
    return [
        Issue(severity="error", code=code, message=err.message, path=json_pointer(list(err.absolute_path)))
        for err in errors
    ]


def document_issues(document: Dict[str, Any]) -> List[Issue]:
    return schema_issues(document, load_schema(str(ENTITY_SCHEMA)))


def snapshot_issues(document: Dict[str, Any]) -> List[Issue]:
    return schema_issues(document, load_schema(str(SNAPSHOT_SCHEMA)), code=SNAPSHOT_INVALID)

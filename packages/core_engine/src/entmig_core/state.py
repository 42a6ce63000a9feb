"""Generator state cache.

Remembers the input hash of the last successful run so the CLI can decide
whether regeneration is required before calling into the engine.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"


def state_path(root: str, cache_dir: str) -> Path:
    return Path(root) / cache_dir / STATE_FILENAME


def load_state(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError:
        logger.warning("ignoring unreadable generator state %s", path)
        return {}
    return data if isinstance(data, dict) else {}


def save_state(path: Path, state: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def regeneration_required(path: Path, input_hash: str, snapshot_file: Path) -> Tuple[bool, str]:
    if not snapshot_file.exists():
        return True, "snapshot missing"
    previous = load_state(path).get("schemaHash")
    if previous is None:
        return True, "no previous run recorded"
    if previous != input_hash:
        return True, "schema inputs changed"
    return False, "schema inputs unchanged"


def record_generation(path: Path, input_hash: str, migration_file: str = "") -> None:
    state = load_state(path)
    state["schemaHash"] = input_hash
    if migration_file:
        state["lastMigration"] = migration_file
    save_state(path, state)

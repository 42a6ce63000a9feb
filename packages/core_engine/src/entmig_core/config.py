from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from entmig_core.errors import ConfigError
from entmig_core.snapshot import SNAPSHOT_FILENAME

CONFIG_FILENAME = "entmig.yaml"

DEFAULT_CONFIG = """project: example.com/app
schema: schema/*.yaml
migrations_dir: migrations
extensions: []
cache_dir: .entmig/cache
"""

_KNOWN_KEYS = {"project", "schema", "migrations_dir", "snapshot", "extensions", "cache_dir"}


@dataclass
class ProjectConfig:
    root: Path
    project: str = ""
    schema: str = "schema/*.yaml"
    migrations_dir: str = "migrations"
    snapshot: str = ""
    extensions: List[str] = field(default_factory=list)
    cache_dir: str = ".entmig/cache"

    @property
    def snapshot_file(self) -> str:
        return self.snapshot or f"{self.migrations_dir}/{SNAPSHOT_FILENAME}"


def _string(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"{CONFIG_FILENAME}: '{key}' must be a string")
    return value


def load_config(root: str) -> ProjectConfig:
    """Read ``entmig.yaml`` from ``root``; a missing file yields the defaults."""
    base = Path(root)
    path = base / CONFIG_FILENAME
    if not path.exists():
        return ProjectConfig(root=base)

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: configuration must be a mapping")

    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"{path}: unknown keys: {', '.join(unknown)}")

    extensions = data.get("extensions") or []
    if not isinstance(extensions, list) or not all(isinstance(item, str) for item in extensions):
        raise ConfigError(f"{path}: 'extensions' must be a list of names")

    return ProjectConfig(
        root=base,
        project=_string(data, "project", ""),
        schema=_string(data, "schema", "schema/*.yaml"),
        migrations_dir=_string(data, "migrations_dir", "migrations"),
        snapshot=_string(data, "snapshot", ""),
        extensions=list(extensions),
        cache_dir=_string(data, "cache_dir", ".entmig/cache"),
    )

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from entmig_core.canonical import compile_document, schema_input_hash
from entmig_core.config import ProjectConfig, load_config
from entmig_core.errors import ConfigError
from entmig_core.issues import has_errors
from entmig_core.loader import (
    entities_from_document,
    find_schema_files,
    load_schema_files,
    load_yaml_document,
    merge_documents,
)
from entmig_core.schema import ENTITY_SCHEMA, SNAPSHOT_SCHEMA, document_issues, load_schema
from entmig_core.state import load_state, record_generation, regeneration_required, state_path

USERS_YAML = """extensions: [citext]
entities:
  - name: User
    fields:
      - name: id
        type: uuid
        primary: true
      - name: email
        type: citext
        unique: true
      - name: active
        type: boolean
        default: true
      - name: nickname
        type: text
        default: "o'neil"
        nullable: true
"""

POSTS_YAML = """extensions: [citext, pg_trgm]
entities:
  - name: Post
    fields:
      - name: id
        type: uuid
        primary: true
      - name: author_id
        type: uuid
    edges:
      - name: author
        target: User
        column: author_id
        on_delete: cascade
        polymorphic:
          - entity: User
            condition: "kind = 'user'"
"""


def _write_project(root: Path) -> None:
    (root / "schema").mkdir()
    (root / "schema" / "users.yaml").write_text(USERS_YAML, encoding="utf-8")
    (root / "schema" / "posts.yaml").write_text(POSTS_YAML, encoding="utf-8")


class TestLoader:
    def test_loads_and_merges_schema_files(self, tmp_path):
        _write_project(tmp_path)
        files = find_schema_files(str(tmp_path), "schema/*.yaml")
        assert [path.name for path in files] == ["posts.yaml", "users.yaml"]

        document, issues = load_schema_files(files)
        assert issues == []
        assert [entity["name"] for entity in document["entities"]] == ["Post", "User"]
        assert document["extensions"] == ["citext", "pg_trgm"]

    def test_field_and_edge_attributes(self, tmp_path):
        _write_project(tmp_path)
        document, _ = load_schema_files(find_schema_files(str(tmp_path), "schema/*.yaml"))
        entities = {entity.name: entity for entity in entities_from_document(document)}

        user = entities["User"]
        assert user.fields[2].default == "TRUE"
        assert user.fields[3].default == "'o''neil'"

        edge = entities["Post"].edges[0]
        assert edge.cascade.on_delete == "cascade"
        assert edge.polymorphic_targets[0].entity == "User"
        assert edge.polymorphic_targets[0].condition == "kind = 'user'"

    def test_schema_issues_are_located_by_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("entities:\n  - name: Thing\n    colour: red\n", encoding="utf-8")
        _, issues = load_schema_files([path])
        assert has_errors(issues)
        assert issues[0].path == "bad.yaml:/entities/0"

    def test_non_mapping_root_is_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_yaml_document(str(path))

    def test_empty_file_is_empty_document(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_yaml_document(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_document(str(tmp_path / "nope.yaml"))

    def test_merge_deduplicates_extensions(self):
        merged = merge_documents([{"extensions": ["a"]}, {"extensions": ["a", "b"], "entities": [{"name": "X"}]}])
        assert merged == {"entities": [{"name": "X"}], "extensions": ["a", "b"]}


class TestBundledSchemas:
    def test_schemas_are_valid_json(self):
        assert load_schema(str(ENTITY_SCHEMA))["title"] == "entmig schema document"
        assert load_schema(str(SNAPSHOT_SCHEMA))["title"] == "entmig schema snapshot"

    def test_document_requires_entities(self):
        assert has_errors(document_issues({}))

    def test_unknown_edge_kind_is_reported(self):
        issues = document_issues(
            {"entities": [{"name": "A", "edges": [{"name": "b", "target": "B", "kind": "one_to_one"}]}]}
        )
        assert issues[0].path == "/entities/0/edges/0/kind"


class TestConfig:
    def test_defaults_when_missing(self, tmp_path):
        config = load_config(str(tmp_path))
        assert config.schema == "schema/*.yaml"
        assert config.migrations_dir == "migrations"
        assert config.snapshot_file == "migrations/schema.snapshot.json"
        assert config.extensions == []

    def test_reads_values(self, tmp_path):
        (tmp_path / "entmig.yaml").write_text(
            yaml.safe_dump(
                {
                    "project": "example.com/app",
                    "schema": "defs/**/*.yaml",
                    "migrations_dir": "db/migrations",
                    "snapshot": "db/snapshot.json",
                    "extensions": ["pgcrypto"],
                }
            ),
            encoding="utf-8",
        )
        config = load_config(str(tmp_path))
        assert config == ProjectConfig(
            root=tmp_path,
            project="example.com/app",
            schema="defs/**/*.yaml",
            migrations_dir="db/migrations",
            snapshot="db/snapshot.json",
            extensions=["pgcrypto"],
        )
        assert config.snapshot_file == "db/snapshot.json"

    def test_unknown_keys_are_rejected(self, tmp_path):
        (tmp_path / "entmig.yaml").write_text("schema: x\nmodel_glob: y\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="model_glob"):
            load_config(str(tmp_path))

    def test_invalid_yaml_is_rejected(self, tmp_path):
        (tmp_path / "entmig.yaml").write_text("schema: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(tmp_path))

    def test_extensions_must_be_strings(self, tmp_path):
        (tmp_path / "entmig.yaml").write_text("extensions: [1, 2]\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(tmp_path))


class TestStateAndHash:
    def test_hash_ignores_entity_and_edge_order(self):
        a = {
            "entities": [
                {"name": "B", "edges": [{"name": "y", "target": "A"}, {"name": "x", "target": "A"}]},
                {"name": "A"},
            ]
        }
        b = {
            "entities": [
                {"name": "A"},
                {"name": "B", "edges": [{"name": "x", "target": "A"}, {"name": "y", "target": "A"}]},
            ]
        }
        assert compile_document(a) == compile_document(b)
        assert schema_input_hash(a) == schema_input_hash(b)

    def test_hash_tracks_field_order(self):
        a = {"entities": [{"name": "A", "fields": [{"name": "x"}, {"name": "y"}]}]}
        b = {"entities": [{"name": "A", "fields": [{"name": "y"}, {"name": "x"}]}]}
        assert schema_input_hash(a) != schema_input_hash(b)

    def test_regeneration_decision(self, tmp_path):
        cache = state_path(str(tmp_path), ".entmig/cache")
        snapshot = tmp_path / "migrations" / "schema.snapshot.json"

        assert regeneration_required(cache, "abc", snapshot) == (True, "snapshot missing")
        snapshot.parent.mkdir(parents=True)
        snapshot.write_text("{}", encoding="utf-8")
        assert regeneration_required(cache, "abc", snapshot)[0] is True

        record_generation(cache, "abc", "migrations/1_schema.sql")
        assert load_state(cache) == {"schemaHash": "abc", "lastMigration": "migrations/1_schema.sql"}
        assert regeneration_required(cache, "abc", snapshot) == (False, "schema inputs unchanged")
        assert regeneration_required(cache, "def", snapshot) == (True, "schema inputs changed")

    def test_unreadable_state_is_ignored(self, tmp_path):
        cache = tmp_path / "state.json"
        cache.write_text("{broken", encoding="utf-8")
        assert load_state(cache) == {}

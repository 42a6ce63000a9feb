import sys
from pathlib import Path
from typing import Any, Dict

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from entmig_core.generators import (
    render_add_foreign_key,
    render_column_definition,
    render_create_index,
    render_create_table,
    render_initial_migration,
)
from entmig_core.loader import entities_from_document
from entmig_core.model import Field
from entmig_core.snapshot import ColumnSnapshot, ForeignKeySnapshot, IndexSnapshot, TableSnapshot
from entmig_core.sqltypes import field_sql_type, format_default, sql_action
from entmig_core.synthesize import finalize_entities


def _initial(*raw: Dict[str, Any], extensions=()) -> str:
    entities = finalize_entities(entities_from_document({"entities": list(raw)}))
    return render_initial_migration(entities, extensions)


class TestTypeFamilies:
    @pytest.mark.parametrize(
        "kwargs, expected",
        [
            ({"type": "string"}, "text"),
            ({"type": "int"}, "integer"),
            ({"type": "float"}, "double precision"),
            ({"type": "uuidv7"}, "uuid"),
            ({"type": "varchar", "length": 128}, "varchar(128)"),
            ({"type": "char"}, "char"),
            ({"type": "decimal", "precision": 10, "scale": 2}, "decimal(10,2)"),
            ({"type": "numeric", "precision": 8}, "numeric(8)"),
            ({"type": "jsonb"}, "jsonb"),
            ({"type": "array", "element_type": "integer"}, "integer[]"),
            ({"type": "array"}, "text[]"),
            ({"type": "vector", "dimension": 1536}, "vector(1536)"),
            ({"type": "geography", "geometry_type": "Point"}, "geography(Point)"),
            ({"type": "tstzrange"}, "tstzrange"),
            ({"type": "inet"}, "inet"),
            ({"type": "bit", "length": 8}, "bit(8)"),
            ({"type": "enum", "enum_values": ["a"]}, "text"),
            ({"type": "citext"}, "citext"),
        ],
    )
    def test_sql_types(self, kwargs, expected):
        assert field_sql_type(Field(name="f", **kwargs)) == expected

    def test_identity_clause(self):
        assert field_sql_type(Field(name="id", type="bigint", identity="always")) == "bigint GENERATED ALWAYS AS IDENTITY"

    @pytest.mark.parametrize(
        "value, expected",
        [(True, "TRUE"), (False, "FALSE"), (3, "3"), (1.5, "1.5"), ("it's", "'it''s'"), (None, "NULL")],
    )
    def test_literal_defaults(self, value, expected):
        assert format_default(value) == expected

    def test_actions(self):
        assert sql_action("set_null") == "SET NULL"
        assert sql_action("no_action") == "NO ACTION"
        assert sql_action("") == ""


class TestStatements:
    def test_plain_column(self):
        col = ColumnSnapshot(name="email", type="text", default="''", unique=True)
        assert render_column_definition(col) == "email text NOT NULL DEFAULT '' UNIQUE"

    def test_nullable_column(self):
        assert render_column_definition(ColumnSnapshot(name="bio", type="text", nullable=True)) == "bio text"

    def test_computed_column(self):
        col = ColumnSnapshot(
            name="total", type="numeric", generated_expr="price * qty", default="0", read_only=True
        )
        assert render_column_definition(col) == "total numeric GENERATED ALWAYS AS (price * qty) STORED"

    def test_create_table(self):
        table = TableSnapshot(
            name="pets",
            columns=[ColumnSnapshot(name="id", type="uuid"), ColumnSnapshot(name="user_id", type="uuid")],
            primary_key=["id"],
            foreign_keys=[
                ForeignKeySnapshot(
                    constraint="fk_pets_user_id",
                    column="user_id",
                    target_table="users",
                    target_column="id",
                    on_delete="CASCADE",
                )
            ],
        )
        assert render_create_table(table) == (
            "CREATE TABLE IF NOT EXISTS pets (\n"
            "    id uuid NOT NULL,\n"
            "    user_id uuid NOT NULL,\n"
            "    PRIMARY KEY (id),\n"
            "    CONSTRAINT fk_pets_user_id FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE\n"
            ");"
        )

    def test_add_foreign_key(self):
        fk = ForeignKeySnapshot(
            constraint="fk_posts_author_id",
            column="author_id",
            target_table="users",
            target_column="id",
            on_delete="SET NULL",
            on_update="CASCADE",
        )
        assert render_add_foreign_key("posts", fk) == (
            "ALTER TABLE posts ADD CONSTRAINT fk_posts_author_id FOREIGN KEY (author_id) "
            "REFERENCES users (id) ON DELETE SET NULL ON UPDATE CASCADE;"
        )

    def test_partial_index(self):
        idx = IndexSnapshot(
            name="users_email_idx",
            columns=["email"],
            unique=True,
            where="deleted_at IS NULL",
            method="btree",
            nulls_not_distinct=True,
        )
        assert render_create_index("users", idx) == (
            "CREATE UNIQUE INDEX IF NOT EXISTS users_email_idx ON users USING btree (email) "
            "WHERE deleted_at IS NULL NULLS NOT DISTINCT;"
        )


class TestInitialMigration:
    def test_to_many_edge_creates_foreign_key(self):
        sql = _initial(
            {
                "name": "User",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [{"name": "pets", "target": "Pet", "kind": "to_many"}],
            },
            {"name": "Pet", "fields": [{"name": "id", "type": "uuid", "primary": True}]},
        )
        assert "user_id uuid NOT NULL" in sql
        assert "CONSTRAINT fk_pets_user_id FOREIGN KEY (user_id) REFERENCES users (id)" in sql
        assert sql.index("CREATE TABLE IF NOT EXISTS users") < sql.index("CREATE TABLE IF NOT EXISTS pets")

    def test_many_to_many_join_table(self):
        sql = _initial(
            {
                "name": "User",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [{"name": "groups", "target": "Group", "kind": "many_to_many", "on_delete": "cascade"}],
            },
            {"name": "Group", "fields": [{"name": "id", "type": "uuid", "primary": True}]},
        )
        assert "CREATE TABLE IF NOT EXISTS groups_users (" in sql
        assert "PRIMARY KEY (group_id, user_id)" in sql
        assert (
            "CONSTRAINT fk_groups_users_group_id FOREIGN KEY (group_id) REFERENCES groups (id) ON DELETE CASCADE"
            in sql
        )
        assert (
            "CONSTRAINT fk_groups_users_user_id FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE"
            in sql
        )
        assert sql.rstrip().endswith(");")
        assert sql.index("groups_users (") > sql.index("TABLE IF NOT EXISTS users")

    def test_explicit_join_table_name(self):
        sql = _initial(
            {
                "name": "User",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [{"name": "workspaces", "target": "Workspace", "kind": "many_to_many", "through": "Memberships"}],
            },
            {"name": "Workspace", "fields": [{"name": "id", "type": "uuid", "primary": True}]},
        )
        assert "CREATE TABLE IF NOT EXISTS memberships (" in sql
        assert "fk_memberships_workspace_id" in sql

    def test_extensions_and_hypertable(self):
        sql = _initial(
            {
                "name": "Reading",
                "fields": [
                    {"name": "id", "type": "uuid", "primary": True},
                    {"name": "recorded_at", "type": "timestamptz", "timeseries": True},
                    {"name": "embedding", "type": "vector", "dimension": 3, "nullable": True},
                ],
            },
            extensions=["pgcrypto"],
        )
        statements = sql.strip().split("\n\n")
        assert statements[:3] == [
            "CREATE EXTENSION IF NOT EXISTS pgcrypto;",
            "CREATE EXTENSION IF NOT EXISTS timescaledb;",
            "CREATE EXTENSION IF NOT EXISTS vector;",
        ]
        assert statements[-1] == "SELECT create_hypertable('readings', 'recorded_at', if_not_exists => TRUE);"

    def test_cyclic_keys_are_added_after_tables(self):
        sql = _initial(
            {
                "name": "Author",
                "fields": [
                    {"name": "id", "type": "uuid", "primary": True},
                    {"name": "featured_book_id", "type": "uuid", "nullable": True},
                ],
                "edges": [{"name": "featured_book", "target": "Book", "column": "featured_book_id", "nullable": True}],
            },
            {
                "name": "Book",
                "fields": [
                    {"name": "id", "type": "uuid", "primary": True},
                    {"name": "writer_id", "type": "uuid"},
                ],
                "edges": [{"name": "writer", "target": "Author", "column": "writer_id"}],
            },
        )
        statements = sql.strip().split("\n\n")
        assert statements[0].startswith("CREATE TABLE IF NOT EXISTS authors")
        assert "fk_authors_featured_book_id" not in statements[0]
        assert statements[1].startswith("CREATE TABLE IF NOT EXISTS books")
        assert statements[-1].startswith("ALTER TABLE authors ADD CONSTRAINT fk_authors_featured_book_id")

    def test_output_is_deterministic_across_input_order(self):
        user = {
            "name": "User",
            "fields": [{"name": "id", "type": "uuid", "primary": True}],
            "edges": [{"name": "pets", "target": "Pet", "kind": "to_many"}],
        }
        pet = {"name": "Pet", "fields": [{"name": "id", "type": "uuid", "primary": True}]}
        assert _initial(user, pet) == _initial(pet, user)

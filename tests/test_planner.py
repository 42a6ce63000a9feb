import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from entmig_core.loader import entities_from_document
from entmig_core.planner import build_migration_plan, dependency_graph, order_tables
from entmig_core.snapshot import ForeignKeySnapshot, TableSnapshot, build_schema_snapshot
from entmig_core.synthesize import finalize_entities


def _finalized(*raw: Dict[str, Any]):
    return finalize_entities(entities_from_document({"entities": list(raw)}))


def _fk(table: str, target: str) -> ForeignKeySnapshot:
    column = target.rstrip("s") + "_id"
    return ForeignKeySnapshot(
        constraint=f"fk_{table}_{column}",
        column=column,
        target_table=target,
        target_column="id",
    )


def _table(name: str, *targets: str, join: bool = False) -> TableSnapshot:
    return TableSnapshot(name=name, primary_key=["id"], foreign_keys=[_fk(name, t) for t in targets], is_join_table=join)


def _names(tables: List[Any]) -> List[str]:
    return [table.name for table in tables]


class TestOrderTables:
    def test_referenced_tables_come_first(self):
        tables = [_table("comments", "posts", "users"), _table("posts", "users"), _table("users")]
        ordered, deferred = order_tables(tables)
        assert _names(ordered) == ["users", "posts", "comments"]
        assert deferred == []

    def test_alphabetical_tie_break(self):
        ordered, _ = order_tables([_table("zebras"), _table("apples"), _table("mangos")])
        assert _names(ordered) == ["apples", "mangos", "zebras"]

    def test_self_reference_does_not_block(self):
        ordered, deferred = order_tables([_table("nodes", "nodes")])
        assert _names(ordered) == ["nodes"]
        assert deferred == []

    def test_join_tables_come_last(self):
        tables = [_table("groups_users", "groups", "users", join=True), _table("users"), _table("groups")]
        ordered, _ = order_tables(tables)
        assert _names(ordered) == ["groups", "users", "groups_users"]

    def test_cycle_degrades_to_deferred_keys(self):
        tables = [_table("as", "bs"), _table("bs", "as"), _table("cs", "as")]
        ordered, deferred = order_tables(tables)
        assert _names(ordered) == ["as", "bs", "cs"]
        assert [(name, fk.constraint) for name, fk in deferred] == [("as", "fk_as_b_id")]

    def test_cycle_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="entmig_core.planner"):
            order_tables([_table("as", "bs"), _table("bs", "as")])
        assert "foreign key cycle between as, bs; creating as first" in caplog.text

    def test_dependency_graph_points_from_target_to_referencer(self):
        graph = dependency_graph(
            [_table("posts", "users"), _table("users", "users"), _table("posts_tags", "posts", join=True)]
        )
        assert sorted(graph.nodes) == ["posts", "users"]
        assert list(graph.edges) == [("users", "posts")]

    def test_every_referenced_table_precedes_referencer(self):
        entities = _finalized(
            {"name": "Workspace", "fields": [{"name": "id", "type": "uuid", "primary": True}]},
            {
                "name": "Project",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [{"name": "workspace", "target": "Workspace"}],
            },
            {
                "name": "Task",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [
                    {"name": "project", "target": "Project"},
                    {"name": "assignee", "target": "Account", "nullable": True},
                ],
            },
            {"name": "Account", "fields": [{"name": "id", "type": "uuid", "primary": True}]},
        )
        snapshot = build_schema_snapshot(entities)
        ordered, deferred = order_tables(snapshot.tables)
        position = {table.name: idx for idx, table in enumerate(ordered)}
        assert deferred == []
        for table in snapshot.tables:
            for fk in table.foreign_keys:
                if fk.target_table != table.name:
                    assert position[fk.target_table] < position[table.name]


class TestMigrationPlan:
    def test_plan_collects_foreign_keys_per_table(self):
        entities = _finalized(
            {
                "name": "User",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [{"name": "pets", "target": "Pet", "kind": "to_many", "on_delete": "cascade"}],
            },
            {"name": "Pet", "fields": [{"name": "id", "type": "uuid", "primary": True}]},
        )
        plans, joins = build_migration_plan(entities)
        assert joins == []
        pet = next(plan for plan in plans if plan.table == "pets")
        assert len(pet.foreign_keys) == 1
        fk = pet.foreign_keys[0]
        assert (fk.column, fk.target_table, fk.target_column) == ("user_id", "users", "id")
        assert fk.constraint == "fk_pets_user_id"
        assert fk.on_delete == "CASCADE"

    def test_self_many_to_many_join_columns(self):
        entities = _finalized(
            {
                "name": "User",
                "fields": [{"name": "id", "type": "uuid", "primary": True}],
                "edges": [{"name": "friends", "target": "User", "kind": "many_to_many", "through": "friendships"}],
            }
        )
        _, joins = build_migration_plan(entities)
        assert len(joins) == 1
        join = joins[0]
        assert join.name == "friendships"
        assert sorted([join.left.column, join.right.column]) == ["friends_id", "user_id"]
        assert all(fk.target_table == "users" for fk in join.foreign_keys())

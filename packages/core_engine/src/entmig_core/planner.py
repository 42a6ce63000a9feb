"""Relational plan derived from finalized entities, and table creation order."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import networkx as nx

from entmig_core.model import (
    Entity,
    Field,
    MANY_TO_MANY,
    TO_MANY,
    TO_ONE,
    Edge,
    edge_column,
    field_column,
    index_entities,
    join_table_name,
    resolve_ref_column,
)
from entmig_core.naming import fk_constraint_name, foreign_key_column, normalize_identifier, table_name
from entmig_core.sqltypes import reference_sql_type, sql_action

logger = logging.getLogger(__name__)


@dataclass
class ForeignKey:
    column: str
    target_table: str
    target_column: str
    constraint: str
    on_delete: str = ""
    on_update: str = ""


@dataclass
class EntityMigration:
    entity: Entity
    table: str
    fields: List[Field] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)


@dataclass
class JoinColumn:
    column: str
    sql_type: str
    target_table: str
    target_column: str


@dataclass
class JoinTable:
    name: str
    left: JoinColumn
    right: JoinColumn
    on_delete: str = ""
    on_update: str = ""

    def foreign_keys(self) -> List[ForeignKey]:
        return [
            ForeignKey(
                column=side.column,
                target_table=side.target_table,
                target_column=side.target_column,
                constraint=fk_constraint_name(self.name, side.column),
                on_delete=self.on_delete,
                on_update=self.on_update,
            )
            for side in (self.left, self.right)
        ]


def _join_table(name: str, owner: Entity, edge: Edge, target: Entity) -> JoinTable:
    owner_pk = owner.primary_field()
    target_pk = target.primary_field()
    owner_column = foreign_key_column(owner.name)
    target_column = foreign_key_column(target.name)
    if owner.name == target.name:
        target_column = f"{normalize_identifier(edge.name)}_id"
    sides = sorted(
        [
            (table_name(owner.name), owner_column, owner_pk),
            (table_name(target.name), target_column, target_pk),
        ],
        key=lambda item: (item[0], item[1]),
    )
    left, right = (
        JoinColumn(
            column=column,
            sql_type=reference_sql_type(pk),
            target_table=table,
            target_column=field_column(pk),
        )
        for table, column, pk in sides
    )
    return JoinTable(
        name=name,
        left=left,
        right=right,
        on_delete=sql_action(edge.cascade.on_delete),
        on_update=sql_action(edge.cascade.on_update),
    )


def build_migration_plan(entities: List[Entity]) -> Tuple[List[EntityMigration], List[JoinTable]]:
    by_name = index_entities(entities)
    ordered = sorted(entities, key=lambda item: item.name)
    keys: Dict[str, Dict[str, ForeignKey]] = {table_name(entity.name): {} for entity in ordered}
    joins: Dict[str, JoinTable] = {}

    for entity in ordered:
        table = table_name(entity.name)
        for edge in entity.edges:
            target = by_name.get(edge.target)
            if target is None or target.primary_field() is None:
                continue
            if edge.kind == TO_ONE:
                column = edge_column(edge)
                if column in keys[table]:
                    continue
                keys[table][column] = ForeignKey(
                    column=column,
                    target_table=table_name(target.name),
                    target_column=field_column(target.primary_field()),
                    constraint=fk_constraint_name(table, column),
                    on_delete=sql_action(edge.cascade.on_delete),
                    on_update=sql_action(edge.cascade.on_update),
                )
            elif edge.kind == MANY_TO_MANY and entity.primary_field() is not None:
                name = join_table_name(entity, edge)
                if name not in joins:
                    joins[name] = _join_table(name, entity, edge, target)

    # A to-many edge whose to-one half could not be synthesized still owns a key.
    for entity in ordered:
        primary = entity.primary_field()
        if primary is None:
            continue
        for edge in entity.edges:
            if edge.kind != TO_MANY or edge.target not in by_name:
                continue
            target_table = table_name(edge.target)
            column = resolve_ref_column(entity, edge, by_name)
            if column in keys[target_table] or by_name[edge.target].field_by_column(column) is None:
                continue
            logger.debug("%s.%s: foreign key %s.%s taken from the to-many side", entity.name, edge.name, target_table, column)
            keys[target_table][column] = ForeignKey(
                column=column,
                target_table=table_name(entity.name),
                target_column=field_column(primary),
                constraint=fk_constraint_name(target_table, column),
                on_delete=sql_action(edge.cascade.on_delete),
                on_update=sql_action(edge.cascade.on_update),
            )

    plans = [
        EntityMigration(
            entity=entity,
            table=table_name(entity.name),
            fields=list(entity.fields),
            foreign_keys=sorted(keys[table_name(entity.name)].values(), key=lambda fk: fk.constraint),
        )
        for entity in ordered
    ]
    return plans, [joins[name] for name in sorted(joins)]


def dependency_graph(tables: Sequence[Any]) -> nx.DiGraph:
    """Graph of regular tables with an edge from each key target to its referencer."""
    graph = nx.DiGraph()
    names = {table.name for table in tables if not table.is_join_table}
    graph.add_nodes_from(names)
    for table in tables:
        if table.is_join_table:
            continue
        for fk in table.foreign_keys:
            if fk.target_table != table.name and fk.target_table in names:
                graph.add_edge(fk.target_table, table.name)
    return graph


def _break_cycles(graph: nx.DiGraph, regular: Dict[str, Any]) -> Tuple[List[str], List[Tuple[str, Any]]]:
    order: List[str] = []
    deferred: List[Tuple[str, Any]] = []
    while graph:
        ready = sorted(node for node, degree in graph.in_degree() if degree == 0)
        if ready:
            name = ready[0]
        else:
            name = min(graph)
            loop = nx.find_cycle(graph, source=name, orientation="reverse")
            cycle = sorted({node for edge in loop for node in edge[:2]})
            logger.warning("foreign key cycle between %s; creating %s first", ", ".join(cycle), name)
            deferred.extend(
                (name, fk) for fk in regular[name].foreign_keys if graph.has_edge(fk.target_table, name)
            )
        order.append(name)
        graph.remove_node(name)
    return order, deferred


def order_tables(tables: Sequence[Any]) -> Tuple[List[Any], List[Tuple[str, Any]]]:
    """Order tables so every foreign-key target is created before its referencer.

    Works on any records exposing ``name``, ``foreign_keys`` and
    ``is_join_table``. Ties break alphabetically and join tables come last.
    When a cycle blocks progress the alphabetically smallest remaining table
    is emitted and its keys to tables not yet created are returned as
    deferred ``(table, foreign_key)`` pairs.
    """
    regular = {table.name: table for table in tables if not table.is_join_table}
    join_tables = sorted((table for table in tables if table.is_join_table), key=lambda item: item.name)
    graph = dependency_graph(tables)
    try:
        names = list(nx.lexicographical_topological_sort(graph))
        deferred: List[Tuple[str, Any]] = []
    except nx.NetworkXUnfeasible:
        names, deferred = _break_cycles(graph, regular)
    return [regular[name] for name in names] + join_tables, deferred


from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Set, Tuple

from entmig_core.errors import SchemaValidationError
from entmig_core.model import (
    Edge,
    Entity,
    Field,
    MANY_TO_MANY,
    SET_NULL,
    SHARED_COLUMN,
    TO_MANY,
    TO_ONE,
    edge_column,
    field_column,
    find_counterpart,
    index_entities,
    join_table_name,
    resolve_ref_column,
)
from entmig_core.sqltypes import canonical_type, is_timestamp_type, reference_sql_type


@dataclass
class SchemaProblem:
    entity: str = ""
    edge: str = ""
    field: str = ""
    column: str = ""
    target: str = ""
    detail: str = ""
    suggestion: str = ""

    def location(self) -> str:
        return ".".join(part for part in (self.entity, self.edge, self.field) if part)

    def describe(self) -> str:
        location = self.location()
        if not self.detail:
            if not location:
                return "invalid schema configuration"
            return f"{location}: invalid schema configuration"
        if not location:
            return self.detail
        return f"{location}: {self.detail}"


def edit_distance(left: str, right: str) -> int:
    previous = list(range(len(right) + 1))
    for i, lch in enumerate(left, start=1):
        current = [i]
        for j, rch in enumerate(right, start=1):
            cost = 0 if lch == rch else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def suggest_entity_name(target: str, names: List[str]) -> str:
    best = ""
    best_dist = -1
    lowered = target.lower()
    for name in sorted(names):
        dist = edit_distance(lowered, name.lower())
        if best_dist == -1 or dist < best_dist:
            best, best_dist = name, dist
    if not best or best_dist > 3:
        return ""
    return f'Did you mean "{best}"?'


def _type_mismatch_suggestion(owner: Entity, item: Field, target: Entity, primary: Field) -> str:
    if canonical_type(primary.type) == "uuid":
        return f"Declare {owner.name}.{item.name} with type: uuid to match {target.name}.{primary.name}."
    return (
        f"Ensure {owner.name}.{item.name} uses the same type as "
        f"{target.name}.{primary.name} ({reference_sql_type(primary)})."
    )


def _fields_by_column(entity: Entity) -> Dict[str, Field]:
    return {field_column(item): item for item in entity.fields}


def _check_entity(entity: Entity) -> List[SchemaProblem]:
    problems: List[SchemaProblem] = []
    primaries = [item for item in entity.fields if item.primary]
    if len(primaries) != 1:
        problems.append(
            SchemaProblem(
                entity=entity.name,
                detail=f"entity declares {len(primaries)} primary keys; exactly one is required",
                suggestion="Mark a single field with primary: true.",
            )
        )

    seen: Set[str] = set()
    for item in entity.fields:
        column = field_column(item)
        if column in seen:
            problems.append(
                SchemaProblem(
                    entity=entity.name,
                    field=item.name,
                    column=column,
                    detail=f'column "{column}" is declared more than once',
                    suggestion="Rename the field or set a distinct column.",
                )
            )
        seen.add(column)

    for index in entity.indexes:
        for column in index.columns:
            if column not in seen:
                problems.append(
                    SchemaProblem(
                        entity=entity.name,
                        column=column,
                        detail=f'index "{index.name}" references unknown column "{column}"',
                    )
                )

    partitions = [item for item in entity.fields if item.timeseries]
    if len(partitions) > 1:
        problems.append(
            SchemaProblem(
                entity=entity.name,
                detail=f"{len(partitions)} fields are marked timeseries; at most one is allowed",
            )
        )
    for item in partitions:
        if not is_timestamp_type(item):
            problems.append(
                SchemaProblem(
                    entity=entity.name,
                    field=item.name,
                    detail=f'timeseries column "{field_column(item)}" must be a timestamp type, not {canonical_type(item.type)}',
                    suggestion="Use timestamptz for the partition column.",
                )
            )
    return problems


def _check_to_one(
    entity: Entity,
    edge: Edge,
    target: Entity,
    fields: Dict[str, Field],
    owners: Dict[str, Edge],
) -> List[SchemaProblem]:
    problems: List[SchemaProblem] = []
    column = edge_column(edge)

    existing = owners.get(column)
    if existing is None:
        owners[column] = edge
    elif not (existing.annotations.get(SHARED_COLUMN) and edge.annotations.get(SHARED_COLUMN)):
        problems.append(
            SchemaProblem(
                entity=entity.name,
                edge=edge.name,
                target=edge.target,
                column=column,
                detail=f'edges "{existing.name}" and "{edge.name}" both reference column "{column}"',
                suggestion="Give each edge its own column, or mark both with shared_column: true.",
            )
        )

    if entity.name == edge.target and not edge.column:
        problems.append(
            SchemaProblem(
                entity=entity.name,
                edge=edge.name,
                detail="self-referential to-one edges must declare column to avoid ambiguous column names",
                suggestion=f'Set column: "{column}" on edge {edge.name} to pin the column name.',
            )
        )

    if edge.generated:
        return problems

    item = fields.get(column)
    if item is None:
        if edge.column:
            problems.append(
                SchemaProblem(
                    entity=entity.name,
                    edge=edge.name,
                    column=edge.column,
                    target=edge.target,
                    detail=f'edge overrides column "{edge.column}" but {entity.name}.{edge.column} is not defined',
                    suggestion=f'Add a field named "{edge.column}" to {entity.name} or remove the column override.',
                )
            )
        return problems

    if SET_NULL in (edge.cascade.on_delete, edge.cascade.on_update) and not item.nullable:
        problems.append(
            SchemaProblem(
                entity=entity.name,
                edge=edge.name,
                field=item.name,
                column=column,
                detail=f'set_null action requires nullable column "{column}"',
                suggestion=f"Mark {entity.name}.{item.name} nullable: true or choose another action.",
            )
        )

    primary = target.primary_field()
    if primary is None or reference_sql_type(item) == reference_sql_type(primary):
        return problems
    problems.append(
        SchemaProblem(
            entity=entity.name,
            edge=edge.name,
            field=item.name,
            column=column,
            target=target.name,
            detail=(
                f'foreign key column "{column}" uses type {reference_sql_type(item)} '
                f"but {target.name}.{primary.name} expects {reference_sql_type(primary)}"
            ),
            suggestion=_type_mismatch_suggestion(entity, item, target, primary),
        )
    )
    return problems


def _check_to_many(entity: Entity, edge: Edge, target: Entity, by_name: Dict[str, Entity]) -> List[SchemaProblem]:
    problems: List[SchemaProblem] = []
    if edge.generated:
        return problems
    if entity.name == edge.target and not edge.ref_name:
        problems.append(
            SchemaProblem(
                entity=entity.name,
                edge=edge.name,
                detail="self-referential to-many edges must use ref to point at the owning column",
                suggestion=f'Set ref: "<edge>" on edge {edge.name} to reference the owning column.',
            )
        )
        return problems

    primary = entity.primary_field()
    ref_column = resolve_ref_column(entity, edge, by_name)
    item = _fields_by_column(target).get(ref_column)
    if item is None or primary is None:
        return problems
    if reference_sql_type(item) != reference_sql_type(primary):
        problems.append(
            SchemaProblem(
                entity=target.name,
                edge=edge.name,
                field=item.name,
                column=ref_column,
                target=entity.name,
                detail=(
                    f'reverse edge column "{ref_column}" uses type {reference_sql_type(item)} '
                    f"but {entity.name}.{primary.name} expects {reference_sql_type(primary)}"
                ),
                suggestion=_type_mismatch_suggestion(target, item, entity, primary),
            )
        )
    return problems


def collect_problems(entities: List[Entity]) -> List[SchemaProblem]:
    by_name = index_entities(entities)
    known = list(by_name)
    problems: List[SchemaProblem] = []
    join_pairs: Dict[str, Tuple[FrozenSet[str], str]] = {}
    reported_pairs: Set[FrozenSet[Tuple[str, str]]] = set()

    for entity in entities:
        problems.extend(_check_entity(entity))
        fields = _fields_by_column(entity)
        owners: Dict[str, Edge] = {}

        for edge in entity.edges:
            if not edge.target:
                problems.append(
                    SchemaProblem(
                        entity=entity.name,
                        edge=edge.name,
                        detail="edge missing target entity",
                        suggestion="Set the target entity name or remove the edge.",
                    )
                )
                continue
            target = by_name.get(edge.target)
            if target is None:
                problems.append(
                    SchemaProblem(
                        entity=entity.name,
                        edge=edge.name,
                        target=edge.target,
                        detail=f'target entity "{edge.target}" not found',
                        suggestion=suggest_entity_name(edge.target, known),
                    )
                )
                continue

            for alt in edge.polymorphic_targets:
                if alt.entity not in by_name:
                    problems.append(
                        SchemaProblem(
                            entity=entity.name,
                            edge=edge.name,
                            target=alt.entity,
                            detail=f'polymorphic target entity "{alt.entity}" not found',
                            suggestion=suggest_entity_name(alt.entity, known),
                        )
                    )

            if edge.kind == TO_ONE:
                problems.extend(_check_to_one(entity, edge, target, fields, owners))
            elif edge.kind == TO_MANY:
                problems.extend(_check_to_many(entity, edge, target, by_name))
            elif edge.kind == MANY_TO_MANY:
                name = join_table_name(entity, edge)
                pair = frozenset((entity.name, edge.target))
                previous = join_pairs.get(name)
                if previous is None:
                    join_pairs[name] = (pair, f"{entity.name}.{edge.name}")
                elif previous[0] != pair:
                    problems.append(
                        SchemaProblem(
                            entity=entity.name,
                            edge=edge.name,
                            detail=f'join table "{name}" already joins a different pair of entities ({previous[1]})',
                            suggestion="Set a distinct through table for this edge.",
                        )
                    )
            else:
                problems.append(
                    SchemaProblem(
                        entity=entity.name,
                        edge=edge.name,
                        detail=f'unknown edge kind "{edge.kind}"',
                        suggestion="Use one of to_one, to_many, many_to_many.",
                    )
                )
                continue

            counterpart = find_counterpart(entity, edge, by_name)
            if counterpart is None or not (edge.cascade.is_set() and counterpart.cascade.is_set()):
                continue
            key = frozenset(((entity.name, edge.name), (edge.target, counterpart.name)))
            if key in reported_pairs:
                continue
            if edge.cascade != counterpart.cascade:
                reported_pairs.add(key)
                problems.append(
                    SchemaProblem(
                        entity=entity.name,
                        edge=edge.name,
                        target=edge.target,
                        detail=(
                            f"cascade policy differs from counterpart {edge.target}.{counterpart.name}"
                        ),
                        suggestion="Declare the cascade on one side only, or make both sides agree.",
                    )
                )
    return problems


def validate_entities(entities: List[Entity]) -> None:
    problems = collect_problems(entities)
    if problems:
        raise SchemaValidationError(problems)

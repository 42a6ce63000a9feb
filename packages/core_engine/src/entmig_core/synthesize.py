"""Fill in the parts of the relational model an author leaves implicit.

Every pass mutates the entity list in place and is idempotent: running
``finalize_entities`` over an already-finalized list adds nothing.
"""

import logging
from typing import Dict, List, Tuple

from entmig_core.errors import EnumConflictError
from entmig_core.model import (
    Cascade,
    Edge,
    Entity,
    Field,
    GENERATED_FOREIGN_KEY,
    GENERATED_INVERSE,
    MANY_TO_MANY,
    TO_MANY,
    TO_ONE,
    edge_column,
    find_counterpart,
    index_entities,
    join_table_name,
    resolve_ref_column,
)
from entmig_core.naming import export_name, normalize_identifier, pluralize, table_name, to_snake
from entmig_core.sqltypes import canonical_type, reference_type_tag
from entmig_core.validation import validate_entities

logger = logging.getLogger(__name__)


def normalize_entities(entities: List[Entity]) -> None:
    for entity in entities:
        for item in entity.fields:
            item.column = normalize_identifier(item.column) or normalize_identifier(item.name)
        for edge in entity.edges:
            edge.column = normalize_identifier(edge.column)
            edge.through = normalize_identifier(edge.through)
        for index in entity.indexes:
            index.columns = [normalize_identifier(col) for col in index.columns]
            if not index.name:
                index.name = f"{table_name(entity.name)}_{'_'.join(index.columns)}_idx"


def ensure_primary_keys(entities: List[Entity]) -> None:
    for entity in entities:
        if entity.primary_field() is not None:
            continue
        existing = entity.field_by_column("id")
        if existing is not None:
            existing.primary = True
            logger.debug("%s: promoting existing id column to primary key", entity.name)
            continue
        entity.fields.insert(0, Field(name="id", type="uuid", column="id", primary=True))
        logger.debug("%s: added default uuid primary key", entity.name)


def assign_enum_metadata(entities: List[Entity]) -> None:
    """Name every enum field and refuse one name bound to two value sets."""
    seen: Dict[str, Tuple[List[str], str]] = {}
    for entity in entities:
        for item in entity.fields:
            if canonical_type(item.type) != "enum" and not item.enum_values:
                continue
            if not item.enum_name:
                item.enum_name = export_name(entity.name) + export_name(item.name)
            location = f"{entity.name}.{item.name}"
            previous = seen.get(item.enum_name)
            if previous is None:
                seen[item.enum_name] = (list(item.enum_values), location)
                continue
            if previous[0] != item.enum_values:
                raise EnumConflictError(item.enum_name, previous[0], item.enum_values, location=location)


def _align_cascade(edge: Edge, counterpart: Edge) -> None:
    if edge.cascade.is_set() and not counterpart.cascade.is_set():
        counterpart.cascade = Cascade(on_delete=edge.cascade.on_delete, on_update=edge.cascade.on_update)


def _build_inverse(owner: Entity, edge: Edge, entities: Dict[str, Entity]) -> Edge:
    owner_snake = to_snake(owner.name)
    cascade = Cascade(on_delete=edge.cascade.on_delete, on_update=edge.cascade.on_update)
    annotations = {GENERATED_INVERSE: True}
    if edge.kind == TO_MANY:
        return Edge(
            name=owner_snake,
            target=owner.name,
            kind=TO_ONE,
            column=resolve_ref_column(owner, edge, entities),
            ref_name=edge.name,
            inverse_name=edge.name,
            nullable=edge.nullable,
            cascade=cascade,
            annotations=annotations,
        )
    if edge.kind == TO_ONE:
        return Edge(
            name=pluralize(owner_snake),
            target=owner.name,
            kind=TO_MANY,
            column=edge_column(edge),
            ref_name=edge.name,
            inverse_name=edge.name,
            cascade=cascade,
            annotations=annotations,
        )
    return Edge(
        name=pluralize(owner_snake),
        target=owner.name,
        kind=MANY_TO_MANY,
        through=join_table_name(owner, edge),
        inverse_name=edge.name,
        cascade=cascade,
        annotations=annotations,
    )


def synthesize_inverse_edges(entities: List[Entity]) -> int:
    """Add the missing half of every relationship. Returns how many edges were added."""
    by_name = index_entities(entities)
    added = 0
    for entity in sorted(entities, key=lambda item: item.name):
        for edge in list(entity.edges):
            target = by_name.get(edge.target)
            if target is None:
                continue
            if edge.kind == MANY_TO_MANY and edge.target == entity.name:
                continue

            counterpart = find_counterpart(entity, edge, by_name)
            if counterpart is not None:
                _align_cascade(edge, counterpart)
                _align_cascade(counterpart, edge)
                continue

            inverse = _build_inverse(entity, edge, by_name)
            if target.edge_named(inverse.name) is not None:
                logger.debug(
                    "%s.%s: inverse %s.%s already names another edge; not synthesized",
                    entity.name,
                    edge.name,
                    target.name,
                    inverse.name,
                )
                continue
            target.edges.append(inverse)
            added += 1
            logger.debug("synthesized %s edge %s.%s for %s.%s", inverse.kind, target.name, inverse.name, entity.name, edge.name)
    return added


def derive_foreign_key_fields(entities: List[Entity]) -> int:
    by_name = index_entities(entities)
    added = 0
    for entity in entities:
        for edge in entity.edges:
            if edge.kind != TO_ONE:
                continue
            if edge.column and not edge.generated:
                continue
            if edge.target == entity.name and not edge.column:
                continue
            target = by_name.get(edge.target)
            if target is None:
                continue
            primary = target.primary_field()
            if primary is None:
                continue
            column = edge_column(edge)
            if entity.field_by_column(column) is not None:
                continue
            entity.fields.append(
                Field(
                    name=column,
                    type=reference_type_tag(primary),
                    column=column,
                    nullable=edge.nullable,
                    unique=edge.unique,
                    length=primary.length,
                    precision=primary.precision,
                    scale=primary.scale,
                    annotations={GENERATED_FOREIGN_KEY: True},
                )
            )
            added += 1
            logger.debug("%s: derived foreign key column %s -> %s", entity.name, column, target.name)
    return added


def finalize_entities(entities: List[Entity]) -> List[Entity]:
    normalize_entities(entities)
    ensure_primary_keys(entities)
    assign_enum_metadata(entities)
    synthesize_inverse_edges(entities)
    derive_foreign_key_fields(entities)
    validate_entities(entities)
    return entities

"""Entity graph consumed by the synthesizer, validator and planner.

Edges never point at each other. An edge and its inverse are two independent
records on two entities; ``find_counterpart`` pairs them by looking up the
owner, edge name and target on the target side.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from entmig_core.naming import default_join_table_name, foreign_key_column, normalize_identifier

TO_ONE = "to_one"
TO_MANY = "to_many"
MANY_TO_MANY = "many_to_many"
EDGE_KINDS = (TO_ONE, TO_MANY, MANY_TO_MANY)

NO_ACTION = "no_action"
CASCADE = "cascade"
RESTRICT = "restrict"
SET_NULL = "set_null"
SET_DEFAULT = "set_default"
REFERENTIAL_ACTIONS = (NO_ACTION, CASCADE, RESTRICT, SET_NULL, SET_DEFAULT)

IDENTITY_ALWAYS = "always"
IDENTITY_BY_DEFAULT = "by_default"

GENERATED_INVERSE = "generated_inverse"
GENERATED_FOREIGN_KEY = "generated_foreign_key"
SHARED_COLUMN = "shared_column"


@dataclass
class Field:
    name: str
    type: str = "text"
    column: str = ""
    primary: bool = False
    nullable: bool = False
    unique: bool = False
    default: Optional[str] = None
    computed: str = ""
    identity: str = ""
    read_only: bool = False
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    element_type: str = ""
    dimension: Optional[int] = None
    srid: Optional[int] = None
    geometry_type: str = ""
    enum_name: str = ""
    enum_values: List[str] = field(default_factory=list)
    lang_type: str = ""
    timeseries: bool = False
    annotations: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Cascade:
    on_delete: str = ""
    on_update: str = ""

    def is_set(self) -> bool:
        return bool(self.on_delete or self.on_update)


@dataclass
class EdgeTarget:
    entity: str
    condition: str = ""


@dataclass
class Edge:
    name: str
    target: str
    kind: str = TO_ONE
    column: str = ""
    ref_name: str = ""
    inverse_name: str = ""
    through: str = ""
    nullable: bool = False
    unique: bool = False
    cascade: Cascade = field(default_factory=Cascade)
    polymorphic_targets: List[EdgeTarget] = field(default_factory=list)
    annotations: Dict[str, Any] = field(default_factory=dict)

    @property
    def generated(self) -> bool:
        return bool(self.annotations.get(GENERATED_INVERSE, False))


@dataclass
class Index:
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False
    where: str = ""
    method: str = ""
    nulls_not_distinct: bool = False


@dataclass
class Entity:
    name: str
    fields: List[Field] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    annotations: Dict[str, Any] = field(default_factory=dict)

    def primary_field(self) -> Optional[Field]:
        for item in self.fields:
            if item.primary:
                return item
        return None

    def field_by_column(self, column: str) -> Optional[Field]:
        for item in self.fields:
            if field_column(item) == column:
                return item
        return None

    def edge_named(self, name: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.name == name:
                return edge
        return None


def field_column(item: Field) -> str:
    return item.column or normalize_identifier(item.name)


def opposite_kind(kind: str) -> str:
    if kind == TO_ONE:
        return TO_MANY
    if kind == TO_MANY:
        return TO_ONE
    return MANY_TO_MANY


def index_entities(entities: List[Entity]) -> Dict[str, Entity]:
    return {entity.name: entity for entity in entities}


def edge_column(edge: Edge) -> str:
    """Local foreign-key column backing a to-one edge."""
    return edge.column or f"{normalize_identifier(edge.name)}_id"


def join_table_name(owner: Entity, edge: Edge) -> str:
    return normalize_identifier(edge.through) or default_join_table_name(owner.name, edge.target)


def _matches_column(ref: str, column: str) -> bool:
    return bool(ref) and normalize_identifier(ref) == column


def _pairs_with(owner: Entity, edge: Edge, target: Entity, candidate: Edge) -> bool:
    if edge.inverse_name and candidate.name == edge.inverse_name:
        return True
    if candidate.inverse_name and candidate.inverse_name == edge.name:
        return True
    if edge.kind == TO_MANY:
        if edge.ref_name and (
            candidate.name == edge.ref_name or _matches_column(edge.ref_name, edge_column(candidate))
        ):
            return True
        return bool(edge.column) and edge.column == edge_column(candidate)
    if edge.kind == TO_ONE:
        if candidate.ref_name and (
            candidate.ref_name == edge.name or _matches_column(candidate.ref_name, edge_column(edge))
        ):
            return True
        return bool(candidate.column) and candidate.column == edge_column(edge)
    return join_table_name(target, candidate) == join_table_name(owner, edge)


def find_counterpart(owner: Entity, edge: Edge, entities: Dict[str, Entity]) -> Optional[Edge]:
    """Return the edge on ``edge.target`` that forms the other half of ``edge``.

    Pairing is resolved by name, reference or column, never by identity.
    A lone unannotated candidate of the opposite kind is accepted as the
    counterpart, except for many-to-many edges, which must share a join table.
    """
    target = entities.get(edge.target)
    if target is None:
        return None
    wanted = opposite_kind(edge.kind)
    candidates = [
        item
        for item in target.edges
        if item.target == owner.name and item.kind == wanted and item is not edge
    ]
    for candidate in candidates:
        if _pairs_with(owner, edge, target, candidate):
            return candidate
    if len(candidates) == 1 and edge.kind != MANY_TO_MANY:
        only = candidates[0]
        if not (only.ref_name or only.inverse_name) and not (edge.ref_name or edge.inverse_name):
            return only
    return None


def resolve_ref_column(owner: Entity, edge: Edge, entities: Dict[str, Entity]) -> str:
    """Column on the target table that references ``owner`` for a to-many edge."""
    target = entities.get(edge.target)
    if edge.ref_name:
        if target is not None:
            named = target.edge_named(edge.ref_name)
            if named is not None and named.kind == TO_ONE:
                return edge_column(named)
        column = normalize_identifier(edge.ref_name)
        if (target is not None and target.field_by_column(column)) or column.endswith("_id"):
            return column
        return f"{column}_id"
    if edge.column:
        return edge.column
    if target is not None:
        counterpart = find_counterpart(owner, edge, entities)
        if counterpart is not None and counterpart.kind == TO_ONE:
            return edge_column(counterpart)
    return foreign_key_column(owner.name)

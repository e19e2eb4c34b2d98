"""Table projection: SQLAlchemy tables derived from entity and relationship metadata.

Columns are never hand-edited. Every column, index and default comes from a
FieldDefinition, so the persistence adapter and the schema synchronizer see
exactly the same table shapes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    false,
    text,
    true,
)

from metaforge.core.types import (
    MAX_TABLE_NAME_LENGTH,
    EntityDefinition,
    FieldDefinition,
    FieldType,
    RelationshipDefinition,
    RelationshipType,
)
from metaforge.metadata.core_fields import CORE_FIELDS, DELETED_AT, IDENTIFIER_FIELD

if TYPE_CHECKING:
    from sqlalchemy.types import TypeEngine

    from metaforge.metadata.registry import MetadataRegistry

SORT_ORDER_COLUMN = "sort_order"

# Mapping from field type tags to SQLAlchemy column types
FIELD_TYPE_MAP: dict[str, Callable[[FieldDefinition], TypeEngine[Any]]] = {
    FieldType.TEXT: lambda f: String(f.max_length or 255),
    FieldType.BIG_TEXT: lambda f: Text(),
    FieldType.INTEGER: lambda f: Integer(),
    FieldType.FLOAT: lambda f: Float(),
    FieldType.BOOLEAN: lambda f: Boolean(),
    FieldType.DATE: lambda f: Date(),
    FieldType.DATETIME: lambda f: DateTime(timezone=True),
    FieldType.EMAIL: lambda f: String(f.max_length or 255),
    FieldType.PASSWORD: lambda f: String(255),
    FieldType.ID: lambda f: String(36),
    FieldType.URL: lambda f: String(f.max_length or 500),
    FieldType.IMAGE: lambda f: String(f.max_length or 500),
    FieldType.VIDEO: lambda f: String(f.max_length or 500),
    FieldType.ENUM: lambda f: String(255),
    FieldType.RADIO: lambda f: String(255),
    FieldType.MULTI_ENUM: lambda f: JSON(),
    FieldType.RELATED_RECORD: lambda f: String(36),
}


def column_type(definition: FieldDefinition) -> TypeEngine[Any]:
    """SQL type for a field; unknown type tags are stored like text."""
    factory = FIELD_TYPE_MAP.get(definition.type, FIELD_TYPE_MAP[FieldType.TEXT])
    return factory(definition)


def server_default(definition: FieldDefinition) -> Any:
    """Column default for scalar ``default_value``s, None otherwise."""
    value = definition.default_value
    if isinstance(value, bool):
        return true() if value else false()
    if isinstance(value, (int, float)):
        return text(repr(value))
    if isinstance(value, str):
        return value
    return None


def index_name(table_name: str, suffix: str, unique: bool = False) -> str:
    prefix = "uq" if unique else "ix"
    return f"{prefix}_{table_name}_{suffix}"[:MAX_TABLE_NAME_LENGTH]


@dataclass(frozen=True)
class IndexSpec:
    """A declared index: name, ordered columns, uniqueness."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False


@dataclass
class TableSpec:
    """Everything needed to create or diff one table."""

    name: str
    fields: list[FieldDefinition]
    indexes: list[IndexSpec] = field(default_factory=list)
    owner: str = ""
    kind: str = "entity"

    @property
    def persisted_fields(self) -> list[FieldDefinition]:
        return [f for f in self.fields if f.is_persisted]

    def build_table(self, metadata: MetaData) -> Table:
        columns: list[Column[Any]] = []
        for definition in self.persisted_fields:
            is_pk = definition.name == IDENTIFIER_FIELD
            columns.append(
                Column(
                    definition.name,
                    column_type(definition),
                    primary_key=is_pk,
                    nullable=not (definition.required or is_pk),
                    server_default=server_default(definition),
                )
            )
        indexes = [Index(spec.name, *spec.columns, unique=spec.unique) for spec in self.indexes]
        return Table(self.name, metadata, *columns, *indexes)


def _field_indexes(table_name: str, fields: list[FieldDefinition]) -> list[IndexSpec]:
    indexes: list[IndexSpec] = []
    for definition in fields:
        if not definition.is_persisted or definition.name == IDENTIFIER_FIELD:
            continue
        if definition.unique:
            indexes.append(
                IndexSpec(index_name(table_name, definition.name, True), (definition.name,), True)
            )
        elif definition.indexed:
            indexes.append(IndexSpec(index_name(table_name, definition.name), (definition.name,)))
    return indexes


def entity_table_spec(entity: EntityDefinition) -> TableSpec:
    """Table spec for an entity (core fields are already part of its definition)."""
    return TableSpec(
        name=entity.table_name,
        fields=list(entity.fields),
        indexes=_field_indexes(entity.table_name, entity.fields),
        owner=entity.name,
        kind="entity",
    )


def relationship_fields(relationship: RelationshipDefinition) -> list[FieldDefinition]:
    """Join table fields: core fields, participant ids, ordering, extra attributes."""
    first_col, second_col = relationship.columns
    first, second = relationship.participants
    fields = list(CORE_FIELDS)
    fields.append(
        FieldDefinition(
            name=first_col, type=FieldType.ID.value, required=True, related_entity=first
        )
    )
    fields.append(
        FieldDefinition(
            name=second_col, type=FieldType.ID.value, required=True, related_entity=second
        )
    )
    if relationship.ordered and relationship.type == RelationshipType.ONE_TO_MANY:
        fields.append(
            FieldDefinition(name=SORT_ORDER_COLUMN, type=FieldType.INTEGER.value, default_value=0)
        )
    fields.extend(relationship.additional_fields)
    return fields


def relationship_table_spec(relationship: RelationshipDefinition) -> TableSpec:
    """Table spec for a relationship's join table."""
    table_name = relationship.table_name
    fields = relationship_fields(relationship)
    first_col, second_col = relationship.columns

    indexes: list[IndexSpec] = []
    if relationship.type == RelationshipType.ONE_TO_MANY:
        indexes.append(IndexSpec(index_name(table_name, first_col), (first_col,)))
        indexes.append(IndexSpec(index_name(table_name, second_col), (second_col,)))
    else:
        indexes.append(
            IndexSpec(index_name(table_name, "pair", True), (first_col, second_col), True)
        )
        indexes.append(IndexSpec(index_name(table_name, second_col), (second_col,)))
    indexes.extend(
        spec
        for spec in _field_indexes(table_name, list(relationship.additional_fields))
        if spec.columns[0] not in (first_col, second_col)
    )
    indexes.append(IndexSpec(index_name(table_name, DELETED_AT), (DELETED_AT,)))

    return TableSpec(
        name=table_name,
        fields=fields,
        indexes=indexes,
        owner=relationship.name,
        kind="relationship",
    )


class TableCatalog:
    """SQLAlchemy tables for every concrete entity and every relationship.

    Built from the registry on first use and shared by the persistence
    adapter and the schema synchronizer. Building lazily lets the
    relationship engine reject bad relationship metadata before any table
    object exists.
    """

    def __init__(self, registry: MetadataRegistry) -> None:
        self._registry = registry
        self._metadata: MetaData | None = None
        self._specs: list[TableSpec] = []
        self._entity_tables: dict[str, Table] = {}
        self._relationship_tables: dict[str, Table] = {}

    def _build(self) -> MetaData:
        if self._metadata is not None:
            return self._metadata

        registry = self._registry
        self._metadata = MetaData()
        for name in registry.list_entities():
            entity = registry.get_entity_definition(name)
            if entity.abstract:
                continue
            spec = entity_table_spec(entity)
            self._specs.append(spec)
            self._entity_tables[name] = spec.build_table(self._metadata)

        for name in registry.list_relationships():
            spec = relationship_table_spec(registry.get_relationship_definition(name))
            self._specs.append(spec)
            self._relationship_tables[name] = spec.build_table(self._metadata)
        return self._metadata

    @property
    def metadata(self) -> MetaData:
        return self._build()

    @property
    def specs(self) -> list[TableSpec]:
        self._build()
        return list(self._specs)

    def entity_table(self, entity_name: str) -> Table:
        self._build()
        return self._entity_tables[entity_name]

    def relationship_table(self, relationship_name: str) -> Table:
        self._build()
        return self._relationship_tables[relationship_name]

    def has_entity_table(self, entity_name: str) -> bool:
        self._build()
        return entity_name in self._entity_tables

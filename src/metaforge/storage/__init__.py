"""SQLAlchemy table projection of entity and relationship metadata."""

from metaforge.storage.tables import (
    FIELD_TYPE_MAP,
    TableCatalog,
    TableSpec,
    entity_table_spec,
    relationship_table_spec,
)

__all__ = [
    "FIELD_TYPE_MAP",
    "TableCatalog",
    "TableSpec",
    "entity_table_spec",
    "relationship_table_spec",
]

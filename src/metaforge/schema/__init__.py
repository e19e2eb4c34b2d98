"""Schema synchronization: additive DDL planned from the metadata."""

from metaforge.schema.synchronizer import (
    SchemaPlan,
    SchemaStatement,
    SchemaSynchronizer,
    StatementKind,
)

__all__ = ["SchemaSynchronizer", "SchemaPlan", "SchemaStatement", "StatementKind"]

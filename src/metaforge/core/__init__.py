"""Core components for metaforge."""

from metaforge.core.config import MetaforgeConfig, configure_logging
from metaforge.core.connection import DatabaseConnection
from metaforge.core.types import (
    CascadePolicy,
    EntityDefinition,
    FieldDefinition,
    FieldType,
    LifecycleState,
    RelationshipDefinition,
    RelationshipType,
    RuleSpec,
)

__all__ = [
    "DatabaseConnection",
    "MetaforgeConfig",
    "configure_logging",
    "FieldType",
    "RelationshipType",
    "CascadePolicy",
    "LifecycleState",
    "RuleSpec",
    "FieldDefinition",
    "EntityDefinition",
    "RelationshipDefinition",
]

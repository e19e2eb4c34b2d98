"""metaforge - Metadata-Driven Persistence Engine.

Entities, their fields and the relationships between them are declared as
JSON metadata. metaforge derives the tables, keeps the live schema in sync
without ever dropping anything, and hands out models that validate,
persist, soft-delete and link themselves.

Example:
    from metaforge import Metaforge

    forge = Metaforge(
        "sqlite:///app.db",
        metadata={
            "entities": [
                {
                    "name": "User",
                    "fields": [
                        {"name": "email", "type": "email", "required": True, "unique": True},
                        {"name": "age", "type": "integer", "min_value": 0},
                    ],
                },
                {"name": "Post", "fields": [{"name": "title", "type": "text"}]},
            ],
            "relationships": [
                {
                    "name": "user_posts",
                    "type": "one_to_many",
                    "model_one": "User",
                    "model_many": "Post",
                    "cascade": "cascade",
                }
            ],
        },
    )
    forge.sync_schema()

    user = forge.new("User", {"email": "ada@example.com", "age": 36})
    if not user.create():
        print(user.errors)

    post = forge.new("Post", {"title": "Notes"})
    post.create()
    user.add_relation("user_posts", post)

    # Soft-deletes the user and, through the cascade, the post
    user.delete()
"""

from metaforge.core.config import MetaforgeConfig, configure_logging
from metaforge.core.connection import DatabaseConnection
from metaforge.core.engine import Metaforge
from metaforge.core.types import (
    CascadePolicy,
    EntityDefinition,
    FieldDefinition,
    FieldType,
    LifecycleState,
    RelationshipDefinition,
    RelationshipType,
)
from metaforge.data.adapter import PersistenceAdapter
from metaforge.exceptions import (
    CircularRelationshipError,
    ConfigurationError,
    ConnectionError,
    DuplicateLinkError,
    DuplicateRelationshipError,
    EntityNotFoundError,
    FieldNotFoundError,
    InvalidFieldDefinitionError,
    LifecycleError,
    MalformedRelationshipError,
    MetaforgeError,
    PersistenceError,
    QueryError,
    ReferentialIntegrityError,
    RelationshipNotFoundError,
    RestrictDeleteError,
    UnknownParticipantError,
    ValidationError,
)
from metaforge.metadata.registry import MetadataRegistry
from metaforge.models.context import ModelContext
from metaforge.models.model import Model
from metaforge.relationships.base import Page, Relationship
from metaforge.relationships.engine import RelationshipEngine
from metaforge.schema.synchronizer import SchemaPlan, SchemaStatement, SchemaSynchronizer

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "Metaforge",
    "Model",
    "ModelContext",
    # Components
    "MetadataRegistry",
    "PersistenceAdapter",
    "RelationshipEngine",
    "Relationship",
    "Page",
    "SchemaSynchronizer",
    "SchemaPlan",
    "SchemaStatement",
    "DatabaseConnection",
    # Configuration
    "MetaforgeConfig",
    "configure_logging",
    # Types
    "FieldType",
    "RelationshipType",
    "CascadePolicy",
    "LifecycleState",
    "FieldDefinition",
    "EntityDefinition",
    "RelationshipDefinition",
    # Exceptions
    "MetaforgeError",
    "ConnectionError",
    "ConfigurationError",
    "EntityNotFoundError",
    "RelationshipNotFoundError",
    "InvalidFieldDefinitionError",
    "ValidationError",
    "ReferentialIntegrityError",
    "UnknownParticipantError",
    "MalformedRelationshipError",
    "DuplicateRelationshipError",
    "CircularRelationshipError",
    "DuplicateLinkError",
    "RestrictDeleteError",
    "PersistenceError",
    "QueryError",
    "FieldNotFoundError",
    "LifecycleError",
]

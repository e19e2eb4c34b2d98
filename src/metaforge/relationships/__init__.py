"""Relationship engine: one-to-one, one-to-many and many-to-many links."""

from metaforge.relationships.base import Page, Relationship
from metaforge.relationships.cache import BoundRelationship, RelationshipCache
from metaforge.relationships.engine import RelationshipEngine
from metaforge.relationships.types import (
    RELATIONSHIP_TYPES,
    ManyToManyRelationship,
    OneToManyRelationship,
    OneToOneRelationship,
)

__all__ = [
    "Relationship",
    "OneToOneRelationship",
    "OneToManyRelationship",
    "ManyToManyRelationship",
    "RELATIONSHIP_TYPES",
    "RelationshipEngine",
    "RelationshipCache",
    "BoundRelationship",
    "Page",
]

"""Metadata registry and the core fields injected into every entity."""

from metaforge.metadata.core_fields import CORE_FIELD_NAMES, CORE_FIELDS, IDENTIFIER_FIELD
from metaforge.metadata.registry import MetadataRegistry

__all__ = ["MetadataRegistry", "CORE_FIELDS", "CORE_FIELD_NAMES", "IDENTIFIER_FIELD"]

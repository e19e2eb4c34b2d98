"""Metadata registry: the single source of truth for entity and relationship definitions.

Definitions are parsed and validated once, when the registry is built, and
are immutable afterwards. Anything malformed raises ConfigurationError
immediately; the process cannot serve entity operations without valid
metadata.

Sources:
- ``MetadataRegistry.from_dicts(entities, relationships)``
- ``MetadataRegistry.from_file("metadata.json")`` with top-level
  ``entities`` and ``relationships`` lists
- ``MetadataRegistry.from_directory("metadata/")`` reading
  ``entities/*.json`` and ``relationships/*.json``
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from metaforge.core.types import (
    EntityDefinition,
    FieldDefinition,
    FieldType,
    RelationshipDefinition,
)
from metaforge.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    InvalidFieldDefinitionError,
    RelationshipNotFoundError,
)
from metaforge.fields.catalog import FIELD_TYPES, FieldClass
from metaforge.metadata.core_fields import IDENTIFIER_FIELD, with_core_fields
from metaforge.validation.rules import RULES

logger = logging.getLogger(__name__)


def _format_pydantic_errors(error: PydanticValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    ]


def _read_json(path: Path) -> Any:
    if not path.is_file():
        raise ConfigurationError(f"Metadata file not found: {path}", {"source": str(path)})
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Metadata file {path} is not valid JSON: {e}", {"source": str(path)}
        ) from e


def _as_list(payload: Any) -> list[Any]:
    return payload if isinstance(payload, list) else [payload]


class MetadataRegistry:
    """Loads, validates and caches entity and relationship definitions.

    Each entity gets the core fields (``id`` plus created/updated/deleted
    timestamps and actors) injected ahead of its declared fields.
    """

    def __init__(
        self,
        entities: Iterable[EntityDefinition] = (),
        relationships: Iterable[RelationshipDefinition] = (),
    ) -> None:
        """Build a registry from already-parsed definitions.

        Args:
            entities: Entity definitions
            relationships: Relationship definitions

        Raises:
            ConfigurationError: On duplicate names or broken invariants
        """
        self._entities: dict[str, EntityDefinition] = {}
        self._relationships: dict[str, RelationshipDefinition] = {}

        for entity in entities:
            self._add_entity(entity)
        for relationship in relationships:
            self._add_relationship(relationship)
        self._check_declared_relationships()

        logger.info(
            f"Loaded metadata: {len(self._entities)} entities, "
            f"{len(self._relationships)} relationships"
        )

    # === Construction ===

    @classmethod
    def from_dicts(
        cls,
        entities: Iterable[Mapping[str, Any]],
        relationships: Iterable[Mapping[str, Any]] = (),
        source: str = "<dict>",
    ) -> MetadataRegistry:
        """Parse raw definitions (snake_case or camelCase keys).

        Args:
            entities: Raw entity definitions
            relationships: Raw relationship definitions
            source: Label used in error context

        Returns:
            Loaded registry

        Raises:
            ConfigurationError: If any definition is missing keys, has unknown keys,
                or breaks an invariant
        """
        parsed_entities = [
            cls._parse(EntityDefinition, raw, source, "entity") for raw in entities
        ]
        parsed_relationships = [
            cls._parse(RelationshipDefinition, raw, source, "relationship")
            for raw in relationships
        ]
        return cls(parsed_entities, parsed_relationships)

    @classmethod
    def from_file(cls, path: str | Path) -> MetadataRegistry:
        """Load a single JSON document with ``entities`` and ``relationships`` lists."""
        path = Path(path)
        payload = _read_json(path)
        if not isinstance(payload, dict) or "entities" not in payload:
            raise ConfigurationError(
                f"Metadata file {path} must be an object with an 'entities' list",
                {"source": str(path)},
            )
        unknown = set(payload) - {"entities", "relationships"}
        if unknown:
            raise ConfigurationError(
                f"Metadata file {path} has unknown keys: {', '.join(sorted(unknown))}",
                {"source": str(path), "unknown_keys": sorted(unknown)},
            )
        return cls.from_dicts(
            _as_list(payload["entities"]),
            _as_list(payload.get("relationships", [])),
            source=str(path),
        )

    @classmethod
    def from_directory(cls, path: str | Path) -> MetadataRegistry:
        """Load ``entities/*.json`` and ``relationships/*.json`` under a directory.

        Each file holds one definition or a list of them. Files are read in
        name order so registration is deterministic.

        Raises:
            ConfigurationError: If the directory or its ``entities`` folder is missing
        """
        root = Path(path)
        if not root.is_dir():
            raise ConfigurationError(
                f"Metadata directory not found: {root}", {"source": str(root)}
            )
        entities_dir = root / "entities"
        if not entities_dir.is_dir():
            raise ConfigurationError(
                f"Metadata directory {root} has no 'entities' folder", {"source": str(root)}
            )

        entities: list[EntityDefinition] = []
        for file in sorted(entities_dir.glob("*.json")):
            for raw in _as_list(_read_json(file)):
                entities.append(cls._parse(EntityDefinition, raw, str(file), "entity"))

        relationships: list[RelationshipDefinition] = []
        relationships_dir = root / "relationships"
        if relationships_dir.is_dir():
            for file in sorted(relationships_dir.glob("*.json")):
                for raw in _as_list(_read_json(file)):
                    relationships.append(
                        cls._parse(RelationshipDefinition, raw, str(file), "relationship")
                    )

        return cls(entities, relationships)

    @staticmethod
    def _parse(model: Any, raw: Any, source: str, kind: str) -> Any:
        if not isinstance(raw, Mapping):
            raise ConfigurationError(
                f"Each {kind} definition in {source} must be an object",
                {"source": source, "kind": kind},
            )
        try:
            return model.model_validate(dict(raw))
        except PydanticValidationError as e:
            name = raw.get("name", "<unnamed>")
            problems = _format_pydantic_errors(e)
            raise ConfigurationError(
                f"Invalid {kind} definition '{name}' in {source}: {'; '.join(problems)}",
                {"source": source, "kind": kind, "name": name, "errors": problems},
            ) from e

    def _add_entity(self, entity: EntityDefinition) -> None:
        if entity.name in self._entities:
            raise ConfigurationError(
                f"Entity '{entity.name}' is defined more than once",
                {"entity_name": entity.name},
            )

        seen: set[str] = set()
        for field in entity.fields:
            if field.name in seen:
                raise InvalidFieldDefinitionError(entity.name, field.name, "duplicate field name")
            seen.add(field.name)
            self._check_field(entity.name, field)

        declared_id = entity.get_field(IDENTIFIER_FIELD)
        if declared_id is not None and declared_id.type != FieldType.ID:
            raise InvalidFieldDefinitionError(
                entity.name,
                IDENTIFIER_FIELD,
                f"the identifier must have type '{FieldType.ID}', not '{declared_id.type}'",
            )

        fields = with_core_fields(list(entity.fields))
        self._entities[entity.name] = entity.model_copy(update={"fields": fields})

    def _add_relationship(self, relationship: RelationshipDefinition) -> None:
        if relationship.name in self._relationships:
            raise ConfigurationError(
                f"Relationship '{relationship.name}' is defined more than once",
                {"relationship_name": relationship.name},
            )
        for field in relationship.additional_fields:
            self._check_field(relationship.name, field)
        self._relationships[relationship.name] = relationship

    @staticmethod
    def _check_field(owner_name: str, field: FieldDefinition) -> None:
        if field.type not in FIELD_TYPES:
            logger.warning(
                f"Unknown field type '{field.type}' for {owner_name}.{field.name}; "
                "falling back to text"
            )
        for spec in field.validation_rules:
            if spec.name not in RULES:
                raise InvalidFieldDefinitionError(
                    owner_name,
                    field.name,
                    f"unknown validation rule '{spec.name}' (known: {', '.join(sorted(RULES))})",
                )

    def _check_declared_relationships(self) -> None:
        for entity in self._entities.values():
            for name in entity.relationships:
                if name not in self._relationships:
                    raise RelationshipNotFoundError(
                        name, entity.name, sorted(self._relationships)
                    )

    # === Lookups ===

    def get_field_type_catalog(self) -> Mapping[str, FieldClass]:
        """Field type tag -> field class used to build field instances."""
        return FIELD_TYPES

    def get_entity_definition(self, name: str) -> EntityDefinition:
        """Get an entity definition by name.

        Raises:
            EntityNotFoundError: If no entity has that name
        """
        try:
            return self._entities[name]
        except KeyError:
            raise EntityNotFoundError(name, sorted(self._entities)) from None

    def get_relationship_definition(self, name: str) -> RelationshipDefinition:
        """Get a relationship definition by name.

        Raises:
            RelationshipNotFoundError: If no relationship has that name
        """
        try:
            return self._relationships[name]
        except KeyError:
            raise RelationshipNotFoundError(name, None, sorted(self._relationships)) from None

    def has_entity(self, name: str) -> bool:
        return name in self._entities

    def list_entities(self) -> list[str]:
        return list(self._entities)

    def list_relationships(self) -> list[str]:
        return list(self._relationships)

    def relationships_for(self, entity_name: str) -> list[RelationshipDefinition]:
        """Relationships the entity participates in, in registration order."""
        return [
            rel for rel in self._relationships.values() if entity_name in rel.participants
        ]

    def describe(self) -> dict[str, Any]:
        """JSON-serializable summary of the loaded metadata."""
        return {
            "entities": {
                name: entity.model_dump(mode="json", exclude_none=True)
                for name, entity in self._entities.items()
            },
            "relationships": {
                name: {
                    **rel.model_dump(mode="json", exclude_none=True),
                    "key": rel.key,
                    "table": rel.table_name,
                }
                for name, rel in self._relationships.items()
            },
        }

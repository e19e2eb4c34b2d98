"""Exceptions raised by metaforge.

Every error carries a human-readable message plus a context dict so that
collaborators (routers, CLIs, job runners) can map it to their own
responses without parsing strings:
- Messages say what went wrong and, where possible, how to fix it
- Context names the offending entity, field or relationship
"""

from __future__ import annotations

from typing import Any


class MetaforgeError(Exception):
    """Base exception for all metaforge errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as a JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(MetaforgeError):
    """Failed to connect to the database."""

    pass


# === Configuration (boot-time, fatal) ===


class ConfigurationError(MetaforgeError):
    """Metadata is missing or malformed.

    Raised while loading definitions. The process cannot serve entity
    operations until the metadata is fixed.
    """

    pass


class EntityNotFoundError(ConfigurationError):
    """No entity definition with the given name."""

    def __init__(self, entity_name: str, available_entities: list[str] | None = None) -> None:
        available = available_entities or []
        if available:
            message = (
                f"Entity '{entity_name}' not found. Available entities: {', '.join(available)}"
            )
        else:
            message = f"Entity '{entity_name}' not found. No entities are registered."

        super().__init__(message, {"entity_name": entity_name, "available_entities": available})
        self.entity_name = entity_name
        self.available_entities = available


class RelationshipNotFoundError(ConfigurationError):
    """No relationship definition with the given name."""

    def __init__(
        self,
        relationship_name: str,
        entity_name: str | None = None,
        available_relationships: list[str] | None = None,
    ) -> None:
        available = available_relationships or []
        where = f" on '{entity_name}'" if entity_name else ""
        if available:
            message = (
                f"Relationship '{relationship_name}' not found{where}. "
                f"Available relationships: {', '.join(available)}"
            )
        else:
            message = f"Relationship '{relationship_name}' not found{where}. None are declared."

        super().__init__(
            message,
            {
                "relationship_name": relationship_name,
                "entity_name": entity_name,
                "available_relationships": available,
            },
        )
        self.relationship_name = relationship_name
        self.entity_name = entity_name
        self.available_relationships = available


class InvalidFieldDefinitionError(ConfigurationError):
    """A field definition breaks an entity-level invariant."""

    def __init__(self, entity_name: str, field_name: str, reason: str) -> None:
        message = f"Invalid field '{field_name}' on '{entity_name}': {reason}"
        super().__init__(
            message,
            {"entity_name": entity_name, "field_name": field_name, "reason": reason},
        )
        self.entity_name = entity_name
        self.field_name = field_name
        self.reason = reason


# === Validation ===


class ValidationError(MetaforgeError):
    """Field validation failed.

    Lifecycle operations never raise this; they return False and leave the
    messages in the model's error bag. It exists for callers that prefer an
    exception, see ``Model.raise_for_errors()``.
    """

    def __init__(self, entity_name: str, field_errors: dict[str, list[str]]) -> None:
        fields = ", ".join(sorted(field_errors))
        message = f"Validation failed for '{entity_name}' on: {fields}"
        super().__init__(message, {"entity_name": entity_name, "field_errors": field_errors})
        self.entity_name = entity_name
        self.field_errors = field_errors


# === Referential integrity ===


class ReferentialIntegrityError(MetaforgeError):
    """A relationship definition or link operation violates integrity rules."""

    pass


class UnknownParticipantError(ReferentialIntegrityError):
    """A relationship names an entity that is unknown or abstract."""

    def __init__(self, relationship_name: str, entity_name: str, reason: str = "unknown") -> None:
        message = (
            f"Relationship '{relationship_name}' references {reason} entity '{entity_name}'. "
            "Declare the entity (non-abstract) before the relationship."
        )
        super().__init__(
            message,
            {"relationship_name": relationship_name, "entity_name": entity_name, "reason": reason},
        )
        self.relationship_name = relationship_name
        self.entity_name = entity_name


class MalformedRelationshipError(ReferentialIntegrityError):
    """A relationship definition lacks the participants its type needs."""

    def __init__(self, relationship_name: str, relationship_type: str, missing: list[str]) -> None:
        message = (
            f"Relationship '{relationship_name}' of type '{relationship_type}' "
            f"is missing: {', '.join(missing)}"
        )
        super().__init__(
            message,
            {
                "relationship_name": relationship_name,
                "relationship_type": relationship_type,
                "missing": missing,
            },
        )
        self.relationship_name = relationship_name
        self.missing = missing


class DuplicateRelationshipError(ReferentialIntegrityError):
    """Another relationship already owns the same normalized key."""

    def __init__(self, relationship_name: str, key: str, existing_name: str) -> None:
        message = (
            f"Relationship '{relationship_name}' duplicates '{existing_name}' "
            f"(key '{key}'). Remove one of the definitions."
        )
        super().__init__(
            message,
            {
                "relationship_name": relationship_name,
                "key": key,
                "existing_relationship": existing_name,
            },
        )
        self.relationship_name = relationship_name
        self.key = key
        self.existing_name = existing_name


class CircularRelationshipError(ReferentialIntegrityError):
    """Cascade ownership between entities would loop."""

    def __init__(self, relationship_name: str, entity_path: list[str]) -> None:
        path_str = " -> ".join(entity_path)
        message = (
            f"Relationship '{relationship_name}' closes a cascade cycle: {path_str}. "
            "Use 'restrict' or 'soft_delete' on one of the relationships."
        )
        super().__init__(
            message, {"relationship_name": relationship_name, "entity_path": entity_path}
        )
        self.relationship_name = relationship_name
        self.entity_path = entity_path


class DuplicateLinkError(ReferentialIntegrityError):
    """The two records are already linked through the relationship."""

    def __init__(self, relationship_name: str, record_id: str, other_id: str) -> None:
        message = (
            f"Records '{record_id}' and '{other_id}' are already linked "
            f"through '{relationship_name}'."
        )
        super().__init__(
            message,
            {"relationship_name": relationship_name, "record_id": record_id, "other_id": other_id},
        )
        self.relationship_name = relationship_name


class RestrictDeleteError(ReferentialIntegrityError):
    """Deletion blocked by a restrict cascade policy."""

    def __init__(
        self, entity_name: str, record_id: str, relationship_name: str, related_count: int
    ) -> None:
        message = (
            f"Cannot delete '{entity_name}' record '{record_id}': {related_count} active "
            f"link(s) through '{relationship_name}' (policy: restrict)."
        )
        super().__init__(
            message,
            {
                "entity_name": entity_name,
                "record_id": record_id,
                "relationship_name": relationship_name,
                "related_count": related_count,
                "suggestion": "Remove the links first or change the cascade policy.",
            },
        )
        self.entity_name = entity_name
        self.record_id = record_id
        self.relationship_name = relationship_name
        self.related_count = related_count


# === Persistence ===


class PersistenceError(MetaforgeError):
    """A database statement failed. Always fatal to the current operation."""

    def __init__(
        self,
        message: str,
        entity_name: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = {"entity_name": entity_name, "operation": operation}
        ctx.update(context or {})
        super().__init__(message, ctx)
        self.entity_name = entity_name
        self.operation = operation


class QueryError(PersistenceError):
    """Query criteria could not be translated."""

    pass


# === Model usage ===


class FieldNotFoundError(MetaforgeError):
    """Field does not exist on entity."""

    def __init__(
        self, field_name: str, entity_name: str, available_fields: list[str] | None = None
    ) -> None:
        available = available_fields or []
        if available:
            message = (
                f"Field '{field_name}' not found on '{entity_name}'. "
                f"Available fields: {', '.join(available)}"
            )
        else:
            message = f"Field '{field_name}' not found on '{entity_name}'. No fields defined."

        super().__init__(
            message,
            {
                "field_name": field_name,
                "entity_name": entity_name,
                "available_fields": available,
            },
        )
        self.field_name = field_name
        self.entity_name = entity_name
        self.available_fields = available


class LifecycleError(MetaforgeError):
    """Operation is not allowed in the model's current lifecycle state."""

    def __init__(self, entity_name: str, operation: str, state: str) -> None:
        message = f"Cannot {operation} '{entity_name}' while it is '{state}'."
        super().__init__(
            message, {"entity_name": entity_name, "operation": operation, "state": state}
        )
        self.entity_name = entity_name
        self.operation = operation
        self.state = state

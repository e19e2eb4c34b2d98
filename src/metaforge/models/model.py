"""Model engine: metadata-driven entity instances.

A Model is built from an EntityDefinition: one Field per declared field,
an aggregated error bag, and a lifecycle state::

    new --create--> persisted --delete--> soft_deleted --restore--> persisted
                        |                      |
                        +----hard_delete-------+----> deleted

Validation failures never raise. ``create()`` and ``update()`` return False
and leave the messages in ``errors``; database failures raise
PersistenceError.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from metaforge.core.types import LifecycleState
from metaforge.exceptions import (
    ConfigurationError,
    FieldNotFoundError,
    LifecycleError,
    ValidationError,
)
from metaforge.fields.catalog import build_field
from metaforge.metadata.core_fields import (
    CREATED_AT,
    CREATED_BY,
    DELETED_AT,
    DELETED_BY,
    IDENTIFIER_FIELD,
    UPDATED_AT,
    UPDATED_BY,
)
from metaforge.relationships.base import Page
from metaforge.relationships.cache import BoundRelationship, RelationshipCache

if TYPE_CHECKING:
    from passlib.context import CryptContext

    from metaforge.data.adapter import Criteria, OrderBy
    from metaforge.fields.base import Field
    from metaforge.models.context import ModelContext

logger = logging.getLogger(__name__)

# (entity name, record id) pairs already handled by one cascade
Visited = set[tuple[str, str]]


class Model:
    """An instance of a metadata-defined entity."""

    def __init__(self, entity_name: str, context: ModelContext) -> None:
        """Create an unsaved instance with every field at its default.

        Args:
            entity_name: Registered entity name
            context: Shared collaborators (registry, adapter, relationships)

        Raises:
            EntityNotFoundError: If the entity is not registered
            ConfigurationError: If the entity is abstract
        """
        self.context = context
        self.definition = context.registry.get_entity_definition(entity_name)
        if self.definition.abstract:
            raise ConfigurationError(
                f"Entity '{entity_name}' is abstract and cannot be instantiated",
                {"entity_name": entity_name},
            )
        self.entity_name = self.definition.name
        self.state = LifecycleState.NEW
        self._errors: dict[str, list[str]] = {}
        self.fields: dict[str, Field] = {
            definition.name: build_field(definition, self) for definition in self.definition.fields
        }
        self._relationships = RelationshipCache(self)

    # === Field access ===

    @property
    def id(self) -> str | None:
        return self.fields[IDENTIFIER_FIELD].get()

    def field(self, name: str) -> Field:
        """Get the Field instance for a name.

        Raises:
            FieldNotFoundError: If the entity has no such field
        """
        try:
            return self.fields[name]
        except KeyError:
            raise FieldNotFoundError(name, self.entity_name, list(self.fields)) from None

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def get(self, name: str) -> Any:
        return self.field(name).get()

    def set(self, name: str, value: Any) -> bool:
        """Assign a value and validate the field.

        Read-only fields (the identifier and audit columns included) keep
        their value and get an error instead.

        Returns:
            True if the value was accepted and passed validation
        """
        field = self.field(name)
        if field.read_only:
            field.errors = [f"{field.label} is read-only."]
            self.record_field_errors(name, field.errors)
            return False
        return field.set(value)

    def populate(self, values: Mapping[str, Any]) -> bool:
        """Set several fields; returns True only if all of them passed."""
        results = [self.set(name, value) for name, value in values.items()]
        return all(results)

    def persisted_fields(self) -> list[Field]:
        return [f for f in self.fields.values() if f.is_persisted]

    def changed_fields(self) -> list[Field]:
        """Persisted fields whose value differs from the last loaded or written one."""
        return [f for f in self.fields.values() if f.is_persisted and f.has_changed()]

    @property
    def is_dirty(self) -> bool:
        return bool(self.changed_fields())

    def to_dict(self, external: bool = True) -> dict[str, Any]:
        """Field values by name.

        Args:
            external: Use each field's serialization-safe form (passwords become None)
        """
        if external:
            return {name: f.value_for_external() for name, f in self.fields.items()}
        return {name: f.get() for name, f in self.fields.items()}

    # === Validation ===

    @property
    def errors(self) -> dict[str, list[str]]:
        return {name: list(messages) for name, messages in self._errors.items()}

    def has_errors(self) -> bool:
        return bool(self._errors)

    def validate(self) -> bool:
        """Rebuild the error bag from every field's rules."""
        self._errors = {}
        for field in self.fields.values():
            field.validate()
        return not self._errors

    def raise_for_errors(self) -> None:
        """Raise ValidationError if the error bag is not empty."""
        if self._errors:
            raise ValidationError(self.entity_name, self.errors)

    def record_field_errors(self, field_name: str, messages: list[str]) -> None:
        if messages:
            self._errors[field_name] = list(messages)
        else:
            self._errors.pop(field_name, None)

    def is_value_unique(self, field_name: str, value: Any) -> bool:
        # Soft-deleted rows still occupy the unique index
        return not self.context.adapter.record_exists(
            self.entity_name, field_name, value, exclude_id=self.id, include_deleted=True
        )

    def record_exists(self, entity_name: str, record_id: str) -> bool:
        adapter = self.context.adapter
        if not adapter.catalog.has_entity_table(entity_name):
            return False
        return adapter.find_by_id(entity_name, record_id) is not None

    @property
    def password_context(self) -> CryptContext | None:
        return self.context.password_context

    # === Lifecycle ===

    def create(self) -> bool:
        """Validate and insert a new record.

        Assigns a UUID4 identifier when none was set, plus the created/updated
        timestamps and actors.

        Returns:
            True if the record was written, False if validation failed

        Raises:
            LifecycleError: If the instance is not new
            PersistenceError: If the insert failed (generated values are rolled back)
        """
        self._require("create", LifecycleState.NEW)
        if not self.validate():
            logger.debug(f"Create {self.entity_name} rejected: {sorted(self._errors)}")
            return False

        now = self.context.clock()
        actor = self.context.actor_provider()
        assignments: dict[str, Any] = {
            CREATED_AT: now,
            UPDATED_AT: now,
            CREATED_BY: actor,
            UPDATED_BY: actor,
        }
        if not self.id:
            assignments[IDENTIFIER_FIELD] = str(uuid.uuid4())

        with self._rollback_on_failure(assignments):
            written = self.context.adapter.create(self)

        self._apply_written(written)
        self._mark_clean()
        self.state = LifecycleState.PERSISTED
        logger.info(f"Created {self.entity_name} {self.id}")
        self.after_create()
        return True

    def update(self) -> bool:
        """Validate and write the changed fields plus the updated timestamp and actor.

        Returns:
            True if the record was written, False if validation failed

        Raises:
            LifecycleError: If the instance is not persisted
            PersistenceError: If the update failed
        """
        self._require("update", LifecycleState.PERSISTED)
        if not self.validate():
            logger.debug(f"Update {self.entity_name} {self.id} rejected: {sorted(self._errors)}")
            return False

        assignments = {
            UPDATED_AT: self.context.clock(),
            UPDATED_BY: self.context.actor_provider(),
        }
        with self._rollback_on_failure(assignments):
            written = self.context.adapter.update(self)

        self._apply_written(written)
        self._mark_clean()
        logger.info(f"Updated {self.entity_name} {self.id}: {sorted(written)}")
        self.after_update()
        return True

    def delete(self) -> bool:
        """Soft-delete the record after running relationship cascades.

        Raises:
            LifecycleError: If the instance is not persisted
            RestrictDeleteError: If a restrict relationship still has active links
        """
        self._require("delete", LifecycleState.PERSISTED)
        self.delete_cascading(hard=False, visited=set())
        return True

    def hard_delete(self) -> bool:
        """Physically remove the record after running cascades in hard mode."""
        self._require("hard delete", LifecycleState.PERSISTED, LifecycleState.SOFT_DELETED)
        self.delete_cascading(hard=True, visited=set())
        return True

    def delete_cascading(self, hard: bool, visited: Visited) -> None:
        """Delete this record as part of a cascade.

        Records already in ``visited`` are skipped, so cascades over shared
        records terminate. Soft cascades skip records that are already
        soft-deleted.
        """
        key = (self.entity_name, str(self.id))
        if key in visited:
            return
        visited.add(key)
        if not hard and self.state != LifecycleState.PERSISTED:
            return

        adapter = self.context.adapter
        if hard:
            with adapter.transaction():
                self.context.relationship_engine.handle_deletion(self, hard=True, visited=visited)
                adapter.hard_delete(self)
            self.state = LifecycleState.DELETED
            self._relationships.clear()
            logger.info(f"Hard-deleted {self.entity_name} {self.id}")
        else:
            assignments = {
                DELETED_AT: self.context.clock(),
                DELETED_BY: self.context.actor_provider(),
            }
            with adapter.transaction():
                self.context.relationship_engine.handle_deletion(self, hard=False, visited=visited)
                with self._rollback_on_failure(assignments):
                    written = adapter.soft_delete(self)
            # Only the deletion columns were written; other edits stay pending
            self._mark_clean(written)
            self.state = LifecycleState.SOFT_DELETED
            logger.info(f"Soft-deleted {self.entity_name} {self.id}")
        self.after_delete()

    def restore(self) -> bool:
        """Undo a soft delete.

        Field edits still pending from before the delete are written along
        with the cleared deletion columns. Links removed by the delete
        cascade are not restored.

        Raises:
            LifecycleError: If the instance is not soft-deleted
        """
        self._require("restore", LifecycleState.SOFT_DELETED)
        assignments = {
            DELETED_AT: None,
            DELETED_BY: None,
            UPDATED_AT: self.context.clock(),
            UPDATED_BY: self.context.actor_provider(),
        }
        with self._rollback_on_failure(assignments):
            written = self.context.adapter.restore(self)

        self._apply_written(written)
        self._mark_clean()
        self.state = LifecycleState.PERSISTED
        logger.info(f"Restored {self.entity_name} {self.id}")
        self.after_restore()
        return True

    def _require(self, operation: str, *states: LifecycleState) -> None:
        if self.state not in states:
            raise LifecycleError(self.entity_name, operation, str(self.state))

    def _rollback_on_failure(self, assignments: Mapping[str, Any]) -> _Assignment:
        return _Assignment(self, assignments)

    def _apply_written(self, written: Mapping[str, Any]) -> None:
        # Storage conversion may have changed a value (password hashes)
        for name, value in written.items():
            field = self.fields.get(name)
            if field is not None and field.get() != value:
                field.assign(value)

    def _mark_clean(self, names: Iterable[str] | None = None) -> None:
        fields = self.fields.values() if names is None else [self.fields[n] for n in names]
        for field in fields:
            field.mark_clean()

    # === Hooks ===

    def after_create(self) -> None:
        """Called after the row was inserted."""

    def after_update(self) -> None:
        """Called after the changed fields were written."""

    def after_delete(self) -> None:
        """Called after a soft or hard delete was written."""

    def after_restore(self) -> None:
        """Called after a soft delete was undone."""

    # === Queries ===

    def find(
        self,
        criteria: Criteria | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
        offset: int | None = None,
        include_deleted: bool = False,
    ) -> list[Model]:
        """Find records of this entity.

        Args:
            criteria: Field filters, e.g. ``{"age": {"gte": 18}, "status": ["a", "b"]}``
            order_by: "field", "-field" or a list of them
            limit: Maximum records
            offset: Records to skip
            include_deleted: Also return soft-deleted records

        Returns:
            New instances, one per row
        """
        rows = self.context.adapter.find(
            self.entity_name, criteria, order_by, limit, offset, include_deleted
        )
        return self._from_rows(rows)

    def find_by_id(self, record_id: str, include_deleted: bool = False) -> Model | None:
        row = self.context.adapter.find_by_id(self.entity_name, record_id, include_deleted)
        return None if row is None else self._from_row(self.entity_name, row)

    def find_first(
        self,
        criteria: Criteria | None = None,
        order_by: OrderBy = None,
        include_deleted: bool = False,
    ) -> Model | None:
        found = self.find(criteria, order_by, limit=1, include_deleted=include_deleted)
        return found[0] if found else None

    def find_all(self, order_by: OrderBy = None, include_deleted: bool = False) -> list[Model]:
        return self.find(None, order_by, include_deleted=include_deleted)

    def count(self, criteria: Criteria | None = None, include_deleted: bool = False) -> int:
        return self.context.adapter.count(self.entity_name, criteria, include_deleted)

    def populate_from_row(self, row: Mapping[str, Any]) -> Model:
        """Hydrate from a storage row without validation or pending changes."""
        for name, value in row.items():
            field = self.fields.get(name)
            if field is not None:
                field.set_from_storage(value)
        self._errors = {}
        deleted = self.fields[DELETED_AT].get() if DELETED_AT in self.fields else None
        self.state = LifecycleState.SOFT_DELETED if deleted else LifecycleState.PERSISTED
        return self

    def _from_row(self, entity_name: str, row: Mapping[str, Any]) -> Model:
        return self.context.new_model(entity_name).populate_from_row(row)

    def _from_rows(self, rows: Iterable[Mapping[str, Any]], entity_name: str = "") -> list[Model]:
        return [self._from_row(entity_name or self.entity_name, row) for row in rows]

    # === Relationships ===

    def relationship(self, name: str) -> BoundRelationship:
        """The relationship bound to this instance (one per name, memoized)."""
        return self._relationships.get(name)

    def get_related(self, name: str) -> Model | list[Model] | None:
        """Related records as models.

        Returns:
            A single model (or None) for single-valued sides, a list otherwise
        """
        bound = self.relationship(name)
        related = self._from_rows(bound.records(), bound.other_entity)
        if bound.is_single_valued:
            return related[0] if related else None
        return related

    def get_related_paginated(self, name: str, page: int = 1, per_page: int = 20) -> Page:
        bound = self.relationship(name)
        result = bound.paginated(page, per_page)
        result.items = self._from_rows(result.items, bound.other_entity)
        return result

    def add_relation(
        self, name: str, other: Model, additional_data: Mapping[str, Any] | None = None
    ) -> bool:
        return self.relationship(name).add(other, additional_data)

    def remove_relation(self, name: str, other: Model) -> bool:
        return self.relationship(name).remove(other)

    def has_relation(self, name: str, other: Model) -> bool:
        return self.relationship(name).has(other)

    def update_relation(self, name: str, other: Model, data: Mapping[str, Any]) -> bool:
        return self.relationship(name).update_link(other, data)

    def reorder_related(self, name: str, ordered_ids: list[str]) -> None:
        self.relationship(name).reorder(ordered_ids)

    def evict_unloaded_relationships(self) -> list[str]:
        return self._relationships.evict_unloaded()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.entity_name} id={self.id!r} state={self.state}>"


class _Assignment:
    """Assign engine-managed values, restoring the previous ones if the block raises."""

    def __init__(self, model: Model, assignments: Mapping[str, Any]) -> None:
        self._model = model
        self._assignments = assignments
        self._previous: dict[str, Any] = {}

    def __enter__(self) -> None:
        for name, value in self._assignments.items():
            field = self._model.fields[name]
            self._previous[name] = field.get()
            field.assign(value)

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if exc_type is not None:
            for name, value in self._previous.items():
                self._model.fields[name].assign(value)

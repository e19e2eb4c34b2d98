"""Relationship base: links between two entities stored in a join table.

Every relationship type keeps its links in its own join table holding the
two participant ids, audit columns and any additional fields. Removing a
link soft-deletes its row; adding the same pair again revives that row.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from metaforge.core.types import CascadePolicy, LifecycleState, RelationshipType
from metaforge.exceptions import (
    DuplicateLinkError,
    FieldNotFoundError,
    LifecycleError,
    ReferentialIntegrityError,
    RestrictDeleteError,
    UnknownParticipantError,
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
from metaforge.storage.tables import SORT_ORDER_COLUMN

if TYPE_CHECKING:
    from sqlalchemy import Table

    from metaforge.core.types import RelationshipDefinition
    from metaforge.data.adapter import PersistenceAdapter, Row
    from metaforge.models.model import Model, Visited
    from metaforge.relationships.engine import RelationshipEngine

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """One page of related records."""

    items: list[Any]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class Side:
    """A model's position in a relationship."""

    own_column: str
    other_column: str
    other_entity: str
    owning: bool


class Relationship:
    """Operations on the links of one relationship definition."""

    relationship_type: ClassVar[RelationshipType]
    # Whether the cascade policy deletes the owned records, not just the links
    cascades_to_related: ClassVar[bool] = True

    def __init__(self, definition: RelationshipDefinition, engine: RelationshipEngine) -> None:
        self.definition = definition
        self._engine = engine
        self.first_column, self.second_column = definition.columns
        first, second = definition.participants
        self.first_entity = first or ""
        self.second_entity = second or ""

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def cascade(self) -> CascadePolicy:
        return CascadePolicy(self.definition.cascade)

    @property
    def adapter(self) -> PersistenceAdapter:
        return self._engine.adapter

    @property
    def table(self) -> Table:
        return self.adapter.catalog.relationship_table(self.name)

    @property
    def is_ordered(self) -> bool:
        return False

    @property
    def link_order(self) -> list[str]:
        return [SORT_ORDER_COLUMN, CREATED_AT] if self.is_ordered else [CREATED_AT]

    # === Sides ===

    def side(self, model: Model) -> Side:
        """The model's side; self-referential relationships read from the owning side.

        Raises:
            UnknownParticipantError: If the model's entity does not take part
        """
        if model.entity_name == self.first_entity:
            return Side(self.first_column, self.second_column, self.second_entity, True)
        if model.entity_name == self.second_entity:
            return Side(self.second_column, self.first_column, self.first_entity, False)
        raise UnknownParticipantError(self.name, model.entity_name, "non-participating")

    def sides(self, model: Model) -> list[Side]:
        """Every column the model can appear in (both for self-referential relationships)."""
        if self.definition.is_self_referential:
            return [
                Side(self.first_column, self.second_column, self.second_entity, True),
                Side(self.second_column, self.first_column, self.first_entity, False),
            ]
        return [self.side(model)]

    def is_single_valued(self, model: Model) -> bool:
        """Whether the model sees at most one related record."""
        return False

    def _pair(self, model: Model, other: Model) -> dict[str, Any]:
        side = self.side(model)
        if other.entity_name != side.other_entity:
            raise UnknownParticipantError(self.name, other.entity_name, "non-participating")
        for record in (model, other):
            if not record.id or record.state != LifecycleState.PERSISTED:
                raise LifecycleError(
                    record.entity_name, f"link through '{self.name}'", str(record.state)
                )
        return {side.own_column: model.id, side.other_column: other.id}

    # === Reads ===

    def get_related_records(self, model: Model, include_deleted: bool = False) -> list[Row]:
        """Rows of the other side, in link order.

        Args:
            model: Record whose links are followed
            include_deleted: Also follow removed links and return soft-deleted records
        """
        side = self.side(model)
        links = self.adapter.select_rows(
            self.table,
            {side.own_column: model.id},
            order_by=self.link_order,
            include_deleted=include_deleted,
        )
        ids = [link[side.other_column] for link in links]
        rows = self._load(side.other_entity, ids, include_deleted)
        return rows[:1] if self.is_single_valued(model) else rows

    def get_related_paginated(self, model: Model, page: int = 1, per_page: int = 20) -> Page:
        page = max(page, 1)
        per_page = max(per_page, 1)
        side = self.side(model)
        criteria = {side.own_column: model.id}

        total = self.adapter.count_rows(self.table, criteria)
        links = self.adapter.select_rows(
            self.table,
            criteria,
            order_by=self.link_order,
            limit=per_page,
            offset=(page - 1) * per_page,
        )
        items = self._load(side.other_entity, [link[side.other_column] for link in links])
        return Page(items=items, total=total, page=page, per_page=per_page)

    def _load(self, entity_name: str, ids: list[str], include_deleted: bool = False) -> list[Row]:
        if not ids:
            return []
        rows = self.adapter.find(
            entity_name, {IDENTIFIER_FIELD: ids}, include_deleted=include_deleted
        )
        by_id = {row[IDENTIFIER_FIELD]: row for row in rows}
        return [by_id[record_id] for record_id in ids if record_id in by_id]

    def has(self, model: Model, other: Model) -> bool:
        return self.adapter.count_rows(self.table, self._pair(model, other)) > 0

    # === Writes ===

    def add(
        self, model: Model, other: Model, additional_data: Mapping[str, Any] | None = None
    ) -> bool:
        """Link two records.

        A previously removed link between the same pair is revived rather
        than duplicated.

        Raises:
            DuplicateLinkError: If the pair is already actively linked
            FieldNotFoundError: If additional_data names an unknown join attribute
            ValidationError: If a join attribute fails its rules
        """
        pair = self._pair(model, other)
        extras = self._join_values(additional_data or {}, complete=True)
        adapter = self.adapter

        with adapter.transaction():
            existing = adapter.select_rows(self.table, pair, include_deleted=True)
            if any(row[DELETED_AT] is None for row in existing):
                raise DuplicateLinkError(self.name, str(model.id), str(other.id))

            self._release(pair)
            if self.is_ordered:
                extras[SORT_ORDER_COLUMN] = self._next_sort_order(pair)

            now, actor = self._engine.now(), self._engine.actor()
            if existing:
                adapter.update_rows(
                    self.table,
                    {IDENTIFIER_FIELD: existing[0][IDENTIFIER_FIELD]},
                    {
                        DELETED_AT: None,
                        DELETED_BY: None,
                        UPDATED_AT: now,
                        UPDATED_BY: actor,
                        **extras,
                    },
                )
            else:
                adapter.insert_row(
                    self.table,
                    {
                        IDENTIFIER_FIELD: str(uuid.uuid4()),
                        **pair,
                        CREATED_AT: now,
                        UPDATED_AT: now,
                        CREATED_BY: actor,
                        UPDATED_BY: actor,
                        **extras,
                    },
                )
        logger.debug(f"Linked {model.id} -> {other.id} through {self.name}")
        return True

    def remove(self, model: Model, other: Model) -> bool:
        """Soft-delete the link; False if there was no active link."""
        removed = self.adapter.update_rows(
            self.table, self._pair(model, other), self._removal_values(), include_deleted=False
        )
        return removed > 0

    def update_link(self, model: Model, other: Model, data: Mapping[str, Any]) -> bool:
        """Update join attributes of an active link; False if there is none."""
        values = self._join_values(data, complete=False)
        if not values:
            return False
        values.update({UPDATED_AT: self._engine.now(), UPDATED_BY: self._engine.actor()})
        updated = self.adapter.update_rows(
            self.table, self._pair(model, other), values, include_deleted=False
        )
        return updated > 0

    def reorder(self, model: Model, ordered_ids: list[str]) -> None:
        raise ReferentialIntegrityError(
            f"Relationship '{self.name}' is not an ordered one-to-many relationship",
            {"relationship_name": self.name},
        )

    def _release(self, pair: Mapping[str, Any]) -> None:
        """Remove links the new pair replaces."""

    def _next_sort_order(self, pair: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def _removal_values(self) -> dict[str, Any]:
        now = self._engine.now()
        actor = self._engine.actor()
        return {DELETED_AT: now, DELETED_BY: actor, UPDATED_AT: now, UPDATED_BY: actor}

    def _join_values(self, data: Mapping[str, Any], complete: bool) -> dict[str, Any]:
        definitions = {d.name: d for d in self.definition.additional_fields}
        values: dict[str, Any] = {}
        errors: dict[str, list[str]] = {}

        for name, value in data.items():
            definition = definitions.get(name)
            if definition is None:
                raise FieldNotFoundError(name, self.name, list(definitions))
            field = build_field(definition)
            if not field.set(value):
                errors[name] = field.errors
            values[name] = field.value_for_storage()

        if complete:
            for name, definition in definitions.items():
                if name in values:
                    continue
                field = build_field(definition)
                if not field.validate():
                    errors[name] = field.errors

        if errors:
            raise ValidationError(self.name, errors)
        return values

    # === Deletion ===

    def handle_deletion(self, model: Model, hard: bool, visited: Visited) -> None:
        """Apply the cascade policy to a record that is being deleted.

        Raises:
            RestrictDeleteError: If the policy is restrict and active links exist
        """
        for side in self.sides(model):
            criteria = {side.own_column: model.id}

            if self.cascade == CascadePolicy.RESTRICT:
                active = self.adapter.count_rows(self.table, criteria)
                if active:
                    raise RestrictDeleteError(model.entity_name, str(model.id), self.name, active)
                if hard:
                    self.adapter.delete_rows(self.table, criteria)

            elif self.cascade == CascadePolicy.CASCADE:
                owned: list[str] = []
                if side.owning and self.cascades_to_related:
                    owned = [
                        row[side.other_column]
                        for row in self.adapter.select_rows(self.table, criteria)
                    ]
                    if hard:
                        owned += self._soft_deleted_orphans(side, criteria, owned)
                self._drop_links(criteria, hard)
                for record_id in owned:
                    self._engine.delete_record(side.other_entity, record_id, hard, visited)

            else:
                self._drop_links(criteria, hard)

    def _soft_deleted_orphans(
        self, side: Side, criteria: Mapping[str, Any], active: list[str]
    ) -> list[str]:
        """Soft-deleted records whose removed link to the owner is their last one.

        These are what an earlier soft cascade left behind; records that were
        moved to another owner or are still live are not included.
        """
        removed = {
            row[side.other_column]
            for row in self.adapter.select_rows(self.table, criteria, include_deleted=True)
        }
        candidates = sorted(
            record_id
            for record_id in removed - set(active)
            if not self.adapter.count_rows(self.table, {side.other_column: record_id})
        )
        if not candidates:
            return []
        rows = self.adapter.find(
            side.other_entity, {IDENTIFIER_FIELD: candidates}, include_deleted=True
        )
        return [row[IDENTIFIER_FIELD] for row in rows if row[DELETED_AT] is not None]

    def _drop_links(self, criteria: Mapping[str, Any], hard: bool) -> int:
        if hard:
            return self.adapter.delete_rows(self.table, criteria)
        return self.adapter.update_rows(
            self.table, criteria, self._removal_values(), include_deleted=False
        )

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} {self.name}: "
            f"{self.first_entity} -> {self.second_entity} ({self.cascade})>"
        )

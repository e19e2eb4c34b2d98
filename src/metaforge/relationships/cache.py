"""Per-instance binding of relationships.

``Model.relationship(name)`` always returns the same BoundRelationship for
that instance and name. Bound relationships that never loaded anything can
be evicted; the ones that did stay until the model is discarded.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from metaforge.exceptions import RelationshipNotFoundError

if TYPE_CHECKING:
    from metaforge.data.adapter import Row
    from metaforge.models.model import Model
    from metaforge.relationships.base import Page, Relationship


class BoundRelationship:
    """A relationship seen from one model instance."""

    def __init__(self, relationship: Relationship, model: Model) -> None:
        self.relationship = relationship
        self.model = model
        self.loaded = False

    @property
    def name(self) -> str:
        return self.relationship.name

    @property
    def other_entity(self) -> str:
        return self.relationship.side(self.model).other_entity

    @property
    def is_single_valued(self) -> bool:
        return self.relationship.is_single_valued(self.model)

    def records(self, include_deleted: bool = False) -> list[Row]:
        rows = self.relationship.get_related_records(self.model, include_deleted)
        self.loaded = True
        return rows

    def paginated(self, page: int = 1, per_page: int = 20) -> Page:
        result = self.relationship.get_related_paginated(self.model, page, per_page)
        self.loaded = True
        return result

    def add(self, other: Model, additional_data: Mapping[str, Any] | None = None) -> bool:
        return self.relationship.add(self.model, other, additional_data)

    def remove(self, other: Model) -> bool:
        return self.relationship.remove(self.model, other)

    def has(self, other: Model) -> bool:
        return self.relationship.has(self.model, other)

    def update_link(self, other: Model, data: Mapping[str, Any]) -> bool:
        return self.relationship.update_link(self.model, other, data)

    def reorder(self, ordered_ids: list[str]) -> None:
        self.relationship.reorder(self.model, ordered_ids)

    def __repr__(self) -> str:
        return f"<BoundRelationship {self.name} of {self.model.entity_name} loaded={self.loaded}>"


class RelationshipCache:
    """Bound relationships of one model instance, keyed by name."""

    def __init__(self, model: Model) -> None:
        self._model = model
        self._bound: dict[str, BoundRelationship] = {}

    def get(self, name: str) -> BoundRelationship:
        """Bind (once) and return the named relationship.

        Raises:
            RelationshipNotFoundError: If the model's entity does not take part in it
        """
        bound = self._bound.get(name)
        if bound is not None:
            return bound

        model = self._model
        context = model.context
        relationship = context.relationship_engine.create_relationship(name)
        if model.entity_name not in relationship.definition.participants:
            available = [r.name for r in context.registry.relationships_for(model.entity_name)]
            raise RelationshipNotFoundError(name, model.entity_name, available)

        bound = BoundRelationship(relationship, model)
        self._bound[name] = bound
        return bound

    def evict_unloaded(self) -> list[str]:
        """Drop bound relationships that never loaded data; returns their names."""
        evicted = [name for name, bound in self._bound.items() if not bound.loaded]
        for name in evicted:
            del self._bound[name]
        return evicted

    def clear(self) -> None:
        self._bound.clear()

    def names(self) -> list[str]:
        return list(self._bound)

    def __contains__(self, name: object) -> bool:
        return name in self._bound

    def __len__(self) -> int:
        return len(self._bound)

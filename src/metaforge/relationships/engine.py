"""Relationship engine: validates relationship definitions and builds relationships.

Relationships are created once per name and cached. Creation rejects
definitions that would make the link graph ambiguous or unsafe:
- participants that are unknown or abstract entities
- a second definition over the same participants and type
- cascade ownership loops (A owns B owns ... owns A)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from metaforge.core.compat import utcnow
from metaforge.core.types import CascadePolicy, RelationshipDefinition, RelationshipType
from metaforge.exceptions import (
    CircularRelationshipError,
    DuplicateRelationshipError,
    MalformedRelationshipError,
    UnknownParticipantError,
)
from metaforge.relationships.types import RELATIONSHIP_TYPES

if TYPE_CHECKING:
    from metaforge.data.adapter import PersistenceAdapter
    from metaforge.metadata.registry import MetadataRegistry
    from metaforge.models.model import Model, Visited
    from metaforge.relationships.base import Relationship

logger = logging.getLogger(__name__)

REQUIRED_PARTICIPANTS: dict[str, tuple[str, str]] = {
    RelationshipType.ONE_TO_ONE.value: ("model_a", "model_b"),
    RelationshipType.ONE_TO_MANY.value: ("model_one", "model_many"),
    RelationshipType.MANY_TO_MANY.value: ("model_a", "model_b"),
}


def cascade_edge(definition: RelationshipDefinition) -> tuple[str, str] | None:
    """Owner -> owned edge if deleting the owner deletes the owned record."""
    if definition.cascade != CascadePolicy.CASCADE:
        return None
    if definition.type == RelationshipType.MANY_TO_MANY:
        return None
    owner, owned = definition.participants
    if owner is None or owned is None:
        return None
    return owner, owned


def find_path(graph: dict[str, list[str]], start: str, goal: str) -> list[str] | None:
    """Depth-first search for a path from start to goal; None if unreachable."""
    stack: list[tuple[str, list[str]]] = [(start, [start])]
    seen: set[str] = set()
    while stack:
        node, path = stack.pop()
        if node == goal:
            return path
        if node in seen:
            continue
        seen.add(node)
        for neighbour in graph.get(node, []):
            stack.append((neighbour, [*path, neighbour]))
    return None


class RelationshipEngine:
    """Creates, caches and dispatches to relationships."""

    def __init__(
        self,
        registry: MetadataRegistry,
        adapter: PersistenceAdapter,
        model_factory: Callable[[str], Model],
        clock: Callable[[], datetime] = utcnow,
        actor_provider: Callable[[], str | None] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Metadata registry holding the definitions
            adapter: Persistence adapter for join tables
            model_factory: Builds a fresh model for an entity name (used by cascades)
            clock: Source of link timestamps
            actor_provider: Source of the current actor id for link audit columns
        """
        self.registry = registry
        self.adapter = adapter
        self._model_factory = model_factory
        self._clock = clock
        self._actor_provider = actor_provider
        self._relationships: dict[str, Relationship] = {}
        self._keys: dict[str, str] = {}

    def now(self) -> datetime:
        return self._clock()

    def actor(self) -> str | None:
        return self._actor_provider() if self._actor_provider else None

    # === Creation ===

    def create_relationship(self, name: str) -> Relationship:
        """Validate a relationship definition and return its (cached) instance.

        Raises:
            RelationshipNotFoundError: If no definition has that name
            MalformedRelationshipError: If participants required by the type are missing
            UnknownParticipantError: If a participant is unknown or abstract
            DuplicateRelationshipError: If another relationship has the same key
            CircularRelationshipError: If the cascade ownership graph would loop
        """
        cached = self._relationships.get(name)
        if cached is not None:
            return cached

        definition = self.registry.get_relationship_definition(name)
        self._check_participants(definition)

        existing = self._keys.get(definition.key)
        if existing is not None:
            raise DuplicateRelationshipError(name, definition.key, existing)

        self._check_cycle(definition)

        relationship = RELATIONSHIP_TYPES[definition.type](definition, self)
        self._relationships[name] = relationship
        self._keys[definition.key] = name
        logger.debug(f"Created relationship {relationship!r}")
        return relationship

    def load_all(self) -> list[Relationship]:
        """Create every registered relationship, in registration order."""
        return [self.create_relationship(name) for name in self.registry.list_relationships()]

    def get(self, name: str) -> Relationship:
        return self.create_relationship(name)

    def for_entity(self, entity_name: str) -> list[Relationship]:
        return [
            self.create_relationship(definition.name)
            for definition in self.registry.relationships_for(entity_name)
        ]

    def _check_participants(self, definition: RelationshipDefinition) -> None:
        required = REQUIRED_PARTICIPANTS[definition.type]
        missing = [key for key in required if not getattr(definition, key)]
        if missing:
            raise MalformedRelationshipError(definition.name, str(definition.type), missing)

        for entity_name in filter(None, definition.participants):
            if not self.registry.has_entity(entity_name):
                raise UnknownParticipantError(definition.name, entity_name)
            if self.registry.get_entity_definition(entity_name).abstract:
                raise UnknownParticipantError(definition.name, entity_name, "abstract")

    def _check_cycle(self, definition: RelationshipDefinition) -> None:
        edge = cascade_edge(definition)
        if edge is None:
            return
        owner, owned = edge
        if owner == owned:
            raise CircularRelationshipError(definition.name, [owner, owned])

        graph: dict[str, list[str]] = {}
        for relationship in self._relationships.values():
            existing = cascade_edge(relationship.definition)
            if existing is not None:
                graph.setdefault(existing[0], []).append(existing[1])

        path = find_path(graph, owned, owner)
        if path is not None:
            raise CircularRelationshipError(definition.name, [owner, *path])

    # === Deletion ===

    def handle_deletion(self, model: Model, hard: bool, visited: Visited) -> None:
        """Run the cascade policy of every relationship the model takes part in."""
        for relationship in self.for_entity(model.entity_name):
            relationship.handle_deletion(model, hard, visited)

    def delete_record(self, entity_name: str, record_id: str, hard: bool, visited: Visited) -> None:
        """Delete a related record through its model so its own cascades run."""
        model = self._model_factory(entity_name).find_by_id(record_id, include_deleted=True)
        if model is None:
            logger.debug(f"Cascade target {entity_name} {record_id} no longer exists")
            return
        model.delete_cascading(hard, visited)

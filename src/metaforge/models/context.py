"""Collaborators shared by every model instance."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from passlib.context import CryptContext

from metaforge.core.compat import utcnow
from metaforge.exceptions import ConfigurationError

if TYPE_CHECKING:
    from metaforge.data.adapter import PersistenceAdapter
    from metaforge.metadata.registry import MetadataRegistry
    from metaforge.models.model import Model
    from metaforge.relationships.engine import RelationshipEngine


def _no_actor() -> str | None:
    return None


@dataclass
class ModelContext:
    """Everything a Model needs besides its own fields.

    Built once by ``Metaforge`` and passed to every instance; tests can
    build one directly with a fixed clock or actor.
    """

    registry: MetadataRegistry
    adapter: PersistenceAdapter
    relationships: RelationshipEngine | None = None
    clock: Callable[[], datetime] = utcnow
    actor_provider: Callable[[], str | None] = _no_actor
    password_context: CryptContext | None = None
    # Entity name -> Model subclass used for its instances
    model_classes: dict[str, type[Model]] = field(default_factory=dict)

    def register_model_class(self, entity_name: str, cls: type[Model]) -> None:
        """Use ``cls`` for instances of ``entity_name``.

        Raises:
            EntityNotFoundError: If the entity is not registered
        """
        self.registry.get_entity_definition(entity_name)
        self.model_classes[entity_name] = cls

    def model_class(self, entity_name: str) -> type[Model]:
        from metaforge.models.model import Model

        return self.model_classes.get(entity_name, Model)

    def new_model(self, entity_name: str) -> Model:
        """Fresh instance of an entity, using its registered subclass if any."""
        return self.model_class(entity_name)(entity_name, self)

    @property
    def relationship_engine(self) -> RelationshipEngine:
        if self.relationships is None:
            raise ConfigurationError(
                "ModelContext has no relationship engine; build models through Metaforge"
            )
        return self.relationships

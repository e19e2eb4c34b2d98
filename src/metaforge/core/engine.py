"""Metaforge: the composition root.

Wires the metadata registry, table catalog, persistence adapter,
relationship engine and schema synchronizer together, and hands out models.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from passlib.context import CryptContext
from sqlalchemy import Connection

from metaforge.core.compat import utcnow
from metaforge.core.config import MetaforgeConfig
from metaforge.core.connection import DatabaseConnection
from metaforge.data.adapter import PersistenceAdapter
from metaforge.exceptions import ConfigurationError
from metaforge.metadata.registry import MetadataRegistry
from metaforge.models.context import ModelContext
from metaforge.relationships.engine import RelationshipEngine
from metaforge.schema.synchronizer import SchemaPlan, SchemaSynchronizer
from metaforge.storage.tables import TableCatalog

if TYPE_CHECKING:
    from metaforge.data.adapter import Criteria, OrderBy
    from metaforge.models.model import Model
    from metaforge.relationships.base import Relationship

logger = logging.getLogger(__name__)

MetadataSource = MetadataRegistry | Mapping[str, Any] | str | Path


def load_registry(source: MetadataSource) -> MetadataRegistry:
    """Build a registry from a registry, a dict, a JSON file or a metadata directory.

    Raises:
        ConfigurationError: If the source cannot be read or is invalid
    """
    if isinstance(source, MetadataRegistry):
        return source
    if isinstance(source, Mapping):
        return MetadataRegistry.from_dicts(
            source.get("entities", []), source.get("relationships", [])
        )
    path = Path(source)
    if path.is_dir():
        return MetadataRegistry.from_directory(path)
    return MetadataRegistry.from_file(path)


class Metaforge:
    """Metadata-driven persistence engine.

    Entities, fields and relationships come from declarative metadata; the
    engine derives tables from it, keeps the schema in sync, and gives back
    Model instances that validate and persist themselves.

    Example:
        forge = Metaforge("sqlite:///app.db", metadata="metadata/")
        forge.sync_schema()

        user = forge.new("User", {"email": "ada@example.com"})
        if not user.create():
            print(user.errors)

        for user in forge.find("User", {"email": {"like": "%@example.com"}}):
            print(user.to_dict())
    """

    def __init__(
        self,
        url: str | None = None,
        metadata: MetadataSource | None = None,
        *,
        config: MetaforgeConfig | None = None,
        echo: bool | None = None,
        auto_sync: bool | None = None,
        clock: Callable[[], datetime] = utcnow,
        actor_provider: Callable[[], str | None] | None = None,
        model_classes: Mapping[str, type[Model]] | None = None,
    ) -> None:
        """Initialize Metaforge.

        Args:
            url: Database URL (default: METAFORGE_URL, then a local SQLite file)
            metadata: Registry, raw dict, JSON file or metadata directory
                (default: METAFORGE_METADATA)
            config: Full configuration; url/echo/auto_sync override it
            echo: Echo SQL statements
            auto_sync: Apply the schema plan right away
            clock: Source of audit timestamps
            actor_provider: Returns the id of the current actor, or None
            model_classes: Model subclasses to use per entity name

        Raises:
            ConfigurationError: If no metadata is given or it is invalid
            ReferentialIntegrityError: If relationship definitions conflict
        """
        config = config or MetaforgeConfig.from_env()
        overrides = {"database_url": url, "echo": echo, "auto_sync": auto_sync}
        config = config.model_copy(update={k: v for k, v in overrides.items() if v is not None})
        self._config = config

        source = metadata if metadata is not None else config.metadata_path
        if source is None:
            raise ConfigurationError(
                "No metadata given. Pass metadata= or set METAFORGE_METADATA.",
            )
        self._registry = load_registry(source)

        self._connection = DatabaseConnection(config.database_url, echo=config.echo)
        self._catalog = TableCatalog(self._registry)
        self._adapter = PersistenceAdapter(self._connection, self._catalog)
        self._context = ModelContext(
            registry=self._registry,
            adapter=self._adapter,
            clock=clock,
            actor_provider=actor_provider or (lambda: None),
            password_context=CryptContext(schemes=config.password_schemes, deprecated="auto"),
        )
        for entity_name, cls in (model_classes or {}).items():
            self._context.register_model_class(entity_name, cls)
        self._relationships = RelationshipEngine(
            self._registry,
            self._adapter,
            self._context.new_model,
            clock=clock,
            actor_provider=actor_provider,
        )
        self._context.relationships = self._relationships
        # Relationship definitions are checked before any table is projected
        self._relationships.load_all()
        self._synchronizer = SchemaSynchronizer(self._connection, self._catalog)

        logger.info(
            f"Metaforge ready: {len(self._registry.list_entities())} entities, "
            f"{len(self._registry.list_relationships())} relationships"
        )
        if config.auto_sync:
            self.sync_schema()

    # === Components ===

    @property
    def config(self) -> MetaforgeConfig:
        return self._config

    @property
    def registry(self) -> MetadataRegistry:
        return self._registry

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    @property
    def adapter(self) -> PersistenceAdapter:
        return self._adapter

    @property
    def catalog(self) -> TableCatalog:
        return self._catalog

    @property
    def context(self) -> ModelContext:
        return self._context

    @property
    def relationships(self) -> RelationshipEngine:
        return self._relationships

    @property
    def synchronizer(self) -> SchemaSynchronizer:
        return self._synchronizer

    # === Models ===

    def register_model(self, entity_name: str) -> Callable[[type[Model]], type[Model]]:
        """Decorator binding a Model subclass to an entity of this engine.

        Example:
            @forge.register_model("User")
            class User(Model):
                def after_create(self) -> None:
                    send_welcome_mail(self.get("email"))

        Raises:
            EntityNotFoundError: If the entity is not registered
        """

        def decorator(cls: type[Model]) -> type[Model]:
            self._context.register_model_class(entity_name, cls)
            return cls

        return decorator

    def new(self, entity_name: str, values: Mapping[str, Any] | None = None) -> Model:
        """Create an unsaved model, optionally setting field values.

        Raises:
            EntityNotFoundError: If the entity is not registered
        """
        model = self._context.new_model(entity_name)
        if values:
            model.populate(values)
        return model

    def get(self, entity_name: str, record_id: str, include_deleted: bool = False) -> Model | None:
        """Load a record by id; None if it does not exist."""
        return self._context.new_model(entity_name).find_by_id(record_id, include_deleted)

    def find(
        self,
        entity_name: str,
        criteria: Criteria | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
        offset: int | None = None,
        include_deleted: bool = False,
    ) -> list[Model]:
        """Find records of an entity (see ``Model.find``)."""
        return self._context.new_model(entity_name).find(
            criteria, order_by, limit, offset, include_deleted
        )

    def count(
        self, entity_name: str, criteria: Criteria | None = None, include_deleted: bool = False
    ) -> int:
        return self._adapter.count(entity_name, criteria, include_deleted)

    def relationship(self, name: str) -> Relationship:
        return self._relationships.create_relationship(name)

    def list_entities(self) -> list[str]:
        return self._registry.list_entities()

    # === Schema ===

    def plan_schema(self) -> SchemaPlan:
        """DDL needed to bring the database in line with the metadata."""
        return self._synchronizer.plan()

    def sync_schema(self) -> SchemaPlan:
        """Apply the schema plan and return what was applied."""
        plan = self._synchronizer.sync()
        if not plan.is_empty:
            logger.info(f"Applied {len(plan)} schema statement(s)")
        return plan

    def describe(self) -> dict[str, Any]:
        """Metadata plus the projected tables, as a JSON-serializable dict."""
        description = self._registry.describe()
        description["tables"] = {
            spec.name: {
                "kind": spec.kind,
                "owner": spec.owner,
                "columns": [f.name for f in spec.persisted_fields],
                "indexes": [
                    {"name": ix.name, "columns": list(ix.columns), "unique": ix.unique}
                    for ix in spec.indexes
                ],
            }
            for spec in self._catalog.specs
        }
        description["database"] = {"dialect": self._connection.dialect}
        return description

    # === Lifecycle ===

    def transaction(self) -> AbstractContextManager[Connection]:
        """Group several operations into one unit of work.

        Example:
            with forge.transaction():
                order.create()
                order.add_relation("order_lines", line)
        """
        return self._connection.begin()

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    def __enter__(self) -> Metaforge:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

"""Concrete relationship types and the explicit type map."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from metaforge.core.types import RelationshipType
from metaforge.exceptions import ReferentialIntegrityError
from metaforge.metadata.core_fields import UPDATED_AT, UPDATED_BY
from metaforge.relationships.base import Relationship
from metaforge.storage.tables import SORT_ORDER_COLUMN

if TYPE_CHECKING:
    from metaforge.models.model import Model


class OneToOneRelationship(Relationship):
    """Each record links to at most one record on the other side.

    Adding a link replaces any active link either participant already has.
    """

    relationship_type = RelationshipType.ONE_TO_ONE

    def is_single_valued(self, model: Model) -> bool:
        return True

    def _release(self, pair: Mapping[str, Any]) -> None:
        for column in (self.first_column, self.second_column):
            self.adapter.update_rows(
                self.table,
                {column: pair[column]},
                self._removal_values(),
                include_deleted=False,
            )


class OneToManyRelationship(Relationship):
    """One owner record, many owned records.

    A record on the "many" side has at most one active parent; linking it to
    a new parent releases the old link. Ordered relationships keep a
    ``sort_order`` join attribute and list children in that order.
    """

    relationship_type = RelationshipType.ONE_TO_MANY

    @property
    def is_ordered(self) -> bool:
        return self.definition.ordered

    def is_single_valued(self, model: Model) -> bool:
        return not self.side(model).owning

    def _release(self, pair: Mapping[str, Any]) -> None:
        self.adapter.update_rows(
            self.table,
            {self.second_column: pair[self.second_column]},
            self._removal_values(),
            include_deleted=False,
        )

    def _next_sort_order(self, pair: Mapping[str, Any]) -> int:
        current = self.adapter.max_value(
            self.table, SORT_ORDER_COLUMN, {self.first_column: pair[self.first_column]}
        )
        return 0 if current is None else int(current) + 1

    def reorder(self, model: Model, ordered_ids: list[str]) -> None:
        """Rewrite the children's sort order to match ``ordered_ids``.

        Args:
            model: The "one" side record
            ordered_ids: Ids of linked "many" side records, first to last

        Raises:
            ReferentialIntegrityError: If the relationship is unordered, the
                model is not the "one" side, or an id is not linked
        """
        if not self.is_ordered:
            super().reorder(model, ordered_ids)
        if not self.side(model).owning:
            raise ReferentialIntegrityError(
                f"Reorder '{self.name}' from the '{self.first_entity}' side",
                {"relationship_name": self.name, "entity_name": model.entity_name},
            )

        audit = {UPDATED_AT: self._engine.now(), UPDATED_BY: self._engine.actor()}
        with self.adapter.transaction():
            for position, record_id in enumerate(ordered_ids):
                updated = self.adapter.update_rows(
                    self.table,
                    {self.first_column: model.id, self.second_column: record_id},
                    {SORT_ORDER_COLUMN: position, **audit},
                    include_deleted=False,
                )
                if not updated:
                    raise ReferentialIntegrityError(
                        f"Record '{record_id}' is not linked to '{model.id}' through '{self.name}'",
                        {"relationship_name": self.name, "record_id": record_id},
                    )


class ManyToManyRelationship(Relationship):
    """Any number of links per record; cascades only ever remove link rows."""

    relationship_type = RelationshipType.MANY_TO_MANY
    cascades_to_related = False


RELATIONSHIP_TYPES: dict[str, type[Relationship]] = {
    cls.relationship_type.value: cls
    for cls in (OneToOneRelationship, OneToManyRelationship, ManyToManyRelationship)
}

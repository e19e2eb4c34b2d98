"""Field type catalog: an explicit map from type tag to field class."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metaforge.fields.base import Field
from metaforge.fields.types import FIELD_CLASSES, TextField

if TYPE_CHECKING:
    from metaforge.core.types import FieldDefinition
    from metaforge.fields.base import FieldOwner

logger = logging.getLogger(__name__)

FieldClass = type[Field]

FIELD_TYPES: dict[str, FieldClass] = {cls.field_type: cls for cls in FIELD_CLASSES}

FALLBACK_FIELD_CLASS: FieldClass = TextField


def field_class_for(type_tag: str) -> FieldClass:
    """Field class for a type tag; unknown tags get the text field."""
    return FIELD_TYPES.get(type_tag, FALLBACK_FIELD_CLASS)


def build_field(definition: FieldDefinition, owner: FieldOwner | None = None) -> Field:
    """Instantiate the field class registered for ``definition.type``."""
    field_cls = FIELD_TYPES.get(definition.type)
    if field_cls is None:
        logger.warning(
            f"Field '{definition.name}' has unknown type '{definition.type}', using text"
        )
        field_cls = FALLBACK_FIELD_CLASS
    return field_cls(definition, owner)

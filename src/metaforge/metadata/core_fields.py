"""Fields every entity carries: the identifier plus audit columns."""

from __future__ import annotations

from metaforge.core.types import FieldDefinition, FieldType

IDENTIFIER_FIELD = "id"

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"
CREATED_BY = "created_by"
UPDATED_BY = "updated_by"
DELETED_BY = "deleted_by"

AUDIT_FIELDS = (CREATED_AT, UPDATED_AT, DELETED_AT, CREATED_BY, UPDATED_BY, DELETED_BY)

CORE_FIELDS: tuple[FieldDefinition, ...] = (
    FieldDefinition(
        name=IDENTIFIER_FIELD,
        type=FieldType.ID.value,
        label="ID",
        required=True,
        read_only=True,
    ),
    FieldDefinition(name=CREATED_AT, type="datetime", label="Created At", read_only=True),
    FieldDefinition(name=UPDATED_AT, type="datetime", label="Updated At", read_only=True),
    FieldDefinition(
        name=DELETED_AT, type="datetime", label="Deleted At", read_only=True, indexed=True
    ),
    FieldDefinition(name=CREATED_BY, type="text", label="Created By", read_only=True),
    FieldDefinition(name=UPDATED_BY, type="text", label="Updated By", read_only=True),
    FieldDefinition(name=DELETED_BY, type="text", label="Deleted By", read_only=True),
)

CORE_FIELD_NAMES = tuple(f.name for f in CORE_FIELDS)


def with_core_fields(fields: list[FieldDefinition]) -> list[FieldDefinition]:
    """Prepend the core fields an entity has not declared itself.

    Declared versions win, so an entity may relabel ``created_at`` or mark
    ``deleted_at`` as not indexed.
    """
    declared = {f.name for f in fields}
    missing = [f for f in CORE_FIELDS if f.name not in declared]
    return [*missing, *fields]

"""Typed metadata definitions for metaforge.

Definitions are parsed once at load time. Keys may be given in snake_case or
camelCase (``defaultValue``, ``isPersisted``); unknown keys are rejected
instead of being silently ignored.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from metaforge.core.compat import StrEnum

MAX_TABLE_NAME_LENGTH = 64


class FieldType(StrEnum):
    """Field type tags known to the field type catalog."""

    TEXT = "text"
    BIG_TEXT = "big_text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    EMAIL = "email"
    PASSWORD = "password"
    ID = "id"
    URL = "url"
    IMAGE = "image"
    VIDEO = "video"
    ENUM = "enum"
    MULTI_ENUM = "multi_enum"
    RADIO = "radio"
    RELATED_RECORD = "related_record"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field type values."""
        return [t.value for t in cls]


class RelationshipType(StrEnum):
    """Relationship types between entities."""

    ONE_TO_ONE = "one_to_one"  # e.g., User <-> Profile
    ONE_TO_MANY = "one_to_many"  # e.g., Movie -> Quotes
    MANY_TO_MANY = "many_to_many"  # e.g., User <-> Role

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid relationship type values."""
        return [t.value for t in cls]


class CascadePolicy(StrEnum):
    """What happens to links and related records when a participant is deleted."""

    RESTRICT = "restrict"  # Refuse while active links exist
    CASCADE = "cascade"  # Remove links and delete owned records
    SOFT_DELETE = "soft_delete"  # Mark links inactive

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid cascade policy values."""
        return [p.value for p in cls]


class LifecycleState(StrEnum):
    """Lifecycle states of a model instance."""

    NEW = "new"
    PERSISTED = "persisted"
    SOFT_DELETED = "soft_deleted"
    DELETED = "deleted"


_DEFINITION_CONFIG: Any = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "extra": "forbid",
    "frozen": True,
    "use_enum_values": True,
    "protected_namespaces": (),
}


class RuleSpec(BaseModel):
    """One validation rule reference, with optional parameters.

    Accepts either a bare rule name (``"Email"``) or a mapping such as
    ``{"name": "Range", "min": 0, "max": 130}``.
    """

    name: str = Field(..., min_length=1)

    model_config = {"extra": "allow", "frozen": True}

    @property
    def params(self) -> dict[str, Any]:
        """Parameters given next to the rule name."""
        return dict(self.model_extra or {})


class FieldDefinition(BaseModel):
    """Static description of one entity field."""

    name: str = Field(..., description="Field name, unique within the entity")
    type: str = Field(default=FieldType.TEXT.value, description="Field type tag")
    label: str | None = Field(default=None, description="Human-readable label")
    description: str | None = Field(default=None)
    required: bool = Field(default=False)
    unique: bool = Field(default=False)
    indexed: bool = Field(default=False, description="Create a secondary index")
    read_only: bool = Field(default=False, description="Reject assignment from callers")
    default_value: Any = Field(default=None, description="Value for new instances")
    validation_rules: list[RuleSpec] = Field(default_factory=list)
    is_persisted: bool = Field(default=True, description="Whether a column backs this field")
    max_length: int | None = Field(default=None, gt=0)
    min_length: int | None = Field(default=None, ge=0)
    min_value: float | None = Field(default=None)
    max_value: float | None = Field(default=None)
    options: dict[str, str] | None = Field(
        default=None, description="Allowed keys (enum, multi_enum, radio) and their labels"
    )
    related_entity: str | None = Field(
        default=None, description="Target entity of a related_record field"
    )

    model_config = _DEFINITION_CONFIG

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("field name must not be empty")
        return value

    @field_validator("validation_rules", mode="before")
    @classmethod
    def _rules_from_names(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("options", mode="before")
    @classmethod
    def _options_from_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {str(item): str(item) for item in value}
        return value


class EntityDefinition(BaseModel):
    """Static description of an entity and its backing table."""

    name: str = Field(..., description="Entity name")
    table: str | None = Field(default=None, description="Backing table name")
    fields: list[FieldDefinition] = Field(default_factory=list)
    relationships: list[str] = Field(default_factory=list)
    permissions: dict[str, list[str]] = Field(
        default_factory=dict, description="Default role -> allowed actions"
    )
    abstract: bool = Field(default=False)
    description: str | None = Field(default=None)

    model_config = _DEFINITION_CONFIG

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("entity name must not be empty")
        return value

    @model_validator(mode="after")
    def _default_table(self) -> EntityDefinition:
        if not self.table:
            object.__setattr__(self, "table", self.name.lower())
        return self

    @property
    def table_name(self) -> str:
        return self.table or self.name.lower()

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def persisted_fields(self) -> list[FieldDefinition]:
        return [f for f in self.fields if f.is_persisted]

    def get_field(self, name: str) -> FieldDefinition | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None


class RelationshipDefinition(BaseModel):
    """Static description of a relationship between one or two entities."""

    name: str = Field(..., description="Relationship name")
    type: RelationshipType = Field(..., description="Relationship type")
    model_a: str | None = Field(default=None, description="First participant (1:1, N:M)")
    model_b: str | None = Field(default=None, description="Second participant (1:1, N:M)")
    model_one: str | None = Field(default=None, description="The 'one' side (1:M)")
    model_many: str | None = Field(default=None, description="The 'many' side (1:M)")
    cascade: CascadePolicy = Field(default=CascadePolicy.RESTRICT)
    additional_fields: list[FieldDefinition] = Field(default_factory=list)
    ordered: bool = Field(default=False, description="Keep a sort_order join attribute (1:M)")
    table: str | None = Field(default=None, description="Join table name (derived if omitted)")
    description: str | None = Field(default=None)

    model_config = _DEFINITION_CONFIG

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("relationship name must not be empty")
        return value

    @property
    def participants(self) -> tuple[str | None, str | None]:
        """The two participant entity names, owning side first."""
        if self.type == RelationshipType.ONE_TO_MANY:
            return self.model_one, self.model_many
        return self.model_a, self.model_b

    @property
    def key(self) -> str:
        """Normalized key used to detect duplicate definitions."""
        names = sorted(name or "" for name in self.participants)
        return f"{'_'.join(names)}_{self.type}"

    @property
    def table_name(self) -> str:
        if self.table:
            return self.table
        first, second = (name.lower() if name else "" for name in self.participants)
        if self.type == RelationshipType.ONE_TO_ONE:
            table = f"rel_1_{first}_1_{second}"
        elif self.type == RelationshipType.ONE_TO_MANY:
            table = f"rel_1_{first}_m_{second}"
        else:
            table = f"rel_n_{first}_m_{second}"
        return table[:MAX_TABLE_NAME_LENGTH]

    @property
    def is_self_referential(self) -> bool:
        first, second = self.participants
        return first is not None and first == second

    @property
    def columns(self) -> tuple[str, str]:
        """Join table columns holding the participant ids, owning side first."""
        first, second = (name.lower() if name else "" for name in self.participants)
        if self.type == RelationshipType.ONE_TO_MANY:
            return f"one_{first}_id", f"many_{second}_id"
        if self.is_self_referential:
            return f"a_{first}_id", f"b_{second}_id"
        return f"{first}_id", f"{second}_id"

"""Field instances: typed value holders with a validation pipeline.

A field keeps its current value next to the value last loaded from or
written to storage. ``has_changed()`` compares the two; only changed fields
are written on update.

``set()`` never refuses a value. It stores it, re-runs the rules, and
reports failures to its own error list and to the owning model's error
bag. The model decides whether an operation may proceed.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from metaforge.core.types import FieldDefinition, FieldType
from metaforge.validation.rules import RULES, ValidationRule, build_rule

if TYPE_CHECKING:
    from passlib.context import CryptContext

logger = logging.getLogger(__name__)


class FieldOwner(Protocol):
    """What a field needs from the model that owns it."""

    entity_name: str

    def record_field_errors(self, field_name: str, messages: list[str]) -> None: ...

    def is_value_unique(self, field_name: str, value: Any) -> bool: ...

    def record_exists(self, entity_name: str, record_id: str) -> bool: ...

    @property
    def password_context(self) -> CryptContext | None: ...


class Field:
    """A typed, independently validated attribute of an entity."""

    field_type: ClassVar[str] = FieldType.TEXT.value
    # Rules every field of this type runs before the declared ones
    implicit_rules: ClassVar[tuple[str, ...]] = ()
    # Whether ``required`` adds a Required rule
    enforce_required: ClassVar[bool] = True

    def __init__(self, definition: FieldDefinition, owner: FieldOwner | None = None) -> None:
        """Create a field at its default value.

        Args:
            definition: Static field metadata
            owner: Model receiving error reports; None for standalone use
        """
        self.definition = definition
        self.owner = owner
        self.errors: list[str] = []
        self.rules: list[ValidationRule] = self._build_rules()

        default = definition.default_value
        self._value: Any = None if default is None else self.coerce(copy.deepcopy(default))
        self._original: Any = copy.deepcopy(self._value)

    def _build_rules(self) -> list[ValidationRule]:
        rules: list[ValidationRule] = []
        declared = [spec.name for spec in self.definition.validation_rules]

        if self.enforce_required and self.definition.required and "Required" not in declared:
            rules.append(build_rule("Required"))
        for name in self.implicit_rules:
            if name not in declared:
                rules.append(build_rule(name))
        if self.definition.unique and "Unique" not in declared:
            rules.append(build_rule("Unique"))
        for spec in self.definition.validation_rules:
            if spec.name not in RULES:
                # The registry rejects unknown rule names; definitions built by hand may not
                logger.warning(f"Skipping unknown validation rule '{spec.name}' on {self.name}")
                continue
            rules.append(build_rule(spec.name, **spec.params))
        return rules

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def label(self) -> str:
        return self.definition.label or self.definition.name

    @property
    def is_persisted(self) -> bool:
        return self.definition.is_persisted

    @property
    def read_only(self) -> bool:
        return self.definition.read_only

    # === Value access ===

    def get(self) -> Any:
        return self._value

    def set(self, value: Any) -> bool:
        """Assign a value and validate it.

        The value is assigned even when it fails validation.

        Returns:
            True if the value passed every rule
        """
        self._value = self.coerce(value)
        return self.validate()

    def assign(self, value: Any) -> None:
        """Assign without validation; used for engine-managed values (ids, audit columns)."""
        self._value = self.coerce(value)

    def set_from_storage(self, value: Any) -> None:
        """Hydrate from trusted storage: no validation, no pending change."""
        self._value = self.from_storage(value)
        self._original = copy.deepcopy(self._value)
        if self.errors:
            self.errors = []
            self._report()

    def has_changed(self) -> bool:
        return bool(self._value != self._original)

    def mark_clean(self) -> None:
        """Treat the current value as committed."""
        self._original = copy.deepcopy(self._value)

    def reset(self) -> None:
        """Discard uncommitted changes and errors."""
        self._value = copy.deepcopy(self._original)
        self.errors = []
        self._report()

    # === Validation ===

    def validate(self) -> bool:
        """Run every rule in order against the current value.

        Replaces this field's previous messages in its own list and in the
        owner's error bag.

        Returns:
            True if no rule failed
        """
        errors: list[str] = []
        for rule in self.rules:
            message = rule.validate(self._value, self)
            if message:
                errors.append(message)
        self.errors = errors
        self._report()
        return not errors

    def _report(self) -> None:
        if self.owner is not None:
            self.owner.record_field_errors(self.name, list(self.errors))

    # === Conversion hooks ===

    def coerce(self, value: Any) -> Any:
        """Convert caller input where the intent is unambiguous; otherwise return it as is."""
        return value

    def from_storage(self, value: Any) -> Any:
        return self.coerce(value)

    def value_for_storage(self) -> Any:
        return self._value

    def value_for_external(self) -> Any:
        """Serialization-safe form of the current value."""
        return self._value

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}={self._value!r}>"

"""Validation rules applied by fields.

Rules are looked up by name in ``RULES``; a field definition references them
in ``validation_rules`` (``"Email"`` or ``{"name": "Range", "min": 0}``).
Every rule except ``Required`` passes empty values, so optional fields only
get checked once they hold something.

Messages are templates: ``{field}`` is the field label, ``{value}`` the
offending value, and any rule parameter can be referenced by name.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlparse

if TYPE_CHECKING:
    from metaforge.fields.base import Field

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+'-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")
VIDEO_URL_PATTERN = re.compile(
    r"^https?://(www\.)?(youtube\.com/watch\?v=|youtu\.be/|vimeo\.com/)[\w-]+", re.IGNORECASE
)


def is_empty(value: Any) -> bool:
    """Whether a value counts as "not provided"."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class _SafeFormat(dict):  # type: ignore[type-arg]
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class ValidationRule:
    """Base class for validation rules."""

    name: ClassVar[str] = ""
    message: ClassVar[str] = "{field} is invalid."
    skip_empty: ClassVar[bool] = True

    def __init__(self, **params: Any) -> None:
        self.params = params

    def check(self, value: Any, field: Field) -> bool:
        raise NotImplementedError

    def validate(self, value: Any, field: Field) -> str | None:
        """Return an error message, or None if the value passes."""
        if self.skip_empty and is_empty(value):
            return None
        if self.check(value, field):
            return None
        return self.format_message(field, value, self.params.get("message", self.message))

    def format_message(self, field: Field, value: Any, template: str) -> str:
        values = _SafeFormat(self.params)
        values.update(field=field.label, value=value)
        return template.format_map(values)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.params!r})"


class RequiredRule(ValidationRule):
    name = "Required"
    message = "{field} is required."
    skip_empty = False

    def check(self, value: Any, field: Field) -> bool:
        return not is_empty(value)


class EmailRule(ValidationRule):
    name = "Email"
    message = "{field} must be a valid email address."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, str) and len(value) <= 254 and bool(EMAIL_PATTERN.match(value))


class AlphanumericRule(ValidationRule):
    """Letters and digits only; spaces are tolerated."""

    name = "Alphanumeric"
    message = "{field} may only contain letters and numbers."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, str) and value.replace(" ", "").isalnum()


class URLRule(ValidationRule):
    name = "URL"
    message = "{field} must be a valid URL."

    def check(self, value: Any, field: Field) -> bool:
        if not isinstance(value, str):
            return False
        parsed = urlparse(value)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class VideoURLRule(ValidationRule):
    name = "VideoURL"
    message = "{field} must be a YouTube or Vimeo URL."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, str) and bool(VIDEO_URL_PATTERN.match(value))


class OptionsRule(ValidationRule):
    """Value (or each value of a list) must be one of the field's option keys."""

    name = "Options"
    message = "{field} has an invalid option: {value}."

    def check(self, value: Any, field: Field) -> bool:
        options = self.params.get("options") or field.definition.options or {}
        values = value if isinstance(value, (list, tuple, set)) else [value]
        return all(str(item) in options for item in values)


class IntegerRule(ValidationRule):
    name = "Integer"
    message = "{field} must be a whole number."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)


class NumericRule(ValidationRule):
    name = "Numeric"
    message = "{field} must be a number."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)


class BooleanRule(ValidationRule):
    name = "Boolean"
    message = "{field} must be true or false."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, bool)


class DateRule(ValidationRule):
    name = "Date"
    message = "{field} must be a date in YYYY-MM-DD format."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, date) and not isinstance(value, datetime)


class DateTimeRule(ValidationRule):
    name = "DateTime"
    message = "{field} must be a date and time in YYYY-MM-DD HH:MM:SS format."

    def check(self, value: Any, field: Field) -> bool:
        return isinstance(value, datetime)


class RangeRule(ValidationRule):
    """Numeric bounds from rule params (``min``/``max``) or the field's min/max values."""

    name = "Range"

    def _bounds(self, field: Field) -> tuple[Any, Any]:
        low = self.params.get("min", field.definition.min_value)
        high = self.params.get("max", field.definition.max_value)
        return low, high

    def check(self, value: Any, field: Field) -> bool:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            # Type rules report non-numeric values
            return True
        low, high = self._bounds(field)
        if low is not None and value < low:
            return False
        return not (high is not None and value > high)

    def validate(self, value: Any, field: Field) -> str | None:
        if self.skip_empty and is_empty(value):
            return None
        if self.check(value, field):
            return None
        low, high = self._bounds(field)
        if low is not None and value < low:
            template = "{field} must be at least {min}."
        else:
            template = "{field} must be at most {max}."
        values = _SafeFormat(field=field.label, value=value, min=_num(low), max=_num(high))
        return self.params.get("message", template).format_map(values)


class MinRule(RangeRule):
    name = "Min"

    def _bounds(self, field: Field) -> tuple[Any, Any]:
        return self.params.get("value", self.params.get("min", field.definition.min_value)), None


class MaxRule(RangeRule):
    name = "Max"

    def _bounds(self, field: Field) -> tuple[Any, Any]:
        return None, self.params.get("value", self.params.get("max", field.definition.max_value))


def _num(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class MaxLengthRule(ValidationRule):
    name = "MaxLength"
    message = "{field} must be at most {max} characters."

    def _limit(self, field: Field) -> int | None:
        if "max" in self.params:
            return self.params["max"]
        return getattr(field, "max_length", None) or field.definition.max_length

    def check(self, value: Any, field: Field) -> bool:
        limit = self._limit(field)
        return limit is None or len(str(value)) <= limit

    def format_message(self, field: Field, value: Any, template: str) -> str:
        values = _SafeFormat(self.params)
        values.update(field=field.label, value=value, max=self._limit(field))
        return template.format_map(values)


class MinLengthRule(MaxLengthRule):
    name = "MinLength"
    message = "{field} must be at least {min} characters."

    def _limit(self, field: Field) -> int | None:
        return self.params.get("min", field.definition.min_length)

    def check(self, value: Any, field: Field) -> bool:
        limit = self._limit(field)
        return limit is None or len(str(value)) >= limit

    def format_message(self, field: Field, value: Any, template: str) -> str:
        values = _SafeFormat(self.params)
        values.update(field=field.label, value=value, min=self._limit(field))
        return template.format_map(values)


class UUIDRule(ValidationRule):
    name = "UUID"
    message = "{field} must be a valid UUID."

    def check(self, value: Any, field: Field) -> bool:
        try:
            uuid.UUID(str(value))
        except ValueError:
            return False
        return True


class PasswordStrengthRule(ValidationRule):
    """At least ``min_length`` characters with upper case, lower case and a digit."""

    name = "PasswordStrength"

    def validate(self, value: Any, field: Field) -> str | None:
        if is_empty(value):
            return None
        text = str(value)
        min_length = self.params.get("min_length", 8)
        if len(text) < min_length:
            return f"{field.label} must be at least {min_length} characters long."
        if not re.search(r"[A-Z]", text):
            return f"{field.label} must contain at least one uppercase letter."
        if not re.search(r"[a-z]", text):
            return f"{field.label} must contain at least one lowercase letter."
        if not re.search(r"\d", text):
            return f"{field.label} must contain at least one number."
        return None


class UniqueRule(ValidationRule):
    """No other live record of the entity holds the same value."""

    name = "Unique"
    message = "{field} '{value}' is already in use."

    def check(self, value: Any, field: Field) -> bool:
        owner = field.owner
        if owner is None:
            return True
        return owner.is_value_unique(field.name, value)


class ForeignKeyExistsRule(ValidationRule):
    """The referenced record exists in the related entity."""

    name = "ForeignKeyExists"
    message = "{field} references a record that does not exist: {value}."

    def check(self, value: Any, field: Field) -> bool:
        owner = field.owner
        entity = self.params.get("entity", field.definition.related_entity)
        if owner is None or not entity:
            return True
        return owner.record_exists(entity, str(value))


class ISBN10Rule(ValidationRule):
    name = "ISBN10"
    message = "{field} must be a valid ISBN-10."

    def check(self, value: Any, field: Field) -> bool:
        digits = str(value).replace("-", "").replace(" ", "").upper()
        if not re.fullmatch(r"\d{9}[\dX]", digits):
            return False
        total = sum((10 - i) * (10 if ch == "X" else int(ch)) for i, ch in enumerate(digits))
        return total % 11 == 0


class ISBN13Rule(ValidationRule):
    name = "ISBN13"
    message = "{field} must be a valid ISBN-13."

    def check(self, value: Any, field: Field) -> bool:
        digits = str(value).replace("-", "").replace(" ", "")
        if not re.fullmatch(r"\d{13}", digits):
            return False
        total = sum(int(ch) * (1 if i % 2 == 0 else 3) for i, ch in enumerate(digits))
        return total % 10 == 0


RULES: dict[str, type[ValidationRule]] = {
    rule.name: rule
    for rule in (
        RequiredRule,
        EmailRule,
        AlphanumericRule,
        URLRule,
        VideoURLRule,
        OptionsRule,
        IntegerRule,
        NumericRule,
        BooleanRule,
        DateRule,
        DateTimeRule,
        RangeRule,
        MinRule,
        MaxRule,
        MaxLengthRule,
        MinLengthRule,
        UUIDRule,
        PasswordStrengthRule,
        UniqueRule,
        ForeignKeyExistsRule,
        ISBN10Rule,
        ISBN13Rule,
    )
}


def build_rule(name: str, **params: Any) -> ValidationRule:
    """Instantiate a rule by name.

    Raises:
        KeyError: If no rule has that name
    """
    return RULES[name](**params)

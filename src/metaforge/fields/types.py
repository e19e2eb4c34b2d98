"""Concrete field types."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import Any

from passlib.context import CryptContext

from metaforge.core.types import FieldType
from metaforge.fields.base import Field

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

DEFAULT_PASSWORD_CONTEXT = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

VIDEO_ID_PATTERNS = {
    "youtube": re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([\w-]+)"),
    "vimeo": re.compile(r"vimeo\.com/(\d+)"),
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


class TextField(Field):
    """Short text; also the fallback for unknown type tags."""

    field_type = FieldType.TEXT.value
    implicit_rules = ("MaxLength", "MinLength")

    @property
    def max_length(self) -> int:
        return self.definition.max_length or 255


class BigTextField(Field):
    field_type = FieldType.BIG_TEXT.value


class IntegerField(Field):
    field_type = FieldType.INTEGER.value
    implicit_rules = ("Integer", "Range")

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class FloatField(Field):
    field_type = FieldType.FLOAT.value
    implicit_rules = ("Numeric", "Range")

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str) and value.strip():
            try:
                return float(value)
            except ValueError:
                return value
        return value


class BooleanField(Field):
    field_type = FieldType.BOOLEAN.value
    implicit_rules = ("Boolean",)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        if isinstance(value, int) and not isinstance(value, bool) and value in (0, 1):
            return bool(value)
        return value


class DateField(Field):
    field_type = FieldType.DATE.value
    implicit_rules = ("Date",)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            try:
                return datetime.strptime(value.strip(), DATE_FORMAT).date()
            except ValueError:
                return value
        return value

    def value_for_external(self) -> Any:
        value = self.get()
        return value.isoformat() if isinstance(value, date) else value


class DateTimeField(Field):
    field_type = FieldType.DATETIME.value
    implicit_rules = ("DateTime",)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            try:
                return datetime.strptime(text, DATETIME_FORMAT)
            except ValueError:
                pass
            try:
                return datetime.fromisoformat(text)
            except ValueError:
                return value
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day)
        return value

    def value_for_external(self) -> Any:
        value = self.get()
        return value.strftime(DATETIME_FORMAT) if isinstance(value, datetime) else value


class EmailField(TextField):
    field_type = FieldType.EMAIL.value
    implicit_rules = ("Email", "MaxLength")

    def coerce(self, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class PasswordField(TextField):
    """Secret text, hashed before it is written and never exposed externally."""

    field_type = FieldType.PASSWORD.value

    @property
    def crypt_context(self) -> CryptContext:
        context = self.owner.password_context if self.owner is not None else None
        return context or DEFAULT_PASSWORD_CONTEXT

    def is_hashed(self, value: Any = None) -> bool:
        value = self.get() if value is None else value
        return isinstance(value, str) and self.crypt_context.identify(value) is not None

    def validate(self) -> bool:
        if self.is_hashed():
            # Stored hashes were validated as plain text before hashing
            self.errors = []
            self._report()
            return True
        return super().validate()

    def value_for_storage(self) -> Any:
        value = self.get()
        if value is None or value == "" or self.is_hashed(value):
            return value
        return self.crypt_context.hash(str(value))

    def value_for_external(self) -> Any:
        return None

    def verify(self, candidate: str) -> bool:
        """Check a plain-text candidate against the stored value."""
        value = self.get()
        if not value:
            return False
        if self.is_hashed(value):
            return bool(self.crypt_context.verify(candidate, value))
        return bool(candidate == value)


class IDField(Field):
    """UUID string. Identifiers are generated by the model engine, not required from callers."""

    field_type = FieldType.ID.value
    implicit_rules = ("UUID",)
    enforce_required = False

    def coerce(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        return value


class URLField(TextField):
    field_type = FieldType.URL.value
    implicit_rules = ("URL", "MaxLength")

    @property
    def max_length(self) -> int:
        return self.definition.max_length or 500


class ImageField(TextField):
    """Path or URL of an image."""

    field_type = FieldType.IMAGE.value

    @property
    def max_length(self) -> int:
        return self.definition.max_length or 500


class VideoField(TextField):
    """YouTube or Vimeo URL of a video."""

    field_type = FieldType.VIDEO.value
    implicit_rules = ("VideoURL", "MaxLength")

    @property
    def max_length(self) -> int:
        return self.definition.max_length or 500

    @property
    def video_id(self) -> str | None:
        value = self.get()
        if not isinstance(value, str):
            return None
        for pattern in VIDEO_ID_PATTERNS.values():
            match = pattern.search(value)
            if match:
                return match.group(1)
        return None

    @property
    def embed_url(self) -> str | None:
        """Player URL for embedding; None when the value is not a supported video URL."""
        video_id = self.video_id
        if video_id is None:
            return None
        if "vimeo" in self.get():
            return f"https://player.vimeo.com/video/{video_id}"
        return f"https://www.youtube.com/embed/{video_id}"


class EnumField(Field):
    field_type = FieldType.ENUM.value
    implicit_rules = ("Options",)

    @property
    def options(self) -> dict[str, str]:
        return dict(self.definition.options or {})


class RadioButtonSetField(EnumField):
    field_type = FieldType.RADIO.value


class MultiEnumField(EnumField):
    """Several option keys, stored as a JSON list."""

    field_type = FieldType.MULTI_ENUM.value

    def coerce(self, value: Any) -> Any:
        if isinstance(value, (tuple, set)):
            return list(value)
        if isinstance(value, str) and value:
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def value_for_external(self) -> Any:
        value = self.get()
        return list(value) if value else []


class RelatedRecordField(Field):
    """Id of a record in ``related_entity``."""

    field_type = FieldType.RELATED_RECORD.value
    implicit_rules = ("ForeignKeyExists",)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        return value


FIELD_CLASSES: tuple[type[Field], ...] = (
    TextField,
    BigTextField,
    IntegerField,
    FloatField,
    BooleanField,
    DateField,
    DateTimeField,
    EmailField,
    PasswordField,
    IDField,
    URLField,
    ImageField,
    VideoField,
    EnumField,
    MultiEnumField,
    RadioButtonSetField,
    RelatedRecordField,
)

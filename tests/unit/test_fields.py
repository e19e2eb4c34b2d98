"""Tests for field types and validation rules."""

import logging
from datetime import date, datetime
from typing import Any

import pytest

from metaforge.core.types import FieldDefinition
from metaforge.fields.catalog import build_field, field_class_for
from metaforge.fields.types import (
    BooleanField,
    IntegerField,
    MultiEnumField,
    PasswordField,
    TextField,
    VideoField,
)
from metaforge.validation.rules import RULES, build_rule, is_empty


def make_field(**definition: Any):
    return build_field(FieldDefinition.model_validate(definition))


class RecordingOwner:
    """Minimal field owner collecting error reports."""

    entity_name = "Thing"
    password_context = None

    def __init__(self, taken: set[Any] | None = None, existing: set[str] | None = None):
        self.errors: dict[str, list[str]] = {}
        self.taken = taken or set()
        self.existing = existing or set()

    def record_field_errors(self, field_name: str, messages: list[str]) -> None:
        if messages:
            self.errors[field_name] = messages
        else:
            self.errors.pop(field_name, None)

    def is_value_unique(self, field_name: str, value: Any) -> bool:
        return value not in self.taken

    def record_exists(self, entity_name: str, record_id: str) -> bool:
        return record_id in self.existing


class TestCatalog:
    """Tests for the field type catalog."""

    def test_known_type(self):
        """Type tags map to their field class."""
        assert isinstance(make_field(name="n", type="integer"), IntegerField)
        assert field_class_for("boolean") is BooleanField

    def test_unknown_type_falls_back_to_text(self, caplog: pytest.LogCaptureFixture):
        """Unknown type tags build a text field and log a warning."""
        with caplog.at_level(logging.WARNING, logger="metaforge.fields.catalog"):
            field = make_field(name="n", type="hologram")
        assert isinstance(field, TextField)
        assert "unknown type 'hologram'" in caplog.text

    def test_default_value(self):
        """New fields start at their default value."""
        field = make_field(name="n", type="integer", defaultValue="7")
        assert field.get() == 7
        assert not field.has_changed()


class TestSetAndValidate:
    """Tests for set(), the error list and owner reporting."""

    def test_set_keeps_invalid_value(self):
        """set() stores the value even when validation fails."""
        field = make_field(name="age", type="integer")
        assert field.set("abc") is False
        assert field.get() == "abc"
        assert field.errors == ["age must be a whole number."]

    def test_required(self):
        """Required fields reject empty values."""
        field = make_field(name="title", required=True, label="Title")
        assert field.set("  ") is False
        assert field.errors == ["Title is required."]
        assert field.set("ok") is True
        assert field.errors == []

    def test_errors_reported_to_owner(self):
        """Failures land in the owner's error bag and are cleared on success."""
        owner = RecordingOwner()
        field = build_field(FieldDefinition(name="email", type="email"), owner)
        field.set("nope")
        assert "email" in owner.errors
        field.set("a@example.com")
        assert "email" not in owner.errors

    def test_optional_empty_values_pass(self):
        """Rules other than Required skip empty values."""
        field = make_field(name="site", type="url")
        assert field.set(None) is True
        assert field.set("") is True

    def test_rules_run_in_order(self):
        """Implicit rules run before declared ones and every failure is kept."""
        field = make_field(
            name="code", type="text", maxLength=3, validationRules=["Alphanumeric"]
        )
        assert field.set("a-b-c") is False
        assert field.errors == [
            "code must be at most 3 characters.",
            "code may only contain letters and numbers.",
        ]

    def test_has_changed_and_mark_clean(self):
        """has_changed compares against the last committed value."""
        field = make_field(name="title")
        field.set("a")
        assert field.has_changed()
        field.mark_clean()
        assert not field.has_changed()
        field.set("b")
        field.reset()
        assert field.get() == "a"

    def test_set_from_storage_clears_errors(self):
        """Hydration neither validates nor leaves pending changes or errors."""
        owner = RecordingOwner()
        field = build_field(FieldDefinition(name="age", type="integer"), owner)
        field.set("x")
        field.set_from_storage(5)
        assert field.get() == 5
        assert field.errors == []
        assert owner.errors == {}
        assert not field.has_changed()


class TestTypes:
    """Tests for type-specific coercion and storage conversion."""

    def test_integer_coercion(self):
        """Digit strings and whole floats become ints."""
        field = make_field(name="n", type="integer")
        field.set(" 42 ")
        assert field.get() == 42
        field.set(3.0)
        assert field.get() == 3
        assert field.set(True) is False

    @pytest.mark.parametrize("raw", ["--5", "+-3", "²", "1.5", "12abc"])
    def test_integer_keeps_uncoercible_strings(self, raw: str):
        """Strings that are not integers are kept as given and fail validation."""
        field = make_field(name="n", type="integer")
        assert field.set(raw) is False
        assert field.get() == raw
        assert field.errors
        assert field.set("-7") is True
        assert field.get() == -7

    def test_integer_range(self):
        """min_value/max_value bound integers."""
        field = make_field(name="age", type="integer", minValue=0, maxValue=150)
        assert field.set(-1) is False
        assert field.errors == ["age must be at least 0."]
        assert field.set(151) is False
        assert field.errors == ["age must be at most 150."]

    def test_float_coercion(self):
        """Numeric strings become floats."""
        field = make_field(name="price", type="float")
        assert field.set("9.5") is True
        assert field.get() == 9.5
        assert field.set("cheap") is False

    def test_boolean_coercion(self):
        """Common truthy and falsy spellings are accepted."""
        field = make_field(name="flag", type="boolean")
        field.set("yes")
        assert field.get() is True
        field.set(0)
        assert field.get() is False
        assert field.set("maybe") is False

    def test_date_and_datetime(self):
        """Dates and datetimes parse from strings and render as text externally."""
        day = make_field(name="day", type="date")
        assert day.set("2024-02-29") is True
        assert day.get() == date(2024, 2, 29)
        assert day.value_for_external() == "2024-02-29"
        assert day.set("29/02/2024") is False

        moment = make_field(name="at", type="datetime")
        assert moment.set("2024-01-02 03:04:05") is True
        assert isinstance(moment.get(), datetime)
        assert moment.value_for_external() == "2024-01-02 03:04:05"

    def test_email(self):
        """Email values are stripped and checked."""
        field = make_field(name="email", type="email")
        assert field.set(" ada@example.com ") is True
        assert field.get() == "ada@example.com"
        assert field.set("ada@") is False

    def test_id_field(self):
        """id fields take UUIDs and are never implicitly required."""
        field = make_field(name="id", type="id", required=True)
        assert field.validate() is True
        assert field.set("not-a-uuid") is False
        assert field.set("5b1f9c5e-3c39-4a3f-9a53-2f8c6f1e0b11") is True

    def test_enum_options(self):
        """Enum values must be option keys."""
        field = make_field(name="size", type="enum", options=["s", "m"])
        assert field.set("m") is True
        assert field.set("xl") is False
        assert field.errors == ["size has an invalid option: xl."]

    def test_multi_enum(self):
        """Multi-enum fields take lists or comma-separated text."""
        field = make_field(name="sizes", type="multi_enum", options=["s", "m", "l"])
        assert isinstance(field, MultiEnumField)
        assert field.set("s, l") is True
        assert field.get() == ["s", "l"]
        assert field.set(["s", "xl"]) is False
        field.set(None)
        assert field.value_for_external() == []

    def test_url_default_max_length(self):
        """URL fields allow 500 characters by default."""
        field = make_field(name="site", type="url")
        assert field.set("https://example.com/" + "a" * 470) is True
        assert field.set("https://example.com/" + "a" * 490) is False

    def test_min_length(self):
        """minLength bounds text from below; empty optional values pass."""
        field = make_field(name="code", minLength=3)
        assert field.set("ab") is False
        assert field.errors == ["code must be at least 3 characters."]
        assert field.set("abc") is True
        assert field.set("") is True

    def test_min_length_rule_param(self):
        """MinLength takes its limit from a rule parameter."""
        field = make_field(name="pin", validationRules=[{"name": "MinLength", "min": 4}])
        assert field.set("123") is False
        assert field.set("1234") is True

    def test_video(self):
        """Video fields accept YouTube and Vimeo URLs and build embed URLs."""
        field = make_field(name="trailer", type="video")
        assert isinstance(field, VideoField)
        assert field.set("https://www.youtube.com/watch?v=dQw4w9WgXcQ") is True
        assert field.video_id == "dQw4w9WgXcQ"
        assert field.embed_url == "https://www.youtube.com/embed/dQw4w9WgXcQ"
        assert field.set("https://vimeo.com/76979871") is True
        assert field.embed_url == "https://player.vimeo.com/video/76979871"
        assert field.set("https://example.com/clip.mp4") is False
        assert field.embed_url is None

    def test_related_record_checks_existence(self):
        """related_record values must point at an existing record."""
        owner = RecordingOwner(existing={"known"})
        field = build_field(
            FieldDefinition(name="author", type="related_record", related_entity="User"), owner
        )
        assert field.set("known") is True
        assert field.set("missing") is False


class TestPasswordField:
    """Tests for password hashing."""

    def test_hashed_for_storage_and_hidden_externally(self):
        """Plain text is hashed on write and never exposed."""
        field = make_field(name="password", type="password")
        assert isinstance(field, PasswordField)
        field.set("Secret123")
        stored = field.value_for_storage()
        assert stored != "Secret123"
        assert stored.startswith("$pbkdf2-sha256$")
        assert field.value_for_external() is None

    def test_verify(self):
        """verify() accepts the right password for plain and hashed values."""
        field = make_field(name="password", type="password")
        field.set("Secret123")
        field.set_from_storage(field.value_for_storage())
        assert field.is_hashed()
        assert field.verify("Secret123")
        assert not field.verify("wrong")

    def test_strength_rule(self):
        """PasswordStrength checks length and character classes in order."""
        field = make_field(name="password", type="password", validationRules=["PasswordStrength"])
        assert field.set("short") is False
        assert field.errors == ["password must be at least 8 characters long."]
        assert field.set("alllowercase1") is False
        assert field.errors == ["password must contain at least one uppercase letter."]
        assert field.set("Secret123") is True

    def test_stored_hash_passes_validation(self):
        """A hash loaded from storage is not re-validated as plain text."""
        field = make_field(name="password", type="password", validationRules=["PasswordStrength"])
        field.set("Secret123")
        field.set_from_storage(field.value_for_storage())
        assert field.validate() is True


class TestRules:
    """Tests for individual rules."""

    @pytest.mark.parametrize(
        "name,value,ok",
        [
            ("ISBN10", "0-306-40615-2", True),
            ("ISBN10", "0-306-40615-3", False),
            ("ISBN13", "978-0-306-40615-7", True),
            ("ISBN13", "978-0-306-40615-8", False),
            ("VideoURL", "https://youtu.be/abc123", True),
            ("VideoURL", "https://example.com/video", False),
            ("UUID", "5b1f9c5e-3c39-4a3f-9a53-2f8c6f1e0b11", True),
            ("UUID", "123", False),
        ],
    )
    def test_rule(self, name: str, value: str, ok: bool):
        """Rules accept valid values and reject invalid ones."""
        field = make_field(name="v")
        assert (build_rule(name).validate(value, field) is None) is ok

    def test_custom_message(self):
        """A message parameter overrides the default template."""
        field = make_field(
            name="code",
            validationRules=[{"name": "Alphanumeric", "message": "{field} '{value}' is bad"}],
        )
        field.set("a-b")
        assert field.errors == ["code 'a-b' is bad"]

    def test_range_params(self):
        """Range takes min/max parameters."""
        field = make_field(
            name="n", type="float", validationRules=[{"name": "Range", "min": 1, "max": 2}]
        )
        assert field.set(1.5) is True
        assert field.set(2.5) is False

    def test_unique_uses_owner(self):
        """Unique asks the owner whether the value is taken."""
        owner = RecordingOwner(taken={"dup"})
        field = build_field(FieldDefinition(name="code", unique=True), owner)
        assert field.set("fresh") is True
        assert field.set("dup") is False
        assert field.errors == ["code 'dup' is already in use."]

    def test_is_empty(self):
        """Blank strings and empty collections count as empty."""
        assert is_empty(None)
        assert is_empty("  ")
        assert is_empty([])
        assert not is_empty(0)
        assert not is_empty(False)

    def test_registry_of_rules(self):
        """Rules are registered by name."""
        assert {"Required", "Email", "Unique", "ForeignKeyExists"} <= set(RULES)

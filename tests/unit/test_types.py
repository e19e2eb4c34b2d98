"""Tests for core types."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from metaforge.core.types import (
    MAX_TABLE_NAME_LENGTH,
    CascadePolicy,
    EntityDefinition,
    FieldDefinition,
    FieldType,
    LifecycleState,
    RelationshipDefinition,
    RelationshipType,
)


class TestEnums:
    """Tests for the enum types."""

    def test_field_type_values(self):
        """Every field type tag is listed."""
        assert "text" in FieldType.values()
        assert "related_record" in FieldType.values()
        assert len(FieldType.values()) == 17

    def test_relationship_type_values(self):
        """Relationship types use snake_case values."""
        assert set(RelationshipType.values()) == {"one_to_one", "one_to_many", "many_to_many"}

    def test_cascade_policy_values(self):
        """Cascade policies are restrict, cascade and soft_delete."""
        assert set(CascadePolicy.values()) == {"restrict", "cascade", "soft_delete"}

    def test_str_enum_renders_value(self):
        """Enums render as their value."""
        assert str(LifecycleState.SOFT_DELETED) == "soft_deleted"
        assert LifecycleState.NEW == "new"


class TestFieldDefinition:
    """Tests for FieldDefinition."""

    def test_defaults(self):
        """Only the name is required."""
        field = FieldDefinition(name="title")
        assert field.type == "text"
        assert field.required is False
        assert field.is_persisted is True
        assert field.validation_rules == []

    def test_camel_case_keys(self):
        """camelCase keys are accepted."""
        field = FieldDefinition.model_validate(
            {"name": "age", "type": "integer", "defaultValue": 3, "isPersisted": False}
        )
        assert field.default_value == 3
        assert field.is_persisted is False

    def test_unknown_key_rejected(self):
        """Unknown keys raise instead of being ignored."""
        with pytest.raises(PydanticValidationError):
            FieldDefinition.model_validate({"name": "age", "colour": "red"})

    def test_blank_name_rejected(self):
        """Field names must not be blank."""
        with pytest.raises(PydanticValidationError):
            FieldDefinition(name="   ")

    def test_rules_from_names(self):
        """Bare rule names become rule specs."""
        field = FieldDefinition.model_validate(
            {"name": "age", "validationRules": ["Integer", {"name": "Range", "min": 1}]}
        )
        assert [r.name for r in field.validation_rules] == ["Integer", "Range"]
        assert field.validation_rules[1].params == {"min": 1}

    def test_options_from_list(self):
        """A list of options maps each key to itself."""
        field = FieldDefinition(name="size", type="enum", options=["s", "m"])
        assert field.options == {"s": "s", "m": "m"}


class TestEntityDefinition:
    """Tests for EntityDefinition."""

    def test_table_defaults_to_lower_name(self):
        """Table name defaults to the lowercased entity name."""
        entity = EntityDefinition(name="BlogPost")
        assert entity.table == "blogpost"
        assert entity.table_name == "blogpost"

    def test_explicit_table(self):
        """An explicit table name wins."""
        entity = EntityDefinition(name="User", table="app_users")
        assert entity.table_name == "app_users"

    def test_get_field(self):
        """Fields are found by name."""
        entity = EntityDefinition(name="User", fields=[FieldDefinition(name="email")])
        assert entity.get_field("email") is not None
        assert entity.get_field("missing") is None
        assert entity.field_names == ["email"]

    def test_definitions_are_frozen(self):
        """Definitions cannot be mutated after parsing."""
        entity = EntityDefinition(name="User")
        with pytest.raises(PydanticValidationError):
            entity.name = "Other"


class TestRelationshipDefinition:
    """Tests for RelationshipDefinition."""

    def test_one_to_many_participants(self):
        """One-to-many participants come from model_one and model_many."""
        rel = RelationshipDefinition(
            name="user_posts", type="one_to_many", model_one="User", model_many="Post"
        )
        assert rel.participants == ("User", "Post")
        assert rel.columns == ("one_user_id", "many_post_id")
        assert rel.table_name == "rel_1_user_m_post"
        assert rel.cascade == "restrict"

    def test_many_to_many_table_and_columns(self):
        """Many-to-many tables are named rel_n_<a>_m_<b>."""
        rel = RelationshipDefinition(
            name="post_tags", type="many_to_many", model_a="Post", model_b="Tag"
        )
        assert rel.table_name == "rel_n_post_m_tag"
        assert rel.columns == ("post_id", "tag_id")

    def test_one_to_one_table(self):
        """One-to-one tables are named rel_1_<a>_1_<b>."""
        rel = RelationshipDefinition(
            name="user_profile", type="one_to_one", model_a="User", model_b="Profile"
        )
        assert rel.table_name == "rel_1_user_1_profile"

    def test_self_referential_columns(self):
        """Self-referential relationships get distinct a_/b_ columns."""
        rel = RelationshipDefinition(
            name="friends", type="many_to_many", model_a="Person", model_b="Person"
        )
        assert rel.is_self_referential
        assert rel.columns == ("a_person_id", "b_person_id")

    def test_key_ignores_participant_order(self):
        """The duplicate-detection key is the same whichever side comes first."""
        first = RelationshipDefinition(name="a", type="many_to_many", model_a="X", model_b="Y")
        second = RelationshipDefinition(name="b", type="many_to_many", model_a="Y", model_b="X")
        assert first.key == second.key == "X_Y_many_to_many"

    def test_long_table_name_truncated(self):
        """Derived table names fit the identifier limit."""
        rel = RelationshipDefinition(
            name="long", type="many_to_many", model_a="A" * 40, model_b="B" * 40
        )
        assert len(rel.table_name) == MAX_TABLE_NAME_LENGTH

    def test_invalid_type_rejected(self):
        """Unknown relationship types are rejected."""
        with pytest.raises(PydanticValidationError):
            RelationshipDefinition(name="x", type="one_to_some", model_a="A", model_b="B")

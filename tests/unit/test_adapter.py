"""Tests for the persistence adapter."""

from collections.abc import Callable

import pytest

from metaforge import Metaforge
from metaforge.exceptions import FieldNotFoundError, PersistenceError, QueryError
from metaforge.models.model import Model


@pytest.fixture
def people(make: Callable[..., Model]) -> list[Model]:
    """Three users aged 20, 30 and 40."""
    return [
        make("User", email=f"user{age}@example.com", name=f"User {age}", age=age)
        for age in (20, 30, 40)
    ]


class TestFind:
    """Tests for find() criteria, ordering and paging."""

    def test_equality(self, forge: Metaforge, people: list[Model]):
        """Plain values filter by equality."""
        rows = forge.adapter.find("User", {"age": 30})
        assert [r["email"] for r in rows] == ["user30@example.com"]

    def test_operators(self, forge: Metaforge, people: list[Model]):
        """Operator mappings combine with AND."""
        rows = forge.adapter.find("User", {"age": {"gte": 25, "lt": 40}})
        assert [r["age"] for r in rows] == [30]

    def test_membership(self, forge: Metaforge, people: list[Model]):
        """Lists filter by membership."""
        rows = forge.adapter.find("User", {"age": [20, 40]}, order_by="age")
        assert [r["age"] for r in rows] == [20, 40]

    def test_like_and_ne(self, forge: Metaforge, people: list[Model]):
        """like and ne operators are supported."""
        rows = forge.adapter.find(
            "User", {"email": {"like": "user%"}, "age": {"ne": 20}}, order_by="age"
        )
        assert [r["age"] for r in rows] == [30, 40]

    def test_is_null(self, forge: Metaforge, people: list[Model]):
        """None filters by IS NULL."""
        assert forge.adapter.count("User", {"password": None}) == 3
        assert forge.adapter.count("User", {"password": {"is_null": False}}) == 0

    def test_order_limit_offset(self, forge: Metaforge, people: list[Model]):
        """Descending order with limit and offset."""
        rows = forge.adapter.find("User", order_by="-age", limit=1, offset=1)
        assert [r["age"] for r in rows] == [30]

    def test_unknown_field(self, forge: Metaforge, people: list[Model]):
        """Unknown columns raise FieldNotFoundError."""
        with pytest.raises(FieldNotFoundError):
            forge.adapter.find("User", {"shoe_size": 44})
        with pytest.raises(FieldNotFoundError):
            forge.adapter.find("User", order_by="shoe_size")

    def test_unknown_operator(self, forge: Metaforge, people: list[Model]):
        """Unknown operators raise QueryError."""
        with pytest.raises(QueryError) as exc_info:
            forge.adapter.find("User", {"age": {"between": [1, 2]}})
        assert exc_info.value.context["operator"] == "between"

    def test_find_by_id(self, forge: Metaforge, people: list[Model]):
        """find_by_id returns the row or None."""
        row = forge.adapter.find_by_id("User", str(people[0].id))
        assert row is not None
        assert row["email"] == "user20@example.com"
        assert forge.adapter.find_by_id("User", "00000000-0000-0000-0000-000000000000") is None

    def test_soft_deleted_hidden(self, forge: Metaforge, people: list[Model]):
        """Soft-deleted rows are hidden unless include_deleted is set."""
        people[0].delete()
        assert forge.adapter.count("User") == 2
        assert forge.adapter.count("User", include_deleted=True) == 3
        assert forge.adapter.find_by_id("User", str(people[0].id)) is None
        assert forge.adapter.find_by_id("User", str(people[0].id), include_deleted=True)

    def test_non_persisted_fields_have_no_column(self, forge: Metaforge):
        """Fields with is_persisted false are not stored."""
        assert "display" not in forge.catalog.entity_table("User").c


class TestWrites:
    """Tests for create/update/delete statements."""

    def test_update_writes_only_changed_fields(self, forge: Metaforge, people: list[Model]):
        """Only dirty fields (plus audit columns) are written."""
        user = people[0]
        user.set("age", 21)
        written = forge.adapter.update(user)
        assert set(written) == {"age"}

    def test_update_writes_null(self, forge: Metaforge, people: list[Model]):
        """Explicit None values are written."""
        user = people[0]
        user.set("name", None)
        assert user.update()
        assert forge.adapter.find_by_id("User", str(user.id))["name"] is None

    def test_update_with_nothing_changed(self, forge: Metaforge, people: list[Model]):
        """Updating a clean model is an error."""
        with pytest.raises(PersistenceError):
            forge.adapter.update(people[0])

    def test_update_missing_row(self, forge: Metaforge, people: list[Model]):
        """Updating a row that is gone raises PersistenceError."""
        user = people[0]
        forge.adapter.hard_delete(user)
        user.set("age", 99)
        with pytest.raises(PersistenceError) as exc_info:
            forge.adapter.update(user)
        assert exc_info.value.context["record_id"] == user.id

    def test_unique_index_violation_is_persistence_error(
        self, forge: Metaforge, people: list[Model]
    ):
        """Database errors surface as PersistenceError with the entity and operation."""
        duplicate = forge.new("User", {"email": "user20@example.com"})
        duplicate.fields["id"].assign("5b1f9c5e-3c39-4a3f-9a53-2f8c6f1e0b11")
        with pytest.raises(PersistenceError) as exc_info:
            forge.adapter.create(duplicate)
        assert exc_info.value.entity_name == "User"
        assert exc_info.value.operation == "create"

    def test_record_exists(self, forge: Metaforge, people: list[Model]):
        """record_exists can exclude one id."""
        user = people[0]
        assert forge.adapter.record_exists("User", "email", "user20@example.com")
        assert not forge.adapter.record_exists(
            "User", "email", "user20@example.com", exclude_id=user.id
        )

    def test_transaction_rolls_back(self, forge: Metaforge, people: list[Model]):
        """Statements in a failed transaction are rolled back together."""
        table = forge.catalog.entity_table("User")
        with pytest.raises(RuntimeError):
            with forge.transaction():
                forge.adapter.update_rows(table, {"age": 20}, {"age": 21})
                raise RuntimeError("boom")
        assert forge.adapter.count("User", {"age": 20}) == 1

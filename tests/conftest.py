"""Shared test fixtures for metaforge."""

import copy
import os
from collections.abc import Callable, Generator
from typing import Any

import pytest

from metaforge import Metaforge, MetadataRegistry
from metaforge.models.model import Model

ACTOR = "tester"

METADATA: dict[str, Any] = {
    "entities": [
        {
            "name": "User",
            "fields": [
                {"name": "email", "type": "email", "required": True, "unique": True},
                {"name": "name", "type": "text", "maxLength": 50},
                {"name": "age", "type": "integer", "minValue": 0, "maxValue": 150},
                {"name": "password", "type": "password", "validationRules": ["PasswordStrength"]},
                {
                    "name": "status",
                    "type": "enum",
                    "options": {"active": "Active", "inactive": "Inactive"},
                    "defaultValue": "active",
                },
                {"name": "display", "type": "text", "isPersisted": False},
            ],
            "relationships": ["user_profile", "user_posts"],
        },
        {"name": "Profile", "fields": [{"name": "bio", "type": "big_text"}]},
        {
            "name": "Post",
            "fields": [
                {"name": "title", "type": "text", "required": True},
                {"name": "published", "type": "boolean", "defaultValue": False},
            ],
        },
        {"name": "Comment", "fields": [{"name": "body", "type": "text", "required": True}]},
        {"name": "Tag", "fields": [{"name": "label", "type": "text", "unique": True}]},
        {"name": "Category", "fields": [{"name": "name", "type": "text"}]},
        {"name": "Project", "fields": [{"name": "name", "type": "text"}]},
        {"name": "Task", "fields": [{"name": "title", "type": "text"}]},
        {"name": "Person", "fields": [{"name": "name", "type": "text"}]},
        {"name": "Base", "abstract": True, "fields": [{"name": "code", "type": "text"}]},
    ],
    "relationships": [
        {
            "name": "user_profile",
            "type": "one_to_one",
            "modelA": "User",
            "modelB": "Profile",
            "cascade": "cascade",
        },
        {
            "name": "user_posts",
            "type": "one_to_many",
            "modelOne": "User",
            "modelMany": "Post",
            "cascade": "cascade",
        },
        {
            "name": "post_comments",
            "type": "one_to_many",
            "modelOne": "Post",
            "modelMany": "Comment",
            "cascade": "cascade",
        },
        {
            "name": "post_tags",
            "type": "many_to_many",
            "modelA": "Post",
            "modelB": "Tag",
            "cascade": "soft_delete",
            "additionalFields": [{"name": "weight", "type": "integer", "minValue": 0}],
        },
        {
            "name": "category_posts",
            "type": "one_to_many",
            "modelOne": "Category",
            "modelMany": "Post",
            "cascade": "restrict",
        },
        {
            "name": "project_tasks",
            "type": "one_to_many",
            "modelOne": "Project",
            "modelMany": "Task",
            "cascade": "soft_delete",
            "ordered": True,
        },
        {
            "name": "friends",
            "type": "many_to_many",
            "modelA": "Person",
            "modelB": "Person",
            "cascade": "soft_delete",
        },
    ],
}


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's METAFORGE_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("METAFORGE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def metadata() -> dict[str, Any]:
    """A fresh copy of the test metadata, safe to modify."""
    return copy.deepcopy(METADATA)


@pytest.fixture
def registry(metadata: dict[str, Any]) -> MetadataRegistry:
    """Registry loaded from the test metadata."""
    return MetadataRegistry.from_dicts(metadata["entities"], metadata["relationships"])


@pytest.fixture
def forge(metadata: dict[str, Any]) -> Generator[Metaforge, None, None]:
    """Metaforge on SQLite in-memory with the schema already synced."""
    engine = Metaforge("sqlite:///:memory:", metadata, actor_provider=lambda: ACTOR)
    engine.sync_schema()
    yield engine
    engine.close()


@pytest.fixture
def make(forge: Metaforge) -> Callable[..., Model]:
    """Create and persist a record, failing the test on validation errors."""

    def _make(entity_name: str, **values: Any) -> Model:
        model = forge.new(entity_name, values)
        assert model.create(), model.errors
        return model

    return _make


@pytest.fixture
def metadata_file(tmp_path: Any, metadata: dict[str, Any]) -> str:
    """The test metadata written to a JSON file."""
    import json

    path = tmp_path / "metadata.json"
    path.write_text(json.dumps(metadata), encoding="utf-8")
    return str(path)

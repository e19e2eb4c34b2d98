"""CLI command tests for metaforge."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from metaforge.cli.main import app
from metaforge.cli.parsing import parse_json_object, read_json_file

runner = CliRunner()


@pytest.fixture
def temp_db(tmp_path: Path) -> str:
    """URL of a SQLite database file in a temporary directory."""
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def cli(temp_db: str, metadata_file: str):
    """Invoke the CLI against the temporary database and the test metadata."""

    def _invoke(*args: str, json_output: bool = True):
        options = ["-d", temp_db, "-m", metadata_file]
        if json_output:
            options.append("--json")
        return runner.invoke(app, [*options, *args])

    return _invoke


@pytest.fixture
def synced(cli):
    """The CLI with the schema already applied."""
    result = cli("schema", "sync")
    assert result.exit_code == 0, result.stdout
    return cli


class TestVersionCommand:
    """Test the version command."""

    def test_version_output(self) -> None:
        """Test that version command shows version info."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "metaforge v" in result.stdout


class TestSchemaCommands:
    """Test schema commands."""

    def test_plan_fresh_database(self, cli) -> None:
        """A fresh database plans table creation and applies nothing."""
        result = cli("schema", "plan")
        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data["applied"] is False
        assert data["count"] > 0
        assert data["statements"][0]["kind"] == "create_table"

    def test_sync_then_plan(self, cli) -> None:
        """After sync the plan is empty."""
        applied = json.loads(cli("schema", "sync").stdout)
        assert applied["applied"] is True
        assert applied["count"] > 0

        result = cli("schema", "plan", json_output=False)
        assert result.exit_code == 0
        assert "Schema is up to date" in result.stdout

    def test_sync_dry_run(self, cli) -> None:
        """--dry-run only prints the plan."""
        data = json.loads(cli("schema", "sync", "--dry-run").stdout)
        assert data["applied"] is False
        assert json.loads(cli("schema", "plan").stdout)["count"] == data["count"]

    def test_describe_all(self, cli) -> None:
        """describe without an entity lists every table."""
        data = json.loads(cli("schema", "describe").stdout)
        assert "user" in data["tables"]
        assert data["tables"]["rel_n_post_m_tag"]["kind"] == "relationship"
        assert data["database"]["dialect"] == "sqlite"

    def test_describe_entity(self, cli) -> None:
        """describe ENTITY shows its fields and relationships."""
        data = json.loads(cli("schema", "describe", "User").stdout)
        assert data["table"] == "user"
        assert {"user_profile", "user_posts"} <= {
            r["name"] for r in data["relationship_definitions"]
        }

    def test_describe_entity_rich(self, cli) -> None:
        """The terminal rendering names the entity."""
        result = cli("schema", "describe", "Post", json_output=False)
        assert result.exit_code == 0
        assert "Entity: Post" in result.stdout

    def test_describe_unknown_entity(self, cli) -> None:
        """Unknown entities exit with an error."""
        result = cli("schema", "describe", "Ghost")
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "EntityNotFoundError"

    def test_missing_metadata(self, temp_db: str) -> None:
        """Commands that need metadata fail without it."""
        result = runner.invoke(app, ["-d", temp_db, "--json", "schema", "plan"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "ConfigurationError"


class TestMetadataCommands:
    """Test metadata commands."""

    def test_list(self, cli) -> None:
        """list shows entities and relationships."""
        data = json.loads(cli("metadata", "list").stdout)
        names = [e["name"] for e in data["entities"]]
        assert names[0] == "User"
        assert next(e for e in data["entities"] if e["name"] == "Base")["abstract"] is True
        posts = next(r for r in data["relationships"] if r["name"] == "user_posts")
        assert posts == {
            "name": "user_posts",
            "type": "one_to_many",
            "from": "User",
            "to": "Post",
            "cascade": "cascade",
        }

    def test_validate(self, cli) -> None:
        """validate reports counts for valid metadata."""
        data = json.loads(cli("metadata", "validate").stdout)
        assert data["success"] is True
        assert data["relationships"] == 7

    def test_validate_path_argument(self, temp_db: str, tmp_path: Path) -> None:
        """validate reports broken relationship metadata."""
        path = tmp_path / "broken.json"
        path.write_text(
            json.dumps(
                {
                    "entities": [{"name": "User"}],
                    "relationships": [
                        {"name": "x", "type": "one_to_one", "modelA": "User", "modelB": "Ghost"}
                    ],
                }
            )
        )
        result = runner.invoke(app, ["-d", temp_db, "--json", "metadata", "validate", str(path)])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "UnknownParticipantError"
        assert data["context"]["entity_name"] == "Ghost"


class TestDataCommands:
    """Test record commands."""

    def insert(self, cli, entity: str, values: dict) -> str:
        result = cli("data", "insert", entity, json.dumps(values))
        assert result.exit_code == 0, result.stdout
        return json.loads(result.stdout)["id"]

    def test_insert_and_get(self, synced) -> None:
        """Inserted records can be read back; passwords are never shown."""
        record_id = self.insert(
            synced, "User", {"email": "ada@example.com", "age": 36, "password": "Secret123"}
        )
        data = json.loads(synced("data", "get", "User", record_id).stdout)
        assert data["email"] == "ada@example.com"
        assert data["password"] is None
        assert data["_state"] == "persisted"

    def test_insert_invalid(self, synced) -> None:
        """Validation failures exit with the field messages."""
        result = synced("data", "insert", "User", json.dumps({"age": -1}))
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "ValidationError"
        assert data["context"]["field_errors"] == {
            "email": ["email is required."],
            "age": ["age must be at least 0."],
        }

    def test_insert_bad_json(self, synced) -> None:
        """Malformed JSON is reported."""
        result = synced("data", "insert", "User", "{oops")
        assert result.exit_code == 1
        assert "Invalid JSON" in json.loads(result.stdout)["error"]

    def test_insert_from_file(self, synced, tmp_path: Path) -> None:
        """Data can come from a JSON file."""
        path = tmp_path / "post.json"
        path.write_text(json.dumps({"title": "From file"}))
        result = synced("data", "insert", "Post", "--from-file", str(path))
        assert result.exit_code == 0, result.stdout

    def test_find(self, synced) -> None:
        """find filters, orders and limits."""
        for age in (20, 30, 40):
            self.insert(synced, "User", {"email": f"u{age}@example.com", "age": age})
        result = synced(
            "data", "find", "User", "--where", '{"age": {"gte": 25}}', "--order-by=-age", "-l", "1"
        )
        assert result.exit_code == 0, result.stdout
        rows = json.loads(result.stdout)
        assert [r["age"] for r in rows] == [40]

    def test_update_delete_restore(self, synced) -> None:
        """Records can be updated, soft-deleted and restored."""
        record_id = self.insert(synced, "Post", {"title": "Draft"})

        assert synced("data", "update", "Post", record_id, '{"title": "Final"}').exit_code == 0
        assert json.loads(synced("data", "get", "Post", record_id).stdout)["title"] == "Final"

        assert synced("data", "delete", "Post", record_id).exit_code == 0
        assert synced("data", "get", "Post", record_id).exit_code == 1
        deleted = synced("data", "get", "Post", record_id, "--include-deleted")
        assert json.loads(deleted.stdout)["_state"] == "soft_deleted"

        assert synced("data", "restore", "Post", record_id).exit_code == 0
        assert synced("data", "get", "Post", record_id).exit_code == 0

    def test_hard_delete(self, synced) -> None:
        """--hard removes the record for good."""
        record_id = self.insert(synced, "Post", {"title": "Gone"})
        assert synced("data", "delete", "Post", record_id, "--hard").exit_code == 0
        result = synced("data", "get", "Post", record_id, "--include-deleted")
        assert result.exit_code == 1
        assert "Record not found" in json.loads(result.stdout)["message"]


class TestParsing:
    """Tests for CLI input parsing."""

    def test_parse_json_object(self) -> None:
        """Only JSON objects are accepted."""
        assert parse_json_object('{"a": 1}') == {"a": 1}
        with pytest.raises(ValueError, match="must be a JSON object"):
            parse_json_object("[1, 2]")

    def test_read_json_file_missing(self, tmp_path: Path) -> None:
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            read_json_file(str(tmp_path / "nope.json"))

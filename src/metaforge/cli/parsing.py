"""Input parsing utilities for CLI commands."""

import json
from pathlib import Path
from typing import Any


def parse_json_object(text: str, what: str = "data") -> dict[str, Any]:
    """Parse a JSON object given on the command line.

    Args:
        text: JSON text
        what: Name of the argument, used in error messages

    Returns:
        Parsed object

    Raises:
        ValueError: If the text is not valid JSON or not an object
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON for {what}: {e.msg} (position {e.pos})") from e
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a JSON object, got {type(value).__name__}")
    return value


def read_json_file(path: str) -> dict[str, Any]:
    """Read a single JSON object from a file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON object

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file does not hold a JSON object
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return parse_json_object(file_path.read_text(encoding="utf-8"), file_path.name)

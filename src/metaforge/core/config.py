"""Runtime configuration for metaforge.

Settings resolve in priority order: explicit argument, environment variable,
built-in default. Environment variables:
- METAFORGE_URL: database URL
- METAFORGE_METADATA: directory holding ``entities/`` and ``relationships/``
- METAFORGE_LOG_LEVEL: logging level name (e.g. DEBUG)
"""

from __future__ import annotations

import logging
import os
import sys

from pydantic import BaseModel, Field

DEFAULT_DATABASE_URL = "sqlite:///./metaforge.db"

ENV_DATABASE_URL = "METAFORGE_URL"
ENV_METADATA_PATH = "METAFORGE_METADATA"
ENV_LOG_LEVEL = "METAFORGE_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class MetaforgeConfig(BaseModel):
    """Settings used by the composition root."""

    database_url: str = Field(default=DEFAULT_DATABASE_URL, description="SQLAlchemy URL")
    metadata_path: str | None = Field(
        default=None, description="Directory of JSON entity/relationship definitions"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    log_level: str = Field(default="WARNING", description="Level for configure_logging()")
    auto_sync: bool = Field(
        default=False, description="Apply the schema plan when the engine starts"
    )
    password_schemes: list[str] = Field(
        default_factory=lambda: ["pbkdf2_sha256"],
        description="passlib schemes for password fields, preferred first",
    )

    model_config = {"extra": "forbid"}

    @classmethod
    def from_env(
        cls,
        database_url: str | None = None,
        metadata_path: str | None = None,
        **overrides: object,
    ) -> MetaforgeConfig:
        """Build a config from explicit values, falling back to the environment.

        Args:
            database_url: Explicit database URL
            metadata_path: Explicit metadata directory
            **overrides: Any other MetaforgeConfig field

        Returns:
            Resolved configuration
        """
        values: dict[str, object] = {
            "database_url": database_url or os.getenv(ENV_DATABASE_URL) or DEFAULT_DATABASE_URL,
            "metadata_path": metadata_path or os.getenv(ENV_METADATA_PATH),
        }
        if env_level := os.getenv(ENV_LOG_LEVEL):
            values["log_level"] = env_level
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


def configure_logging(level: str | int = "WARNING") -> None:
    """Send metaforge log records to stderr.

    Library code only creates loggers; entry points (the CLI, scripts) call
    this once to attach a handler.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logger = logging.getLogger("metaforge")
    logger.setLevel(level)
    if not any(getattr(h, "_metaforge", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._metaforge = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

"""CLI context management for the engine and shared state."""

from dataclasses import dataclass, field

from metaforge import Metaforge
from metaforge.core.config import MetaforgeConfig


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Holds the resolved configuration and builds the engine on first use,
    so commands that fail early never open a database connection.
    """

    config: MetaforgeConfig
    json_output: bool
    _forge: Metaforge | None = field(default=None, init=False, repr=False)

    def get_forge(self) -> Metaforge:
        """Get or create the engine (lazy initialization).

        Raises:
            ConfigurationError: If no metadata path is configured or the metadata is invalid
        """
        if self._forge is None:
            self._forge = Metaforge(config=self.config)
        return self._forge

    def close(self) -> None:
        """Close the database connection if open."""
        if self._forge is not None:
            self._forge.close()
            self._forge = None

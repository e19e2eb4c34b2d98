"""metaforge CLI - Main entry point."""

from typing import Annotated

import typer

import metaforge
from metaforge.cli.context import CLIContext
from metaforge.core.config import (
    ENV_DATABASE_URL,
    ENV_LOG_LEVEL,
    ENV_METADATA_PATH,
    MetaforgeConfig,
    configure_logging,
)

# Create main Typer app
app = typer.Typer(
    name="metaforge",
    help="metaforge CLI - metadata-driven persistence engine",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar=ENV_DATABASE_URL,
            help="Database URL (SQLite, PostgreSQL or MySQL)",
        ),
    ] = None,
    metadata: Annotated[
        str | None,
        typer.Option(
            "--metadata",
            "-m",
            envvar=ENV_METADATA_PATH,
            help="Metadata directory (entities/, relationships/) or JSON file",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            envvar=ENV_LOG_LEVEL,
            help="Log level for metaforge messages on stderr (e.g. INFO, DEBUG)",
        ),
    ] = None,
) -> None:
    """Initialize CLI context with global options."""
    config = MetaforgeConfig.from_env(
        database_url=database,
        metadata_path=metadata,
        echo=echo,
        log_level=log_level,
    )
    configure_logging(config.log_level)

    # Store in Typer context for command access
    ctx.obj = CLIContext(config=config, json_output=json_output)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"metaforge v{metaforge.__version__}")


# Register command groups
from metaforge.cli.commands import data, metadata, schema  # noqa: E402

app.add_typer(schema.app, name="schema")
app.add_typer(metadata.app, name="metadata")
app.add_typer(data.app, name="data")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

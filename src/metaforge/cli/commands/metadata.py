"""Metadata commands: list and validate entity/relationship definitions."""

from typing import Annotated

import typer

from metaforge import Metaforge
from metaforge.cli.context import CLIContext
from metaforge.cli.output import OutputFormatter

# Create metadata subcommand group
app = typer.Typer(help="Inspect and validate metadata definitions")


@app.command("list")
def metadata_list(ctx: typer.Context) -> None:
    """List registered entities and relationships.

    Examples:

        metaforge -m metadata/ metadata list
        metaforge -m metadata/ --json metadata list
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = cli_ctx.get_forge().registry
        entities = []
        for name in registry.list_entities():
            definition = registry.get_entity_definition(name)
            entities.append(
                {
                    "name": name,
                    "table": definition.table_name,
                    "fields": len(definition.fields),
                    "abstract": definition.abstract,
                }
            )
        relationships = []
        for name in registry.list_relationships():
            definition = registry.get_relationship_definition(name)
            first, second = definition.participants
            relationships.append(
                {
                    "name": name,
                    "type": str(definition.type),
                    "from": first,
                    "to": second,
                    "cascade": str(definition.cascade),
                }
            )

        if formatter.json_mode:
            formatter.print_data({"entities": entities, "relationships": relationships})
            return

        formatter.print_table(
            f"Entities ({len(entities)})", entities, ["name", "table", "fields", "abstract"]
        )
        if relationships:
            formatter.print_table(
                f"Relationships ({len(relationships)})",
                relationships,
                ["name", "type", "from", "to", "cascade"],
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("validate")
def metadata_validate(
    ctx: typer.Context,
    path: Annotated[
        str | None,
        typer.Argument(help="Metadata directory or JSON file (default: --metadata)"),
    ] = None,
) -> None:
    """Load the metadata and check every definition without touching the database.

    Checks field types, validation rule names, relationship participants,
    duplicate relationships and cascade cycles.

    Examples:

        metaforge metadata validate metadata/
        metaforge -m metadata/ metadata validate
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        update: dict[str, object] = {"auto_sync": False}
        if path is not None:
            update["metadata_path"] = path
        config = cli_ctx.config.model_copy(update=update)
        # Building the engine validates everything; the connection stays closed
        with Metaforge(config=config) as forge:
            registry = forge.registry
            formatter.print_success(
                "Metadata is valid",
                {
                    "entities": len(registry.list_entities()),
                    "relationships": len(registry.list_relationships()),
                },
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()

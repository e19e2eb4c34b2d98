"""Schema commands: plan, apply and describe the derived tables."""

from typing import Annotated

import typer

from metaforge.cli.context import CLIContext
from metaforge.cli.output import OutputFormatter, console
from metaforge.exceptions import EntityNotFoundError

# Create schema subcommand group
app = typer.Typer(help="Plan, apply and inspect the derived database schema")


@app.command("plan")
def schema_plan(ctx: typer.Context) -> None:
    """Show the DDL needed to bring the database in line with the metadata.

    Nothing is executed. The plan never contains DROP statements.

    Examples:

        metaforge -m metadata/ schema plan
        metaforge -m metadata/ --json schema plan
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        plan = cli_ctx.get_forge().plan_schema()
        formatter.print_plan(plan)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("sync")
def schema_sync(
    ctx: typer.Context,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Only print the plan (same as 'schema plan')"),
    ] = False,
) -> None:
    """Create missing tables, columns and indexes in one transaction.

    Examples:

        metaforge -m metadata/ schema sync
        metaforge -m metadata/ schema sync --dry-run
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        forge = cli_ctx.get_forge()
        if dry_run:
            formatter.print_plan(forge.plan_schema())
        else:
            formatter.print_plan(forge.sync_schema(), applied=True)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("describe")
def schema_describe(
    ctx: typer.Context,
    entity_name: Annotated[
        str | None,
        typer.Argument(help="Entity to show (default: every table)"),
    ] = None,
) -> None:
    """Describe entities, relationships and their tables.

    Examples:

        metaforge -m metadata/ schema describe
        metaforge -m metadata/ schema describe User
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        forge = cli_ctx.get_forge()
        description = forge.describe()

        if entity_name is None:
            if formatter.json_mode:
                formatter.print_data(description)
                return
            rows = [
                {
                    "Table": name,
                    "Kind": table["kind"],
                    "Owner": table["owner"],
                    "Columns": len(table["columns"]),
                    "Indexes": len(table["indexes"]),
                }
                for name, table in description["tables"].items()
            ]
            formatter.print_table(
                f"Tables ({description['database']['dialect']})",
                rows,
                ["Table", "Kind", "Owner", "Columns", "Indexes"],
            )
            return

        entity = description["entities"].get(entity_name)
        if entity is None:
            raise EntityNotFoundError(entity_name, list(description["entities"]))
        relationships = [
            {"name": name, **rel}
            for name, rel in description["relationships"].items()
            if entity_name in (rel.get("model_a"), rel.get("model_b"))
            or entity_name in (rel.get("model_one"), rel.get("model_many"))
        ]

        if formatter.json_mode:
            formatter.print_data({**entity, "relationship_definitions": relationships})
            return

        console.print(f"\n[bold]Entity:[/bold] {entity['name']}")
        console.print(f"Table: {entity['table']}")
        if entity.get("description"):
            console.print(f"Description: {entity['description']}")
        formatter.print_table(
            f"Fields ({len(entity['fields'])})",
            entity["fields"],
            ["name", "type", "required", "unique", "indexed", "read_only"],
        )
        if relationships:
            formatter.print_table(
                f"Relationships ({len(relationships)})",
                relationships,
                ["name", "type", "cascade", "table"],
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()

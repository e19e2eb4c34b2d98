"""Record commands: insert, read, update and delete entity records."""

from typing import Annotated, Any

import typer

from metaforge.cli.context import CLIContext
from metaforge.cli.output import OutputFormatter
from metaforge.cli.parsing import parse_json_object, read_json_file
from metaforge.exceptions import MetaforgeError
from metaforge.metadata.core_fields import AUDIT_FIELDS
from metaforge.models.model import Model

# Create data subcommand group
app = typer.Typer(help="Manage entity records")


def _require(model: Model | None, entity_name: str, record_id: str) -> Model:
    if model is None:
        raise MetaforgeError(
            f"Record not found: {entity_name} {record_id}",
            {"entity_name": entity_name, "record_id": record_id},
        )
    return model


def _record(model: Model) -> dict[str, Any]:
    return {**model.to_dict(), "_state": str(model.state)}


@app.command("insert")
def data_insert(
    ctx: typer.Context,
    entity_name: Annotated[str, typer.Argument(help="Entity name")],
    data_json: Annotated[
        str | None,
        typer.Argument(help="Record data as JSON string"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--from-file", "-f", help="Load data from a JSON file"),
    ] = None,
) -> None:
    """Validate and insert a record.

    Examples:

        metaforge data insert User '{"email": "ada@example.com", "age": 36}'
        metaforge data insert User --from-file user.json
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        if from_file:
            data = read_json_file(from_file)
        elif data_json:
            data = parse_json_object(data_json)
        else:
            raise typer.BadParameter("Either provide data as JSON string or use --from-file")

        model = cli_ctx.get_forge().new(entity_name, data)
        if not model.create():
            model.raise_for_errors()
        formatter.print_success("Inserted record", {"id": model.id})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("get")
def data_get(
    ctx: typer.Context,
    entity_name: Annotated[str, typer.Argument(help="Entity name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
    include_deleted: Annotated[
        bool,
        typer.Option("--include-deleted", help="Also find soft-deleted records"),
    ] = False,
) -> None:
    """Get a record by ID.

    Examples:

        metaforge data get User 550e8400-e29b-41d4-a716-446655440000
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        model = cli_ctx.get_forge().get(entity_name, record_id, include_deleted)
        formatter.print_data(_record(_require(model, entity_name, record_id)))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("find")
def data_find(
    ctx: typer.Context,
    entity_name: Annotated[str, typer.Argument(help="Entity name")],
    where: Annotated[
        str | None,
        typer.Option(
            "--where",
            "-w",
            help='Criteria as JSON, e.g. \'{"age": {"gte": 18}, "status": ["a", "b"]}\'',
        ),
    ] = None,
    order_by: Annotated[
        list[str] | None,
        typer.Option("--order-by", "-o", help="Field to sort by, '-field' for descending"),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum records")] = 50,
    offset: Annotated[int, typer.Option("--offset", help="Records to skip")] = 0,
    include_deleted: Annotated[
        bool,
        typer.Option("--include-deleted", help="Also return soft-deleted records"),
    ] = False,
) -> None:
    """Find records matching criteria.

    Examples:

        metaforge data find User
        metaforge data find User --where '{"age": {"gte": 18}}' --order-by -age --limit 10
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        criteria = parse_json_object(where, "--where") if where else None
        forge = cli_ctx.get_forge()
        models = forge.find(
            entity_name,
            criteria,
            order_by=order_by or None,
            limit=limit,
            offset=offset,
            include_deleted=include_deleted,
        )
        records = [_record(model) for model in models]
        columns = [
            name
            for name in forge.registry.get_entity_definition(entity_name).field_names
            if name not in AUDIT_FIELDS
        ]
        if "id" not in columns:
            columns.insert(0, "id")
        formatter.print_table(f"{entity_name} ({len(records)})", records, columns)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("update")
def data_update(
    ctx: typer.Context,
    entity_name: Annotated[str, typer.Argument(help="Entity name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
    data_json: Annotated[str, typer.Argument(help="Changed fields as JSON string")],
) -> None:
    """Validate and write changed fields of a record.

    Examples:

        metaforge data update User 550e8400 '{"age": 37}'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        data = parse_json_object(data_json)
        model = _require(cli_ctx.get_forge().get(entity_name, record_id), entity_name, record_id)
        model.populate(data)
        if not model.update():
            model.raise_for_errors()
        formatter.print_success("Record updated", {"id": record_id})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("delete")
def data_delete(
    ctx: typer.Context,
    entity_name: Annotated[str, typer.Argument(help="Entity name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
    hard: Annotated[
        bool,
        typer.Option("--hard", help="Permanent delete (default: soft delete)"),
    ] = False,
) -> None:
    """Delete a record, applying relationship cascade policies.

    Examples:

        metaforge data delete User 550e8400
        metaforge data delete User 550e8400 --hard  # Permanent
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        forge = cli_ctx.get_forge()
        model = _require(
            forge.get(entity_name, record_id, include_deleted=hard), entity_name, record_id
        )
        if hard:
            model.hard_delete()
        else:
            model.delete()
        formatter.print_success(
            f"Record {'permanently ' if hard else ''}deleted: {record_id}",
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("restore")
def data_restore(
    ctx: typer.Context,
    entity_name: Annotated[str, typer.Argument(help="Entity name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
) -> None:
    """Undo a soft delete.

    Examples:

        metaforge data restore User 550e8400
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        forge = cli_ctx.get_forge()
        model = _require(
            forge.get(entity_name, record_id, include_deleted=True), entity_name, record_id
        )
        model.restore()
        formatter.print_success(f"Record restored: {record_id}")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()

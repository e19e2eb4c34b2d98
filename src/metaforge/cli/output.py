"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.pretty import pprint
from rich.syntax import Syntax
from rich.table import Table

from metaforge.exceptions import MetaforgeError, ValidationError
from metaforge.schema.synchronizer import SchemaPlan

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array.

        Args:
            title: Table title
            data: List of row dictionaries
            columns: Column names to display
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(*[_cell(row.get(col)) for col in columns])
            console.print(table)

    def print_plan(self, plan: SchemaPlan, applied: bool = False) -> None:
        """Print a schema plan as SQL, or as a JSON document.

        Args:
            plan: Planned (or applied) statements
            applied: Whether the statements were already run
        """
        if self.json_mode:
            print(json.dumps({**plan.to_dict(), "applied": applied}, indent=2))
            return

        if plan.is_empty:
            console.print("✓ Schema is up to date", style="green")
            return

        verb = "Applied" if applied else "Pending"
        console.print(f"\n[bold]{verb} schema changes ({len(plan)}):[/bold]")
        for statement in plan:
            header = f"[cyan]{statement.kind}[/cyan] {statement.table}"
            if statement.column:
                header += f".{statement.column}"
            if not statement.supported:
                header += " [yellow](skipped: not supported by this database)[/yellow]"
            console.print(header)
            console.print(Syntax(statement.sql, "sql", word_wrap=True))

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message.

        Args:
            message: Success message
            details: Optional details to display
        """
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            print(json.dumps(output, default=str, indent=2))
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, MetaforgeError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
            return

        error_text = str(error)
        if isinstance(error, ValidationError):
            lines = [
                f"{field}: {message}"
                for field, messages in error.field_errors.items()
                for message in messages
            ]
            error_text = f"{error_text}\n\n" + "\n".join(lines)
        elif isinstance(error, MetaforgeError) and error.context:
            context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
            error_text = f"{error_text}\n\n{context_str}"

        console.print(Panel(error_text, title="[red]Error[/red]", border_style="red"))

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.).

        Args:
            data: Data to print
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            pprint(data, console=console, expand_all=True)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "✓" if value else ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)

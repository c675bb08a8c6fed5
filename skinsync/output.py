"""Console output formatting for the SkinSync CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user-facing output with rich.

    In JSON mode only ``output_json`` writes to stdout; messages go to
    stderr so the JSON stays machine-readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def _message_console(self) -> Console:
        return self.err_console if self.json_output else self.console

    def print(self, message: str = "") -> None:
        if self.quiet:
            return
        self._message_console().print(message)

    def info(self, message: str) -> None:
        if self.quiet:
            return
        self._message_console().print(message)

    def success(self, message: str) -> None:
        if self.quiet:
            return
        self._message_console().print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]⚠[/yellow] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[bold red]✗ Error:[/bold red] {message}")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, ensure_ascii=False))

    def output_table(
        self, columns: list[str], rows: list[list[Any]], title: Optional[str] = None
    ) -> None:
        if self.quiet:
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(str(cell) for cell in row))
        self._message_console().print(table)

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Print a titled list of ``label: value`` lines."""
        if self.quiet:
            return
        console = self._message_console()
        console.print(f"[bold]{title}[/bold]")
        for label, value in items:
            console.print(f"  {label}: {value}")

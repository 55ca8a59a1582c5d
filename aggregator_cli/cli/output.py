"""Output formatting for aggregator commands.

Human-readable output uses Rich tables and key-value listings; every
command also supports machine-readable JSON.
"""

import json
from datetime import datetime
from typing import Any, Dict, List

from rich.console import Console
from rich.json import JSON as RichJSON
from rich.table import Table

console = Console()


def print_json(data: Any, console_instance: Console | None = None) -> None:
    """Print data as highlighted JSON.

    Args:
        data: JSON-serializable data (datetimes are stringified)
        console_instance: Optional custom console instance
    """
    out = console_instance or console
    out.print(RichJSON(json.dumps(data, indent=2, default=str)))


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "[green]Yes[/green]" if value else "[red]No[/red]"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def print_table(
    data: List[Dict[str, Any]],
    columns: List[str],
    title: str | None = None,
    column_styles: Dict[str, str] | None = None,
    console_instance: Console | None = None,
) -> None:
    """Print rows as a table.

    Args:
        data: Row dictionaries
        columns: Keys to display, in order
        title: Optional table title
        column_styles: Optional Rich style per column key
        console_instance: Optional custom console instance

    Example:
        print_table(
            [{"tier": "hourly", "waiting": 2}, {"tier": "daily", "waiting": 5}],
            ["tier", "waiting"],
            title="Queues",
        )
    """
    out = console_instance or console
    column_styles = column_styles or {}

    table = Table(title=title)
    for col in columns:
        table.add_column(col.replace("_", " ").title(), style=column_styles.get(col))
    for row in data:
        table.add_row(*(_format_cell(row.get(col)) for col in columns))

    out.print(table)


def print_result(
    success: bool,
    message: str,
    details: Dict[str, Any] | None = None,
    console_instance: Console | None = None,
) -> None:
    """Print an operation result with a success or failure marker."""
    out = console_instance or console

    icon = "[green]✓[/green]" if success else "[red]✗[/red]"
    out.print(f"{icon} {message}")

    for key, value in (details or {}).items():
        if value is not None:
            out.print(f"  [dim]{key}:[/dim] {value}")


def print_key_value(
    data: Dict[str, Any],
    title: str | None = None,
    key_style: str = "cyan",
    console_instance: Console | None = None,
) -> None:
    """Print aligned key-value pairs."""
    out = console_instance or console

    if title:
        out.print(f"[bold]{title}[/bold]")
        out.print()

    width = max((len(str(k)) for k in data), default=0)
    for key, value in data.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            formatted = f"[yellow]{value}[/yellow]"
        else:
            formatted = _format_cell(value) or "[dim]N/A[/dim]"
        out.print(f"  [{key_style}]{str(key).ljust(width)}[/{key_style}] : {formatted}")


def format_age(timestamp: datetime | None, now: datetime | None = None) -> str:
    """Format how long ago a naive UTC timestamp was.

    Example:
        format_age(datetime.utcnow() - timedelta(minutes=90))  # "1h 30m ago"
    """
    if timestamp is None:
        return "never"

    seconds = max(0, int(((now or datetime.utcnow()) - timestamp).total_seconds()))
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m ago"
    return f"{seconds // 86400}d ago"

"""Aggregator worker command - Execute queued source checks."""

from typing import List, Optional

import typer
from rich.console import Console

from aggregator_cli.cli.error_handler import ValidationError, handle_errors
from aggregator_cli.config import ensure_directories, get_config
from aggregator_cli.tiers import TIERS, Tier

app = typer.Typer(help="Run a worker that executes queued source checks.")
console = Console()


@app.callback(invoke_without_command=True)
@handle_errors
def worker(
    tiers: Optional[List[str]] = typer.Option(
        None,
        "--tier",
        "-t",
        help="Tier queue to consume (repeatable, default all).",
    ),
    burst: bool = typer.Option(
        False,
        "--burst",
        help="Exit once the queues are empty.",
    ),
    name: Optional[str] = typer.Option(None, "--name", help="Worker name."),
) -> None:
    """Start a worker consuming the tier queues.

    Example:
        aggregator worker
        aggregator worker --tier hourly --tier daily
        aggregator worker --burst
    """
    from aggregator_cli.scheduler.worker import start_worker

    allowed = [tier.value for tier in TIERS]
    for value in tiers or []:
        if value not in allowed:
            raise ValidationError(f"Invalid tier '{value}'", details={"allowed": ", ".join(allowed)})
    selected = [Tier(value) for value in tiers] if tiers else None

    config = get_config()
    ensure_directories(config)

    queues = ", ".join(t.queue_name for t in (selected or TIERS))
    console.print(f"[bold green]Starting worker[/bold green] on {queues}")

    start_worker(config, tiers=selected, burst=burst, name=name)

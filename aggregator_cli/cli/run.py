"""Aggregator run command - Start the discovery daemon."""

import asyncio

import typer
from rich.console import Console

from aggregator_cli.cli.error_handler import ConfigurationError, handle_errors
from aggregator_cli.config import config_to_dict, ensure_directories, get_config, validate_config

app = typer.Typer(help="Run the discovery daemon that schedules source checks.")
console = Console()


@app.callback(invoke_without_command=True)
@handle_errors
def run(
    schedule_on_start: bool = typer.Option(
        None,
        "--schedule-on-start/--no-schedule-on-start",
        help="Run a scheduling pass right after startup (default from config).",
    ),
    periodic: bool = typer.Option(
        None,
        "--periodic/--no-periodic",
        help="Enable the cron triggers (default from config).",
    ),
) -> None:
    """Start the discovery daemon in the foreground.

    The daemon:
    - Creates the four tier queues
    - Re-schedules due sources on the configured cron schedule
    - Purges old finished jobs on the cleanup schedule

    Jobs are executed by separate `aggregator worker` processes.

    Example:
        aggregator run
        aggregator run --no-schedule-on-start
    """
    from aggregator_cli.daemon.service import run_daemon

    config = get_config()
    if schedule_on_start is not None:
        config.scheduler.run_on_start = schedule_on_start
    if periodic is not None:
        config.scheduler.enabled = periodic

    errors = [e for e in validate_config(config) if e.severity == "error"]
    if errors:
        raise ConfigurationError(
            "Invalid configuration",
            details={e.field: e.message for e in errors},
        )
    ensure_directories(config)

    console.print("[bold green]Starting discovery daemon...[/bold green]")
    redis_url = config_to_dict(config)["queue"]["redis_url"]
    console.print(f"[dim]Redis: {redis_url}[/dim]")

    try:
        asyncio.run(run_daemon(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")

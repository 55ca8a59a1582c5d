"""Main CLI entry point for the aggregator."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from aggregator_cli import __app_name__, __version__
from aggregator_cli.cli import config, discovery, run, sources, worker
from aggregator_cli.cli.exit_codes import ExitCode
from aggregator_cli.config import LoggingConfig, load_config, set_config

app = typer.Typer(
    name=__app_name__,
    help="Aggregator CLI - Content discovery scheduling for the AI Information Aggregator.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(discovery.app, name="discovery")
app.add_typer(sources.app, name="sources")
app.add_typer(run.app, name="run")
app.add_typer(worker.app, name="worker")
app.add_typer(config.app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def _setup_logging(
    settings: LoggingConfig,
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the root logger.

    Command-line flags win over the ``[logging]`` config section.

    Args:
        settings: Logging section of the configuration
        verbose: Enable INFO level logging
        debug: Enable DEBUG level logging
        quiet: Only log errors
        log_file: Optional log file path (overrides ``settings.file``)
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.getLevelName(settings.level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    if debug:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    else:
        format_str = settings.format

    handlers: list[logging.Handler] = []

    log_file = log_file or settings.file
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log debug to file
        handlers.append(file_handler)

    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        handlers.append(console_handler)
    elif not log_file:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        format=format_str,
        handlers=handlers,
        force=True,
    )

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured: level={logging.getLevelName(level)}")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output (INFO level logging).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (DEBUG level logging).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log to file (logs DEBUG level regardless of console settings).",
    ),
) -> None:
    """Aggregator CLI - Content discovery scheduling.

    Sources are checked on one of four tiers (hourly, daily, weekly,
    monthly), each backed by its own Redis job queue.

    [bold]Commands:[/bold]

    • [cyan]discovery[/cyan] - Schedule checks and inspect the queues
    • [cyan]sources[/cyan] - Manage content sources
    • [cyan]run[/cyan] - Start the discovery daemon
    • [cyan]worker[/cyan] - Execute queued source checks
    • [cyan]config[/cyan] - Manage configuration

    [bold]Examples:[/bold]

        aggregator sources add https://example.com/feed.xml -n Example -t rss
        aggregator discovery schedule
        aggregator discovery stats
        aggregator run
    """
    if quiet and (verbose or debug):
        console.print("[red]Error:[/red] --quiet cannot be combined with --verbose or --debug")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    cfg = load_config(config_file)
    set_config(cfg)

    _setup_logging(cfg.logging, verbose=verbose, debug=debug, quiet=quiet, log_file=log_file)

    logger = logging.getLogger(__name__)
    logger.debug(f"Aggregator CLI v{__version__} starting")


if __name__ == "__main__":
    app()

"""CLI command modules for the aggregator.

Each module defines a Typer sub-app that ``aggregator_cli.main``
registers under its command name.
"""

from aggregator_cli.cli import config, discovery, run, sources, worker
from aggregator_cli.cli.error_handler import (
    AggregatorError,
    ConfigurationError,
    DatabaseError,
    NotFoundError,
    QueueError,
    SchedulerError,
    ValidationError,
    handle_errors,
)
from aggregator_cli.cli.exit_codes import ExitCode

__all__ = [
    # Command modules
    "config",
    "discovery",
    "run",
    "sources",
    "worker",
    # Exit codes
    "ExitCode",
    # Error handling
    "AggregatorError",
    "ConfigurationError",
    "DatabaseError",
    "NotFoundError",
    "QueueError",
    "SchedulerError",
    "ValidationError",
    "handle_errors",
]

"""Exception handling for aggregator commands.

Commands raise ``AggregatorError`` subclasses (or let backend exceptions
escape); ``handle_errors`` turns them into a message on stderr and the
matching exit code.
"""

import logging
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx
import typer
from redis.exceptions import RedisError
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from aggregator_cli.cli.exit_codes import ExitCode

# Error output goes to stderr
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class AggregatorError(Exception):
    """Base exception for aggregator commands.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional dictionary of additional error details
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(AggregatorError):
    """Invalid or unreadable configuration."""

    exit_code = ExitCode.CONFIGURATION_ERROR


class QueueError(AggregatorError):
    """The job queue backend could not be reached or failed."""

    exit_code = ExitCode.QUEUE_ERROR


class DatabaseError(AggregatorError):
    """The source database could not be read or written."""

    exit_code = ExitCode.DATABASE_ERROR


class SchedulerError(AggregatorError):
    """A scheduler operation returned a failure result.

    Examples:
        - A registry query failed during a scheduling pass
        - A queue counter could not be read
    """

    exit_code = ExitCode.SCHEDULER_ERROR


class ValidationError(AggregatorError):
    """Invalid user input."""

    exit_code = ExitCode.INVALID_ARGUMENT


class NotFoundError(AggregatorError):
    """A requested source or resource does not exist."""

    exit_code = ExitCode.NOT_FOUND


def _exit_for(error: AggregatorError) -> typer.Exit:
    logger.error(
        f"{type(error).__name__}: {error.message}",
        extra={"exit_code": error.exit_code, "details": error.details},
    )
    console.print(f"[red]Error:[/red] {error.message}")
    for key, value in error.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")
    return typer.Exit(code=error.exit_code)


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across commands.

    Handles:
    - AggregatorError subclasses: message plus their exit code
    - Redis, SQLAlchemy and httpx errors: mapped to queue, database and
      network exit codes
    - KeyboardInterrupt: cancellation message with exit code 130
    - Anything else: generic error with exit code 1

    Example:
        @app.command()
        @handle_errors
        def stats():
            raise QueueError("Redis unavailable")
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except AggregatorError as e:
            raise _exit_for(e)
        except RedisError as e:
            raise _exit_for(QueueError(f"Job queue error: {e}"))
        except SQLAlchemyError as e:
            raise _exit_for(DatabaseError(f"Database error: {e}"))
        except httpx.HTTPError as e:
            raise _exit_for(AggregatorError(f"Network error: {e}", ExitCode.NETWORK_ERROR))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]

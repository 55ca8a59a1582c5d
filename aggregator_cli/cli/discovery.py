"""Aggregator discovery command - Drive the content scheduler by hand."""

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, TypeVar

import typer
from rich.console import Console

from aggregator_cli.cli.error_handler import NotFoundError, SchedulerError, handle_errors
from aggregator_cli.cli.output import print_json, print_key_value, print_result, print_table
from aggregator_cli.config import AggregatorConfig, get_config
from aggregator_cli.database.connection import create_tables, get_db_session
from aggregator_cli.database.repositories import ContentRepository, SourceRepository, utcnow
from aggregator_cli.scheduler.content_scheduler import ContentScheduler, build_scheduler
from aggregator_cli.scheduler.source_check import build_processor
from aggregator_cli.tiers import TIERS

app = typer.Typer(help="Schedule source checks and inspect the tier queues.")
console = Console()

T = TypeVar("T")


def _with_scheduler(operation: Callable[[ContentScheduler], Awaitable[T]]) -> T:
    """Run one scheduler operation between queue initialization and shutdown."""
    config = get_config()
    create_tables(config)

    async def execute() -> T:
        scheduler = build_scheduler(config)
        scheduler.initialize_queues()
        try:
            return await operation(scheduler)
        finally:
            await scheduler.shutdown()

    return asyncio.run(execute())


def _fail(result: Any, json_output: bool) -> None:
    if json_output:
        print_json(result.to_dict())
    raise SchedulerError(result.error)


@app.command("schedule")
@handle_errors
def schedule(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Re-synchronize every tier queue with the sources currently due.

    Pending jobs from the previous pass are discarded before the due
    sources are enqueued again.

    Example:
        aggregator discovery schedule
    """
    result = _with_scheduler(lambda s: s.schedule_all_sources())
    if not result.success:
        _fail(result, json_output)

    if json_output:
        print_json(result.to_dict())
        return

    counts = result.scheduled
    rows = [{"tier": tier.value, "scheduled": counts.get(tier)} for tier in TIERS]
    print_table(rows, ["tier", "scheduled"], title="Scheduled Checks")
    print_result(True, f"Scheduled {counts.total} source checks")


def _check_now(source_id: str, json_output: bool) -> None:
    """Run one source check in this process and print what it found."""
    config = get_config()
    create_tables(config)
    processor = build_processor(config)

    source = asyncio.run(processor.registry.find_by_id(source_id))
    error = None
    if source is None:
        error = "Source not found"
    elif not source.active:
        error = "Source is inactive"
    if error:
        if json_output:
            print_json({"success": False, "source_id": source_id, "error": error})
        if source is None:
            raise NotFoundError(f"Source not found: {source_id}")
        raise SchedulerError(error, details={"source_id": source_id})

    outcome = asyncio.run(processor.checker.check_source(source))
    items = [item.to_dict() for item in outcome.new_content]

    if json_output:
        print_json({"success": True, "source_id": source_id, **outcome.to_dict(), "items": items})
        return

    print_result(True, outcome.message, {"source": source.name, "new_content": len(items)})
    if items:
        print_table(items, ["title", "type", "url", "publish_date"], title="New Content")


@app.command("check")
@handle_errors
def check(
    source_id: str = typer.Argument(..., help="ID of the source to check."),
    now: bool = typer.Option(
        False, "--now", help="Check the source in this process instead of queueing a job."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Queue an immediate check of one source, or run it right away.

    Example:
        aggregator discovery check 3f2a9c...
        aggregator discovery check 3f2a9c... --now
    """
    if now:
        _check_now(source_id, json_output)
        return

    result = _with_scheduler(lambda s: s.schedule_immediate_check(source_id))
    if not result.success:
        if json_output:
            print_json(result.to_dict())
        if result.error == "Source not found":
            raise NotFoundError(f"Source not found: {source_id}")
        raise SchedulerError(result.error, details={"source_id": source_id})

    if json_output:
        print_json(result.to_dict())
        return

    print_result(
        True,
        f"Immediate check queued for {result.source_name}",
        {"job_id": result.job_id, "source_id": result.source_id},
    )


@app.command("stats")
@handle_errors
def stats(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show job counters of every tier queue.

    Example:
        aggregator discovery stats
        aggregator discovery stats --json
    """
    result = _with_scheduler(lambda s: s.get_queue_stats())
    if not result.success:
        _fail(result, json_output)

    if json_output:
        print_json(result.to_dict())
        return

    data = result.stats.to_dict()
    rows = [{"tier": name, **counters} for name, counters in data.items()]
    print_table(
        rows,
        ["tier", "waiting", "active", "completed", "failed", "delayed"],
        title="Queue Statistics",
        column_styles={"tier": "cyan", "failed": "red"},
    )


@app.command("cleanup")
@handle_errors
def cleanup(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Purge completed and failed jobs past their tier's retention.

    Example:
        aggregator discovery cleanup
    """
    result = _with_scheduler(lambda s: s.cleanup_jobs())
    if not result.success:
        _fail(result, json_output)

    if json_output:
        print_json(result.to_dict())
        return

    print_result(True, result.message, {"removed": result.removed})


def _discovery_counts(config: AggregatorConfig) -> Dict[str, Any]:
    since = utcnow() - timedelta(hours=24)
    with get_db_session(config) as session:
        sources = SourceRepository(session)
        contents = ContentRepository(session)
        return {
            "sources": {
                "total": sources.count(),
                "active": sources.count(active_only=True),
                "with_errors": sources.count_with_errors(),
                "by_frequency": sources.count_by_frequency(),
            },
            "content": {
                "total": contents.count(),
                "processed": contents.count(processed=True),
                "unprocessed": contents.count(processed=False),
                "last_day": contents.count(since=since),
            },
        }


@app.command("status")
@handle_errors
def status(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show queue counters together with source and content totals.

    Sources are counted per tier among the active ones; ``last_day`` is
    the content discovered in the past 24 hours.

    Example:
        aggregator discovery status
        aggregator discovery status --json
    """
    result = _with_scheduler(lambda s: s.get_queue_stats())
    if not result.success:
        _fail(result, json_output)

    counts = _discovery_counts(get_config())

    if json_output:
        print_json({"success": True, "queue_stats": result.stats.to_dict(), **counts})
        return

    rows = [{"tier": name, **counters} for name, counters in result.stats.to_dict().items()]
    print_table(
        rows,
        ["tier", "waiting", "active", "completed", "failed", "delayed"],
        title="Queue Statistics",
        column_styles={"tier": "cyan", "failed": "red"},
    )

    sources = counts["sources"]
    print_key_value(
        {
            "total": sources["total"],
            "active": sources["active"],
            "with errors": sources["with_errors"],
            **{f"{tier} (active)": n for tier, n in sources["by_frequency"].items()},
        },
        title="Sources",
    )
    content = counts["content"]
    print_key_value(
        {
            "total": content["total"],
            "processed": content["processed"],
            "unprocessed": content["unprocessed"],
            "last 24h": content["last_day"],
        },
        title="Content",
    )

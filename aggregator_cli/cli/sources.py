"""Aggregator sources command - Manage checked sources."""

from typing import List, Optional

import typer
from rich.console import Console

from aggregator_cli.cli.error_handler import NotFoundError, ValidationError, handle_errors
from aggregator_cli.cli.output import format_age, print_json, print_result, print_table
from aggregator_cli.config import get_config
from aggregator_cli.database.connection import create_tables, get_db_session
from aggregator_cli.database.models import SOURCE_TYPES
from aggregator_cli.database.repositories import SourceRepository
from aggregator_cli.tiers import TIERS, Tier

app = typer.Typer(help="Manage content sources and their check frequency.")
console = Console()

FREQUENCIES = [tier.value for tier in TIERS]


def _session():
    config = get_config()
    create_tables(config)
    return get_db_session(config)


def _validate_frequency(frequency: Optional[str]) -> None:
    if frequency is not None and frequency not in FREQUENCIES:
        raise ValidationError(
            f"Invalid frequency '{frequency}'",
            details={"allowed": ", ".join(FREQUENCIES)},
        )


@app.command("list")
@handle_errors
def list_sources(
    frequency: Optional[str] = typer.Option(
        None, "--frequency", "-f", help="Only show sources with this check frequency."
    ),
    active_only: bool = typer.Option(False, "--active", help="Only show active sources."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List sources.

    Example:
        aggregator sources list
        aggregator sources list --frequency hourly --active
    """
    _validate_frequency(frequency)

    with _session() as session:
        sources = SourceRepository(session).get_all(frequency=frequency, active_only=active_only)
        data = [source.to_dict() for source in sources]
        rows = [
            {
                "id": source.id[:8],
                "name": source.name,
                "type": source.type,
                "frequency": source.check_frequency,
                "active": source.active,
                "last_checked": format_age(source.last_checked),
                "items": source.content_count,
                "errors": source.error_count,
            }
            for source in sources
        ]

    if json_output:
        print_json(data)
        return

    if not rows:
        console.print("[dim]No sources found[/dim]")
        return

    print_table(
        rows,
        ["id", "name", "type", "frequency", "active", "last_checked", "items", "errors"],
        title="Sources",
        column_styles={"id": "cyan", "name": "bold"},
    )


@app.command("add")
@handle_errors
def add_source(
    url: str = typer.Argument(..., help="URL of the site or feed."),
    name: str = typer.Option(..., "--name", "-n", help="Display name."),
    source_type: str = typer.Option(
        "website", "--type", "-t", help=f"Source type ({', '.join(SOURCE_TYPES)})."
    ),
    frequency: str = typer.Option(
        "daily", "--frequency", "-f", help=f"Check frequency ({', '.join(FREQUENCIES)})."
    ),
    rss_url: Optional[str] = typer.Option(None, "--rss-url", help="Feed URL, if different."),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    categories: List[str] = typer.Option([], "--category", "-c", help="Category (repeatable)."),
    tags: List[str] = typer.Option([], "--tag", help="Tag (repeatable)."),
    inactive: bool = typer.Option(False, "--inactive", help="Add the source disabled."),
) -> None:
    """Add a source.

    Example:
        aggregator sources add https://example.com/feed.xml -n "Example" -t rss -f hourly
    """
    if source_type not in SOURCE_TYPES:
        raise ValidationError(
            f"Invalid source type '{source_type}'",
            details={"allowed": ", ".join(SOURCE_TYPES)},
        )
    _validate_frequency(frequency)
    if not url.startswith(("http://", "https://")):
        raise ValidationError(f"Invalid URL '{url}'")

    with _session() as session:
        repo = SourceRepository(session)
        if repo.get_by_url(url):
            raise ValidationError(f"A source with URL {url} already exists")
        source = repo.create(
            url=url,
            name=name,
            description=description,
            type=source_type,
            rss_url=rss_url,
            check_frequency=frequency,
            categories=list(categories),
            tags=list(tags),
            active=not inactive,
        )
        source_id = source.id

    print_result(True, f"Source added: {name}", {"id": source_id, "frequency": frequency})


@app.command("errors")
@handle_errors
def list_errors(
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Maximum sources to show."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show sources whose checks failed, most errors first.

    Example:
        aggregator sources errors --limit 10
    """
    with _session() as session:
        sources = SourceRepository(session).get_with_errors(limit=limit)
        rows = [
            {
                "id": source.id,
                "name": source.name,
                "errors": source.error_count,
                "last_error": source.last_error_message,
                "when": format_age(source.last_error_at),
            }
            for source in sources
        ]

    if json_output:
        print_json(rows)
        return

    if not rows:
        console.print("[green]No source errors recorded[/green]")
        return

    print_table(
        rows,
        ["id", "name", "errors", "last_error", "when"],
        title="Source Errors",
        column_styles={"errors": "red"},
    )


@app.command("reset-errors")
@handle_errors
def reset_errors(
    source_id: str = typer.Argument(..., help="ID of the source."),
) -> None:
    """Clear the recorded errors of a source.

    Example:
        aggregator sources reset-errors 3f2a9c...
    """
    with _session() as session:
        source = SourceRepository(session).reset_errors(source_id)
        if source is None:
            raise NotFoundError(f"Source not found: {source_id}")
        name = source.name

    print_result(True, f"Errors cleared for {name}")


@app.command("due")
@handle_errors
def due_sources(
    tier: Optional[str] = typer.Option(None, "--tier", help="Only show this tier."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show which sources the next scheduling pass would enqueue.

    Example:
        aggregator sources due
        aggregator sources due --tier weekly
    """
    _validate_frequency(tier)
    tiers = [Tier(tier)] if tier else list(TIERS)

    due = {}
    with _session() as session:
        repo = SourceRepository(session)
        for t in tiers:
            due[t.value] = [
                {"id": s.id, "name": s.name, "last_checked": s.last_checked}
                for s in repo.find_sources_for_checking(t.value)
            ]

    if json_output:
        print_json(due)
        return

    rows = [
        {"tier": name, "id": item["id"][:8], "name": item["name"],
         "last_checked": format_age(item["last_checked"])}
        for name, items in due.items()
        for item in items
    ]
    if not rows:
        console.print("[dim]No sources are due[/dim]")
        return
    print_table(rows, ["tier", "id", "name", "last_checked"], title="Due Sources")

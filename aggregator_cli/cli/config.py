"""Aggregator config command - Configuration management."""

import os
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax

from aggregator_cli.cli.error_handler import ConfigurationError, ValidationError, handle_errors
from aggregator_cli.cli.output import print_key_value
from aggregator_cli.config import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DATA_DIR,
    ENV_PREFIX,
    AggregatorConfig,
    config_to_dict,
    ensure_directories,
    export_config_json,
    export_config_yaml,
    get_config,
    save_config,
    validate_config as do_validate,
)

app = typer.Typer(help="Manage aggregator configuration.")
console = Console()


def _config_path() -> Path:
    config_dir = Path(os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", DEFAULT_CONFIG_DIR))
    return config_dir / DEFAULT_CONFIG_FILE


@app.command("show")
@handle_errors
def show_config(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
    unmask: bool = typer.Option(
        False,
        "--unmask",
        help="Show passwords embedded in connection URLs.",
    ),
) -> None:
    """Show the effective configuration.

    Example:
        aggregator config show
        aggregator config show --format yaml
    """
    config = get_config()

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config, mask_secrets=not unmask), "yaml"))
        return
    if format == "json":
        console.print(Syntax(export_config_json(config, mask_secrets=not unmask), "json"))
        return
    if format != "table":
        raise ValidationError(f"Unknown format '{format}'", details={"allowed": "table, yaml, json"})

    data = config_to_dict(config, mask_secrets=not unmask)
    sections = {key: data.pop(key) for key in ("queue", "scheduler", "checker", "logging")}
    print_key_value(data, title="Aggregator Configuration")
    for name, values in sections.items():
        console.print()
        print_key_value(values, title=name.capitalize())


@app.command("init")
@handle_errors
def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
    redis_url: str = typer.Option(
        None,
        "--redis-url",
        help="Redis URL for the job queues.",
    ),
) -> None:
    """Write a configuration file with default values.

    Example:
        aggregator config init
        aggregator config init --redis-url redis://cache:6379/0 --force
    """
    config_path = _config_path()
    if config_path.exists() and not force:
        raise ConfigurationError(
            f"Configuration already exists at {config_path}",
            details={"hint": "use --force to overwrite"},
        )

    data_dir = Path(os.environ.get(f"{ENV_PREFIX}DATA_DIR", DEFAULT_DATA_DIR))
    config = AggregatorConfig(config_dir=config_path.parent, data_dir=data_dir)
    if redis_url:
        config.queue.redis_url = redis_url

    ensure_directories(config)
    save_config(config, config_path)
    # May contain a Redis password
    config_path.chmod(0o600)

    console.print(f"[green]✓[/green] Configuration initialized at {config_path}")


@app.command("path")
def config_path() -> None:
    """Show the configuration file path.

    Example:
        aggregator config path
    """
    path = _config_path()
    console.print(f"[bold]Config file:[/bold] {path}")
    console.print(f"[bold]Exists:[/bold] {path.exists()}")


@app.command("validate")
def validate_config() -> None:
    """Validate the effective configuration.

    Example:
        aggregator config validate
    """
    config = get_config()
    errors = do_validate(config)

    console.print("[bold]Validating configuration...[/bold]")
    console.print()

    if not errors:
        console.print("[green]Configuration is valid[/green]")
        return

    has_errors = False
    for error in errors:
        if error.severity == "error":
            status = "[red]✗[/red]"
            has_errors = True
        else:
            status = "[yellow]![/yellow]"
        console.print(f"  {status} \\[{error.severity.upper()}] {error.field}: {error.message}")

    console.print()
    if has_errors:
        console.print("[red]Configuration has errors[/red]")
        raise typer.Exit(code=ConfigurationError.exit_code)
    console.print("[green]Configuration is valid[/green] [dim](with warnings)[/dim]")

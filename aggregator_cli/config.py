"""
Aggregator CLI Configuration Management.

Handles loading, saving, and validating configuration from various sources:
- Default values
- Configuration files (TOML)
- Environment variables
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml
from croniter import croniter

# tomllib ships with Python 3.11+, tomli is the backport
try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

# Configuration directory and file constants
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "aggregator"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "aggregator"

ENV_PREFIX = "AGGREGATOR_"


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class QueueConfig:
    """Configuration for the Redis-backed job queues."""

    redis_url: str = "redis://localhost:6379/0"

    # Per-job execution limit enforced by the worker
    job_timeout: int = 300  # seconds

    # Retry policy for on-demand checks
    immediate_attempts: int = 3
    immediate_backoff: float = 5.0  # seconds, doubled per attempt


@dataclass
class SchedulerConfig:
    """Configuration for the periodic scheduling passes."""

    enabled: bool = True
    schedule_cron: str = "*/15 * * * *"  # Re-sync tier queues every 15 minutes
    cleanup_cron: str = "0 3 * * *"  # Purge finished jobs daily at 03:00 UTC
    run_on_start: bool = True


@dataclass
class CheckerConfig:
    """Configuration for the content checker."""

    user_agent: str = "AI-Information-Aggregator/1.0"
    request_timeout: float = 10.0
    max_links_per_page: int = 50


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class AggregatorConfig:
    """Main configuration container for Aggregator CLI."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    queue: QueueConfig = field(default_factory=QueueConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    checker: CheckerConfig = field(default_factory=CheckerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database
    database_url: str = ""

    def __post_init__(self):
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/aggregator.db"


_SECTIONS = ("queue", "scheduler", "checker", "logging")


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = ENV_PREFIX,
) -> AggregatorConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/aggregator/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = AggregatorConfig()

    if config_path is None:
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)

    return _load_from_env(config, env_prefix)


def _load_from_file(path: Path, config: AggregatorConfig) -> AggregatorConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return config

    for section in _SECTIONS:
        for key, value in data.get(section, {}).items():
            section_obj = getattr(config, section)
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)
            else:
                logger.warning(f"Ignoring unknown config key: {section}.{key}")

    if isinstance(config.logging.file, str):
        config.logging.file = Path(config.logging.file) if config.logging.file else None

    # Top-level settings
    data_dir_changed = False
    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])
    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"])
        data_dir_changed = True
    if "database_url" in data:
        config.database_url = data["database_url"]
    elif data_dir_changed:
        config.database_url = f"sqlite:///{config.data_dir}/aggregator.db"

    return config


def _env_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _load_from_env(config: AggregatorConfig, prefix: str) -> AggregatorConfig:
    """Load configuration from environment variables."""

    # Plain REDIS_HOST / REDIS_PORT / REDIS_PASSWORD, as set by docker-compose setups
    redis_host = os.environ.get("REDIS_HOST")
    if redis_host:
        redis_port = os.environ.get("REDIS_PORT", "6379")
        redis_password = os.environ.get("REDIS_PASSWORD")
        auth = f":{redis_password}@" if redis_password else ""
        config.queue.redis_url = f"redis://{auth}{redis_host}:{redis_port}/0"

    # Queue settings
    if env_val := os.environ.get(f"{prefix}REDIS_URL"):
        config.queue.redis_url = env_val
    if env_val := os.environ.get(f"{prefix}JOB_TIMEOUT"):
        config.queue.job_timeout = int(env_val)
    if env_val := os.environ.get(f"{prefix}IMMEDIATE_ATTEMPTS"):
        config.queue.immediate_attempts = int(env_val)

    # Scheduler settings
    if env_val := os.environ.get(f"{prefix}SCHEDULER_ENABLED"):
        config.scheduler.enabled = _env_bool(env_val)
    if env_val := os.environ.get(f"{prefix}SCHEDULE_CRON"):
        config.scheduler.schedule_cron = env_val
    if env_val := os.environ.get(f"{prefix}CLEANUP_CRON"):
        config.scheduler.cleanup_cron = env_val

    # Checker settings
    if env_val := os.environ.get(f"{prefix}USER_AGENT"):
        config.checker.user_agent = env_val
    if env_val := os.environ.get(f"{prefix}REQUEST_TIMEOUT"):
        config.checker.request_timeout = float(env_val)

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(env_val)
        config.database_url = f"sqlite:///{config.data_dir}/aggregator.db"
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


def save_config(config: AggregatorConfig, path: Optional[Path] = None) -> Path:
    """
    Save configuration to a TOML file.

    Args:
        config: Configuration to save
        path: Path to save to (default: config.config_dir / config.toml)

    Returns:
        Path the configuration was written to
    """
    if path is None:
        path = config.config_dir / DEFAULT_CONFIG_FILE

    path.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        "# Aggregator CLI Configuration",
        "",
        f'config_dir = "{config.config_dir}"',
        f'data_dir = "{config.data_dir}"',
        f'database_url = "{config.database_url}"',
        "",
        "[queue]",
        f'redis_url = "{config.queue.redis_url}"',
        f"job_timeout = {config.queue.job_timeout}",
        f"immediate_attempts = {config.queue.immediate_attempts}",
        f"immediate_backoff = {config.queue.immediate_backoff}",
        "",
        "[scheduler]",
        f"enabled = {str(config.scheduler.enabled).lower()}",
        f'schedule_cron = "{config.scheduler.schedule_cron}"',
        f'cleanup_cron = "{config.scheduler.cleanup_cron}"',
        f"run_on_start = {str(config.scheduler.run_on_start).lower()}",
        "",
        "[checker]",
        f'user_agent = "{config.checker.user_agent}"',
        f"request_timeout = {config.checker.request_timeout}",
        f"max_links_per_page = {config.checker.max_links_per_page}",
        "",
        "[logging]",
        f'level = "{config.logging.level}"',
    ]

    path.write_text("\n".join(lines) + "\n")
    return path


def ensure_directories(config: AggregatorConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance (lazy-loaded)
_global_config: Optional[AggregatorConfig] = None


def get_config() -> AggregatorConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: AggregatorConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


def _validate_cron(cron: str) -> bool:
    """Validate a 5-field cron expression."""
    return len(cron.split()) == 5 and croniter.is_valid(cron)


def _validate_redis_url(url: str) -> bool:
    """Validate a Redis connection URL."""
    return bool(re.match(r"^(redis|rediss|unix)://[^\s]+$", url))


def validate_config(config: Optional[AggregatorConfig] = None) -> List[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate (default: loaded from file)

    Returns:
        List of validation errors (empty if valid)
    """
    if config is None:
        config = load_config()

    errors: List[ValidationError] = []

    if not _validate_redis_url(config.queue.redis_url):
        errors.append(ValidationError(
            field="queue.redis_url",
            message=f"Invalid Redis URL: {config.queue.redis_url}",
            severity="error",
        ))

    if config.queue.immediate_attempts < 1:
        errors.append(ValidationError(
            field="queue.immediate_attempts",
            message="At least one attempt is required",
            severity="error",
        ))

    if config.scheduler.enabled:
        for key in ("schedule_cron", "cleanup_cron"):
            value = getattr(config.scheduler, key)
            if not _validate_cron(value):
                errors.append(ValidationError(
                    field=f"scheduler.{key}",
                    message=f"Invalid cron expression: {value}",
                    severity="error",
                ))

    if config.checker.request_timeout <= 0:
        errors.append(ValidationError(
            field="checker.request_timeout",
            message="Request timeout must be positive",
            severity="error",
        ))

    if not config.data_dir.exists():
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory does not exist: {config.data_dir}",
            severity="warning",
        ))

    return errors


def config_to_dict(config: AggregatorConfig, mask_secrets: bool = True) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert
        mask_secrets: If True, mask passwords embedded in connection URLs

    Returns:
        Dictionary representation of config
    """
    def mask_url(url: str) -> str:
        if not mask_secrets:
            return url
        return re.sub(r"(://[^:/@]*:)[^@]+@", r"\1****@", url)

    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": mask_url(config.database_url),
        "queue": {
            "redis_url": mask_url(config.queue.redis_url),
            "job_timeout": config.queue.job_timeout,
            "immediate_attempts": config.queue.immediate_attempts,
            "immediate_backoff": config.queue.immediate_backoff,
        },
        "scheduler": {
            "enabled": config.scheduler.enabled,
            "schedule_cron": config.scheduler.schedule_cron,
            "cleanup_cron": config.scheduler.cleanup_cron,
            "run_on_start": config.scheduler.run_on_start,
        },
        "checker": {
            "user_agent": config.checker.user_agent,
            "request_timeout": config.checker.request_timeout,
            "max_links_per_page": config.checker.max_links_per_page,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def export_config_yaml(config: AggregatorConfig, mask_secrets: bool = True) -> str:
    """Export configuration as YAML string."""
    config_dict = config_to_dict(config, mask_secrets)
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: AggregatorConfig, mask_secrets: bool = True) -> str:
    """Export configuration as JSON string."""
    config_dict = config_to_dict(config, mask_secrets)
    return json.dumps(config_dict, indent=2)

"""Tests for configuration loading, saving and validation."""

import json
from pathlib import Path

import pytest
import yaml

from aggregator_cli.config import (
    AggregatorConfig,
    QueueConfig,
    config_to_dict,
    export_config_json,
    export_config_yaml,
    load_config,
    save_config,
    validate_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove environment variables that would override file settings."""
    for name in (
        "REDIS_HOST",
        "REDIS_PORT",
        "REDIS_PASSWORD",
        "AGGREGATOR_CONFIG_DIR",
        "AGGREGATOR_DATA_DIR",
        "AGGREGATOR_DATABASE_URL",
        "AGGREGATOR_REDIS_URL",
        "AGGREGATOR_LOG_LEVEL",
        "AGGREGATOR_SCHEDULER_ENABLED",
        "AGGREGATOR_SCHEDULE_CRON",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Test default configuration values."""

    def test_queue_defaults(self):
        config = QueueConfig()

        assert config.redis_url == "redis://localhost:6379/0"
        assert config.immediate_attempts == 3
        assert config.immediate_backoff == 5.0

    def test_database_url_follows_data_dir(self, tmp_path):
        """Test the SQLite database lives in the data directory."""
        config = AggregatorConfig(data_dir=tmp_path)

        assert config.database_url == f"sqlite:///{tmp_path}/aggregator.db"

    def test_explicit_database_url_kept(self, tmp_path):
        config = AggregatorConfig(data_dir=tmp_path, database_url="sqlite:///:memory:")

        assert config.database_url == "sqlite:///:memory:"


class TestLoadConfig:
    """Test loading from files and the environment."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.toml")

        assert config.scheduler.schedule_cron == "*/15 * * * *"

    def test_load_from_file(self, tmp_path):
        """Test TOML sections override the defaults."""
        path = tmp_path / "config.toml"
        path.write_text(
            'data_dir = "/srv/aggregator"\n'
            "\n"
            "[queue]\n"
            'redis_url = "redis://cache:6379/2"\n'
            "immediate_attempts = 5\n"
            "\n"
            "[scheduler]\n"
            'schedule_cron = "0 * * * *"\n'
            "run_on_start = false\n"
        )

        config = load_config(path)

        assert config.queue.redis_url == "redis://cache:6379/2"
        assert config.queue.immediate_attempts == 5
        assert config.scheduler.schedule_cron == "0 * * * *"
        assert config.scheduler.run_on_start is False
        assert config.data_dir == Path("/srv/aggregator")
        assert config.database_url == "sqlite:////srv/aggregator/aggregator.db"

    def test_invalid_toml_ignored(self, tmp_path, caplog):
        """Test an unreadable file falls back to defaults with a warning."""
        path = tmp_path / "config.toml"
        path.write_text("[queue\nredis_url = ")

        config = load_config(path)

        assert config.queue.redis_url == "redis://localhost:6379/0"
        assert "Failed to load config" in caplog.text

    def test_unknown_key_warns(self, tmp_path, caplog):
        path = tmp_path / "config.toml"
        path.write_text("[queue]\nconcurrency = 4\n")

        load_config(path)

        assert "queue.concurrency" in caplog.text

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        """Test environment variables win over the file."""
        path = tmp_path / "config.toml"
        path.write_text('[queue]\nredis_url = "redis://file:6379/0"\n')
        monkeypatch.setenv("AGGREGATOR_REDIS_URL", "redis://env:6379/0")
        monkeypatch.setenv("AGGREGATOR_SCHEDULER_ENABLED", "false")
        monkeypatch.setenv("AGGREGATOR_LOG_LEVEL", "debug")

        config = load_config(path)

        assert config.queue.redis_url == "redis://env:6379/0"
        assert config.scheduler.enabled is False
        assert config.logging.level == "DEBUG"

    def test_redis_host_variables(self, tmp_path, monkeypatch):
        """Test REDIS_HOST/PORT/PASSWORD build the Redis URL."""
        monkeypatch.setenv("REDIS_HOST", "queue.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_PASSWORD", "hunter2")

        config = load_config(tmp_path / "absent.toml")

        assert config.queue.redis_url == "redis://:hunter2@queue.internal:6380/0"

    def test_config_dir_from_env(self, tmp_path, monkeypatch):
        """Test AGGREGATOR_CONFIG_DIR locates the config file."""
        (tmp_path / "config.toml").write_text("[checker]\nmax_links_per_page = 10\n")
        monkeypatch.setenv("AGGREGATOR_CONFIG_DIR", str(tmp_path))

        config = load_config()

        assert config.checker.max_links_per_page == 10
        assert config.config_dir == tmp_path


class TestSaveConfig:
    """Test writing configuration files."""

    def test_save_and_reload(self, tmp_path):
        """Test a saved file loads back to the same settings."""
        config = AggregatorConfig(config_dir=tmp_path, data_dir=tmp_path / "data")
        config.queue.redis_url = "redis://cache:6379/3"
        config.scheduler.enabled = False
        config.checker.request_timeout = 2.5

        path = save_config(config)
        loaded = load_config(path)

        assert path == tmp_path / "config.toml"
        assert loaded.queue.redis_url == "redis://cache:6379/3"
        assert loaded.scheduler.enabled is False
        assert loaded.checker.request_timeout == 2.5
        assert loaded.database_url == config.database_url


class TestValidateConfig:
    """Test configuration validation."""

    def test_valid(self, tmp_path):
        config = AggregatorConfig(data_dir=tmp_path)

        assert validate_config(config) == []

    def test_invalid_redis_url(self, tmp_path):
        config = AggregatorConfig(data_dir=tmp_path)
        config.queue.redis_url = "localhost:6379"

        errors = validate_config(config)

        assert [e.field for e in errors] == ["queue.redis_url"]
        assert errors[0].severity == "error"

    def test_invalid_cron(self, tmp_path):
        """Test malformed cron expressions are errors while scheduling is enabled."""
        config = AggregatorConfig(data_dir=tmp_path)
        config.scheduler.schedule_cron = "every minute"

        assert [e.field for e in validate_config(config)] == ["scheduler.schedule_cron"]

        config.scheduler.enabled = False
        assert validate_config(config) == []

    def test_attempts_and_timeout(self, tmp_path):
        config = AggregatorConfig(data_dir=tmp_path)
        config.queue.immediate_attempts = 0
        config.checker.request_timeout = 0

        fields = {e.field for e in validate_config(config)}

        assert fields == {"queue.immediate_attempts", "checker.request_timeout"}

    def test_missing_data_dir_is_warning(self, tmp_path):
        config = AggregatorConfig(data_dir=tmp_path / "missing")

        [error] = validate_config(config)

        assert error.field == "data_dir"
        assert error.severity == "warning"
        assert str(error).startswith("[WARNING] data_dir:")


class TestExport:
    """Test dictionary, YAML and JSON export."""

    def test_secrets_masked(self, tmp_path):
        """Test passwords in connection URLs are masked by default."""
        config = AggregatorConfig(data_dir=tmp_path)
        config.queue.redis_url = "redis://:hunter2@cache:6379/0"

        assert config_to_dict(config)["queue"]["redis_url"] == "redis://:****@cache:6379/0"
        unmasked = config_to_dict(config, mask_secrets=False)
        assert unmasked["queue"]["redis_url"] == "redis://:hunter2@cache:6379/0"

    def test_yaml_and_json(self, tmp_path):
        config = AggregatorConfig(data_dir=tmp_path)

        from_yaml = yaml.safe_load(export_config_yaml(config))
        from_json = json.loads(export_config_json(config))

        assert from_yaml == from_json
        assert from_json["scheduler"]["cleanup_cron"] == "0 3 * * *"

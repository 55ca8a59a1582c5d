"""Tests for output formatting module."""

from datetime import datetime, timedelta
from io import StringIO

from rich.console import Console

from aggregator_cli.cli.output import (
    format_age,
    print_json,
    print_key_value,
    print_result,
    print_table,
)


def _console() -> Console:
    return Console(file=StringIO(), width=120, color_system=None)


class TestPrintJson:
    """Test print_json function."""

    def test_datetimes_are_stringified(self) -> None:
        """Test values json cannot encode are printed as strings."""
        console = _console()

        print_json({"last_checked": datetime(2025, 1, 6, 10, 0)}, console_instance=console)

        assert '"last_checked": "2025-01-06 10:00:00"' in console.file.getvalue()


class TestPrintTable:
    """Test print_table function."""

    def test_columns_and_cells(self) -> None:
        """Test headers are title-cased and cells formatted."""
        console = _console()

        print_table(
            [{"tier": "hourly", "last_checked": None, "active": True}],
            ["tier", "last_checked", "active"],
            title="Sources",
            console_instance=console,
        )

        output = console.file.getvalue()
        assert "Last Checked" in output
        assert "hourly" in output
        assert "Yes" in output


class TestPrintResult:
    """Test print_result function."""

    def test_details_skip_none(self) -> None:
        console = _console()

        print_result(True, "Job cleanup completed", {"removed": 3, "error": None}, console_instance=console)

        output = console.file.getvalue()
        assert "✓ Job cleanup completed" in output
        assert "removed: 3" in output
        assert "error" not in output


class TestPrintKeyValue:
    """Test print_key_value function."""

    def test_missing_values(self) -> None:
        console = _console()

        print_key_value({"redis_url": "redis://localhost:6379/0", "file": None}, console_instance=console)

        output = console.file.getvalue()
        assert "redis://localhost:6379/0" in output
        assert "N/A" in output


class TestFormatAge:
    """Test format_age function."""

    def test_ranges(self) -> None:
        now = datetime(2025, 1, 6, 12, 0)

        assert format_age(None) == "never"
        assert format_age(now - timedelta(seconds=30), now=now) == "30s ago"
        assert format_age(now - timedelta(minutes=5), now=now) == "5m ago"
        assert format_age(now - timedelta(minutes=90), now=now) == "1h 30m ago"
        assert format_age(now - timedelta(days=3), now=now) == "3d ago"

    def test_future_clamped(self) -> None:
        now = datetime(2025, 1, 6, 12, 0)

        assert format_age(now + timedelta(minutes=1), now=now) == "0s ago"

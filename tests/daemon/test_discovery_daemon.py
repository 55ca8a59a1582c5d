"""Tests for the discovery daemon."""

from unittest.mock import AsyncMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger

from aggregator_cli.daemon.service import (
    CLEANUP_JOB_ID,
    SCHEDULE_JOB_ID,
    DiscoveryDaemon,
    parse_cron_trigger,
)
from aggregator_cli.scheduler.content_scheduler import ContentScheduler
from aggregator_cli.tiers import Tier


def _processor(source_id):
    return {"success": True}


@pytest.fixture
def content_scheduler(registry, queue_factory):
    return ContentScheduler(registry, queue_factory, processor=_processor)


@pytest.fixture(autouse=True)
def no_tables():
    with patch("aggregator_cli.daemon.service.create_tables") as mock_create:
        yield mock_create


class TestParseCronTrigger:
    """Test cron expression parsing."""

    def test_five_fields(self):
        """Test standard 5-field cron expressions."""
        trigger = parse_cron_trigger("*/15 * * * *")

        assert isinstance(trigger, CronTrigger)
        assert str(trigger.timezone) == "UTC"

    def test_six_fields(self):
        """Test 6-field expressions with seconds."""
        trigger = parse_cron_trigger("30 0 3 * * *")

        fields = {f.name: str(f) for f in trigger.fields}
        assert fields["second"] == "30"
        assert fields["hour"] == "3"

    @pytest.mark.parametrize("expression", ["* * *", "", "0 0 * * * * *"])
    def test_invalid(self, expression):
        """Test other field counts are rejected."""
        with pytest.raises(ValueError, match="Invalid cron schedule"):
            parse_cron_trigger(expression)


class TestDiscoveryDaemon:
    """Test DiscoveryDaemon lifecycle."""

    @pytest.mark.asyncio
    async def test_start_registers_cron_jobs(self, config, content_scheduler, no_tables):
        """Test start initializes the queues and schedules both jobs."""
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)

        await daemon.start()
        try:
            assert daemon.is_running
            assert content_scheduler.is_initialized
            no_tables.assert_called_once_with(config)
            next_runs = daemon.next_run_times()
            assert set(next_runs) == {SCHEDULE_JOB_ID, CLEANUP_JOB_ID}
            assert all(value is not None for value in next_runs.values())
        finally:
            await daemon.stop()

        assert not daemon.is_running
        assert not content_scheduler.is_initialized
        assert daemon.next_run_times() == {}

    @pytest.mark.asyncio
    async def test_periodic_disabled(self, config, content_scheduler):
        """Test no cron jobs are created when periodic scheduling is off."""
        config.scheduler.enabled = False
        config.scheduler.run_on_start = False
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)

        await daemon.start()

        assert daemon.next_run_times() == {}
        assert daemon.last_schedule is None
        await daemon.stop()

    @pytest.mark.asyncio
    async def test_run_on_start(self, config, content_scheduler, registry, source_factory):
        """Test a scheduling pass runs immediately when configured."""
        config.scheduler.enabled = False
        config.scheduler.run_on_start = True
        registry.add(source_factory("h1", "hourly"), due=True)
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)

        await daemon.start()

        assert daemon.last_schedule.success is True
        assert daemon.last_schedule.scheduled.hourly == 1
        await daemon.stop()

    @pytest.mark.asyncio
    async def test_start_fails_when_queues_fail(self, config, registry):
        """Test a queue construction error aborts start."""

        def broken_factory(name):
            raise ConnectionError("redis unreachable")

        daemon = DiscoveryDaemon(
            config, scheduler=ContentScheduler(registry, broken_factory, processor=_processor)
        )

        with pytest.raises(ConnectionError):
            await daemon.start()

        assert not daemon.is_running

    @pytest.mark.asyncio
    async def test_failed_pass_is_recorded(self, config, content_scheduler, registry):
        """Test a failed scheduling pass is kept as the last result."""
        config.scheduler.enabled = False
        registry.fail_for[Tier.HOURLY] = RuntimeError("database is locked")
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)
        await daemon.start()

        result = await daemon.run_schedule_pass()

        assert result.success is False
        assert daemon.last_schedule.error == "database is locked"
        await daemon.stop()

    @pytest.mark.asyncio
    async def test_run_cleanup(self, config, content_scheduler):
        """Test the cleanup job stores its result."""
        config.scheduler.enabled = False
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)
        await daemon.start()

        result = await daemon.run_cleanup()

        assert result.success is True
        assert daemon.last_cleanup is result
        await daemon.stop()

    @pytest.mark.asyncio
    async def test_stop_propagates_close_errors(self, config, content_scheduler):
        """Test a queue close failure surfaces from stop."""
        config.scheduler.enabled = False
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)
        await daemon.start()
        content_scheduler.shutdown = AsyncMock(side_effect=ConnectionError("close failed"))

        with pytest.raises(ConnectionError):
            await daemon.stop()

        assert not daemon.is_running

    @pytest.mark.asyncio
    async def test_request_shutdown(self, config, content_scheduler):
        """Test run_until_shutdown returns once shutdown is requested."""
        daemon = DiscoveryDaemon(config, scheduler=content_scheduler)

        daemon.request_shutdown()

        await daemon.run_until_shutdown()

    @pytest.mark.asyncio
    async def test_builds_scheduler_from_config(self, config, content_scheduler):
        """Test a scheduler is built when none is given."""
        config.scheduler.enabled = False
        with patch(
            "aggregator_cli.daemon.service.build_scheduler", return_value=content_scheduler
        ) as mock_build:
            daemon = DiscoveryDaemon(config)
            await daemon.start()

        mock_build.assert_called_once_with(config)
        assert daemon.scheduler is content_scheduler
        await daemon.stop()

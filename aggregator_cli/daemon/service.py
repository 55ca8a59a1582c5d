"""Discovery daemon for Aggregator CLI.

The daemon is the periodic trigger of the content scheduler: APScheduler
runs a scheduling pass and a job cleanup on cron schedules, with at most
one instance of each running at a time so scheduling passes never overlap.
"""

import asyncio
import logging
import signal
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from aggregator_cli.config import AggregatorConfig
from aggregator_cli.database.connection import create_tables
from aggregator_cli.scheduler.content_scheduler import ContentScheduler, build_scheduler
from aggregator_cli.scheduler.results import CleanupResult, ScheduleResult

logger = logging.getLogger(__name__)

SCHEDULE_JOB_ID = "schedule-all-sources"
CLEANUP_JOB_ID = "cleanup-jobs"


def parse_cron_trigger(schedule: str) -> CronTrigger:
    """Parse a cron schedule string into a CronTrigger.

    Supports both 5-part (minute hour day month weekday) and
    6-part (second minute hour day month weekday) cron formats.

    Raises:
        ValueError: If the expression has another number of fields
    """
    parts = schedule.split()

    if len(parts) == 6:
        second, minute, hour, day, month, weekday = parts
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=weekday,
            timezone="UTC",
        )
    if len(parts) == 5:
        minute, hour, day, month, weekday = parts
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=weekday,
            timezone="UTC",
        )
    raise ValueError(
        f"Invalid cron schedule: '{schedule}'. "
        "Expected 5 or 6 parts (minute hour day month weekday "
        "or second minute hour day month weekday)"
    )


class DiscoveryDaemon:
    """Foreground service driving the content scheduler.

    Example:
        daemon = DiscoveryDaemon(config)
        await daemon.start()
        await daemon.run_until_shutdown()
        await daemon.stop()
    """

    def __init__(
        self,
        config: AggregatorConfig,
        scheduler: Optional[ContentScheduler] = None,
    ):
        """Initialize the daemon.

        Args:
            config: Aggregator configuration
            scheduler: Content scheduler to drive (built from config if None)
        """
        self._config = config
        self._scheduler = scheduler
        self._cron: Optional[AsyncIOScheduler] = None
        self._running = False
        self._shutdown_event = asyncio.Event()
        self.last_schedule: Optional[ScheduleResult] = None
        self.last_cleanup: Optional[CleanupResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheduler(self) -> Optional[ContentScheduler]:
        return self._scheduler

    async def start(self) -> None:
        """Initialize the queues and start the cron triggers.

        Raises:
            Exception: If the queues cannot be created
        """
        logger.info("Starting discovery daemon...")

        create_tables(self._config)
        if self._scheduler is None:
            self._scheduler = build_scheduler(self._config)
        self._scheduler.initialize_queues()

        settings = self._config.scheduler
        if settings.enabled:
            self._cron = self._create_cron()
            self._cron.start()
            self._cron.add_job(
                self.run_schedule_pass,
                trigger=parse_cron_trigger(settings.schedule_cron),
                id=SCHEDULE_JOB_ID,
                name="Schedule all sources",
                replace_existing=True,
            )
            self._cron.add_job(
                self.run_cleanup,
                trigger=parse_cron_trigger(settings.cleanup_cron),
                id=CLEANUP_JOB_ID,
                name="Clean up finished jobs",
                replace_existing=True,
            )
            logger.info(
                f"Scheduling on '{settings.schedule_cron}', cleanup on '{settings.cleanup_cron}'"
            )
        else:
            logger.info("Periodic scheduling disabled")

        self._running = True

        if settings.run_on_start:
            await self.run_schedule_pass()

        logger.info("Discovery daemon started")

    def _create_cron(self) -> AsyncIOScheduler:
        cron = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # Combine missed runs
                "max_instances": 1,  # Never overlap scheduling passes
                "misfire_grace_time": 60 * 5,
            },
            timezone="UTC",
        )

        def on_job_executed(event: Any) -> None:
            logger.debug(f"Job {event.job_id} executed")

        def on_job_error(event: Any) -> None:
            logger.error(f"Job {event.job_id} failed: {event.exception}")

        def on_job_missed(event: Any) -> None:
            logger.warning(f"Job {event.job_id} missed scheduled run")

        cron.add_listener(on_job_executed, EVENT_JOB_EXECUTED)
        cron.add_listener(on_job_error, EVENT_JOB_ERROR)
        cron.add_listener(on_job_missed, EVENT_JOB_MISSED)
        return cron

    async def run_schedule_pass(self) -> ScheduleResult:
        """Run one scheduling pass and remember its result."""
        result = await self._scheduler.schedule_all_sources()
        self.last_schedule = result
        if result.success:
            logger.info(f"Scheduling pass enqueued {result.scheduled.total} checks")
        else:
            logger.error(f"Scheduling pass failed: {result.error}")
        return result

    async def run_cleanup(self) -> CleanupResult:
        """Purge old finished jobs and remember the result."""
        result = await self._scheduler.cleanup_jobs()
        self.last_cleanup = result
        if not result.success:
            logger.error(f"Job cleanup failed: {result.error}")
        return result

    def next_run_times(self) -> Dict[str, Optional[datetime]]:
        """Next fire time of each cron job."""
        if self._cron is None:
            return {}
        return {job.id: job.next_run_time for job in self._cron.get_jobs()}

    async def stop(self) -> None:
        """Stop the triggers and close the queues.

        Raises:
            Exception: If a queue fails to close
        """
        logger.info("Stopping discovery daemon...")
        self._running = False

        if self._cron is not None:
            self._cron.shutdown(wait=False)
            self._cron = None

        if self._scheduler is not None:
            await self._scheduler.shutdown()

        logger.info("Discovery daemon stopped")

    async def run_until_shutdown(self) -> None:
        """Block until ``request_shutdown()`` is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()


async def run_daemon(config: AggregatorConfig) -> None:
    """Run the discovery daemon until SIGINT or SIGTERM.

    Args:
        config: Aggregator configuration
    """
    daemon = DiscoveryDaemon(config)
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()

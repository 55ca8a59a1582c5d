"""Content discovery scheduler.

The ContentScheduler owns one job queue per check-frequency tier. A
periodic trigger calls ``schedule_all_sources`` to re-synchronize every
tier queue with the sources currently due, while ``schedule_immediate_check``
enqueues a single out-of-band check.

Every public operation returns a result object and never raises, except
``initialize_queues`` (queue construction failures are fatal) and
``shutdown`` (a failed close propagates to the caller).

``schedule_all_sources`` drains each tier queue before refilling it, so a
pass never leaves duplicate or stale jobs behind. Jobs of that tier that
are still waiting from the previous pass are dropped, and overlapping
passes can interleave their drain and refill steps, so callers must never
run two passes at the same time.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from aggregator_cli.config import AggregatorConfig, QueueConfig, get_config
from aggregator_cli.scheduler.queue import (
    JobOptions,
    JobProcessor,
    JobQueue,
    JobState,
    QueuedJob,
    QueueFactory,
    redis_queue_factory,
)
from aggregator_cli.scheduler.registry import DatabaseSourceRegistry, SourceRegistry
from aggregator_cli.scheduler.results import (
    CleanupResult,
    ImmediateCheckResult,
    QueueStats,
    QueueStatsResult,
    ScheduleResult,
    TierCounts,
    TierStats,
)
from aggregator_cli.scheduler.source_check import run_source_check
from aggregator_cli.tiers import TIERS, Tier

logger = logging.getLogger(__name__)

NOT_INITIALIZED = "Scheduler queues are not initialized"


def _ms(delta) -> int:
    return int(delta.total_seconds() * 1000)


class ContentScheduler:
    """Schedules source checks on the four tier queues.

    Example:
        scheduler = build_scheduler(config)
        scheduler.initialize_queues()
        result = await scheduler.schedule_all_sources()
        await scheduler.shutdown()
    """

    def __init__(
        self,
        registry: SourceRegistry,
        queue_factory: QueueFactory,
        processor: Optional[JobProcessor] = None,
        queue_config: Optional[QueueConfig] = None,
    ):
        """Initialize the scheduler.

        Args:
            registry: Source registry to query for due sources
            queue_factory: Creates a job queue for a queue name
            processor: Function executing queued jobs (defaults to run_source_check)
            queue_config: Job timeout and immediate-check retry settings
        """
        self._registry = registry
        self._queue_factory = queue_factory
        self._processor = processor or run_source_check
        self._queue_config = queue_config or QueueConfig()
        self._queues: Dict[Tier, JobQueue] = {}

    @property
    def is_initialized(self) -> bool:
        return bool(self._queues)

    @property
    def queues(self) -> Dict[Tier, JobQueue]:
        """Tier queues created by ``initialize_queues``."""
        return dict(self._queues)

    def initialize_queues(self) -> None:
        """Create the tier queues and attach the processor and observers.

        Raises:
            Exception: Any queue construction failure
        """
        if self._queues:
            logger.warning("Content discovery queues already initialized")
            return

        queues: Dict[Tier, JobQueue] = {}
        try:
            for tier in TIERS:
                queue = self._queue_factory(tier.queue_name)
                queues[tier] = queue
                queue.process(self._processor)
                queue.on("error", self._on_queue_error)
                queue.on("failed", self._on_job_failed)
                queue.on("completed", self._on_job_completed)
        except Exception as e:
            logger.error(f"Failed to initialize content checking queues: {e}")
            self._close_partial(queues)
            raise

        self._queues = queues
        logger.info("All content checking queues initialized")

    @staticmethod
    def _close_partial(queues: Dict[Tier, JobQueue]) -> None:
        async def close_all() -> None:
            for queue in queues.values():
                try:
                    await queue.close()
                except Exception as e:
                    logger.warning(f"Error closing queue {queue.name}: {e}")

        if queues:
            # Callers may already be inside a running event loop
            with ThreadPoolExecutor(max_workers=1) as pool:
                pool.submit(asyncio.run, close_all()).result()

    def _periodic_options(self) -> JobOptions:
        return JobOptions(
            attempts=1,
            remove_on_complete=True,
            remove_on_fail=False,
            timeout=self._queue_config.job_timeout,
        )

    def _immediate_options(self) -> JobOptions:
        return JobOptions(
            attempts=self._queue_config.immediate_attempts,
            remove_on_complete=True,
            remove_on_fail=False,
            backoff_delay=self._queue_config.immediate_backoff,
            timeout=self._queue_config.job_timeout,
        )

    async def schedule_all_sources(self) -> ScheduleResult:
        """Drain every tier queue and enqueue one job per due source.

        Tiers are processed in order hourly, daily, weekly, monthly. The
        first error aborts the pass; tiers already processed keep their
        new jobs.

        Returns:
            Per-tier job counts, or the error message of the first failure
        """
        if not self._queues:
            return ScheduleResult.fail(NOT_INITIALIZED)

        scheduled = TierCounts()
        try:
            for tier in TIERS:
                sources = await self._registry.find_sources_for_checking(tier)
                queue = self._queues[tier]

                await queue.empty()
                for source in sources:
                    await queue.add({"source_id": source.id}, self._periodic_options())

                scheduled.set(tier, len(sources))
                logger.info(f"Scheduled {len(sources)} {tier.value} source checks")
        except Exception as e:
            logger.error(f"Error scheduling sources: {e}")
            return ScheduleResult.fail(str(e))

        logger.info(f"Scheduled {scheduled.total} source checks in total")
        return ScheduleResult.ok(scheduled)

    async def schedule_immediate_check(self, source_id: str) -> ImmediateCheckResult:
        """Enqueue a check of one source on its own tier queue.

        Sources with an unknown check frequency go to the daily queue.

        Args:
            source_id: ID of the source to check

        Returns:
            The new job's ID with the source ID and name, or the failure reason
        """
        if not self._queues:
            return ImmediateCheckResult.fail(NOT_INITIALIZED)

        try:
            source = await self._registry.find_by_id(source_id)
            if source is None:
                return ImmediateCheckResult.fail("Source not found")
            if not source.active:
                return ImmediateCheckResult.fail("Source is inactive")

            tier = Tier.from_frequency(source.check_frequency)
            job = await self._queues[tier].add(
                {"source_id": source.id}, self._immediate_options()
            )
        except Exception as e:
            logger.error(f"Error scheduling immediate check for source {source_id}: {e}")
            return ImmediateCheckResult.fail(str(e))

        logger.info(f"Scheduled immediate check for source {source.id} on {tier.queue_name}")
        return ImmediateCheckResult.ok(job.id, source.id, source.name)

    async def _tier_stats(self, queue: JobQueue) -> TierStats:
        waiting, active, completed, failed, delayed = await asyncio.gather(
            queue.get_waiting_count(),
            queue.get_active_count(),
            queue.get_completed_count(),
            queue.get_failed_count(),
            queue.get_delayed_count(),
        )
        return TierStats(
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            delayed=delayed,
        )

    async def get_queue_stats(self) -> QueueStatsResult:
        """Collect the five job counters of every tier plus their totals.

        Returns:
            Complete stats, or the error of the first failed counter
        """
        if not self._queues:
            return QueueStatsResult.fail(NOT_INITIALIZED)

        try:
            per_tier = await asyncio.gather(
                *(self._tier_stats(self._queues[tier]) for tier in TIERS)
            )
        except Exception as e:
            logger.error(f"Error getting queue stats: {e}")
            return QueueStatsResult.fail(str(e))

        return QueueStatsResult.ok(QueueStats(tiers=dict(zip(TIERS, per_tier))))

    async def cleanup_jobs(self) -> CleanupResult:
        """Purge completed and failed jobs older than each tier's retention.

        Stops at the first failing clean call.
        """
        if not self._queues:
            return CleanupResult.fail(NOT_INITIALIZED)

        removed = 0
        try:
            for tier in TIERS:
                queue = self._queues[tier]
                removed += len(
                    await queue.clean(_ms(tier.completed_retention), JobState.COMPLETED)
                )
                removed += len(await queue.clean(_ms(tier.failed_retention), JobState.FAILED))
        except Exception as e:
            logger.error(f"Error cleaning up jobs: {e}")
            return CleanupResult.fail(str(e))

        logger.info(f"Job cleanup completed, removed {removed} jobs")
        return CleanupResult.ok(removed)

    async def shutdown(self) -> None:
        """Close every tier queue.

        All queues are closed even if one fails; the first close error is
        then re-raised.
        """
        if not self._queues:
            return

        queues, self._queues = self._queues, {}
        first_error: Optional[BaseException] = None
        for tier in TIERS:
            try:
                await queues[tier].close()
            except Exception as e:
                logger.error(f"Error closing queue {tier.queue_name}: {e}")
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error

        logger.info("All content checking queues closed")

    def _on_queue_error(self, error: Exception) -> None:
        logger.error(f"Queue error: {error}")

    def _on_job_failed(self, job: QueuedJob, error: Any) -> None:
        logger.error(f"Job {job.id} failed for source {job.source_id}: {error}")

    def _on_job_completed(self, job: QueuedJob, result: Any) -> None:
        content_found = result.get("content_found") if isinstance(result, dict) else None
        logger.info(f"Job {job.id} completed for source {job.source_id}, content_found={content_found}")


def build_scheduler(config: Optional[AggregatorConfig] = None) -> ContentScheduler:
    """Build a scheduler backed by Redis queues and the source database."""
    config = config or get_config()
    return ContentScheduler(
        registry=DatabaseSourceRegistry(config),
        queue_factory=redis_queue_factory(config.queue.redis_url, config.queue.job_timeout),
        queue_config=config.queue,
    )

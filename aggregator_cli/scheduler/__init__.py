"""Content discovery scheduling.

One job queue per check-frequency tier; the ContentScheduler fills them
with due sources and workers run the source checks.
"""

from aggregator_cli.scheduler.content_scheduler import ContentScheduler, build_scheduler
from aggregator_cli.scheduler.queue import JobOptions, JobQueue, JobState, QueuedJob, RedisJobQueue
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
from aggregator_cli.scheduler.source_check import SourceCheckProcessor, run_source_check

__all__ = [
    "CleanupResult",
    "ContentScheduler",
    "DatabaseSourceRegistry",
    "ImmediateCheckResult",
    "JobOptions",
    "JobQueue",
    "JobState",
    "QueueStats",
    "QueueStatsResult",
    "QueuedJob",
    "RedisJobQueue",
    "ScheduleResult",
    "SourceCheckProcessor",
    "SourceRegistry",
    "TierCounts",
    "TierStats",
    "build_scheduler",
    "run_source_check",
]

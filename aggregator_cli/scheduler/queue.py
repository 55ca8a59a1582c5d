"""Job queue backend used by the content scheduler.

The scheduler only talks to the ``JobQueue`` interface: enqueue a job
carrying a source ID, drain pending jobs, read the five state counters,
purge finished jobs and close the connection. ``RedisJobQueue`` implements
it on top of rq, one Redis connection per queue.

rq workers import job functions and callbacks by dotted path, so the
processor passed to ``process()`` must be a module-level function, and job
lifecycle events are routed through module-level callbacks that look up
the observers registered for the job's queue.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Callback, Queue, Retry
from rq.job import Job

logger = logging.getLogger(__name__)

EVENTS = ("error", "failed", "completed")

# Failed jobs of queues configured with remove_on_fail expire after this many seconds
_DISCARD_FAILED_TTL = 1


class JobState(str, Enum):
    """Terminal job states that can be purged with ``clean()``."""

    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobOptions:
    """Per-job queue options.

    Attributes:
        attempts: Total number of attempts, including the first one
        remove_on_complete: Discard the job as soon as it succeeds
        remove_on_fail: Discard the job as soon as it fails
        backoff_delay: Base delay in seconds between retries, doubled per attempt
        timeout: Maximum execution time in seconds (backend default if None)
    """

    attempts: int = 1
    remove_on_complete: bool = True
    remove_on_fail: bool = False
    backoff_delay: Optional[float] = None
    timeout: Optional[int] = None


@dataclass
class QueuedJob:
    """Handle for a job that was added to a queue."""

    id: str
    queue_name: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def source_id(self) -> Optional[str]:
        return self.data.get("source_id")


JobProcessor = Callable[[str], Any]
EventListener = Callable[..., None]


class JobQueue(ABC):
    """A named job queue.

    Events and listener signatures:
        error: listener(exception)
        failed: listener(job, exception)
        completed: listener(job, result)
    """

    name: str

    @abstractmethod
    async def add(self, data: Dict[str, Any], options: Optional[JobOptions] = None) -> QueuedJob:
        """Enqueue a job with the given payload."""

    @abstractmethod
    async def empty(self) -> None:
        """Remove every job that has not started yet."""

    @abstractmethod
    def process(self, processor: JobProcessor) -> None:
        """Register the function that executes this queue's jobs."""

    @abstractmethod
    def on(self, event: str, listener: EventListener) -> None:
        """Register an observer for a job lifecycle event."""

    @abstractmethod
    async def get_waiting_count(self) -> int: ...

    @abstractmethod
    async def get_active_count(self) -> int: ...

    @abstractmethod
    async def get_completed_count(self) -> int: ...

    @abstractmethod
    async def get_failed_count(self) -> int: ...

    @abstractmethod
    async def get_delayed_count(self) -> int: ...

    @abstractmethod
    async def clean(self, grace_ms: int, state: JobState) -> List[str]:
        """Purge jobs in ``state`` that finished more than ``grace_ms`` ago.

        Returns:
            IDs of the purged jobs
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the queue's backend connection."""


QueueFactory = Callable[[str], JobQueue]


# Observers per queue name, consulted by the rq callbacks below
_listeners: Dict[str, Dict[str, List[EventListener]]] = {}


def _dispatch(queue_name: str, event: str, *args: Any) -> None:
    for listener in _listeners.get(queue_name, {}).get(event, []):
        try:
            listener(*args)
        except Exception as e:
            logger.error(f"'{event}' listener on queue {queue_name} raised: {e}")


def _job_from_rq(job: Job) -> QueuedJob:
    source_id = job.meta.get("source_id") if job.meta else None
    if source_id is None and job.args:
        source_id = job.args[0]
    return QueuedJob(id=job.id, queue_name=job.origin, data={"source_id": source_id})


def _on_job_success(job: Job, connection: Any, result: Any, *args: Any, **kwargs: Any) -> None:
    """rq success callback, runs inside the worker."""
    _dispatch(job.origin, "completed", _job_from_rq(job), result)


def _on_job_failure(job: Job, connection: Any, exc_type: Any, exc_value: Any, tb: Any) -> None:
    """rq failure callback, runs inside the worker."""
    _dispatch(job.origin, "failed", _job_from_rq(job), exc_value)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RedisJobQueue(JobQueue):
    """``JobQueue`` backed by an rq queue on its own Redis connection.

    Example:
        queue = RedisJobQueue("daily-content-check", "redis://localhost:6379/0")
        queue.process(run_source_check)
        job = await queue.add({"source_id": "abc123"})
        await queue.close()
    """

    def __init__(
        self,
        name: str,
        redis_url: str,
        default_timeout: Optional[int] = None,
    ) -> None:
        """Initialize the queue.

        Args:
            name: Queue name
            redis_url: Redis connection URL
            default_timeout: Default job timeout in seconds
        """
        self.name = name
        self._connection = Redis.from_url(redis_url)
        self._queue = Queue(name, connection=self._connection, default_timeout=default_timeout)
        self._processor: Optional[JobProcessor] = None
        _listeners.setdefault(name, {event: [] for event in EVENTS})

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except RedisError as e:
            _dispatch(self.name, "error", e)
            raise

    def process(self, processor: JobProcessor) -> None:
        self._processor = processor

    def on(self, event: str, listener: EventListener) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown queue event: {event}")
        _listeners.setdefault(self.name, {e: [] for e in EVENTS})[event].append(listener)

    async def add(self, data: Dict[str, Any], options: Optional[JobOptions] = None) -> QueuedJob:
        if self._processor is None:
            raise RuntimeError(f"No processor registered for queue {self.name}")

        options = options or JobOptions()
        source_id = data["source_id"]

        retry = None
        if options.attempts > 1:
            if options.backoff_delay:
                intervals = [
                    int(options.backoff_delay * 2 ** i) for i in range(options.attempts - 1)
                ]
            else:
                intervals = 0
            retry = Retry(max=options.attempts - 1, interval=intervals)

        job = self._call(
            self._queue.enqueue,
            self._processor,
            source_id,
            job_timeout=options.timeout,
            result_ttl=0 if options.remove_on_complete else -1,
            failure_ttl=_DISCARD_FAILED_TTL if options.remove_on_fail else None,
            retry=retry,
            meta={"source_id": source_id},
            on_success=Callback(_on_job_success),
            on_failure=Callback(_on_job_failure),
        )
        return QueuedJob(id=job.id, queue_name=self.name, data=dict(data))

    async def empty(self) -> None:
        self._call(self._queue.empty)

    async def get_waiting_count(self) -> int:
        return self._call(lambda: self._queue.count)

    async def get_active_count(self) -> int:
        return self._call(lambda: self._queue.started_job_registry.count)

    async def get_completed_count(self) -> int:
        return self._call(lambda: self._queue.finished_job_registry.count)

    async def get_failed_count(self) -> int:
        return self._call(lambda: self._queue.failed_job_registry.count)

    async def get_delayed_count(self) -> int:
        return self._call(lambda: self._queue.scheduled_job_registry.count)

    async def clean(self, grace_ms: int, state: JobState) -> List[str]:
        state = JobState(state)
        if state is JobState.COMPLETED:
            registry = self._queue.finished_job_registry
        else:
            registry = self._queue.failed_job_registry

        cutoff = datetime.now(timezone.utc) - timedelta(milliseconds=grace_ms)
        job_ids = self._call(registry.get_job_ids)
        jobs = self._call(Job.fetch_many, job_ids, connection=self._connection)

        removed: List[str] = []
        for job_id, job in zip(job_ids, jobs):
            if job is None:
                # Job hash already expired, only the registry entry is left
                self._call(registry.remove, job_id)
            elif job.ended_at is not None and _as_utc(job.ended_at) < cutoff:
                self._call(registry.remove, job, delete_job=True)
            else:
                continue
            removed.append(job_id)

        logger.debug(f"Cleaned {len(removed)} {state.value} jobs from {self.name}")
        return removed

    async def close(self) -> None:
        _listeners.pop(self.name, None)
        self._call(self._connection.close)


def redis_queue_factory(redis_url: str, default_timeout: Optional[int] = None) -> QueueFactory:
    """Build a factory creating one ``RedisJobQueue`` per queue name."""

    def factory(name: str) -> JobQueue:
        return RedisJobQueue(name, redis_url, default_timeout=default_timeout)

    return factory

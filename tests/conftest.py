"""Shared fixtures: in-memory job queues, a fake source registry and a temporary database."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import pytest

from aggregator_cli.config import AggregatorConfig, clear_config_cache, set_config
from aggregator_cli.database.connection import create_tables, dispose_engine
from aggregator_cli.database.repositories import SourceRecord
from aggregator_cli.scheduler.queue import (
    EVENTS,
    JobOptions,
    JobProcessor,
    JobQueue,
    JobState,
    QueuedJob,
)
from aggregator_cli.tiers import Tier


class FakeJobQueue(JobQueue):
    """In-memory JobQueue recording every call.

    ``fail_on`` maps an operation name (add, empty, waiting, active,
    completed, failed, delayed, clean, close) to the exception it raises.
    """

    def __init__(self, name: str, call_log: List[Tuple[str, str]]):
        self.name = name
        self.call_log = call_log
        self.calls: List[str] = []
        self.waiting: List[QueuedJob] = []
        self.added: List[Tuple[Dict[str, Any], Optional[JobOptions]]] = []
        self.listeners: Dict[str, List[Any]] = {event: [] for event in EVENTS}
        self.processor: Optional[JobProcessor] = None
        self.counters = {"active": 0, "completed": 0, "failed": 0, "delayed": 0}
        self.clean_calls: List[Tuple[int, JobState]] = []
        self.cleaned: Dict[JobState, List[str]] = {}
        self.fail_on: Dict[str, Exception] = {}
        self.closed = False
        self._next_id = 0

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        self.call_log.append((self.name, operation))
        if operation in self.fail_on:
            raise self.fail_on[operation]

    async def add(self, data: Dict[str, Any], options: Optional[JobOptions] = None) -> QueuedJob:
        self._record("add")
        self._next_id += 1
        job = QueuedJob(id=f"{self.name}-{self._next_id}", queue_name=self.name, data=dict(data))
        self.waiting.append(job)
        self.added.append((dict(data), options))
        return job

    async def empty(self) -> None:
        self._record("empty")
        self.waiting.clear()

    def process(self, processor: JobProcessor) -> None:
        self.processor = processor

    def on(self, event: str, listener: Any) -> None:
        self.listeners[event].append(listener)

    async def get_waiting_count(self) -> int:
        self._record("waiting")
        return len(self.waiting)

    async def get_active_count(self) -> int:
        self._record("active")
        return self.counters["active"]

    async def get_completed_count(self) -> int:
        self._record("completed")
        return self.counters["completed"]

    async def get_failed_count(self) -> int:
        self._record("failed")
        return self.counters["failed"]

    async def get_delayed_count(self) -> int:
        self._record("delayed")
        return self.counters["delayed"]

    async def clean(self, grace_ms: int, state: JobState) -> List[str]:
        self._record("clean")
        self.clean_calls.append((grace_ms, JobState(state)))
        return list(self.cleaned.get(JobState(state), []))

    async def close(self) -> None:
        self._record("close")
        self.closed = True


class FakeRegistry:
    """In-memory SourceRegistry."""

    def __init__(self) -> None:
        self.sources: Dict[str, SourceRecord] = {}
        self.due: Dict[Tier, List[SourceRecord]] = {}
        self.fail_for: Dict[Tier, Exception] = {}
        self.lookup_error: Optional[Exception] = None
        self.checks: List[str] = []
        self.updates: List[Tuple[str, int]] = []
        self.errors: List[Tuple[str, str]] = []

    def add(self, source: SourceRecord, due: bool = False) -> SourceRecord:
        self.sources[source.id] = source
        if due:
            self.due.setdefault(Tier.from_frequency(source.check_frequency), []).append(source)
        return source

    async def find_sources_for_checking(self, tier: Tier) -> List[SourceRecord]:
        if tier in self.fail_for:
            raise self.fail_for[tier]
        return list(self.due.get(tier, []))

    async def find_by_id(self, source_id: str) -> Optional[SourceRecord]:
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.sources.get(source_id)

    async def record_check(self, source_id: str) -> None:
        self.checks.append(source_id)

    async def record_update(self, source_id: str, new_items: int = 1) -> None:
        self.updates.append((source_id, new_items))

    async def record_error(self, source_id: str, message: str) -> None:
        self.errors.append((source_id, message))


def make_source(source_id: str, frequency: str = "daily", **kwargs: Any) -> SourceRecord:
    """Build a SourceRecord with sensible defaults."""
    kwargs.setdefault("name", f"Source {source_id}")
    kwargs.setdefault("url", f"https://example.com/{source_id}")
    return SourceRecord(id=source_id, check_frequency=frequency, **kwargs)


@pytest.fixture
def source_factory():
    """Factory for SourceRecord instances."""
    return make_source


@pytest.fixture
def call_log() -> List[Tuple[str, str]]:
    """Ordered (queue name, operation) log shared by all fake queues."""
    return []


@pytest.fixture
def fake_queues() -> Dict[str, FakeJobQueue]:
    """Fake queues created by ``queue_factory``, keyed by queue name."""
    return {}


@pytest.fixture
def queue_factory(fake_queues, call_log):
    """Queue factory creating FakeJobQueue instances."""

    def factory(name: str) -> FakeJobQueue:
        queue = FakeJobQueue(name, call_log)
        fake_queues[name] = queue
        return queue

    return factory


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def config(tmp_path) -> AggregatorConfig:
    """Configuration rooted in a temporary directory, installed as the global config."""
    cfg = AggregatorConfig(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
    set_config(cfg)
    yield cfg
    clear_config_cache()


@pytest.fixture
def db(config) -> AggregatorConfig:
    """Fresh SQLite database with all tables created."""
    dispose_engine()
    create_tables(config)
    yield config
    dispose_engine()


_CLI_HANDLER_TYPES = (logging.StreamHandler, logging.FileHandler, logging.NullHandler)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo root logger changes made by the CLI's logging setup."""
    root = logging.getLogger()
    level = root.level
    handlers = list(root.handlers)
    yield
    root.setLevel(level)
    for handler in list(root.handlers):
        if handler not in handlers and type(handler) in _CLI_HANDLER_TYPES:
            root.removeHandler(handler)

"""Result types returned by the content scheduler.

Every public scheduler operation returns one of these instead of raising,
so callers only ever branch on ``success``. ``to_dict()`` produces the
plain ``{"success": ..., ...}`` shape used by the CLI's JSON output.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aggregator_cli.tiers import TIERS, Tier


@dataclass
class TierCounts:
    """Number of jobs enqueued per tier during a scheduling pass."""

    hourly: int = 0
    daily: int = 0
    weekly: int = 0
    monthly: int = 0

    @property
    def total(self) -> int:
        return self.hourly + self.daily + self.weekly + self.monthly

    def get(self, tier: Tier) -> int:
        return getattr(self, tier.value)

    def set(self, tier: Tier, count: int) -> None:
        setattr(self, tier.value, count)

    def to_dict(self) -> Dict[str, int]:
        data = {tier.value: self.get(tier) for tier in TIERS}
        data["total"] = self.total
        return data


@dataclass
class ScheduleResult:
    """Outcome of ``schedule_all_sources``.

    Attributes:
        success: Whether every tier was scheduled
        scheduled: Per-tier job counts (success only)
        error: Error message of the first failure (failure only)
    """

    success: bool
    scheduled: Optional[TierCounts] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, scheduled: TierCounts) -> "ScheduleResult":
        return cls(success=True, scheduled=scheduled)

    @classmethod
    def fail(cls, error: str) -> "ScheduleResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "scheduled": self.scheduled.to_dict()}


@dataclass
class ImmediateCheckResult:
    """Outcome of ``schedule_immediate_check``."""

    success: bool
    job_id: Optional[str] = None
    source_id: Optional[str] = None
    source_name: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, job_id: str, source_id: str, source_name: str) -> "ImmediateCheckResult":
        return cls(success=True, job_id=job_id, source_id=source_id, source_name=source_name)

    @classmethod
    def fail(cls, error: str) -> "ImmediateCheckResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "job_id": self.job_id,
            "source_id": self.source_id,
            "source_name": self.source_name,
        }


@dataclass
class TierStats:
    """Point-in-time job counters of one queue."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    def __add__(self, other: "TierStats") -> "TierStats":
        return TierStats(
            waiting=self.waiting + other.waiting,
            active=self.active + other.active,
            completed=self.completed + other.completed,
            failed=self.failed + other.failed,
            delayed=self.delayed + other.delayed,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
        }


@dataclass
class QueueStats:
    """Counters for every tier plus their sum."""

    tiers: Dict[Tier, TierStats] = field(default_factory=dict)

    @property
    def total(self) -> TierStats:
        total = TierStats()
        for stats in self.tiers.values():
            total = total + stats
        return total

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        data = {tier.value: self.tiers[tier].to_dict() for tier in TIERS if tier in self.tiers}
        data["total"] = self.total.to_dict()
        return data


@dataclass
class QueueStatsResult:
    """Outcome of ``get_queue_stats``. Stats are never partial."""

    success: bool
    stats: Optional[QueueStats] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, stats: QueueStats) -> "QueueStatsResult":
        return cls(success=True, stats=stats)

    @classmethod
    def fail(cls, error: str) -> "QueueStatsResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "stats": self.stats.to_dict()}


@dataclass
class CleanupResult:
    """Outcome of ``cleanup_jobs``."""

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    removed: int = 0

    @classmethod
    def ok(cls, removed: int) -> "CleanupResult":
        return cls(success=True, message="Job cleanup completed", removed=removed)

    @classmethod
    def fail(cls, error: str) -> "CleanupResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "message": self.message, "removed": self.removed}

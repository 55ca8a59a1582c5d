"""Check-frequency tiers.

Every source is checked on one of four fixed frequencies. Each tier is
backed by its own named job queue and carries the interval after which a
source becomes due again, plus how long finished jobs are retained.
"""

from datetime import timedelta
from enum import Enum
from typing import Optional

_HOUR = timedelta(hours=1)
_DAY = timedelta(days=1)


class Tier(str, Enum):
    """Check frequency of a source."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def queue_name(self) -> str:
        """Name of the job queue backing this tier."""
        return f"{self.value}-content-check"

    @property
    def interval(self) -> timedelta:
        """Time after the last check at which a source is due again."""
        return _INTERVALS[self]

    @property
    def completed_retention(self) -> timedelta:
        """How long completed jobs are kept before cleanup purges them."""
        return _COMPLETED_RETENTION[self]

    @property
    def failed_retention(self) -> timedelta:
        """How long failed jobs are kept before cleanup purges them."""
        return _FAILED_RETENTION[self]

    @classmethod
    def from_frequency(cls, frequency: Optional[str]) -> "Tier":
        """Map a stored check frequency to a tier.

        Unknown or missing frequencies fall back to the daily tier.
        """
        try:
            return cls(frequency)
        except ValueError:
            return cls.DAILY


# Fixed scheduling order
TIERS = (Tier.HOURLY, Tier.DAILY, Tier.WEEKLY, Tier.MONTHLY)

_INTERVALS = {
    Tier.HOURLY: _HOUR,
    Tier.DAILY: 24 * _HOUR,
    Tier.WEEKLY: 7 * _DAY,
    Tier.MONTHLY: 30 * _DAY,
}

_COMPLETED_RETENTION = {
    Tier.HOURLY: _DAY,
    Tier.DAILY: 7 * _DAY,
    Tier.WEEKLY: 30 * _DAY,
    Tier.MONTHLY: 90 * _DAY,
}

_FAILED_RETENTION = {
    Tier.HOURLY: 7 * _DAY,
    Tier.DAILY: 14 * _DAY,
    Tier.WEEKLY: 30 * _DAY,
    Tier.MONTHLY: 90 * _DAY,
}

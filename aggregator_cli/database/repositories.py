"""Database repositories for Aggregator CLI.

Provides high-level data access patterns for sources and discovered content,
including the "due for checking" query that drives scheduling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from aggregator_cli.database.models import Content, Source
from aggregator_cli.tiers import TIERS, Tier


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class SourceRecord:
    """Detached snapshot of a source row.

    Passed across the scheduler and checker so no session has to stay
    open while network I/O happens.
    """

    id: str
    name: str
    url: str
    type: str = "website"
    active: bool = True
    check_frequency: str = "daily"
    rss_url: Optional[str] = None
    last_checked: Optional[datetime] = None
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, source: Source) -> "SourceRecord":
        return cls(
            id=source.id,
            name=source.name,
            url=source.url,
            type=source.type,
            active=source.active,
            check_frequency=source.check_frequency,
            rss_url=source.rss_url,
            last_checked=source.last_checked,
            categories=list(source.categories or []),
            tags=list(source.tags or []),
            metadata=dict(source.source_metadata or {}),
        )


class SourceRepository:
    """
    Repository for source database operations.

    Covers lookups, the due-for-checking query and the per-check
    bookkeeping (last checked, last updated, error tracking).
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get_by_id(self, source_id: str) -> Optional[Source]:
        """
        Get source by ID.

        Args:
            source_id: Source ID

        Returns:
            Source if found, None otherwise
        """
        return self.session.get(Source, source_id)

    def get_by_url(self, url: str) -> Optional[Source]:
        """Get source by URL."""
        return self.session.query(Source).filter(Source.url == url).first()

    def get_all(
        self,
        frequency: Optional[str] = None,
        active_only: bool = False,
    ) -> List[Source]:
        """
        List sources.

        Args:
            frequency: Only return sources with this check frequency
            active_only: Only return active sources

        Returns:
            Sources ordered by name
        """
        query = self.session.query(Source)
        if frequency:
            query = query.filter(Source.check_frequency == frequency)
        if active_only:
            query = query.filter(Source.active.is_(True))
        return query.order_by(Source.name).all()

    def create(self, **kwargs: Any) -> Source:
        """
        Create a new source.

        Args:
            **kwargs: Source column values

        Returns:
            The created source
        """
        source = Source(**kwargs)
        self.session.add(source)
        self.session.flush()
        return source

    def find_sources_for_checking(
        self,
        frequency: str,
        now: Optional[datetime] = None,
    ) -> List[Source]:
        """
        Find active sources of a frequency that are due for a check.

        A source is due when it has never been checked or its last check
        is older than the tier interval. Unknown frequencies use the daily
        interval.

        Args:
            frequency: Check frequency to query
            now: Reference time (defaults to current UTC time)

        Returns:
            List of due sources
        """
        now = now or utcnow()
        check_before = now - Tier.from_frequency(frequency).interval

        return (
            self.session.query(Source)
            .filter(
                Source.active.is_(True),
                Source.check_frequency == frequency,
                or_(Source.last_checked.is_(None), Source.last_checked < check_before),
            )
            .all()
        )

    def record_check(self, source_id: str) -> Optional[Source]:
        """Record that a source was checked now."""
        source = self.get_by_id(source_id)
        if source:
            source.last_checked = utcnow()
        return source

    def record_update(self, source_id: str, new_items: int = 1) -> Optional[Source]:
        """Record that new content was found on a source."""
        source = self.get_by_id(source_id)
        if source:
            source.last_updated = utcnow()
            source.content_count = (source.content_count or 0) + new_items
        return source

    def record_error(self, source_id: str, message: str) -> Optional[Source]:
        """Record a failed check on a source."""
        source = self.get_by_id(source_id)
        if source:
            source.error_count = (source.error_count or 0) + 1
            source.last_error_message = message
            source.last_error_at = utcnow()
        return source

    def reset_errors(self, source_id: str) -> Optional[Source]:
        """Clear the error count and last error of a source."""
        source = self.get_by_id(source_id)
        if source:
            source.error_count = 0
            source.last_error_message = None
            source.last_error_at = None
        return source

    def update_metadata(self, source_id: str, metadata: Dict[str, Any]) -> Optional[Source]:
        """Replace the checker metadata of a source."""
        source = self.get_by_id(source_id)
        if source:
            source.source_metadata = dict(metadata)
        return source

    def get_with_errors(self, limit: int = 50) -> List[Source]:
        """Get sources with at least one recorded error, most errors first."""
        return (
            self.session.query(Source)
            .filter(Source.error_count > 0)
            .order_by(Source.error_count.desc(), Source.last_error_at.desc())
            .limit(limit)
            .all()
        )

    def count(self, active_only: bool = False) -> int:
        """Count sources, optionally only active ones."""
        query = self.session.query(func.count(Source.id))
        if active_only:
            query = query.filter(Source.active.is_(True))
        return query.scalar() or 0

    def count_with_errors(self) -> int:
        return (
            self.session.query(func.count(Source.id)).filter(Source.error_count > 0).scalar() or 0
        )

    def count_by_frequency(self, active_only: bool = True) -> Dict[str, int]:
        """Count sources per tier."""
        query = self.session.query(Source.check_frequency, func.count(Source.id))
        if active_only:
            query = query.filter(Source.active.is_(True))
        rows = dict(query.group_by(Source.check_frequency).all())
        return {tier.value: rows.get(tier.value, 0) for tier in TIERS}


class ContentRepository:
    """Repository for discovered content."""

    def __init__(self, session: Session):
        self.session = session

    def exists(self, source_id: str, url: str) -> bool:
        """Check whether an item with this URL was already stored for a source."""
        return (
            self.session.query(Content.id)
            .filter(Content.source_id == source_id, Content.url == url)
            .first()
            is not None
        )

    def create(self, **kwargs: Any) -> Content:
        """Store a newly discovered item."""
        content = Content(**kwargs)
        self.session.add(content)
        self.session.flush()
        return content

    def count(
        self,
        source_id: Optional[str] = None,
        processed: Optional[bool] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Count stored content, optionally per source, processing state or discovery date."""
        query = self.session.query(func.count(Content.id))
        if since is not None:
            query = query.filter(Content.discovery_date >= since)
        if source_id is not None:
            query = query.filter(Content.source_id == source_id)
        if processed is not None:
            query = query.filter(Content.processed.is_(processed))
        return query.scalar() or 0

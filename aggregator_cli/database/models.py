"""
SQLAlchemy models for the Aggregator database.

Sources are the sites and feeds that get checked on a schedule; Content
rows are the items discovered on them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

# Create base class for all models
Base = declarative_base()

SOURCE_TYPES = ("website", "blog", "academic", "podcast", "social", "newsletter", "rss")
CONTENT_TYPES = ("article", "podcast", "video", "paper", "social")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return uuid4().hex


class Source(Base):
    """
    Content source model.

    Stores a checkable source (website, feed, podcast, ...) together with
    its check frequency and the bookkeeping written after every check.
    """

    __tablename__ = "sources"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)

    # Identity
    url: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    type: Mapped[str] = mapped_column(String, nullable=False, default="website", index=True)
    rss_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    categories: Mapped[List[str]] = mapped_column(JSON, default=list)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)

    # Scheduling
    check_frequency: Mapped[str] = mapped_column(
        String, nullable=False, default="daily", index=True
    )
    last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Statistics
    content_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_error_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Checker state (e.g. contentHash for websites)
    # Named 'source_metadata' to avoid conflict with SQLAlchemy's reserved 'metadata' attribute
    source_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, name="metadata")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )

    contents: Mapped[List["Content"]] = relationship(
        "Content",
        back_populates="source",
        cascade="all, delete-orphan",
        lazy="select",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert source to dictionary representation."""
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "rss_url": self.rss_url,
            "categories": self.categories or [],
            "tags": self.tags or [],
            "check_frequency": self.check_frequency,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "active": self.active,
            "content_count": self.content_count,
            "error_count": self.error_count,
            "last_error": {
                "message": self.last_error_message,
                "date": self.last_error_at.isoformat() if self.last_error_at else None,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Content(Base):
    """
    Discovered content model.

    One row per item found on a source; (source_id, url) is unique so a
    re-check never stores the same item twice.
    """

    __tablename__ = "contents"
    __table_args__ = (UniqueConstraint("source_id", "url", name="uq_contents_source_url"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    source_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("sources.id"), nullable=False, index=True
    )

    url: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    author: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    publish_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    discovery_date: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False, default="article")

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    full_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    categories: Mapped[List[str]] = mapped_column(JSON, default=list)
    topics: Mapped[List[str]] = mapped_column(JSON, default=list)

    # Set by downstream processing (summarization etc.)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    source: Mapped[Source] = relationship("Source", back_populates="contents")

    def to_dict(self) -> Dict[str, Any]:
        """Convert content to dictionary representation."""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "url": self.url,
            "title": self.title,
            "author": self.author,
            "publish_date": self.publish_date.isoformat() if self.publish_date else None,
            "discovery_date": self.discovery_date.isoformat() if self.discovery_date else None,
            "type": self.type,
            "summary": self.summary,
            "processed": self.processed,
        }


# Additional indexes for common queries
Index("ix_sources_due", Source.active, Source.check_frequency, Source.last_checked)
Index("ix_contents_discovery_date", Content.discovery_date.desc())

"""Tests for the database-backed source registry and repositories."""

from datetime import timedelta

import pytest

from aggregator_cli.database.connection import get_db_session
from aggregator_cli.database.models import Source
from aggregator_cli.database.repositories import ContentRepository, SourceRepository, utcnow
from aggregator_cli.scheduler.registry import DatabaseSourceRegistry
from aggregator_cli.tiers import Tier


def _add_source(source_id, frequency="daily", last_checked=None, active=True, **kwargs):
    with get_db_session() as session:
        session.add(
            Source(
                id=source_id,
                name=kwargs.pop("name", f"Source {source_id}"),
                url=kwargs.pop("url", f"https://example.com/{source_id}"),
                check_frequency=frequency,
                last_checked=last_checked,
                active=active,
                **kwargs,
            )
        )


def _get(source_id):
    with get_db_session() as session:
        return SourceRepository(session).get_by_id(source_id)


class TestFindSourcesForChecking:
    """Test the due-for-checking rule."""

    def test_due_rule(self, db):
        """Test never-checked and overdue sources are due, recent ones are not."""
        now = utcnow()
        _add_source("never", "hourly")
        _add_source("overdue", "hourly", last_checked=now - timedelta(hours=2))
        _add_source("recent", "hourly", last_checked=now - timedelta(minutes=10))
        _add_source("inactive", "hourly", active=False)
        _add_source("other-tier", "daily")

        with get_db_session() as session:
            due = SourceRepository(session).find_sources_for_checking("hourly", now=now)
            ids = sorted(source.id for source in due)

        assert ids == ["never", "overdue"]

    def test_tier_intervals(self, db):
        """Test each tier uses its own interval."""
        now = utcnow()
        _add_source("weekly-old", "weekly", last_checked=now - timedelta(days=8))
        _add_source("weekly-new", "weekly", last_checked=now - timedelta(days=6))
        _add_source("monthly-old", "monthly", last_checked=now - timedelta(days=31))
        _add_source("monthly-new", "monthly", last_checked=now - timedelta(days=20))

        with get_db_session() as session:
            repo = SourceRepository(session)
            weekly = [s.id for s in repo.find_sources_for_checking("weekly", now=now)]
            monthly = [s.id for s in repo.find_sources_for_checking("monthly", now=now)]

        assert weekly == ["weekly-old"]
        assert monthly == ["monthly-old"]

    @pytest.mark.asyncio
    async def test_registry_returns_records(self, db):
        """Test the registry returns detached records for a tier."""
        _add_source("d1", "daily", categories=["ml"], tags=["llm"])

        records = await DatabaseSourceRegistry(db).find_sources_for_checking(Tier.DAILY)

        assert len(records) == 1
        assert records[0].id == "d1"
        assert records[0].categories == ["ml"]
        assert records[0].tags == ["llm"]


class TestDatabaseSourceRegistry:
    """Test lookups and check bookkeeping."""

    @pytest.mark.asyncio
    async def test_find_by_id(self, db):
        """Test lookup by ID returns a record or None."""
        _add_source("s1", "weekly", name="Weekly Digest")
        registry = DatabaseSourceRegistry(db)

        record = await registry.find_by_id("s1")

        assert record.name == "Weekly Digest"
        assert record.check_frequency == "weekly"
        assert await registry.find_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_record_check_and_update(self, db):
        """Test check and update timestamps and the content count are written."""
        _add_source("s1")
        registry = DatabaseSourceRegistry(db)

        await registry.record_check("s1")
        await registry.record_update("s1", new_items=3)

        source = _get("s1")
        assert source.last_checked is not None
        assert source.last_updated is not None
        assert source.content_count == 3

    @pytest.mark.asyncio
    async def test_record_error(self, db):
        """Test errors increment the count and keep the last message."""
        _add_source("s1")
        registry = DatabaseSourceRegistry(db)

        await registry.record_error("s1", "timeout")
        await registry.record_error("s1", "404 Not Found")

        source = _get("s1")
        assert source.error_count == 2
        assert source.last_error_message == "404 Not Found"
        assert source.last_error_at is not None

    @pytest.mark.asyncio
    async def test_record_error_missing_source(self, db, caplog):
        """Test recording an error for a deleted source only warns."""
        await DatabaseSourceRegistry(db).record_error("gone", "timeout")

        assert "no longer exists" in caplog.text


class TestSourceRepository:
    """Test the remaining repository helpers."""

    def test_reset_errors(self, db):
        """Test resetting clears the error state."""
        _add_source("s1", error_count=4, last_error_message="boom")

        with get_db_session() as session:
            SourceRepository(session).reset_errors("s1")

        source = _get("s1")
        assert source.error_count == 0
        assert source.last_error_message is None

    def test_get_with_errors(self, db):
        """Test only failing sources are listed, most errors first."""
        now = utcnow()
        _add_source("ok")
        _add_source("few", error_count=1, last_error_at=now)
        _add_source("many", error_count=5, last_error_at=now)

        with get_db_session() as session:
            ids = [s.id for s in SourceRepository(session).get_with_errors()]

        assert ids == ["many", "few"]

    def test_count_by_frequency(self, db):
        """Test active sources are counted per tier."""
        _add_source("h1", "hourly")
        _add_source("h2", "hourly")
        _add_source("w1", "weekly")
        _add_source("w2", "weekly", active=False)

        with get_db_session() as session:
            counts = SourceRepository(session).count_by_frequency()

        assert counts == {"hourly": 2, "daily": 0, "weekly": 1, "monthly": 0}

    def test_content_exists(self, db):
        """Test stored content is found by source and URL."""
        _add_source("s1")

        with get_db_session() as session:
            repo = ContentRepository(session)
            repo.create(source_id="s1", url="https://example.com/a", title="A")

        with get_db_session() as session:
            repo = ContentRepository(session)
            assert repo.exists("s1", "https://example.com/a")
            assert not repo.exists("s1", "https://example.com/b")
            assert repo.count(source_id="s1") == 1

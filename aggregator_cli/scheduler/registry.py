"""Source registry used by the scheduler and the job processor.

The scheduler only reads sources (due sources per tier, lookup by ID);
the job processor also writes back the bookkeeping of each check.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from aggregator_cli.config import AggregatorConfig
from aggregator_cli.database.connection import get_db_session
from aggregator_cli.database.repositories import SourceRecord, SourceRepository
from aggregator_cli.tiers import Tier

logger = logging.getLogger(__name__)


class SourceRegistry(Protocol):
    """Protocol for source lookups and check bookkeeping."""

    async def find_sources_for_checking(self, tier: Tier) -> List[SourceRecord]:
        ...

    async def find_by_id(self, source_id: str) -> Optional[SourceRecord]:
        ...

    async def record_check(self, source_id: str) -> None:
        ...

    async def record_update(self, source_id: str, new_items: int = 1) -> None:
        ...

    async def record_error(self, source_id: str, message: str) -> None:
        ...


class DatabaseSourceRegistry:
    """``SourceRegistry`` backed by the SQLAlchemy source table.

    Each call opens its own short session and returns detached
    ``SourceRecord`` snapshots.
    """

    def __init__(self, config: Optional[AggregatorConfig] = None):
        self._config = config

    async def find_sources_for_checking(self, tier: Tier) -> List[SourceRecord]:
        """Active sources of ``tier`` that were never checked or are past the tier interval."""
        with get_db_session(self._config) as session:
            sources = SourceRepository(session).find_sources_for_checking(Tier(tier).value)
            return [SourceRecord.from_model(source) for source in sources]

    async def find_by_id(self, source_id: str) -> Optional[SourceRecord]:
        with get_db_session(self._config) as session:
            source = SourceRepository(session).get_by_id(source_id)
            return SourceRecord.from_model(source) if source else None

    async def record_check(self, source_id: str) -> None:
        with get_db_session(self._config) as session:
            SourceRepository(session).record_check(source_id)

    async def record_update(self, source_id: str, new_items: int = 1) -> None:
        with get_db_session(self._config) as session:
            SourceRepository(session).record_update(source_id, new_items=new_items)

    async def record_error(self, source_id: str, message: str) -> None:
        with get_db_session(self._config) as session:
            if SourceRepository(session).record_error(source_id, message) is None:
                logger.warning(f"Cannot record error, source {source_id} no longer exists")

"""Job processor for source checks.

``run_source_check`` is the function every tier queue executes. rq workers
import it by dotted path, so it is a module-level function that runs the
async processor on a lazily built, process-wide ``SourceCheckProcessor``.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from aggregator_cli.checker.content_checker import ContentChecker
from aggregator_cli.config import AggregatorConfig, get_config
from aggregator_cli.scheduler.registry import DatabaseSourceRegistry, SourceRegistry

logger = logging.getLogger(__name__)

# Processor used by run_source_check inside worker processes
_global_processor: Optional["SourceCheckProcessor"] = None


class SourceCheckProcessor:
    """Runs one source check and records the outcome on the source."""

    def __init__(self, registry: SourceRegistry, checker: ContentChecker):
        self.registry = registry
        self.checker = checker

    async def process(self, source_id: str) -> Dict[str, Any]:
        """Check a source for new content.

        Args:
            source_id: ID of the source carried by the job

        Returns:
            Result dictionary with ``success`` and, for checked sources,
            ``content_found``, ``new_content`` and ``message``

        Raises:
            Exception: Any checker failure, after it was recorded on the
                source, so the queue marks the job failed and retries it
        """
        source = await self.registry.find_by_id(source_id)
        if source is None:
            logger.warning(f"Source not found: {source_id}")
            return {"success": False, "error": "Source not found"}

        if not source.active:
            logger.info(f"Skipping inactive source: {source_id}")
            return {"success": True, "content_found": False, "message": "Source is inactive"}

        await self.registry.record_check(source_id)

        try:
            outcome = await self.checker.check_source(source)
        except Exception as e:
            logger.error(f"Error checking source {source_id}: {e}")
            await self.registry.record_error(source_id, str(e))
            raise

        if outcome.content_found:
            await self.registry.record_update(source_id, len(outcome.new_content))

        return {"success": True, **outcome.to_dict()}


def build_processor(config: Optional[AggregatorConfig] = None) -> SourceCheckProcessor:
    """Build a processor wired to the database and the content checker."""
    config = config or get_config()
    return SourceCheckProcessor(
        registry=DatabaseSourceRegistry(config),
        checker=ContentChecker(config.checker, db_config=config),
    )


def set_processor(processor: Optional[SourceCheckProcessor]) -> None:
    """Replace the process-wide processor used by ``run_source_check``."""
    global _global_processor
    _global_processor = processor


def run_source_check(source_id: str) -> Dict[str, Any]:
    """Queue entry point: check one source.

    Args:
        source_id: ID of the source to check

    Returns:
        The processor's result dictionary
    """
    global _global_processor
    if _global_processor is None:
        _global_processor = build_processor()

    logger.info(f"Processing check for source: {source_id}")
    return asyncio.run(_global_processor.process(source_id))

"""rq worker consuming the tier queues."""

import asyncio
import logging
from typing import List, Optional

from redis import Redis
from rq import Queue, Worker

from aggregator_cli.config import AggregatorConfig, get_config
from aggregator_cli.database.connection import create_tables, dispose_engine
from aggregator_cli.scheduler.content_scheduler import ContentScheduler, build_scheduler
from aggregator_cli.scheduler.source_check import build_processor, set_processor
from aggregator_cli.tiers import TIERS, Tier

logger = logging.getLogger(__name__)


def build_worker(
    config: Optional[AggregatorConfig] = None,
    tiers: Optional[List[Tier]] = None,
    name: Optional[str] = None,
) -> Worker:
    """Create an rq worker listening on the given tier queues.

    Queues are listened to in tier order, so hourly jobs are picked first.

    Args:
        config: Aggregator configuration (uses global if not provided)
        tiers: Tiers to consume (all four if not provided)
        name: Optional worker name

    Returns:
        Configured rq Worker
    """
    config = config or get_config()
    connection = Redis.from_url(config.queue.redis_url)
    queues = [Queue(tier.queue_name, connection=connection) for tier in (tiers or TIERS)]
    return Worker(queues, connection=connection, name=name)


def start_worker(
    config: Optional[AggregatorConfig] = None,
    tiers: Optional[List[Tier]] = None,
    burst: bool = False,
    name: Optional[str] = None,
) -> bool:
    """Run a worker until it is stopped (or, in burst mode, the queues are empty).

    The rq scheduler is enabled so delayed retries of immediate checks run.

    Returns:
        True if the worker processed at least one job
    """
    config = config or get_config()
    create_tables(config)
    # Work horses are forked, each must open its own database connection
    dispose_engine()
    set_processor(build_processor(config))

    # Job observers live in this process, where rq runs the job callbacks
    scheduler: ContentScheduler = build_scheduler(config)
    scheduler.initialize_queues()

    worker = build_worker(config, tiers=tiers, name=name)
    logger.info(f"Starting worker on queues: {', '.join(worker.queue_names())}")
    try:
        return worker.work(burst=burst, with_scheduler=True)
    finally:
        asyncio.run(scheduler.shutdown())

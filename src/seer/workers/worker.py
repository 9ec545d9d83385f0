"""arq worker for badge evaluation.

Runs the badge event consumer as a long-lived job and exposes the
retroactive recompute as an on-demand job.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq.connections import RedisSettings

from seer.config import get_settings
from seer.database import close_db, get_session_factory, init_db
from seer.gamification.content import get_content_classifier
from seer.gamification.seed import seed_badges
from seer.workers.badge_consumer import BadgeEventConsumer
from seer.workers.retroactive import recompute_all_badges as _recompute_all_badges

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB, Redis and the consumer on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url, settings.database_pool_size, settings.database_max_overflow)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    consumer = BadgeEventConsumer(
        redis_client=redis_client,
        session_factory=get_session_factory(),
        classifier=get_content_classifier(settings),
        group=settings.badge_consumer_group,
        consumer_name=settings.badge_consumer_name,
    )
    await consumer.setup_groups()

    ctx["redis"] = redis_client
    ctx["consumer"] = consumer
    logger.info("Badge worker started (consumer=%s)", settings.badge_consumer_name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    consumer: BadgeEventConsumer | None = ctx.get("consumer")
    if consumer:
        consumer.stop()

    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Badge worker shut down")


async def consume_badge_events(ctx: dict) -> None:  # type: ignore[type-arg]
    """Main consumer task: runs continuously."""
    consumer: BadgeEventConsumer = ctx["consumer"]
    await consumer.run()


async def recompute_all_badges(ctx: dict) -> int:  # type: ignore[type-arg]
    """On-demand job: reseed the catalog and recompute every badge."""
    async with get_session_factory()() as db:
        await seed_badges(db)
        return await _recompute_all_badges(db)


class WorkerSettings:
    """arq worker settings for badge evaluation."""

    functions = [consume_badge_events, recompute_all_badges]
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 2
    job_timeout = 0  # consume_badge_events runs forever
    allow_abort_jobs = True
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)

"""Redis Stream consumer for post-commit badge events.

Every message gets its own database session and one ``TriggerEngine``
evaluation. A message is acknowledged whether or not evaluation succeeded:
badges are recomputable, so a failed event is logged and dropped instead of
being redelivered forever.

Usage: python -m seer.workers.badge_consumer
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seer.config import get_settings
from seer.database import close_db, get_session_factory, init_db
from seer.gamification.content import ContentClassifier, get_content_classifier
from seer.gamification.events import BADGE_STREAMS
from seer.gamification.trigger_engine import TriggerEngine

logger = logging.getLogger(__name__)


class BadgeEventConsumer:
    """Reads badge events with XREADGROUP and evaluates them."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        session_factory: async_sessionmaker[AsyncSession],
        classifier: ContentClassifier | None = None,
        group: str = "seer-badge-consumers",
        consumer_name: str = "badge-worker-1",
    ) -> None:
        self.redis = redis_client
        self.session_factory = session_factory
        self.classifier = classifier
        self.group = group
        self.consumer_name = consumer_name
        self._running = False
        self.processed = 0
        self.failed = 0

    async def setup_groups(self) -> None:
        """Create consumer groups for all streams (idempotent)."""
        for stream in BADGE_STREAMS:
            try:
                await self.redis.xgroup_create(stream, self.group, id="0", mkstream=True)
                logger.info("Created consumer group %s for %s", self.group, stream)
            except aioredis.ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise

    @staticmethod
    def _parse_data(raw: dict) -> dict:
        data = raw.get("data")
        if isinstance(data, str):
            try:
                return json.loads(data)
            except json.JSONDecodeError:
                return {}
        if data is not None:
            return dict(data)
        return dict(raw)

    async def handle(self, stream: str, msg_id: str, raw: dict) -> None:
        """Evaluate one message, then ack it regardless of the outcome."""
        try:
            async with self.session_factory() as db:
                engine = TriggerEngine(db, self.redis, self.classifier)
                awarded = await engine.evaluate(stream, msg_id, self._parse_data(raw))
            if awarded:
                logger.info(
                    "Awarded badges: %s (stream=%s, event=%s)",
                    [a.badge.key for a in awarded], stream, msg_id,
                )
            self.processed += 1
        except Exception:
            self.failed += 1
            logger.exception("Dropping badge event %s from %s", msg_id, stream)
        finally:
            await self.redis.xack(stream, self.group, msg_id)

    async def consume(self, count: int = 100, block_ms: int = 5000) -> int:
        """Read and handle one batch. Returns number of messages handled."""
        try:
            batches = await self.redis.xreadgroup(
                groupname=self.group,
                consumername=self.consumer_name,
                streams={s: ">" for s in BADGE_STREAMS},
                count=count,
                block=block_ms,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            return 0

        handled = 0
        for stream_name, messages in batches or []:
            stream = stream_name if isinstance(stream_name, str) else stream_name.decode()
            for msg_id, raw in messages:
                await self.handle(stream, msg_id, raw)
                handled += 1
        return handled

    async def run(self) -> None:
        """Main consumer loop: runs until ``stop`` is called."""
        await self.setup_groups()
        self._running = True
        logger.info("Badge event consumer started (consumer=%s)", self.consumer_name)

        while self._running:
            try:
                await self.consume()
            except Exception:
                logger.exception("Consumer loop error")
                await asyncio.sleep(1)

    def stop(self) -> None:
        self._running = False


async def main() -> None:
    """Run the badge event consumer as a standalone process."""
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

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, consumer.stop)

    try:
        await consumer.run()
    finally:
        await redis_client.aclose()
        await close_db()
        logger.info("Badge event consumer stopped")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(main())

"""Post-commit badge events.

The host application appends one event per committed fact change. The badge
consumer picks them up and evaluates badges outside the request, so a badge
failure can never fail the user's action.
"""

from __future__ import annotations

import json
import logging
import time

logger = logging.getLogger(__name__)

PROPHECY_CREATED = "prophecy:created"
PROPHECY_RATED = "prophecy:rated"
PROPHECY_RESOLVED = "prophecy:resolved"
ROUND_RESULTS_PUBLISHED = "round:results_published"
PASSKEY_ADDED = "user:passkey_added"

BADGE_STREAMS: tuple[str, ...] = (
    PROPHECY_CREATED,
    PROPHECY_RATED,
    PROPHECY_RESOLVED,
    ROUND_RESULTS_PUBLISHED,
    PASSKEY_ADDED,
)

STREAM_MAXLEN = 100_000


async def publish_badge_event(redis: object, stream: str, data: dict) -> str | None:
    """XADD an event. Returns the entry id, or None if Redis refused it."""
    if stream not in BADGE_STREAMS:
        msg = f"Unknown badge stream: {stream}"
        raise ValueError(msg)

    try:
        return await redis.xadd(  # type: ignore[union-attr]
            stream,
            {
                "event": stream.split(":", 1)[1],
                "ts": str(time.time()),
                "data": json.dumps(data),
            },
            maxlen=STREAM_MAXLEN,
            approximate=True,
        )
    except Exception:
        logger.warning("Failed to queue badge event on %s", stream, exc_info=True)
        return None


async def prophecy_created(redis: object, prophecy_id: int) -> str | None:
    return await publish_badge_event(redis, PROPHECY_CREATED, {"prophecy_id": prophecy_id})


async def prophecy_rated(redis: object, prophecy_id: int, user_id: int) -> str | None:
    return await publish_badge_event(redis, PROPHECY_RATED, {"prophecy_id": prophecy_id, "user_id": user_id})


async def prophecy_resolved(redis: object, prophecy_id: int) -> str | None:
    return await publish_badge_event(redis, PROPHECY_RESOLVED, {"prophecy_id": prophecy_id})


async def round_results_published(
    redis: object,
    round_id: int,
    leaderboard: list[int] | None = None,
    first_place_win_count: int | None = None,
) -> str | None:
    """Leaderboard and win count are optional; the consumer computes missing ones."""
    data: dict = {"round_id": round_id}
    if leaderboard is not None:
        data["leaderboard"] = leaderboard
    if first_place_win_count is not None:
        data["first_place_win_count"] = first_place_win_count
    return await publish_badge_event(redis, ROUND_RESULTS_PUBLISHED, data)


async def passkey_added(redis: object, user_id: int) -> str | None:
    return await publish_badge_event(redis, PASSKEY_ADDED, {"user_id": user_id})

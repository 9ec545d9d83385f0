"""Recompute every badge from scratch.

Safe to run at any time: each award is idempotent, so existing badges are
untouched and only missing ones are granted.

Usage: python -m seer.workers.retroactive
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.config import get_settings
from seer.database import close_db, get_session_factory, init_db
from seer.db.models import Prophecy, Round, User
from seer.gamification.leaderboard import (
    award_leaderboard_badges,
    compute_round_leaderboard,
    count_consecutive_wins,
)
from seer.gamification.round_rules import award_round_completion_badges
from seer.gamification.rules import (
    award_rating_pattern_badges,
    award_security_badges,
    check_and_award_badges,
    guarded,
)
from seer.gamification.seed import seed_badges

logger = logging.getLogger(__name__)


async def recompute_all_badges(db: AsyncSession) -> int:
    """Re-evaluate user, rating-pattern, security and round badges. Returns number of new grants."""
    users = (await db.execute(select(User.id, User.is_bot).order_by(User.id))).all()
    granted = 0

    for user_id, is_bot in users:
        if is_bot:
            granted += len(await guarded(db, "security", award_security_badges(db, user_id)))
            continue
        granted += len(await guarded(db, "cumulative", check_and_award_badges(db, user_id)))

    resolved_ids = (
        await db.execute(select(Prophecy.id).where(Prophecy.fulfilled.is_not(None)).order_by(Prophecy.id))
    ).scalars().all()
    for prophecy_id in resolved_ids:
        granted += len(await guarded(db, "rating_patterns", award_rating_pattern_badges(db, prophecy_id)))

    round_ids = (
        await db.execute(
            select(Round.id)
            .where(Round.results_published_at.is_not(None))
            .order_by(Round.results_published_at.asc())
        )
    ).scalars().all()

    for round_id in round_ids:
        leaderboard = await compute_round_leaderboard(db, round_id)
        wins = await count_consecutive_wins(db, leaderboard[0], round_id) if leaderboard else None
        granted += len(await guarded(db, "leaderboard", award_leaderboard_badges(db, leaderboard, wins)))
        granted += len(await guarded(db, "round_completion", award_round_completion_badges(db, round_id, leaderboard)))

    logger.info("Retroactive recompute: %d users, %d rounds, %d new badge(s)", len(users), len(round_ids), granted)
    return granted


async def main() -> None:
    settings = get_settings()
    await init_db(settings.database_url, settings.database_pool_size, settings.database_max_overflow)
    try:
        async with get_session_factory()() as db:
            await seed_badges(db)
            await recompute_all_badges(db)
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(main())

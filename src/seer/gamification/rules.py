"""Cumulative, behavioural, security and rating-pattern badge rules.

Each ``award_*`` function is idempotent: it recomputes which badges qualify
and routes every one of them through ``award_badge``. Only newly granted
records are returned.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.db.models import Authenticator, Prophecy, Rating, User
from seer.gamification.badge_service import award_badge, award_badges
from seer.gamification.catalog import (
    ACCURACY_RATE,
    CREATOR,
    FULFILLED,
    RATER,
    RATER_ACCURACY,
    ROUNDS,
    ThresholdGroup,
)
from seer.gamification.schemas import AwardedBadge
from seer.gamification.stats import EXTREME_RATING, UserStats, load_user_stats

logger = logging.getLogger(__name__)

# Sample-size gates
ACCURACY_RATE_MIN_PROPHECIES = 10
RATER_ACCURACY_MIN_RATINGS = 20
SOCIAL_MIN_RATINGS = 20
NEUTRAL_MIN_RATINGS = 30
EXTREME_MIN_COUNT = 10

# Rating-pattern rules
UNANIMOUS_MIN_RATINGS = 6
UNANIMOUS_MAX_SPREAD = 4


async def guarded(db: AsyncSession, label: str, awaitable: Awaitable[list[AwardedBadge]]) -> list[AwardedBadge]:
    """Run one rule; a failure is logged and rolled back instead of propagating."""
    try:
        return await awaitable
    except Exception:
        logger.exception("Badge rule %s failed", label)
        await db.rollback()
        return []


# ---------------------------------------------------------------------------
# Threshold rules
# ---------------------------------------------------------------------------


def qualifying_thresholds(value: float, group: ThresholdGroup) -> list[int]:
    """Every threshold reached by ``value``. Not exclusive: 37 reaches 1, 5, 15 and 30."""
    return [t for t in sorted(group.thresholds) if value >= t]


async def award_threshold_badges(
    db: AsyncSession,
    user_id: int,
    value: float,
    group: ThresholdGroup,
) -> list[AwardedBadge]:
    keys = [group.key_for(t) for t in qualifying_thresholds(value, group)]
    return await award_badges(db, user_id, keys)


async def award_accuracy_rate_badges(db: AsyncSession, user_id: int, stats: UserStats) -> list[AwardedBadge]:
    if stats.prophecies_created < ACCURACY_RATE_MIN_PROPHECIES:
        return []
    return await award_threshold_badges(db, user_id, stats.accuracy_rate, ACCURACY_RATE)


async def award_rater_accuracy_badges(db: AsyncSession, user_id: int, stats: UserStats) -> list[AwardedBadge]:
    if stats.ratings_on_resolved < RATER_ACCURACY_MIN_RATINGS:
        return []
    return await award_threshold_badges(db, user_id, stats.rater_accuracy, RATER_ACCURACY)


# ---------------------------------------------------------------------------
# Social rules
# ---------------------------------------------------------------------------


def social_badge_keys(stats: UserStats) -> list[str]:
    keys: list[str] = []
    if stats.ratings_given >= SOCIAL_MIN_RATINGS:
        avg = stats.average_rating_given
        if avg < -5:
            keys.append("social_friendly")
        if avg > 2:
            keys.append("social_skeptic")
        if -1 <= avg <= 1 and stats.ratings_given >= NEUTRAL_MIN_RATINGS:
            keys.append("social_neutral")

    if stats.max_ratings_given >= EXTREME_MIN_COUNT:
        keys.append("social_generous")
    if stats.min_ratings_given >= EXTREME_MIN_COUNT:
        keys.append("social_ruthless")
    return keys


async def award_social_badges(db: AsyncSession, user_id: int, stats: UserStats) -> list[AwardedBadge]:
    return await award_badges(db, user_id, social_badge_keys(stats))


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


async def award_security_badges(db: AsyncSession, user_id: int) -> list[AwardedBadge]:
    """Passkey pioneer for users with at least one registered authenticator."""
    count = (
        await db.execute(select(func.count()).select_from(Authenticator).where(Authenticator.user_id == user_id))
    ).scalar_one()
    if count <= 0:
        return []

    result = await award_badge(db, user_id, "special_passkey_pioneer")
    if result is not None and result.is_new:
        return [result.user_badge]
    return []


# ---------------------------------------------------------------------------
# Rating patterns on a resolved prophecy
# ---------------------------------------------------------------------------


def rating_pattern_keys(values: Sequence[int]) -> list[str]:
    """Pattern badges for a prophecy's human, non-zero rating values."""
    if not values:
        return []
    keys: list[str] = []
    low, high = min(values), max(values)
    if low <= -EXTREME_RATING and high >= EXTREME_RATING:
        keys.append("special_controversial")
    if len(values) >= UNANIMOUS_MIN_RATINGS and high - low <= UNANIMOUS_MAX_SPREAD:
        keys.append("special_unanimous")
    return keys


async def award_rating_pattern_badges(db: AsyncSession, prophecy_id: int) -> list[AwardedBadge]:
    creator_id = (
        await db.execute(select(Prophecy.creator_id).where(Prophecy.id == prophecy_id))
    ).scalar_one_or_none()
    if creator_id is None:
        logger.warning("Prophecy not found: %s", prophecy_id)
        return []

    values = (
        await db.execute(
            select(Rating.value)
            .join(User, Rating.user_id == User.id)
            .where(Rating.prophecy_id == prophecy_id, User.is_bot.is_(False), Rating.value != 0)
        )
    ).scalars().all()
    return await award_badges(db, creator_id, rating_pattern_keys(list(values)))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def check_and_award_badges(db: AsyncSession, user_id: int) -> list[AwardedBadge]:
    """Recompute a user's statistics and evaluate every cumulative rule set."""
    stats = await load_user_stats(db, user_id)

    awarded: list[AwardedBadge] = []
    for group, value in (
        (CREATOR, stats.prophecies_created),
        (FULFILLED, stats.prophecies_fulfilled),
        (RATER, stats.ratings_given),
        (ROUNDS, stats.rounds_participated),
    ):
        awarded += await guarded(db, group.prefix, award_threshold_badges(db, user_id, value, group))

    awarded += await guarded(db, "accuracy_rate", award_accuracy_rate_badges(db, user_id, stats))
    awarded += await guarded(db, "rater_accuracy", award_rater_accuracy_badges(db, user_id, stats))
    awarded += await guarded(db, "social", award_social_badges(db, user_id, stats))
    awarded += await guarded(db, "security", award_security_badges(db, user_id))

    if awarded:
        logger.info("User %s earned %d badge(s): %s", user_id, len(awarded), [a.badge.key for a in awarded])
    return awarded

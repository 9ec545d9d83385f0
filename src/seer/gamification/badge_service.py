"""Badge award primitive, badge read models and earned-badge notification."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from seer.database import dialect_insert
from seer.db.models import BadgeDefinition, User, UserBadge
from seer.gamification.catalog import get_definition
from seer.gamification.schemas import AwardedBadge, BadgeHolder, BadgeResponse, HallOfFameEntry

logger = logging.getLogger(__name__)

BADGE_EARNED_CHANNEL = "pubsub:badge_earned"


@dataclass(frozen=True)
class AwardResult:
    user_badge: AwardedBadge
    is_new: bool


def badge_snapshot(badge: BadgeDefinition) -> BadgeResponse:
    return BadgeResponse(
        id=badge.id,
        key=badge.key,
        name=badge.name,
        description=badge.description,
        requirement=badge.requirement,
        category=badge.category,
        rarity=badge.rarity,
        threshold=badge.threshold,
    )


def awarded_snapshot(user_badge: UserBadge) -> AwardedBadge:
    return AwardedBadge(
        id=user_badge.id,
        user_id=user_badge.user_id,
        badge_id=user_badge.badge_id,
        earned_at=user_badge.earned_at,
        badge=badge_snapshot(user_badge.badge),
    )


async def get_badge_by_key(db: AsyncSession, key: str) -> BadgeDefinition | None:
    """Fetch a badge definition by key."""
    result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.key == key))
    return result.scalar_one_or_none()


async def get_user_badge(db: AsyncSession, user_id: int, badge_id: int) -> UserBadge | None:
    result = await db.execute(
        select(UserBadge).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none()


async def award_badge(db: AsyncSession, user_id: int, badge_key: str) -> AwardResult | None:
    """Grant ``badge_key`` to a user unless already held.

    Returns None for keys that are unknown to the catalog or not seeded yet.
    Otherwise returns the (new or existing) record and whether this call
    created it. The insert ignores conflicts on (user_id, badge_id), so
    concurrent callers never both see ``is_new=True``. A new grant is
    committed immediately.
    """
    if get_definition(badge_key) is None:
        logger.warning("Unknown badge key: %s", badge_key)
        return None

    badge = await get_badge_by_key(db, badge_key)
    if badge is None:
        logger.warning("Badge not seeded: %s", badge_key)
        return None

    existing = await get_user_badge(db, user_id, badge.id)
    if existing is not None:
        return AwardResult(user_badge=awarded_snapshot(existing), is_new=False)

    insert = dialect_insert(db)
    stmt = (
        insert(UserBadge)
        .values(user_id=user_id, badge_id=badge.id, earned_at=datetime.now(timezone.utc))
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        .returning(UserBadge.id)
    )
    try:
        inserted_id = (await db.execute(stmt)).scalar_one_or_none()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        inserted_id = None

    record = await get_user_badge(db, user_id, badge.id)
    if record is None:
        logger.warning("Badge %s could not be granted to user %s", badge_key, user_id)
        return None
    return AwardResult(user_badge=awarded_snapshot(record), is_new=inserted_id is not None)


async def award_badges(db: AsyncSession, user_id: int, badge_keys: Iterable[str]) -> list[AwardedBadge]:
    """Award each key in order. Returns only the newly granted records."""
    granted: list[AwardedBadge] = []
    for key in badge_keys:
        result = await award_badge(db, user_id, key)
        if result is not None and result.is_new:
            granted.append(result.user_badge)
    return granted


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


async def get_all_badges(db: AsyncSession) -> list[BadgeDefinition]:
    result = await db.execute(select(BadgeDefinition).order_by(BadgeDefinition.sort_order, BadgeDefinition.id))
    return list(result.scalars().all())


async def get_user_badges(db: AsyncSession, user_id: int) -> list[AwardedBadge]:
    """All badges a user holds, newest first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
    )
    return [awarded_snapshot(ub) for ub in result.scalars().all()]


async def get_known_badge_keys(db: AsyncSession) -> set[str]:
    """Keys of every badge that at least one user has earned."""
    result = await db.execute(
        select(BadgeDefinition.key).join(UserBadge, UserBadge.badge_id == BadgeDefinition.id).distinct()
    )
    return set(result.scalars().all())


async def get_badge_holders(db: AsyncSession, key: str) -> tuple[BadgeDefinition, list[BadgeHolder]] | None:
    """Badge definition plus everyone holding it, in the order they earned it."""
    badge = await get_badge_by_key(db, key)
    if badge is None:
        return None

    result = await db.execute(
        select(UserBadge.earned_at, User.id, User.username, User.display_name)
        .join(User, UserBadge.user_id == User.id)
        .where(UserBadge.badge_id == badge.id)
        .order_by(UserBadge.earned_at.asc(), UserBadge.id.asc())
    )
    holders = [
        BadgeHolder(user_id=row.id, username=row.username, display_name=row.display_name, earned_at=row.earned_at)
        for row in result
    ]
    return badge, holders


async def get_awarded_badges(db: AsyncSession) -> list[HallOfFameEntry]:
    """Hall of fame: every badge earned at least once, with its first achiever."""
    result = await db.execute(
        select(UserBadge, User.username, User.display_name)
        .join(User, UserBadge.user_id == User.id)
        .order_by(UserBadge.earned_at.asc(), UserBadge.id.asc())
    )

    entries: dict[int, HallOfFameEntry] = {}
    for user_badge, username, display_name in result:
        entry = entries.get(user_badge.badge_id)
        if entry is None:
            entries[user_badge.badge_id] = HallOfFameEntry(
                badge=badge_snapshot(user_badge.badge),
                first_achiever=BadgeHolder(
                    user_id=user_badge.user_id,
                    username=username,
                    display_name=display_name,
                    earned_at=user_badge.earned_at,
                ),
                first_achieved_at=user_badge.earned_at,
                total_achievers=1,
            )
        else:
            entry.total_achievers += 1

    return sorted(entries.values(), key=lambda e: e.first_achieved_at)


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------


async def publish_badge_earned(redis: object, badges: Iterable[AwardedBadge]) -> int:
    """Push earned badges to the notification channel. Returns messages sent."""
    if redis is None:
        return 0

    sent = 0
    for awarded in badges:
        try:
            await redis.publish(  # type: ignore[union-attr]
                BADGE_EARNED_CHANNEL,
                json.dumps({
                    "user_id": awarded.user_id,
                    "badge_key": awarded.badge.key,
                    "badge_name": awarded.badge.name,
                    "category": awarded.badge.category,
                    "rarity": awarded.badge.rarity,
                    "earned_at": awarded.earned_at.isoformat(),
                }),
            )
            sent += 1
        except Exception:
            logger.warning("Failed to publish badge_earned notification", exc_info=True)
    return sent

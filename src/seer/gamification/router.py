"""Badge API endpoints."""

from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.config import Settings, get_settings
from seer.database import get_session
from seer.db.models import User
from seer.gamification.badge_service import (
    award_badge,
    badge_snapshot,
    get_all_badges,
    get_awarded_badges,
    get_badge_by_key,
    get_badge_holders,
    get_known_badge_keys,
    get_user_badges,
    publish_badge_earned,
)
from seer.gamification.schemas import (
    AllBadgesResponse,
    AwardedBadgesResponse,
    BadgeHoldersResponse,
    BadgeResponse,
    ManualAwardRequest,
    ManualAwardResponse,
    TierSummary,
    UserBadgesResponse,
)
from seer.gamification.tiers import group_badges
from seer.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1", tags=["Badges"])


async def _require_user(db: AsyncSession, user_id: int) -> None:
    exists = (await db.execute(select(func.count()).select_from(User).where(User.id == user_id))).scalar_one()
    if not exists:
        raise HTTPException(status_code=404, detail="User not found")


def require_admin(
    x_admin_token: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> None:
    """Guard for admin endpoints: the X-Admin-Token header must match the configured token."""
    if not settings.admin_token or not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=403, detail="Admin token required")


# ── Public endpoints ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_session)):
    """Get all badge definitions."""
    return AllBadgesResponse(badges=[badge_snapshot(b) for b in await get_all_badges(db)])


@router.get("/badges/awarded", response_model=AwardedBadgesResponse)
async def list_awarded_badges(db: AsyncSession = Depends(get_session)):
    """Hall of fame: every badge earned at least once, with its first achiever."""
    return AwardedBadgesResponse(badges=await get_awarded_badges(db))


@router.get("/badges/{key}", response_model=BadgeResponse)
async def get_badge(key: str, db: AsyncSession = Depends(get_session)):
    badge = await get_badge_by_key(db, key)
    if badge is None:
        raise HTTPException(status_code=404, detail="Badge not found")
    return badge_snapshot(badge)


@router.get("/badges/{key}/holders", response_model=BadgeHoldersResponse)
async def list_badge_holders(key: str, db: AsyncSession = Depends(get_session)):
    found = await get_badge_holders(db, key)
    if found is None:
        raise HTTPException(status_code=404, detail="Badge not found")
    badge, holders = found
    return BadgeHoldersResponse(badge=badge_snapshot(badge), holders=holders, total=len(holders))


# ── User endpoints ──


@router.get("/users/{user_id}/badges", response_model=UserBadgesResponse)
async def list_user_badges(user_id: int, db: AsyncSession = Depends(get_session)):
    """Get a user's earned badges, newest first."""
    await _require_user(db, user_id)
    badges = await get_user_badges(db, user_id)
    return UserBadgesResponse(
        user_id=user_id,
        badges=badges,
        total_earned=len(badges),
        total_available=len(await get_all_badges(db)),
    )


@router.get("/users/{user_id}/badges/summary", response_model=TierSummary)
async def get_user_badge_summary(user_id: int, db: AsyncSession = Depends(get_session)):
    """Earned badges with tier groups collapsed to the best earned tier."""
    await _require_user(db, user_id)
    earned = [a.badge for a in await get_user_badges(db, user_id)]
    catalog = [badge_snapshot(b) for b in await get_all_badges(db)]
    return group_badges(earned, catalog, await get_known_badge_keys(db))


# ── Admin endpoints ──


@router.post("/admin/badges/award", response_model=ManualAwardResponse, dependencies=[Depends(require_admin)])
async def manual_award(
    body: ManualAwardRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_optional_redis),
):
    """Grant a badge by hand. Idempotent: re-awarding reports ``awarded=false``."""
    await _require_user(db, body.user_id)
    result = await award_badge(db, body.user_id, body.badge_key)
    if result is None:
        raise HTTPException(status_code=404, detail="Badge not found")
    if result.is_new:
        await publish_badge_earned(redis, [result.user_badge])
    return ManualAwardResponse(awarded=result.is_new, user_badge=result.user_badge)

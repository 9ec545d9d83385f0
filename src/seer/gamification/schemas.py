"""Pydantic models for badge records and badge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


# --- Badge ---


class BadgeResponse(BaseModel):
    id: int
    key: str
    name: str
    description: str
    requirement: str
    category: str
    rarity: str
    threshold: int | None = None


class AwardedBadge(BaseModel):
    """Detached snapshot of a ``user_badges`` row with its definition."""

    id: int
    user_id: int
    badge_id: int
    earned_at: datetime
    badge: BadgeResponse


class AllBadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class UserBadgesResponse(BaseModel):
    user_id: int
    badges: list[AwardedBadge]
    total_earned: int
    total_available: int


# --- Holders / hall of fame ---


class BadgeHolder(BaseModel):
    user_id: int
    username: str
    display_name: str | None = None
    earned_at: datetime


class BadgeHoldersResponse(BaseModel):
    badge: BadgeResponse
    holders: list[BadgeHolder]
    total: int


class HallOfFameEntry(BaseModel):
    badge: BadgeResponse
    first_achiever: BadgeHolder
    first_achieved_at: datetime
    total_achievers: int


class AwardedBadgesResponse(BaseModel):
    badges: list[HallOfFameEntry]


# --- Tier summary ---


class TierGroup(BaseModel):
    prefix: str
    badges: list[BadgeResponse]
    earned: list[BadgeResponse]
    highest_earned: BadgeResponse
    known_unearned_badges: list[BadgeResponse]


class TierSummary(BaseModel):
    groups: list[TierGroup]
    standalone: list[BadgeResponse]


# --- Admin ---


class ManualAwardRequest(BaseModel):
    user_id: int
    badge_key: str


class ManualAwardResponse(BaseModel):
    awarded: bool
    user_badge: AwardedBadge

"""Badges awarded when a round's results are published.

The round is loaded once into ``RoundRatingInfo`` records. Every check
below is a pure function over those records; only the bot lookups and the
underdog history touch the database again.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.config import get_settings
from seer.db.models import Prophecy, Round, User
from seer.gamification.badge_service import award_badges
from seer.gamification.catalog import ACCURACY_RATE
from seer.gamification.rules import guarded, qualifying_thresholds
from seer.gamification.schemas import AwardedBadge
from seer.gamification.stats import EXTREME_RATING, RatedOutcome, average, human_values, rater_accuracy

logger = logging.getLogger(__name__)

SPEEDRUN_WINDOW = timedelta(minutes=10)
MORNING_GLORY_WINDOW = timedelta(hours=24)
ROUND_ACCURACY_MIN_ACCEPTED = 5
OUTCOME_MIN_AVERAGE = 5
UNDERDOG_HISTORY = 2
UNDERDOG_TOP = 3

Placement = Literal["not_participated", "in_top3", "underdog"]


@dataclass(frozen=True)
class RoundRating:
    user_id: int
    value: int
    created_at: datetime
    is_bot: bool


@dataclass(frozen=True)
class RoundRatingInfo:
    """One prophecy of a round with all of its ratings."""

    prophecy_id: int
    creator_id: int
    created_at: datetime
    fulfilled: bool | None
    ratings: tuple[RoundRating, ...]
    average: float | None

    @classmethod
    def build(
        cls,
        prophecy_id: int,
        creator_id: int,
        created_at: datetime,
        fulfilled: bool | None,
        ratings: Sequence[RoundRating],
    ) -> RoundRatingInfo:
        ordered = tuple(sorted(ratings, key=lambda r: r.created_at))
        return cls(
            prophecy_id=prophecy_id,
            creator_id=creator_id,
            created_at=created_at,
            fulfilled=fulfilled,
            ratings=ordered,
            average=average(human_values(ordered)),
        )

    @property
    def resolved(self) -> bool:
        return self.fulfilled is not None

    @property
    def accepted(self) -> bool:
        """Resolved, and the community leaned "won't happen"."""
        return self.resolved and self.average is not None and self.average > 0


async def load_round_infos(db: AsyncSession, round_id: int) -> list[RoundRatingInfo]:
    result = await db.execute(
        select(Prophecy)
        .where(Prophecy.round_id == round_id)
        .order_by(Prophecy.created_at, Prophecy.id)
        .execution_options(populate_existing=True)
    )
    return [
        RoundRatingInfo.build(
            prophecy_id=p.id,
            creator_id=p.creator_id,
            created_at=p.created_at,
            fulfilled=p.fulfilled,
            ratings=[
                RoundRating(user_id=r.user_id, value=r.value, created_at=r.created_at, is_bot=r.user.is_bot)
                for r in p.ratings
            ],
        )
        for p in result.scalars().all()
    ]


async def find_user_id_by_username(db: AsyncSession, username: str) -> int | None:
    result = await db.execute(select(User.id).where(User.username == username))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Pure checks
# ---------------------------------------------------------------------------


def participants(infos: Sequence[RoundRatingInfo]) -> list[int]:
    """Creators plus human raters, in first-seen order."""
    seen: dict[int, None] = {}
    for info in infos:
        seen.setdefault(info.creator_id, None)
    for info in infos:
        for r in info.ratings:
            if not r.is_bot and r.value != 0:
                seen.setdefault(r.user_id, None)
    return list(seen)


def _ratings_by(infos: Sequence[RoundRatingInfo], user_id: int) -> list[tuple[RoundRatingInfo, RoundRating]]:
    return [(info, r) for info in infos for r in info.ratings if r.user_id == user_id and r.value != 0]


def round_accuracy(infos: Sequence[RoundRatingInfo], user_id: int) -> float:
    """Rater accuracy restricted to this round. Bots are not filtered here."""
    return rater_accuracy(RatedOutcome(value=r.value, fulfilled=info.fulfilled) for info, r in _ratings_by(infos, user_id))


def is_speedrunner(infos: Sequence[RoundRatingInfo], user_id: int) -> bool:
    times = [r.created_at for _, r in _ratings_by(infos, user_id) if not r.is_bot]
    if not times:
        return False
    return max(times) - min(times) < SPEEDRUN_WINDOW


def went_against_stream(infos: Sequence[RoundRatingInfo], user_id: int) -> bool:
    """Rated against the crowd's sign and turned out right at least once."""
    for info, r in _ratings_by(infos, user_id):
        if info.fulfilled is None or info.average is None:
            continue
        user_sign = 1 if r.value > 0 else -1
        crowd_sign = 1 if info.average > 0 else -1
        if user_sign != crowd_sign and (r.value < 0) == info.fulfilled:
            return True
    return False


def is_morning_glory(infos: Sequence[RoundRatingInfo], user_id: int) -> bool:
    for info, r in _ratings_by(infos, user_id):
        if r.is_bot:
            continue
        delay = r.created_at - info.created_at
        if timedelta(0) <= delay <= MORNING_GLORY_WINDOW:
            return True
    return False


def participant_badge_keys(
    infos: Sequence[RoundRatingInfo],
    user_id: int,
    skilled_accuracy: float | None,
    baseline_accuracy: float | None,
) -> list[str]:
    keys: list[str] = []
    accuracy = round_accuracy(infos, user_id)
    if skilled_accuracy is not None and accuracy > skilled_accuracy:
        keys.append("hidden_bot_beater")
    # Zero accuracy means no signal, which is not "worse than random".
    if baseline_accuracy is not None and 0 < accuracy < baseline_accuracy:
        keys.append("hidden_worse_than_random")
    if is_speedrunner(infos, user_id):
        keys.append("time_speedrunner")
    if went_against_stream(infos, user_id):
        keys.append("special_against_stream")
    if is_morning_glory(infos, user_id):
        keys.append("time_morning_glory")
    return keys


def outcome_badge_key(info: RoundRatingInfo) -> str | None:
    """Unicorn or party crasher for a prophecy the crowd doubted."""
    if info.fulfilled is None or info.average is None or info.average <= OUTCOME_MIN_AVERAGE:
        return None
    return "special_unicorn" if info.fulfilled else "special_party_crasher"


def is_controversial(info: RoundRatingInfo) -> bool:
    values = [r.value for r in info.ratings if not r.is_bot]
    return len(values) >= 2 and min(values) <= -EXTREME_RATING and max(values) >= EXTREME_RATING


def group_by_creator(infos: Sequence[RoundRatingInfo]) -> dict[int, list[RoundRatingInfo]]:
    grouped: dict[int, list[RoundRatingInfo]] = {}
    for info in infos:
        grouped.setdefault(info.creator_id, []).append(info)
    return grouped


def is_chaos_agent(creator_infos: Sequence[RoundRatingInfo]) -> bool:
    return (
        any(i.fulfilled is True for i in creator_infos)
        and any(i.fulfilled is False for i in creator_infos)
        and any(is_controversial(i) for i in creator_infos)
    )


def round_accuracy_rate(creator_infos: Sequence[RoundRatingInfo]) -> float | None:
    """Fulfilled share of accepted prophecies; None below the sample gate."""
    accepted = [i for i in creator_infos if i.accepted]
    if len(accepted) < ROUND_ACCURACY_MIN_ACCEPTED:
        return None
    return sum(1 for i in accepted if i.fulfilled) / len(accepted) * 100


def creator_scores(infos: Sequence[RoundRatingInfo]) -> dict[int, float]:
    """Sum of averages over each creator's fulfilled, positively rated prophecies."""
    scores: dict[int, float] = {}
    for info in infos:
        if info.fulfilled is not True or info.average is None or info.average <= 0:
            continue
        scores[info.creator_id] = scores.get(info.creator_id, 0.0) + info.average
    return scores


def top_creators(scores: dict[int, float], limit: int = UNDERDOG_TOP) -> list[int]:
    return [creator for creator, _ in sorted(scores.items(), key=lambda item: item[1], reverse=True)[:limit]]


def underdog_placement(infos: Sequence[RoundRatingInfo], user_id: int) -> Placement:
    if not any(info.creator_id == user_id for info in infos):
        return "not_participated"
    if user_id in top_creators(creator_scores(infos)):
        return "in_top3"
    return "underdog"


# ---------------------------------------------------------------------------
# Underdog history
# ---------------------------------------------------------------------------


async def is_underdog(db: AsyncSession, round_id: int, user_id: int) -> bool:
    """Outside the top 3 in each of the two previously published rounds."""
    published_at = (
        await db.execute(select(Round.results_published_at).where(Round.id == round_id))
    ).scalar_one_or_none()
    if published_at is None:
        return False

    prior_ids = (
        await db.execute(
            select(Round.id)
            .where(Round.results_published_at.is_not(None), Round.results_published_at < published_at)
            .order_by(Round.results_published_at.desc())
            .limit(UNDERDOG_HISTORY)
        )
    ).scalars().all()
    if len(prior_ids) < UNDERDOG_HISTORY:
        return False

    for prior_id in prior_ids:
        placement = underdog_placement(await load_round_infos(db, prior_id), user_id)
        if placement != "underdog":
            return False
    return True


async def _award_underdog(db: AsyncSession, round_id: int, winner_id: int) -> list[AwardedBadge]:
    if not await is_underdog(db, round_id, winner_id):
        return []
    return await award_badges(db, winner_id, ["special_underdog"])


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def award_round_completion_badges(
    db: AsyncSession,
    round_id: int,
    leaderboard: Sequence[int],
) -> list[AwardedBadge]:
    """Evaluate every round-completion rule for a just-published round."""
    infos = await load_round_infos(db, round_id)
    awarded: list[AwardedBadge] = []

    async def grant(user_id: int, key: str) -> None:
        awarded.extend(await guarded(db, f"{key}:{user_id}", award_badges(db, user_id, [key])))

    settings = get_settings()
    skilled_id = await find_user_id_by_username(db, settings.skilled_bot_username)
    baseline_id = await find_user_id_by_username(db, settings.baseline_bot_username)
    if skilled_id is None or baseline_id is None:
        logger.warning("Reference bots missing (skilled=%s, baseline=%s)", skilled_id, baseline_id)
    skilled_accuracy = round_accuracy(infos, skilled_id) if skilled_id is not None else None
    baseline_accuracy = round_accuracy(infos, baseline_id) if baseline_id is not None else None

    for user_id in participants(infos):
        for key in participant_badge_keys(infos, user_id, skilled_accuracy, baseline_accuracy):
            await grant(user_id, key)

    for info in infos:
        key = outcome_badge_key(info)
        if key is not None:
            await grant(info.creator_id, key)

    for creator_id, creator_infos in group_by_creator(infos).items():
        if is_chaos_agent(creator_infos):
            await grant(creator_id, "special_chaos_agent")
        rate = round_accuracy_rate(creator_infos)
        if rate is not None:
            for threshold in qualifying_thresholds(rate, ACCURACY_RATE):
                await grant(creator_id, ACCURACY_RATE.key_for(threshold))

    if leaderboard:
        awarded += await guarded(db, "underdog", _award_underdog(db, round_id, leaderboard[0]))

    logger.info("Round %s completion: %d new badge(s)", round_id, len(awarded))
    return awarded

"""Leaderboard position and champion badges, plus the creator ranking they use."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.db.models import Round
from seer.gamification.badge_service import award_badges
from seer.gamification.catalog import LEADERBOARD, LEADERBOARD_CHAMPION
from seer.gamification.round_rules import RoundRatingInfo, group_by_creator, load_round_infos
from seer.gamification.rules import award_threshold_badges, guarded
from seer.gamification.schemas import AwardedBadge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatorStanding:
    user_id: int
    total_score: float
    prophecies: int
    accepted: int
    fulfilled: int


def compute_creator_leaderboard(infos: Sequence[RoundRatingInfo]) -> list[CreatorStanding]:
    """Rank every creator of a round by the summed average of accepted, fulfilled prophecies.

    Ties keep the order in which creators first appear in the round.
    """
    standings = []
    for creator_id, creator_infos in group_by_creator(infos).items():
        accepted = [i for i in creator_infos if i.accepted]
        hits = [i for i in accepted if i.fulfilled]
        standings.append(CreatorStanding(
            user_id=creator_id,
            total_score=sum(i.average or 0.0 for i in hits),
            prophecies=len(creator_infos),
            accepted=len(accepted),
            fulfilled=len(hits),
        ))
    return sorted(standings, key=lambda s: s.total_score, reverse=True)


async def compute_round_leaderboard(db: AsyncSession, round_id: int) -> list[int]:
    """Creator ids of a round, best first."""
    return [s.user_id for s in compute_creator_leaderboard(await load_round_infos(db, round_id))]


async def count_consecutive_wins(db: AsyncSession, user_id: int, round_id: int) -> int:
    """First places in a row, walking back from ``round_id`` through published rounds."""
    published_at = (
        await db.execute(select(Round.results_published_at).where(Round.id == round_id))
    ).scalar_one_or_none()
    if published_at is None:
        return 0

    round_ids = (
        await db.execute(
            select(Round.id)
            .where(Round.results_published_at.is_not(None), Round.results_published_at <= published_at)
            .order_by(Round.results_published_at.desc())
        )
    ).scalars().all()

    wins = 0
    for rid in round_ids:
        board = await compute_round_leaderboard(db, rid)
        if not board or board[0] != user_id:
            break
        wins += 1
    return wins


async def award_leaderboard_badges(
    db: AsyncSession,
    leaderboard: Sequence[int],
    first_place_win_count: int | None = None,
) -> list[AwardedBadge]:
    """Position badges for the top three and champion tiers for the winner."""
    awarded: list[AwardedBadge] = []
    for index, position in enumerate(LEADERBOARD.thresholds):
        if index >= len(leaderboard):
            break
        key = LEADERBOARD.key_for(position)
        awarded += await guarded(db, key, award_badges(db, leaderboard[index], [key]))

    if leaderboard and first_place_win_count:
        awarded += await guarded(
            db,
            LEADERBOARD_CHAMPION.prefix,
            award_threshold_badges(db, leaderboard[0], first_place_win_count, LEADERBOARD_CHAMPION),
        )
    return awarded

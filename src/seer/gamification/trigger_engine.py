"""Badge trigger engine: maps one committed fact change to its rule sets."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.db.models import Prophecy, Rating, User
from seer.gamification import events
from seer.gamification.badge_service import publish_badge_earned
from seer.gamification.content import ContentClassifier, award_content_category_badges
from seer.gamification.leaderboard import (
    award_leaderboard_badges,
    compute_round_leaderboard,
    count_consecutive_wins,
)
from seer.gamification.round_rules import award_round_completion_badges, load_round_infos, participants
from seer.gamification.rules import (
    award_rating_pattern_badges,
    award_security_badges,
    check_and_award_badges,
    guarded,
)
from seer.gamification.schemas import AwardedBadge

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[list[AwardedBadge]]]


class TriggerEngine:
    """Evaluates badge rules for one event at a time."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object = None,
        classifier: ContentClassifier | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.classifier = classifier
        self._handlers: dict[str, Handler] = {
            events.PROPHECY_CREATED: self._on_prophecy_created,
            events.PROPHECY_RATED: self._on_prophecy_rated,
            events.PROPHECY_RESOLVED: self._on_prophecy_resolved,
            events.ROUND_RESULTS_PUBLISHED: self._on_round_results_published,
            events.PASSKEY_ADDED: self._on_passkey_added,
        }

    async def evaluate(self, stream: str, event_id: str, data: dict) -> list[AwardedBadge]:
        """Evaluate the rule sets for an event and notify about new badges.

        Returns the newly granted badges (may be empty).
        """
        handler = self._handlers.get(stream)
        if handler is None:
            logger.warning("No badge handler for stream %s (event %s)", stream, event_id)
            return []

        awarded = await handler(data)
        if awarded:
            await publish_badge_earned(self.redis, awarded)
            logger.info("Event %s on %s granted %d badge(s)", event_id, stream, len(awarded))
        return awarded

    async def _load_prophecy(self, data: dict) -> Prophecy | None:
        prophecy_id = int(data["prophecy_id"])
        prophecy = (await self.db.execute(select(Prophecy).where(Prophecy.id == prophecy_id))).scalar_one_or_none()
        if prophecy is None:
            logger.warning("Prophecy not found: %s", prophecy_id)
        return prophecy

    async def _on_prophecy_created(self, data: dict) -> list[AwardedBadge]:
        prophecy = await self._load_prophecy(data)
        if prophecy is None:
            return []
        creator_id, title, description = prophecy.creator_id, prophecy.title, prophecy.description

        awarded = await guarded(self.db, "cumulative", check_and_award_badges(self.db, creator_id))
        if self.classifier is not None:
            content = await award_content_category_badges(self.db, creator_id, title, description, self.classifier)
            awarded += content.badges
        return awarded

    async def _on_prophecy_rated(self, data: dict) -> list[AwardedBadge]:
        user_id = int(data["user_id"])
        return await guarded(self.db, "cumulative", check_and_award_badges(self.db, user_id))

    async def _on_prophecy_resolved(self, data: dict) -> list[AwardedBadge]:
        prophecy = await self._load_prophecy(data)
        if prophecy is None:
            return []
        prophecy_id, creator_id = prophecy.id, prophecy.creator_id

        awarded = await guarded(self.db, "cumulative", check_and_award_badges(self.db, creator_id))
        awarded += await guarded(self.db, "rating_patterns", award_rating_pattern_badges(self.db, prophecy_id))

        # Resolution changes every rater's accuracy.
        rater_ids = (
            await self.db.execute(
                select(Rating.user_id)
                .join(User, Rating.user_id == User.id)
                .where(Rating.prophecy_id == prophecy_id, User.is_bot.is_(False), Rating.value != 0)
            )
        ).scalars().all()
        for rater_id in rater_ids:
            if rater_id != creator_id:
                awarded += await guarded(self.db, "cumulative", check_and_award_badges(self.db, rater_id))
        return awarded

    async def _on_round_results_published(self, data: dict) -> list[AwardedBadge]:
        round_id = int(data["round_id"])
        leaderboard = [int(u) for u in data["leaderboard"]] if data.get("leaderboard") is not None else None
        if leaderboard is None:
            leaderboard = await compute_round_leaderboard(self.db, round_id)

        win_count = data.get("first_place_win_count")
        if win_count is None and leaderboard:
            win_count = await count_consecutive_wins(self.db, leaderboard[0], round_id)

        awarded = await guarded(
            self.db,
            "leaderboard",
            award_leaderboard_badges(self.db, leaderboard, int(win_count) if win_count is not None else None),
        )
        awarded += await guarded(self.db, "round_completion", award_round_completion_badges(self.db, round_id, leaderboard))

        # Participation in a published round feeds the rounds_* tiers.
        for user_id in participants(await load_round_infos(self.db, round_id)):
            awarded += await guarded(self.db, "cumulative", check_and_award_badges(self.db, user_id))
        return awarded

    async def _on_passkey_added(self, data: dict) -> list[AwardedBadge]:
        user_id = int(data["user_id"])
        return await guarded(self.db, "security", award_security_badges(self.db, user_id))

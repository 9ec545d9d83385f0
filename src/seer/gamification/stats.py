"""Per-user statistics derived from prophecy and rating facts.

Nothing here is persisted: every call recomputes from the store. A rating
value of 0 is the "not rated yet" placeholder and never counts.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seer.db.models import Prophecy, Rating, Round

EXTREME_RATING = 10


@dataclass(frozen=True)
class RatedOutcome:
    """A rating value paired with the rated prophecy's resolution."""

    value: int
    fulfilled: bool | None


@dataclass(frozen=True)
class UserStats:
    prophecies_created: int = 0
    prophecies_fulfilled: int = 0
    prophecies_resolved: int = 0
    ratings_given: int = 0
    ratings_on_resolved: int = 0
    rater_accuracy: float = 0.0
    rounds_participated: int = 0
    average_rating_given: float = 0.0
    max_ratings_given: int = 0
    min_ratings_given: int = 0

    @property
    def accuracy_rate(self) -> float:
        """Share of resolved own prophecies that came true, 0-100."""
        if self.prophecies_resolved == 0:
            return 0.0
        return self.prophecies_fulfilled / self.prophecies_resolved * 100


def predicts_fulfilled(value: int) -> bool:
    """Negative ratings say "will happen"."""
    return value < 0


def is_correct_rating(value: int, fulfilled: bool) -> bool:
    return predicts_fulfilled(value) == fulfilled


def rater_accuracy(ratings: Iterable[RatedOutcome]) -> float:
    """Percentage of non-zero ratings on resolved prophecies that called the outcome."""
    resolved = [r for r in ratings if r.value != 0 and r.fulfilled is not None]
    if not resolved:
        return 0.0
    correct = sum(1 for r in resolved if is_correct_rating(r.value, bool(r.fulfilled)))
    return correct / len(resolved) * 100


def human_values(ratings: Iterable) -> list[int]:
    """Values of ratings that count toward averages: human raters, non-zero."""
    return [r.value for r in ratings if not r.is_bot and r.value != 0]


def average(values: Sequence[int]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def compute_user_stats(
    prophecy_outcomes: Sequence[bool | None],
    ratings: Sequence[RatedOutcome],
    rounds_participated: int,
) -> UserStats:
    """Build ``UserStats`` from a user's own prophecy outcomes and given ratings."""
    given = [r for r in ratings if r.value != 0]
    values = [r.value for r in given]

    return UserStats(
        prophecies_created=len(prophecy_outcomes),
        prophecies_fulfilled=sum(1 for f in prophecy_outcomes if f is True),
        prophecies_resolved=sum(1 for f in prophecy_outcomes if f is not None),
        ratings_given=len(given),
        ratings_on_resolved=sum(1 for r in given if r.fulfilled is not None),
        rater_accuracy=rater_accuracy(given),
        rounds_participated=rounds_participated,
        average_rating_given=average(values) or 0.0,
        max_ratings_given=sum(1 for v in values if v == EXTREME_RATING),
        min_ratings_given=sum(1 for v in values if v == -EXTREME_RATING),
    )


async def load_user_stats(db: AsyncSession, user_id: int) -> UserStats:
    """Read a user's facts and aggregate them."""
    outcomes = (
        await db.execute(select(Prophecy.fulfilled).where(Prophecy.creator_id == user_id))
    ).scalars().all()

    rating_rows = await db.execute(
        select(Rating.value, Prophecy.fulfilled)
        .join(Prophecy, Rating.prophecy_id == Prophecy.id)
        .where(Rating.user_id == user_id)
    )
    ratings = [RatedOutcome(value=row.value, fulfilled=row.fulfilled) for row in rating_rows]

    created_rounds = await db.execute(
        select(Prophecy.round_id)
        .join(Round, Round.id == Prophecy.round_id)
        .where(Prophecy.creator_id == user_id, Round.results_published_at.is_not(None))
    )
    rated_rounds = await db.execute(
        select(Prophecy.round_id)
        .join(Rating, Rating.prophecy_id == Prophecy.id)
        .join(Round, Round.id == Prophecy.round_id)
        .where(Rating.user_id == user_id, Rating.value != 0, Round.results_published_at.is_not(None))
    )
    rounds = set(created_rounds.scalars().all()) | set(rated_rounds.scalars().all())

    return compute_user_stats(list(outcomes), ratings, len(rounds))

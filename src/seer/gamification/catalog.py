"""Compiled-in badge catalog.

The catalog is a constant table. ``seed_badges`` reconciles it into the
``badge_definitions`` table; nothing mutates it at runtime.

Every key is resolved once, at import, into a ``BadgeKind``: either a
``ThresholdGroup`` (a family sharing a key prefix and a numeric suffix) or a
``OneShotPattern``. Rule code looks kinds up in ``BADGE_KINDS`` instead of
re-parsing key strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union


class BadgeCategory(str, Enum):
    CREATOR = "CREATOR"
    ACCURACY = "ACCURACY"
    RATER = "RATER"
    ROUNDS = "ROUNDS"
    SOCIAL = "SOCIAL"
    LEADERBOARD = "LEADERBOARD"
    SPECIAL = "SPECIAL"
    HIDDEN = "HIDDEN"
    CONTENT = "CONTENT"
    SECURITY = "SECURITY"


class BadgeRarity(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    LEGENDARY = "LEGENDARY"


@dataclass(frozen=True)
class CatalogBadge:
    key: str
    name: str
    description: str
    requirement: str
    category: BadgeCategory
    rarity: BadgeRarity
    threshold: int | None = None


@dataclass(frozen=True)
class ThresholdGroup:
    """Badges ``prefix + threshold`` for each threshold.

    ``ascending`` is True when a lower threshold is the better tier
    (leaderboard positions); count-style groups are descending.
    """

    prefix: str
    ascending: bool
    thresholds: tuple[int, ...]

    def key_for(self, threshold: int) -> str:
        return f"{self.prefix}{threshold}"

    def keys(self) -> list[str]:
        return [self.key_for(t) for t in self.thresholds]


@dataclass(frozen=True)
class OneShotPattern:
    key: str


BadgeKind = Union[ThresholdGroup, OneShotPattern]


# ---------------------------------------------------------------------------
# Tier groups, most specific prefix first
# ---------------------------------------------------------------------------

LEADERBOARD_CHAMPION = ThresholdGroup("leaderboard_champion_", ascending=False, thresholds=(3, 5))
LEADERBOARD = ThresholdGroup("leaderboard_", ascending=True, thresholds=(1, 2, 3))
RATER_ACCURACY = ThresholdGroup("rater_accuracy_", ascending=False, thresholds=(60, 70, 80, 90))
RATER = ThresholdGroup("rater_", ascending=False, thresholds=(10, 30, 75, 150, 300))
ACCURACY_RATE = ThresholdGroup("accuracy_rate_", ascending=False, thresholds=(50, 60, 70, 80, 90))
FULFILLED = ThresholdGroup("fulfilled_", ascending=False, thresholds=(1, 5, 10, 20, 35, 50))
CREATOR = ThresholdGroup("creator_", ascending=False, thresholds=(1, 5, 15, 30, 50, 100))
ROUNDS = ThresholdGroup("rounds_", ascending=False, thresholds=(1, 5, 15, 30, 50))

TIER_GROUPS: tuple[ThresholdGroup, ...] = (
    LEADERBOARD_CHAMPION,
    LEADERBOARD,
    RATER_ACCURACY,
    RATER,
    ACCURACY_RATE,
    FULFILLED,
    CREATOR,
    ROUNDS,
)

_NUMERIC_SUFFIX = re.compile(r"^\d+$")


def match_tier_group(key: str) -> tuple[ThresholdGroup, int] | None:
    """Return ``(group, threshold)`` for a tiered key, or None for standalone keys."""
    for group in TIER_GROUPS:
        if not key.startswith(group.prefix):
            continue
        suffix = key[len(group.prefix):]
        if _NUMERIC_SUFFIX.match(suffix):
            return group, int(suffix)
    return None


def resolve_kind(key: str) -> BadgeKind:
    match = match_tier_group(key)
    if match is None:
        return OneShotPattern(key)
    return match[0]


# ---------------------------------------------------------------------------
# Catalog table
# ---------------------------------------------------------------------------

_C = BadgeCategory
_R = BadgeRarity

BADGE_CATALOG: tuple[CatalogBadge, ...] = (
    # Creator
    CatalogBadge("creator_1", "First Vision", "Published your first prophecy", "Create 1 prophecy", _C.CREATOR, _R.BRONZE, 1),
    CatalogBadge("creator_5", "Fortune Teller", "Five prophecies and counting", "Create 5 prophecies", _C.CREATOR, _R.BRONZE, 5),
    CatalogBadge("creator_15", "Soothsayer", "A steady stream of visions", "Create 15 prophecies", _C.CREATOR, _R.SILVER, 15),
    CatalogBadge("creator_30", "Seer", "Thirty glimpses into the future", "Create 30 prophecies", _C.CREATOR, _R.SILVER, 30),
    CatalogBadge("creator_50", "Oracle", "Fifty prophecies cast", "Create 50 prophecies", _C.CREATOR, _R.GOLD, 50),
    CatalogBadge("creator_100", "Nostradamus", "A hundred prophecies", "Create 100 prophecies", _C.CREATOR, _R.LEGENDARY, 100),
    # Fulfilled
    CatalogBadge("fulfilled_1", "Lucky Strike", "Your first prophecy came true", "1 fulfilled prophecy", _C.ACCURACY, _R.BRONZE, 1),
    CatalogBadge("fulfilled_5", "Sharp Eye", "Five prophecies came true", "5 fulfilled prophecies", _C.ACCURACY, _R.BRONZE, 5),
    CatalogBadge("fulfilled_10", "Clairvoyant", "Ten prophecies came true", "10 fulfilled prophecies", _C.ACCURACY, _R.SILVER, 10),
    CatalogBadge("fulfilled_20", "Visionary", "Twenty prophecies came true", "20 fulfilled prophecies", _C.ACCURACY, _R.SILVER, 20),
    CatalogBadge("fulfilled_35", "Prophet", "Thirty-five prophecies came true", "35 fulfilled prophecies", _C.ACCURACY, _R.GOLD, 35),
    CatalogBadge("fulfilled_50", "Time Traveller", "Fifty prophecies came true", "50 fulfilled prophecies", _C.ACCURACY, _R.LEGENDARY, 50),
    # Lifetime / per-round accuracy rate
    CatalogBadge("accuracy_rate_50", "Coin Flipper", "Half of your resolved prophecies came true", "50% accuracy rate", _C.ACCURACY, _R.BRONZE, 50),
    CatalogBadge("accuracy_rate_60", "Informed Guess", "Better than chance", "60% accuracy rate", _C.ACCURACY, _R.SILVER, 60),
    CatalogBadge("accuracy_rate_70", "Trend Reader", "Seven out of ten", "70% accuracy rate", _C.ACCURACY, _R.SILVER, 70),
    CatalogBadge("accuracy_rate_80", "Crystal Ball", "Eight out of ten", "80% accuracy rate", _C.ACCURACY, _R.GOLD, 80),
    CatalogBadge("accuracy_rate_90", "Omniscient", "Nine out of ten", "90% accuracy rate", _C.ACCURACY, _R.LEGENDARY, 90),
    # Rater
    CatalogBadge("rater_10", "Critic", "Rated ten prophecies", "Give 10 ratings", _C.RATER, _R.BRONZE, 10),
    CatalogBadge("rater_30", "Reviewer", "Rated thirty prophecies", "Give 30 ratings", _C.RATER, _R.BRONZE, 30),
    CatalogBadge("rater_75", "Judge", "Rated seventy-five prophecies", "Give 75 ratings", _C.RATER, _R.SILVER, 75),
    CatalogBadge("rater_150", "Arbiter", "Rated a hundred and fifty prophecies", "Give 150 ratings", _C.RATER, _R.GOLD, 150),
    CatalogBadge("rater_300", "Supreme Court", "Rated three hundred prophecies", "Give 300 ratings", _C.RATER, _R.LEGENDARY, 300),
    CatalogBadge("rater_accuracy_60", "Good Instinct", "Your ratings are right more often than not", "60% rater accuracy", _C.RATER, _R.SILVER, 60),
    CatalogBadge("rater_accuracy_70", "Keen Judge", "Seven of ten ratings called it", "70% rater accuracy", _C.RATER, _R.SILVER, 70),
    CatalogBadge("rater_accuracy_80", "Human Oracle", "Eight of ten ratings called it", "80% rater accuracy", _C.RATER, _R.GOLD, 80),
    CatalogBadge("rater_accuracy_90", "Infallible", "Nine of ten ratings called it", "90% rater accuracy", _C.RATER, _R.LEGENDARY, 90),
    # Rounds
    CatalogBadge("rounds_1", "Newcomer", "Took part in a published round", "Participate in 1 round", _C.ROUNDS, _R.BRONZE, 1),
    CatalogBadge("rounds_5", "Regular", "Five rounds played", "Participate in 5 rounds", _C.ROUNDS, _R.BRONZE, 5),
    CatalogBadge("rounds_15", "Veteran", "Fifteen rounds played", "Participate in 15 rounds", _C.ROUNDS, _R.SILVER, 15),
    CatalogBadge("rounds_30", "Stalwart", "Thirty rounds played", "Participate in 30 rounds", _C.ROUNDS, _R.GOLD, 30),
    CatalogBadge("rounds_50", "Institution", "Fifty rounds played", "Participate in 50 rounds", _C.ROUNDS, _R.LEGENDARY, 50),
    # Leaderboard
    CatalogBadge("leaderboard_1", "Champion", "Won a round", "Place 1st in a round", _C.LEADERBOARD, _R.GOLD, 1),
    CatalogBadge("leaderboard_2", "Runner-up", "Second place in a round", "Place 2nd in a round", _C.LEADERBOARD, _R.SILVER, 2),
    CatalogBadge("leaderboard_3", "Podium", "Third place in a round", "Place 3rd in a round", _C.LEADERBOARD, _R.BRONZE, 3),
    CatalogBadge("leaderboard_champion_3", "Hat Trick", "Won three rounds in a row", "3 consecutive wins", _C.LEADERBOARD, _R.GOLD, 3),
    CatalogBadge("leaderboard_champion_5", "Dynasty", "Won five rounds in a row", "5 consecutive wins", _C.LEADERBOARD, _R.LEGENDARY, 5),
    # Social
    CatalogBadge("social_friendly", "Optimist", "You believe in everyone's prophecies", "Average rating below -5 after 20 ratings", _C.SOCIAL, _R.SILVER),
    CatalogBadge("social_skeptic", "Skeptic", "Hard to convince", "Average rating above 2 after 20 ratings", _C.SOCIAL, _R.SILVER),
    CatalogBadge("social_neutral", "Switzerland", "Perfectly balanced", "Average rating between -1 and 1 after 30 ratings", _C.SOCIAL, _R.GOLD),
    CatalogBadge("social_generous", "Doubting Thomas", "Handed out the maximum score many times", "Give +10 ten times", _C.SOCIAL, _R.BRONZE),
    CatalogBadge("social_ruthless", "True Believer", "Handed out the minimum score many times", "Give -10 ten times", _C.SOCIAL, _R.BRONZE),
    # Special
    CatalogBadge("special_unicorn", "Unicorn", "Nobody believed it, and it happened", "Fulfilled prophecy with average rating above 5", _C.SPECIAL, _R.LEGENDARY),
    CatalogBadge("special_party_crasher", "Party Crasher", "Bold call that the crowd saw through", "Unfulfilled prophecy with average rating above 5", _C.SPECIAL, _R.BRONZE),
    CatalogBadge("special_against_stream", "Against the Stream", "Went against the crowd and was right", "Correct rating opposite to the average", _C.SPECIAL, _R.SILVER),
    CatalogBadge("special_chaos_agent", "Chaos Agent", "Mixed outcomes and a divisive prophecy in one round", "Fulfilled, unfulfilled and controversial prophecies in one round", _C.SPECIAL, _R.GOLD),
    CatalogBadge("special_underdog", "Underdog", "Came from nowhere to win the round", "Win a round after missing the top 3 twice", _C.SPECIAL, _R.GOLD),
    CatalogBadge("special_controversial", "Lightning Rod", "Your prophecy split the community", "Ratings of both -10 and +10 on one prophecy", _C.SPECIAL, _R.SILVER),
    CatalogBadge("special_unanimous", "Consensus", "Everybody agreed on your prophecy", "More than 5 ratings within 4 points", _C.SPECIAL, _R.SILVER),
    CatalogBadge("special_passkey_pioneer", "Passkey Pioneer", "Secured your account with a passkey", "Register a passkey", _C.SECURITY, _R.BRONZE),
    CatalogBadge("time_speedrunner", "Speedrunner", "Rated a whole round in a hurry", "All ratings of a round within 10 minutes", _C.SPECIAL, _R.BRONZE),
    CatalogBadge("time_morning_glory", "Early Bird", "Rated a prophecy on its first day", "Rate within 24 hours of creation", _C.SPECIAL, _R.BRONZE),
    # Hidden
    CatalogBadge("hidden_bot_beater", "Bot Beater", "Out-predicted the skilled bot", "Round accuracy above the skilled bot", _C.HIDDEN, _R.GOLD),
    CatalogBadge("hidden_worse_than_random", "Worse Than Random", "The random bot did better", "Round accuracy below the baseline bot", _C.HIDDEN, _R.BRONZE),
    # Content
    CatalogBadge("content_sexy", "Spicy", "Prophesied about romance", "Prophecy classified as romance", _C.CONTENT, _R.BRONZE),
    CatalogBadge("content_morbid", "Doom Sayer", "Prophesied about dark matters", "Prophecy classified as morbid", _C.CONTENT, _R.BRONZE),
    CatalogBadge("content_sport", "Sports Pundit", "Prophesied about sports", "Prophecy classified as sport", _C.CONTENT, _R.BRONZE),
    CatalogBadge("content_environment", "Weather Witch", "Prophesied about nature and climate", "Prophecy classified as environment", _C.CONTENT, _R.BRONZE),
    CatalogBadge("content_science", "Futurist", "Prophesied about science and tech", "Prophecy classified as science", _C.CONTENT, _R.BRONZE),
    CatalogBadge("content_finance", "Market Mystic", "Prophesied about money and markets", "Prophecy classified as finance", _C.CONTENT, _R.BRONZE),
)

CATALOG_BY_KEY: dict[str, CatalogBadge] = {badge.key: badge for badge in BADGE_CATALOG}


def _resolve_catalog() -> dict[str, BadgeKind]:
    kinds: dict[str, BadgeKind] = {}
    for badge in BADGE_CATALOG:
        kind = resolve_kind(badge.key)
        if isinstance(kind, ThresholdGroup):
            threshold = int(badge.key[len(kind.prefix):])
            if badge.threshold != threshold or threshold not in kind.thresholds:
                msg = f"Catalog entry {badge.key} does not match tier group {kind.prefix}"
                raise ValueError(msg)
        elif badge.threshold is not None:
            msg = f"One-shot badge {badge.key} must not carry a threshold"
            raise ValueError(msg)
        kinds[badge.key] = kind

    for group in TIER_GROUPS:
        missing = [key for key in group.keys() if key not in kinds]
        if missing:
            msg = f"Tier group {group.prefix} is missing catalog entries: {missing}"
            raise ValueError(msg)
    return kinds


BADGE_KINDS: dict[str, BadgeKind] = _resolve_catalog()


def get_definition(key: str) -> CatalogBadge | None:
    return CATALOG_BY_KEY.get(key)


def kind_of(key: str) -> BadgeKind:
    """Resolved kind for a catalog key; unknown keys are parsed on the fly."""
    return BADGE_KINDS.get(key) or resolve_kind(key)

"""Unit tests for the badge award primitive, read models and notifications."""

import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from seer.db.models import UserBadge
from seer.gamification import badge_service
from seer.gamification.badge_service import (
    BADGE_EARNED_CHANNEL,
    award_badge,
    award_badges,
    get_all_badges,
    get_awarded_badges,
    get_badge_by_key,
    get_badge_holders,
    get_known_badge_keys,
    get_user_badges,
    publish_badge_earned,
)
from seer.gamification.catalog import BADGE_CATALOG
from seer.gamification.seed import seed_badges


async def _count_user_badges(db, user_id: int) -> int:
    return (
        await db.execute(select(func.count()).select_from(UserBadge).where(UserBadge.user_id == user_id))
    ).scalar_one()


class TestSeed:
    """Catalog reconciliation."""

    async def test_seeds_whole_catalog(self, seeded_db):
        badges = await get_all_badges(seeded_db)
        assert len(badges) == len(BADGE_CATALOG)
        assert [b.key for b in badges] == [b.key for b in BADGE_CATALOG]

    async def test_reseed_is_idempotent(self, seeded_db):
        assert await seed_badges(seeded_db) == len(BADGE_CATALOG)
        assert len(await get_all_badges(seeded_db)) == len(BADGE_CATALOG)

    async def test_stores_plain_strings(self, seeded_db):
        badge = await get_badge_by_key(seeded_db, "leaderboard_1")
        assert badge.category == "LEADERBOARD"
        assert badge.rarity == "GOLD"
        assert badge.threshold == 1


class TestAwardBadge:
    """award_badge is idempotent and reports whether it granted."""

    async def test_first_award_is_new(self, facts):
        user = await facts.user()
        result = await award_badge(facts.db, user.id, "creator_1")
        assert result is not None
        assert result.is_new is True
        assert result.user_badge.badge.key == "creator_1"
        assert result.user_badge.user_id == user.id

    async def test_second_award_is_not_new(self, facts):
        user = await facts.user()
        first = await award_badge(facts.db, user.id, "creator_1")
        second = await award_badge(facts.db, user.id, "creator_1")
        assert second.is_new is False
        assert second.user_badge.id == first.user_badge.id
        assert await _count_user_badges(facts.db, user.id) == 1

    async def test_unknown_key(self, facts):
        user = await facts.user()
        assert await award_badge(facts.db, user.id, "not_a_badge") is None
        assert await _count_user_badges(facts.db, user.id) == 0

    async def test_unseeded_key(self, db_session):
        assert await award_badge(db_session, 1, "creator_1") is None

    async def test_lost_race_is_not_new(self, facts, monkeypatch):
        """Another writer inserts between the existence check and our insert."""
        user = await facts.user()
        await award_badge(facts.db, user.id, "creator_1")

        real_get = badge_service.get_user_badge
        calls = {"n": 0}

        async def miss_once(db, user_id, badge_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await real_get(db, user_id, badge_id)

        monkeypatch.setattr(badge_service, "get_user_badge", miss_once)
        result = await award_badge(facts.db, user.id, "creator_1")
        assert result is not None
        assert result.is_new is False
        assert await _count_user_badges(facts.db, user.id) == 1

    async def test_award_badges_returns_only_new(self, facts):
        user = await facts.user()
        await award_badge(facts.db, user.id, "creator_1")
        granted = await award_badges(facts.db, user.id, ["creator_1", "creator_5", "bogus"])
        assert [g.badge.key for g in granted] == ["creator_5"]


class TestReadModels:
    async def test_user_badges_newest_first(self, facts):
        user = await facts.user()
        await award_badges(facts.db, user.id, ["creator_1", "creator_5", "fulfilled_1"])
        badges = await get_user_badges(facts.db, user.id)
        assert [b.badge.key for b in badges] == ["fulfilled_1", "creator_5", "creator_1"]

    async def test_known_keys(self, facts):
        alice = await facts.user("alice")
        bob = await facts.user("bob")
        await award_badges(facts.db, alice.id, ["creator_1"])
        await award_badges(facts.db, bob.id, ["creator_1", "rater_10"])
        assert await get_known_badge_keys(facts.db) == {"creator_1", "rater_10"}

    async def test_holders_in_earn_order(self, facts):
        alice = await facts.user("alice")
        bob = await facts.user("bob")
        await award_badges(facts.db, bob.id, ["creator_1"])
        await award_badges(facts.db, alice.id, ["creator_1"])

        badge, holders = await get_badge_holders(facts.db, "creator_1")
        assert badge.key == "creator_1"
        assert [h.username for h in holders] == ["bob", "alice"]

    async def test_holders_unknown_badge(self, seeded_db):
        assert await get_badge_holders(seeded_db, "missing") is None

    async def test_hall_of_fame(self, facts):
        alice = await facts.user("alice")
        bob = await facts.user("bob")
        await award_badges(facts.db, alice.id, ["creator_1"])
        await award_badges(facts.db, bob.id, ["rater_10", "creator_1"])

        entries = await get_awarded_badges(facts.db)
        by_key = {e.badge.key: e for e in entries}
        assert set(by_key) == {"creator_1", "rater_10"}
        assert by_key["creator_1"].first_achiever.username == "alice"
        assert by_key["creator_1"].total_achievers == 2
        assert by_key["rater_10"].total_achievers == 1
        assert entries[0].badge.key == "creator_1"


class TestPublishBadgeEarned:
    async def test_publishes_one_message_per_badge(self, facts, redis_mock):
        user = await facts.user()
        granted = await award_badges(facts.db, user.id, ["creator_1", "creator_5"])

        assert await publish_badge_earned(redis_mock, granted) == 2
        channel, payload = redis_mock.publish.await_args_list[0].args
        assert channel == BADGE_EARNED_CHANNEL
        message = json.loads(payload)
        assert message["user_id"] == user.id
        assert message["badge_key"] == "creator_1"
        assert message["rarity"] == "BRONZE"

    async def test_no_redis(self, facts):
        user = await facts.user()
        granted = await award_badges(facts.db, user.id, ["creator_1"])
        assert await publish_badge_earned(None, granted) == 0

    async def test_publish_failure_is_swallowed(self, facts):
        user = await facts.user()
        granted = await award_badges(facts.db, user.id, ["creator_1", "creator_5"])
        redis = AsyncMock()
        redis.publish = AsyncMock(side_effect=[ConnectionError("down"), 1])
        assert await publish_badge_earned(redis, granted) == 1


@pytest.mark.asyncio
async def test_badge_lookup_by_key(seeded_db):
    badge = await get_badge_by_key(seeded_db, "special_unicorn")
    assert badge is not None
    assert badge.name == "Unicorn"

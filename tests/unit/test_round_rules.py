"""Unit tests for round-completion badge rules."""

from datetime import datetime, timedelta

from seer.gamification.badge_service import get_user_badges
from seer.gamification.round_rules import (
    RoundRating,
    RoundRatingInfo,
    award_round_completion_badges,
    creator_scores,
    is_chaos_agent,
    is_controversial,
    is_morning_glory,
    is_speedrunner,
    is_underdog,
    outcome_badge_key,
    participant_badge_keys,
    participants,
    round_accuracy,
    round_accuracy_rate,
    top_creators,
    underdog_placement,
    went_against_stream,
)

BASE = datetime(2026, 3, 2, 12, 0)


def make_info(
    prophecy_id: int,
    creator_id: int,
    fulfilled: bool | None,
    ratings: list[tuple[int, int]] | None = None,
    minutes: list[int] | None = None,
    bots: set[int] | None = None,
) -> RoundRatingInfo:
    """``ratings`` are (user_id, value); ``minutes`` are offsets from the prophecy's creation."""
    ratings = ratings or []
    minutes = minutes or [60 * (i + 1) for i in range(len(ratings))]
    bots = bots or set()
    return RoundRatingInfo.build(
        prophecy_id=prophecy_id,
        creator_id=creator_id,
        created_at=BASE,
        fulfilled=fulfilled,
        ratings=[
            RoundRating(user_id=u, value=v, created_at=BASE + timedelta(minutes=m), is_bot=u in bots)
            for (u, v), m in zip(ratings, minutes)
        ],
    )


async def _keys(db, user_id: int) -> set[str]:
    return {b.badge.key for b in await get_user_badges(db, user_id)}


class TestRoundRatingInfo:
    def test_average_excludes_bots_and_zeros(self):
        info = make_info(1, 100, True, [(1, 4), (2, 0), (3, 8), (99, -10)], bots={99})
        assert info.average == 6

    def test_accepted_needs_positive_average(self):
        assert make_info(1, 100, True, [(1, 3)]).accepted is True
        assert make_info(1, 100, True, [(1, -3)]).accepted is False
        assert make_info(1, 100, None, [(1, 3)]).accepted is False
        assert make_info(1, 100, False, []).accepted is False


class TestParticipants:
    def test_creators_and_human_raters(self):
        infos = [
            make_info(1, 100, True, [(1, 4), (2, 0), (99, 5)], bots={99}),
            make_info(2, 101, False, [(3, -2)]),
        ]
        assert participants(infos) == [100, 101, 1, 3]


class TestRoundAccuracyRate:
    """Per-round accuracy of accepted prophecies, gated at five."""

    def test_three_accepted_is_below_gate(self):
        infos = [make_info(i, 100, True, [(1, 5)]) for i in range(3)]
        assert round_accuracy_rate(infos) is None

    def test_five_accepted(self):
        infos = [make_info(i, 100, i != 0, [(1, 5)]) for i in range(5)]
        assert round_accuracy_rate(infos) == 80.0

    def test_unaccepted_do_not_count(self):
        infos = [make_info(i, 100, True, [(1, 5)]) for i in range(5)]
        infos.append(make_info(9, 100, False, [(1, -5)]))
        assert round_accuracy_rate(infos) == 100.0


class TestSpeedrunner:
    def test_within_ten_minutes(self):
        infos = [make_info(1, 100, None, [(1, 3)], [0]), make_info(2, 100, None, [(1, 4)], [9])]
        assert is_speedrunner(infos, 1) is True

    def test_too_slow(self):
        infos = [make_info(1, 100, None, [(1, 3)], [0]), make_info(2, 100, None, [(1, 4)], [10])]
        assert is_speedrunner(infos, 1) is False

    def test_never_rated(self):
        assert is_speedrunner([make_info(1, 100, None)], 1) is False


class TestAgainstTheStream:
    def test_lone_believer_was_right(self):
        info = make_info(1, 100, True, [(1, -5), (2, 8), (3, 9)])
        assert went_against_stream([info], 1) is True
        assert went_against_stream([info], 2) is False

    def test_lone_believer_was_wrong(self):
        info = make_info(1, 100, False, [(1, -5), (2, 8), (3, 9)])
        assert went_against_stream([info], 1) is False

    def test_unresolved(self):
        info = make_info(1, 100, None, [(1, -5), (2, 8), (3, 9)])
        assert went_against_stream([info], 1) is False


class TestMorningGlory:
    def test_within_a_day(self):
        assert is_morning_glory([make_info(1, 100, None, [(1, 3)], [23 * 60])], 1) is True

    def test_after_a_day(self):
        assert is_morning_glory([make_info(1, 100, None, [(1, 3)], [25 * 60])], 1) is False


class TestOutcomeBadges:
    def test_unicorn(self):
        assert outcome_badge_key(make_info(1, 100, True, [(1, 6), (2, 7)])) == "special_unicorn"

    def test_party_crasher(self):
        assert outcome_badge_key(make_info(1, 100, False, [(1, 6), (2, 7)])) == "special_party_crasher"

    def test_average_must_exceed_five(self):
        assert outcome_badge_key(make_info(1, 100, True, [(1, 5), (2, 5)])) is None

    def test_unresolved(self):
        assert outcome_badge_key(make_info(1, 100, None, [(1, 9)])) is None


class TestChaosAgent:
    def test_controversial_needs_both_extremes(self):
        assert is_controversial(make_info(1, 100, True, [(1, -10), (2, 10)])) is True
        assert is_controversial(make_info(1, 100, True, [(1, -10), (2, 9)])) is False

    def test_bot_extremes_ignored(self):
        info = make_info(1, 100, True, [(1, -10), (99, 10)], bots={99})
        assert is_controversial(info) is False

    def test_mixed_outcomes_and_controversy(self):
        infos = [
            make_info(1, 100, True, [(1, 3)]),
            make_info(2, 100, False, [(1, -10), (2, 10)]),
        ]
        assert is_chaos_agent(infos) is True

    def test_no_controversy(self):
        infos = [make_info(1, 100, True, [(1, 3)]), make_info(2, 100, False, [(1, 4)])]
        assert is_chaos_agent(infos) is False


class TestBotComparison:
    def test_beats_skilled_bot(self):
        infos = [
            make_info(1, 100, True, [(1, -3), (99, 5)], bots={99}),
            make_info(2, 100, False, [(1, 4), (99, 6)], bots={99}),
        ]
        skilled = round_accuracy(infos, 99)
        assert skilled == 50.0
        keys = participant_badge_keys(infos, 1, skilled_accuracy=skilled, baseline_accuracy=None)
        assert "hidden_bot_beater" in keys

    def test_worse_than_random(self):
        infos = [
            make_info(1, 100, True, [(1, -3), (98, -5)], bots={98}),
            make_info(2, 100, False, [(1, -4), (98, 6)], bots={98}),
        ]
        keys = participant_badge_keys(infos, 1, skilled_accuracy=None, baseline_accuracy=round_accuracy(infos, 98))
        assert "hidden_worse_than_random" in keys

    def test_zero_accuracy_is_not_worse_than_random(self):
        infos = [make_info(1, 100, True, [(1, 3), (98, -5)], bots={98})]
        keys = participant_badge_keys(infos, 1, skilled_accuracy=None, baseline_accuracy=100.0)
        assert "hidden_worse_than_random" not in keys

    def test_missing_bots_skip_comparisons(self):
        infos = [make_info(1, 100, True, [(1, -3)])]
        keys = participant_badge_keys(infos, 1, skilled_accuracy=None, baseline_accuracy=None)
        assert "hidden_bot_beater" not in keys
        assert "hidden_worse_than_random" not in keys


class TestUnderdogPlacement:
    def test_scores_only_fulfilled_positive(self):
        infos = [
            make_info(1, 100, True, [(1, 4)]),
            make_info(2, 100, False, [(1, 8)]),
            make_info(3, 101, True, [(1, -4)]),
        ]
        assert creator_scores(infos) == {100: 4.0}

    def test_top_three(self):
        assert top_creators({1: 5.0, 2: 9.0, 3: 1.0, 4: 7.0}) == [2, 4, 1]

    def test_placements(self):
        infos = [
            make_info(1, 100, True, [(1, 4)]),
            make_info(2, 101, False, [(1, 8)]),
        ]
        assert underdog_placement(infos, 100) == "in_top3"
        assert underdog_placement(infos, 101) == "underdog"
        assert underdog_placement(infos, 102) == "not_participated"


async def _scored(facts, round_, creator, rater, fulfilled: bool, value: int = 5):
    p = await facts.prophecy(round_, creator, fulfilled=fulfilled)
    await facts.rating(p, rater, value)
    return p


class TestUnderdogHistory:
    """Two previously published rounds outside the top three."""

    async def test_two_rounds_outside_top_three(self, facts):
        dave = await facts.user("dave")
        rater = await facts.user("rater")
        rivals = [await facts.user(f"rival{i}") for i in range(3)]
        r1 = await facts.round(published_at=facts.t0 + timedelta(days=10))
        r2 = await facts.round(published_at=facts.t0 + timedelta(days=20))
        r3 = await facts.round(published_at=facts.t0 + timedelta(days=30))
        for r in (r1, r2):
            await _scored(facts, r, dave, rater, fulfilled=False)
            for rival in rivals:
                await _scored(facts, r, rival, rater, fulfilled=True)
        await _scored(facts, r3, dave, rater, fulfilled=True)

        assert await is_underdog(facts.db, r3.id, dave.id) is True

    async def test_top_three_once_is_not_underdog(self, facts):
        dave = await facts.user("dave")
        rater = await facts.user("rater")
        rivals = [await facts.user(f"rival{i}") for i in range(3)]
        r1 = await facts.round(published_at=facts.t0 + timedelta(days=10))
        r2 = await facts.round(published_at=facts.t0 + timedelta(days=20))
        r3 = await facts.round(published_at=facts.t0 + timedelta(days=30))
        await _scored(facts, r1, dave, rater, fulfilled=True)
        await _scored(facts, r2, dave, rater, fulfilled=False)
        for rival in rivals:
            await _scored(facts, r2, rival, rater, fulfilled=True)
        await _scored(facts, r3, dave, rater, fulfilled=True)

        assert await is_underdog(facts.db, r3.id, dave.id) is False

    async def test_needs_two_prior_rounds(self, facts):
        dave = await facts.user("dave")
        rater = await facts.user("rater")
        rivals = [await facts.user(f"rival{i}") for i in range(3)]
        r1 = await facts.round(published_at=facts.t0 + timedelta(days=10))
        r2 = await facts.round(published_at=facts.t0 + timedelta(days=20))
        await _scored(facts, r1, dave, rater, fulfilled=False)
        for rival in rivals:
            await _scored(facts, r1, rival, rater, fulfilled=True)
        await _scored(facts, r2, dave, rater, fulfilled=True)

        assert await is_underdog(facts.db, r2.id, dave.id) is False

    async def test_absent_from_prior_round(self, facts):
        dave = await facts.user("dave")
        rater = await facts.user("rater")
        other = await facts.user("other")
        r1 = await facts.round(published_at=facts.t0 + timedelta(days=10))
        r2 = await facts.round(published_at=facts.t0 + timedelta(days=20))
        r3 = await facts.round(published_at=facts.t0 + timedelta(days=30))
        await _scored(facts, r1, other, rater, fulfilled=True)
        await _scored(facts, r2, dave, rater, fulfilled=False)
        await _scored(facts, r3, dave, rater, fulfilled=True)

        assert await is_underdog(facts.db, r3.id, dave.id) is False


class TestAwardRoundCompletion:
    """End-to-end round evaluation against the database."""

    async def test_outcome_and_accuracy_badges(self, facts):
        creator = await facts.user("creator")
        raters = [await facts.user() for _ in range(2)]
        r = await facts.round(published_at=facts.t0 + timedelta(days=90))
        for i in range(5):
            p = await facts.prophecy(r, creator, fulfilled=i < 4)
            for rater in raters:
                await facts.rating(p, rater, 6)

        await award_round_completion_badges(facts.db, r.id, [creator.id])

        keys = await _keys(facts.db, creator.id)
        assert {"special_unicorn", "special_party_crasher"} <= keys
        assert {"accuracy_rate_50", "accuracy_rate_60", "accuracy_rate_70", "accuracy_rate_80"} <= keys
        assert "accuracy_rate_90" not in keys

    async def test_three_accepted_prophecies_get_no_accuracy_badge(self, facts):
        creator = await facts.user("creator")
        rater = await facts.user("rater")
        r = await facts.round(published_at=facts.t0 + timedelta(days=90))
        for _ in range(3):
            p = await facts.prophecy(r, creator, fulfilled=True)
            await facts.rating(p, rater, 2)

        await award_round_completion_badges(facts.db, r.id, [creator.id])
        assert not any(k.startswith("accuracy_rate_") for k in await _keys(facts.db, creator.id))

    async def test_bot_comparisons(self, facts):
        kimberly = await facts.user("kimberly", is_bot=True)
        randolf = await facts.user("randolf", is_bot=True)
        creator = await facts.user("creator")
        sharp = await facts.user("sharp")
        r = await facts.round(published_at=facts.t0 + timedelta(days=90))
        p1 = await facts.prophecy(r, creator, fulfilled=True)
        p2 = await facts.prophecy(r, creator, fulfilled=False)
        # sharp: 2/2, kimberly: 1/2, randolf: 0/2
        await facts.rating(p1, sharp, -4)
        await facts.rating(p2, sharp, 4)
        await facts.rating(p1, kimberly, -4)
        await facts.rating(p2, kimberly, -4)
        await facts.rating(p1, randolf, 4)
        await facts.rating(p2, randolf, -4)

        await award_round_completion_badges(facts.db, r.id, [creator.id])
        keys = await _keys(facts.db, sharp.id)
        assert "hidden_bot_beater" in keys
        assert "hidden_worse_than_random" not in keys
        assert await _keys(facts.db, kimberly.id) == set()

    async def test_missing_bots_skip_comparisons(self, facts):
        creator = await facts.user("creator")
        rater = await facts.user("rater")
        r = await facts.round(published_at=facts.t0 + timedelta(days=90))
        p = await facts.prophecy(r, creator, fulfilled=True)
        await facts.rating(p, rater, -4)

        await award_round_completion_badges(facts.db, r.id, [creator.id])
        keys = await _keys(facts.db, rater.id)
        assert "hidden_bot_beater" not in keys
        assert "time_speedrunner" in keys

    async def test_rerun_grants_nothing(self, facts):
        creator = await facts.user("creator")
        rater = await facts.user("rater")
        r = await facts.round(published_at=facts.t0 + timedelta(days=90))
        p = await facts.prophecy(r, creator, fulfilled=True)
        await facts.rating(p, rater, 8)

        assert await award_round_completion_badges(facts.db, r.id, [creator.id])
        assert await award_round_completion_badges(facts.db, r.id, [creator.id]) == []

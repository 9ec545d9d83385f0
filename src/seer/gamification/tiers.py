"""Collapse tiered badges into one "current tier" per group for display."""

from __future__ import annotations

from collections.abc import Collection, Sequence

from seer.gamification.catalog import TIER_GROUPS, ThresholdGroup, kind_of
from seer.gamification.schemas import BadgeResponse, TierGroup, TierSummary


def tier_of(badge: BadgeResponse) -> tuple[ThresholdGroup, int] | None:
    """Group and threshold of a tiered badge, or None for standalone badges."""
    kind = kind_of(badge.key)
    if not isinstance(kind, ThresholdGroup):
        return None
    if badge.threshold is not None:
        return kind, badge.threshold
    return kind, int(badge.key[len(kind.prefix):])


def _threshold(badge: BadgeResponse) -> int:
    tier = tier_of(badge)
    return tier[1] if tier else 0


def sort_best_first(badges: Sequence[BadgeResponse], group: ThresholdGroup) -> list[BadgeResponse]:
    """Descending thresholds for count groups, ascending for positions."""
    return sorted(badges, key=_threshold, reverse=not group.ascending)


def group_badges(
    earned: Sequence[BadgeResponse],
    catalog: Sequence[BadgeResponse],
    known_awarded_keys: Collection[str],
) -> TierSummary:
    """Group a user's earned badges by tier prefix.

    For every group the user has a badge in, report the best earned badge and
    the better tiers that somebody has earned but this user has not. Tiers
    nobody has reached stay hidden. Earned badges outside any group are
    returned as standalone, in input order.
    """
    earned_keys = {b.key for b in earned}
    members: dict[str, dict[str, BadgeResponse]] = {g.prefix: {} for g in TIER_GROUPS}
    groups_present: set[str] = set()
    standalone: list[BadgeResponse] = []

    for badge in catalog:
        match = tier_of(badge)
        if match is not None:
            members[match[0].prefix][badge.key] = badge

    for badge in earned:
        match = tier_of(badge)
        if match is None:
            standalone.append(badge)
            continue
        groups_present.add(match[0].prefix)
        members[match[0].prefix].setdefault(badge.key, badge)

    groups: list[TierGroup] = []
    for group in TIER_GROUPS:
        if group.prefix not in groups_present:
            continue
        ordered = sort_best_first(list(members[group.prefix].values()), group)
        earned_in_group = [b for b in ordered if b.key in earned_keys]
        highest = earned_in_group[0]
        better = ordered[: ordered.index(highest)]
        groups.append(TierGroup(
            prefix=group.prefix,
            badges=ordered,
            earned=earned_in_group,
            highest_earned=highest,
            known_unearned_badges=[b for b in better if b.key not in earned_keys and b.key in known_awarded_keys],
        ))

    return TierSummary(groups=groups, standalone=standalone)

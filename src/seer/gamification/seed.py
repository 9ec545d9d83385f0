"""Reconcile the compiled badge catalog into ``badge_definitions``."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from seer.database import dialect_insert
from seer.db.models import BadgeDefinition
from seer.gamification.catalog import BADGE_CATALOG, CatalogBadge

logger = logging.getLogger(__name__)


def _row(badge: CatalogBadge, sort_order: int) -> dict:
    return {
        "key": badge.key,
        "name": badge.name,
        "description": badge.description,
        "requirement": badge.requirement,
        "category": badge.category.value,
        "rarity": badge.rarity.value,
        "threshold": badge.threshold,
        "sort_order": sort_order,
    }


async def seed_badges(db: AsyncSession) -> int:
    """Upsert every catalog badge. Returns number of badges seeded."""
    insert = dialect_insert(db)
    seeded = 0
    for sort_order, badge in enumerate(BADGE_CATALOG, start=1):
        stmt = insert(BadgeDefinition).values(**_row(badge, sort_order))
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "requirement": stmt.excluded.requirement,
                "category": stmt.excluded.category,
                "rarity": stmt.excluded.rarity,
                "threshold": stmt.excluded.threshold,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded

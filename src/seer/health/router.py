"""Liveness and readiness endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from seer.config import get_settings
from seer.database import get_session
from seer.db.models import BadgeDefinition
from seer.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    settings = get_settings()
    return {"status": "healthy", "version": settings.app_version}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: database, Redis and a seeded badge catalog."""
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        seeded = (await db.execute(select(BadgeDefinition.id).limit(1))).first() is not None
        checks["database"] = "ok"
        checks["catalog"] = "ok" if seeded else "not seeded"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}

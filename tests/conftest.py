"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) built from the
ORM metadata, so no PostgreSQL or Redis server is needed. Redis is replaced
with ``AsyncMock`` objects where a test needs one.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from seer.config import Settings, get_settings
from seer.database import get_session
from seer.db.base import Base
from seer.db.models import Authenticator, Prophecy, Rating, Round, User
from seer.gamification.seed import seed_badges

# SQLite returns datetimes without tzinfo.
T0 = datetime(2026, 3, 2, 12, 0)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A database session with an empty schema."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session with the badge catalog seeded."""
    await seed_badges(db_session)
    return db_session


class FactBuilder:
    """Creates users, rounds, prophecies and ratings with sensible defaults."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0
        self.t0 = T0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, obj):  # type: ignore[no-untyped-def]
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, username: str | None = None, is_bot: bool = False) -> User:
        n = self._next()
        return await self._save(User(
            username=username or f"user{n}",
            display_name=(username or f"User {n}").title(),
            is_bot=is_bot,
            created_at=T0,
        ))

    async def round(self, published_at: datetime | None = None, title: str | None = None) -> Round:
        n = self._next()
        return await self._save(Round(
            title=title or f"Round {n}",
            submission_deadline=T0 + timedelta(days=7),
            rating_deadline=T0 + timedelta(days=14),
            fulfillment_date=T0 + timedelta(days=60),
            results_published_at=published_at,
            created_at=T0,
        ))

    async def prophecy(
        self,
        round_: Round,
        creator: User,
        fulfilled: bool | None = None,
        created_at: datetime = T0,
        title: str | None = None,
        description: str | None = None,
    ) -> Prophecy:
        n = self._next()
        return await self._save(Prophecy(
            round_id=round_.id,
            creator_id=creator.id,
            title=title or f"Prophecy {n}",
            description=description,
            fulfilled=fulfilled,
            resolved_at=T0 + timedelta(days=60) if fulfilled is not None else None,
            created_at=created_at,
        ))

    async def rating(
        self,
        prophecy: Prophecy,
        user: User,
        value: int,
        created_at: datetime | None = None,
    ) -> Rating:
        return await self._save(Rating(
            prophecy_id=prophecy.id,
            user_id=user.id,
            value=value,
            created_at=created_at or prophecy.created_at + timedelta(days=2),
        ))

    async def authenticator(self, user: User) -> Authenticator:
        n = self._next()
        return await self._save(Authenticator(user_id=user.id, credential_id=f"cred-{n}", name="Laptop", created_at=T0))


@pytest_asyncio.fixture
async def facts(seeded_db: AsyncSession) -> FactBuilder:
    return FactBuilder(seeded_db)


@pytest.fixture
def redis_mock() -> AsyncMock:
    """Stand-in for ``redis.asyncio.Redis`` recording publish/xadd/xack calls."""
    mock = AsyncMock()
    mock.publish = AsyncMock(return_value=1)
    mock.xadd = AsyncMock(return_value="1700000000000-0")
    mock.xack = AsyncMock(return_value=1)
    mock.xgroup_create = AsyncMock(return_value=True)
    mock.xreadgroup = AsyncMock(return_value=[])
    return mock


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    seeded_db: AsyncSession,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the in-memory database."""
    from seer.main import create_app

    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_settings] = lambda: Settings(admin_token="test-admin-token")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

"""Shared test fixtures."""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anglerxp.config import Settings
from anglerxp.database import close_db, create_schema, init_db, session_scope
from anglerxp.db.models import (
    Account,
    Catch,
    ChallengeDefinition,
    FishingSession,
    UserChallengeProgress,
    WeeklySpeciesBonus,
    XPTransaction,
)
from anglerxp.gamification.engine import GamificationEngine
from anglerxp.gamification.schemas import CatchEvent
from anglerxp.gamification.seed import seed_challenges
from anglerxp.gamification.sql_repository import SqlGamificationRepository

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A Wednesday, mid-morning UTC: outside every time-of-day window.
BASE_TIME = datetime(2026, 3, 4, 10, 30, tzinfo=timezone.utc)

_ids = itertools.count(1)


def next_id(prefix: str) -> str:
    return f"{prefix}-{next(_ids):05d}"


class FakeRedis:
    """Records publish() calls."""

    def __init__(self, fail: bool = False) -> None:
        self.published: list[tuple[str, str]] = []
        self.fail = fail

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, message))
        return 1

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.published]


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url=TEST_DATABASE_URL, default_timezone="UTC", log_format="console")


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session with all tables created."""
    await init_db(TEST_DATABASE_URL)
    await create_schema()
    async with session_scope() as session:
        yield session
    await close_db()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    await seed_challenges(db_session)
    return db_session


@pytest.fixture
def repo(seeded_db: AsyncSession) -> SqlGamificationRepository:
    return SqlGamificationRepository(seeded_db)


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def failing_redis() -> FakeRedis:
    return FakeRedis(fail=True)


@pytest.fixture
def engine(repo: SqlGamificationRepository, redis: FakeRedis, settings: Settings) -> GamificationEngine:
    return GamificationEngine(repo, redis=redis, settings=settings, clock=lambda: BASE_TIME)


@pytest_asyncio.fixture
async def account(seeded_db: AsyncSession) -> Account:
    row = Account(id=next_id("angler"), username="tester", xp=0, level=1, countries_fished=[])
    seeded_db.add(row)
    await seeded_db.commit()
    return row


@pytest.fixture
def add_catch(seeded_db: AsyncSession) -> Callable[..., Awaitable[CatchEvent]]:
    """Insert a catch row (the caller's primary write) and return its event."""

    async def _add_catch(
        account_id: str,
        species: str = "Perch",
        *,
        caught_at: datetime = BASE_TIME,
        created_at: datetime | None = None,
        photo: bool = True,
        weight_kg: float | None = None,
        session_id: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        weather_condition: str | None = None,
        wind_speed: float | None = None,
        moon_phase: str | None = "Waxing Crescent",
        country_code: str | None = None,
    ) -> CatchEvent:
        row = Catch(
            id=next_id("catch"),
            account_id=account_id,
            session_id=session_id,
            species=species,
            weight_kg=weight_kg,
            photo_url="https://img.example/catch.jpg" if photo else None,
            caught_at=caught_at,
            created_at=created_at or caught_at,
            latitude=latitude,
            longitude=longitude,
            weather_condition=weather_condition,
            wind_speed=wind_speed,
            moon_phase=moon_phase,
            country_code=country_code,
        )
        seeded_db.add(row)
        await seeded_db.commit()
        return CatchEvent(
            id=row.id,
            account_id=account_id,
            species=species,
            weight_kg=weight_kg,
            has_photo=photo,
            caught_at=caught_at,
            session_id=session_id,
            latitude=latitude,
            longitude=longitude,
            weather_condition=weather_condition,
            wind_speed=wind_speed,
            moon_phase=moon_phase,
            country_code=country_code,
        )

    return _add_catch


@pytest.fixture
def add_session(seeded_db: AsyncSession) -> Callable[..., Awaitable[str]]:

    async def _add_session(
        account_id: str,
        started_at: datetime = BASE_TIME - timedelta(hours=2),
        minutes: float | None = 120,
    ) -> str:
        ended_at = started_at + timedelta(minutes=minutes) if minutes is not None else None
        row = FishingSession(
            id=next_id("session"),
            account_id=account_id,
            started_at=started_at,
            ended_at=ended_at,
        )
        seeded_db.add(row)
        await seeded_db.commit()
        return row.id

    return _add_session


@pytest.fixture
def add_challenge(seeded_db: AsyncSession) -> Callable[..., Awaitable[ChallengeDefinition]]:
    """Insert an extra challenge definition."""

    async def _add_challenge(slug: str, target: int = 1, xp_reward: int = 25, **extra) -> ChallengeDefinition:
        row = ChallengeDefinition(
            slug=slug,
            title=extra.pop("title", slug),
            category=extra.pop("category", "test"),
            target=target,
            xp_reward=xp_reward,
            **extra,
        )
        seeded_db.add(row)
        await seeded_db.commit()
        return row

    return _add_challenge


@pytest.fixture
def add_weekly_bonus(seeded_db: AsyncSession) -> Callable[..., Awaitable[None]]:

    async def _add_weekly_bonus(species: str, week_start, points: int) -> None:
        seeded_db.add(WeeklySpeciesBonus(species=species, week_start=week_start, points=points))
        await seeded_db.commit()

    return _add_weekly_bonus


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def progress_rows(seeded_db: AsyncSession) -> Callable[[str], Awaitable[dict[str, tuple]]]:
    """slug -> (progress, version, completed_at, xp_awarded, id) for an account."""

    async def _progress_rows(account_id: str) -> dict[str, tuple]:
        result = await seeded_db.execute(
            select(
                ChallengeDefinition.slug,
                UserChallengeProgress.progress,
                UserChallengeProgress.version,
                UserChallengeProgress.completed_at,
                UserChallengeProgress.xp_awarded,
                UserChallengeProgress.id,
            )
            .join(ChallengeDefinition, UserChallengeProgress.challenge_id == ChallengeDefinition.id)
            .where(UserChallengeProgress.account_id == account_id)
        )
        return {row[0]: tuple(row[1:]) for row in result.all()}

    return _progress_rows


@pytest.fixture
def ledger(seeded_db: AsyncSession) -> Callable[[str], Awaitable[list[XPTransaction]]]:
    """All ledger rows for an account, oldest first."""

    async def _ledger(account_id: str) -> list[XPTransaction]:
        result = await seeded_db.execute(
            select(XPTransaction)
            .where(XPTransaction.account_id == account_id)
            .order_by(XPTransaction.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    return _ledger

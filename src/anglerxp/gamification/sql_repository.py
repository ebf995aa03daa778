"""SQLAlchemy implementation of the gamification repository."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from anglerxp.db.models import (
    Account,
    Catch,
    ChallengeCatchLink,
    ChallengeDefinition,
    FishingSession,
    SpeciesCatalogEntry,
    UserChallengeProgress,
    WeeklySpeciesBonus,
    XPTransaction,
)
from anglerxp.errors import ConcurrencyConflict, LookupFailure
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.schemas import (
    AccountRecord,
    ChallengeDefinitionRecord,
    ChallengeProgressRecord,
    ChallengeScope,
    LedgerEntry,
    XPReason,
)

logger = logging.getLogger(__name__)


def _as_utc(dt: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored values are always UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _minutes_between(start: datetime, end: datetime) -> float:
    return (_as_utc(end) - _as_utc(start)).total_seconds() / 60  # type: ignore[operator]


def _location_bucket(latitude: float, longitude: float) -> tuple[float, float]:
    """~1 km grid cell: coordinates rounded to 2 decimal places."""
    return round(latitude, 2), round(longitude, 2)


def _definition_record(row: ChallengeDefinition) -> ChallengeDefinitionRecord:
    return ChallengeDefinitionRecord(
        id=row.id,
        slug=row.slug,
        title=row.title,
        category=row.category,
        target=row.target,
        xp_reward=row.xp_reward,
        scope=ChallengeScope(row.scope),
        scope_value=row.scope_value,
    )


def _progress_record(row: UserChallengeProgress) -> ChallengeProgressRecord:
    return ChallengeProgressRecord(
        id=row.id,
        account_id=row.account_id,
        challenge_id=row.challenge_id,
        slug=row.challenge.slug if row.challenge is not None else "",
        progress=row.progress,
        target=row.target,
        completed_at=_as_utc(row.completed_at),
        xp_awarded=row.xp_awarded,
        version=row.version,
    )


def _ledger_record(row: XPTransaction) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        account_id=row.account_id,
        amount=row.amount,
        reason=XPReason(row.reason),
        reference_type=row.reference_type,
        reference_id=row.reference_id,
        details=row.details or {},
        reversed=row.reversed_at is not None,
    )


class SqlGamificationRepository(GamificationRepository):
    """Repository over one AsyncSession. The session is the unit of work."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _execute(self, stmt: Any) -> Any:
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            logger.warning("Repository query failed: %s", exc)
            raise LookupFailure(str(exc)) from exc

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise LookupFailure(str(exc)) from exc

    async def _get(self, model: type, key: Any) -> Any:
        try:
            return await self.db.get(model, key)
        except SQLAlchemyError as exc:
            raise LookupFailure(str(exc)) from exc

    async def _scalar(self, stmt: Any) -> Any:
        result = await self._execute(stmt)
        return result.scalar()

    def _insert(self, model: type) -> Any:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        msg = f"Unsupported dialect for conflict-free insert: {dialect}"
        raise LookupFailure(msg)

    async def _account(self, account_id: str) -> Account:
        account = await self._get(Account, account_id)
        if account is None:
            msg = f"Account not found: {account_id}"
            raise LookupFailure(msg)
        return account

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_account(self, account_id: str) -> AccountRecord | None:
        account = await self._get(Account, account_id)
        if account is None:
            return None
        return AccountRecord(
            id=account.id,
            xp=account.xp,
            level=account.level,
            countries_fished=list(account.countries_fished or []),
            timezone=account.timezone,
        )

    async def set_account_xp(self, account_id: str, total_xp: int, level: int) -> None:
        account = await self._account(account_id)
        account.xp = total_xp
        account.level = level
        account.updated_at = datetime.now(timezone.utc)
        await self._flush()

    async def set_cached_countries(self, account_id: str, codes: list[str]) -> None:
        account = await self._account(account_id)
        account.countries_fished = sorted(codes)
        account.updated_at = datetime.now(timezone.utc)
        await self._flush()

    # ------------------------------------------------------------------
    # Catch history
    # ------------------------------------------------------------------

    async def count_catches(self, account_id: str, since: datetime | None = None) -> int:
        stmt = select(func.count()).select_from(Catch).where(Catch.account_id == account_id)
        if since is not None:
            stmt = stmt.where(Catch.created_at >= _as_utc(since))
        return int(await self._scalar(stmt) or 0)

    async def distinct_species_count(self, account_id: str) -> int:
        stmt = select(func.count(func.distinct(func.lower(Catch.species)))).where(
            Catch.account_id == account_id
        )
        return int(await self._scalar(stmt) or 0)

    async def has_prior_catch_of_species(
        self, account_id: str, species: str, exclude_catch_id: str | None = None
    ) -> bool:
        stmt = select(Catch.id).where(
            Catch.account_id == account_id,
            func.lower(Catch.species) == species.strip().lower(),
        )
        if exclude_catch_id is not None:
            stmt = stmt.where(Catch.id != exclude_catch_id)
        return await self._scalar(stmt.limit(1)) is not None

    async def count_photographed_catches(self, account_id: str) -> int:
        stmt = select(func.count()).select_from(Catch).where(
            Catch.account_id == account_id,
            Catch.photo_url.is_not(None),
        )
        return int(await self._scalar(stmt) or 0)

    async def distinct_photographed_location_buckets(
        self, account_id: str, min_session_minutes: float
    ) -> int:
        stmt = (
            select(
                Catch.latitude,
                Catch.longitude,
                FishingSession.started_at,
                FishingSession.ended_at,
            )
            .join(FishingSession, Catch.session_id == FishingSession.id)
            .where(
                Catch.account_id == account_id,
                Catch.photo_url.is_not(None),
                Catch.latitude.is_not(None),
                Catch.longitude.is_not(None),
                FishingSession.ended_at.is_not(None),
            )
        )
        result = await self._execute(stmt)
        buckets = {
            _location_bucket(lat, lng)
            for lat, lng, started_at, ended_at in result.all()
            if _minutes_between(started_at, ended_at) >= min_session_minutes
        }
        return len(buckets)

    async def distinct_country_codes(self, account_id: str) -> set[str]:
        stmt = select(func.upper(Catch.country_code)).distinct().where(
            Catch.account_id == account_id,
            Catch.country_code.is_not(None),
        )
        result = await self._execute(stmt)
        return {code for code in result.scalars() if code}

    async def country_catch_count(self, account_id: str, country_code: str) -> int:
        stmt = select(func.count()).select_from(Catch).where(
            Catch.account_id == account_id,
            func.upper(Catch.country_code) == country_code.upper(),
        )
        return int(await self._scalar(stmt) or 0)

    async def country_species_count(self, account_id: str, country_code: str) -> int:
        stmt = select(func.count(func.distinct(func.lower(Catch.species)))).where(
            Catch.account_id == account_id,
            func.upper(Catch.country_code) == country_code.upper(),
        )
        return int(await self._scalar(stmt) or 0)

    async def distinct_moon_phases(self, account_id: str) -> set[str]:
        stmt = select(Catch.moon_phase).distinct().where(
            Catch.account_id == account_id,
            Catch.moon_phase.is_not(None),
        )
        result = await self._execute(stmt)
        return set(result.scalars())

    async def catch_timestamps(self, account_id: str) -> list[datetime]:
        stmt = select(Catch.caught_at).where(Catch.account_id == account_id)
        result = await self._execute(stmt)
        return [_as_utc(ts) for ts in result.scalars()]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def session_duration_minutes(self, session_id: str) -> float | None:
        session = await self._get(FishingSession, session_id)
        if session is None or session.ended_at is None:
            return None
        return _minutes_between(session.started_at, session.ended_at)

    async def count_completed_sessions(self, account_id: str) -> int:
        stmt = select(func.count()).select_from(FishingSession).where(
            FishingSession.account_id == account_id,
            FishingSession.ended_at.is_not(None),
        )
        return int(await self._scalar(stmt) or 0)

    async def count_session_catches(self, session_id: str) -> int:
        stmt = select(func.count()).select_from(Catch).where(Catch.session_id == session_id)
        return int(await self._scalar(stmt) or 0)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def weekly_species_bonus_points(self, species: str, week_start: date) -> int | None:
        stmt = select(WeeklySpeciesBonus.points).where(
            func.lower(WeeklySpeciesBonus.species) == species.strip().lower(),
            WeeklySpeciesBonus.week_start == week_start,
        )
        return await self._scalar(stmt.limit(1))

    async def specimen_weight_lb(self, species: str) -> float | None:
        stmt = select(SpeciesCatalogEntry.specimen_weight_lb).where(
            func.lower(SpeciesCatalogEntry.species) == species.strip().lower()
        )
        return await self._scalar(stmt.limit(1))

    async def get_challenge_definition(self, slug: str) -> ChallengeDefinitionRecord | None:
        result = await self._execute(
            select(ChallengeDefinition).where(
                ChallengeDefinition.slug == slug,
                ChallengeDefinition.is_active.is_(True),
            )
        )
        row = result.scalar_one_or_none()
        return _definition_record(row) if row is not None else None

    async def list_event_challenges(self, event_name: str) -> list[ChallengeDefinitionRecord]:
        result = await self._execute(
            select(ChallengeDefinition)
            .where(
                ChallengeDefinition.scope == ChallengeScope.EVENT.value,
                ChallengeDefinition.scope_value == event_name,
                ChallengeDefinition.is_active.is_(True),
            )
            .order_by(ChallengeDefinition.sort_order)
        )
        return [_definition_record(row) for row in result.scalars()]

    # ------------------------------------------------------------------
    # Challenge progress
    # ------------------------------------------------------------------

    async def get_challenge_progress(
        self, account_id: str, challenge_id: int
    ) -> ChallengeProgressRecord | None:
        result = await self._execute(
            select(UserChallengeProgress)
            .where(
                UserChallengeProgress.account_id == account_id,
                UserChallengeProgress.challenge_id == challenge_id,
            )
            .execution_options(populate_existing=True)
        )
        row = result.unique().scalar_one_or_none()
        return _progress_record(row) if row is not None else None

    async def get_challenge_progress_by_id(self, progress_id: int) -> ChallengeProgressRecord | None:
        result = await self._execute(
            select(UserChallengeProgress)
            .where(UserChallengeProgress.id == progress_id)
            .execution_options(populate_existing=True)
        )
        row = result.unique().scalar_one_or_none()
        return _progress_record(row) if row is not None else None

    async def upsert_challenge_progress(
        self, record: ChallengeProgressRecord
    ) -> ChallengeProgressRecord:
        now = datetime.now(timezone.utc)
        values = {
            "progress": record.progress,
            "target": record.target,
            "completed_at": _as_utc(record.completed_at),
            "xp_awarded": record.xp_awarded,
            "updated_at": now,
        }

        if record.id is None:
            stmt = (
                self._insert(UserChallengeProgress)
                .values(
                    account_id=record.account_id,
                    challenge_id=record.challenge_id,
                    version=1,
                    **values,
                )
                .on_conflict_do_nothing(index_elements=["account_id", "challenge_id"])
                .returning(UserChallengeProgress.id)
            )
            new_id = (await self._execute(stmt)).scalar_one_or_none()
            if new_id is None:
                raise ConcurrencyConflict(record.account_id, record.challenge_id)
            return record.model_copy(update={"id": new_id, "version": 1})

        stmt = (
            update(UserChallengeProgress)
            .where(
                UserChallengeProgress.id == record.id,
                UserChallengeProgress.version == record.version,
            )
            .values(version=record.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        if result.rowcount == 0:
            raise ConcurrencyConflict(record.account_id, record.challenge_id)
        return record.model_copy(update={"version": record.version + 1})

    async def add_challenge_link(self, progress_id: int, catch_id: str) -> bool:
        stmt = (
            self._insert(ChallengeCatchLink)
            .values(
                user_challenge_id=progress_id,
                catch_id=catch_id,
                created_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["user_challenge_id", "catch_id"])
            .returning(ChallengeCatchLink.id)
        )
        return (await self._execute(stmt)).scalar_one_or_none() is not None

    async def has_challenge_link(self, progress_id: int, catch_id: str) -> bool:
        stmt = select(ChallengeCatchLink.id).where(
            ChallengeCatchLink.user_challenge_id == progress_id,
            ChallengeCatchLink.catch_id == catch_id,
        )
        return await self._scalar(stmt.limit(1)) is not None

    async def remove_challenge_link(self, progress_id: int, catch_id: str) -> bool:
        stmt = (
            delete(ChallengeCatchLink)
            .where(
                ChallengeCatchLink.user_challenge_id == progress_id,
                ChallengeCatchLink.catch_id == catch_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        return result.rowcount > 0

    async def count_challenge_links(self, progress_id: int) -> int:
        stmt = select(func.count()).select_from(ChallengeCatchLink).where(
            ChallengeCatchLink.user_challenge_id == progress_id
        )
        return int(await self._scalar(stmt) or 0)

    async def progress_ids_for_catch(self, catch_id: str) -> list[int]:
        stmt = (
            select(ChallengeCatchLink.user_challenge_id)
            .where(ChallengeCatchLink.catch_id == catch_id)
            .order_by(ChallengeCatchLink.id)
        )
        result = await self._execute(stmt)
        return list(result.scalars())

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def append_ledger_entry(
        self,
        account_id: str,
        amount: int,
        reason: XPReason,
        reference_type: str | None,
        reference_id: str | None,
        details: dict | None = None,
    ) -> LedgerEntry:
        entry = XPTransaction(
            account_id=account_id,
            amount=amount,
            reason=reason.value,
            reference_type=reference_type,
            reference_id=reference_id,
            details=details or {},
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        await self._flush()
        return _ledger_record(entry)

    async def find_ledger_entry(
        self, account_id: str, reason: XPReason, reference_id: str
    ) -> LedgerEntry | None:
        result = await self._execute(
            select(XPTransaction)
            .where(
                XPTransaction.account_id == account_id,
                XPTransaction.reason == reason.value,
                XPTransaction.reference_id == reference_id,
            )
            .order_by(XPTransaction.id)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _ledger_record(row) if row is not None else None

    async def _ledger_row(self, entry_id: int) -> XPTransaction:
        row = await self._get(XPTransaction, entry_id)
        if row is None:
            msg = f"Ledger entry not found: {entry_id}"
            raise LookupFailure(msg)
        return row

    async def negate_ledger_entry(self, entry_id: int) -> LedgerEntry:
        row = await self._ledger_row(entry_id)
        if row.reversed_at is None:
            row.amount = -row.amount
            row.reversed_at = datetime.now(timezone.utc)
            await self._flush()
        return _ledger_record(row)

    async def adjust_ledger_entry(self, entry_id: int, amount: int) -> LedgerEntry:
        row = await self._ledger_row(entry_id)
        row.amount = amount
        await self._flush()
        return _ledger_record(row)

    async def sum_ledger(self, account_id: str) -> int:
        stmt = select(func.coalesce(func.sum(XPTransaction.amount), 0)).where(
            XPTransaction.account_id == account_id,
            XPTransaction.reversed_at.is_(None),
        )
        return int(await self._scalar(stmt) or 0)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise LookupFailure(str(exc)) from exc

    async def rollback(self) -> None:
        await self.db.rollback()

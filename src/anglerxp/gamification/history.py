"""History snapshot: every aggregate a rule pass needs, read once up front.

All rules in one pass see the same view, and a pass can be tested against a
fixed snapshot instead of a live repository.
"""

from __future__ import annotations

from datetime import tzinfo

from pydantic import BaseModel, ConfigDict

from anglerxp.config import Settings
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.schemas import AccountRecord, CatchEvent
from anglerxp.gamification.streak_service import compute_consecutive_weeks, resolve_timezone


class HistorySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    timezone: str = "UTC"
    total_catches: int = 0
    distinct_species: int = 0
    photographed_catches: int = 0
    location_buckets: int = 0
    country_codes: frozenset[str] = frozenset()
    country_catches: int = 0
    country_species: int = 0
    moon_phases: frozenset[str] = frozenset()
    consecutive_weeks: int = 0
    specimen_weight_lb: float | None = None
    completed_sessions: int = 0

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.timezone)


def account_timezone(account: AccountRecord, settings: Settings) -> str:
    return account.timezone or settings.default_timezone


async def load_catch_snapshot(
    repo: GamificationRepository,
    account: AccountRecord,
    catch: CatchEvent,
    settings: Settings,
) -> HistorySnapshot:
    """Read the account's aggregates for evaluating ``catch``.

    Reads run sequentially; one repository session is not safe for
    concurrent use.
    """
    tz_name = account_timezone(account, settings)
    account_id = account.id

    country_catches = 0
    country_species = 0
    if catch.country_code:
        country_catches = await repo.country_catch_count(account_id, catch.country_code)
        country_species = await repo.country_species_count(account_id, catch.country_code)

    timestamps = await repo.catch_timestamps(account_id)

    return HistorySnapshot(
        account_id=account_id,
        timezone=tz_name,
        total_catches=await repo.count_catches(account_id),
        distinct_species=await repo.distinct_species_count(account_id),
        photographed_catches=await repo.count_photographed_catches(account_id),
        location_buckets=await repo.distinct_photographed_location_buckets(
            account_id, settings.exploration_min_session_minutes
        ),
        country_codes=frozenset(await repo.distinct_country_codes(account_id)),
        country_catches=country_catches,
        country_species=country_species,
        moon_phases=frozenset(await repo.distinct_moon_phases(account_id)),
        consecutive_weeks=compute_consecutive_weeks(timestamps, resolve_timezone(tz_name)),
        specimen_weight_lb=await repo.specimen_weight_lb(catch.species),
    )


async def load_session_snapshot(
    repo: GamificationRepository,
    account: AccountRecord,
    settings: Settings,
) -> HistorySnapshot:
    return HistorySnapshot(
        account_id=account.id,
        timezone=account_timezone(account, settings),
        completed_sessions=await repo.count_completed_sessions(account.id),
    )

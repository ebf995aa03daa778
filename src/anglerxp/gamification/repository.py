"""Abstract collaborator interface consumed by the gamification engine.

Implementations must raise ``LookupFailure`` when a backing call fails and
``ConcurrencyConflict`` when an optimistic progress write loses a race. All
writes made between two ``commit()`` calls form one atomic unit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime

from anglerxp.gamification.schemas import (
    AccountRecord,
    ChallengeDefinitionRecord,
    ChallengeProgressRecord,
    LedgerEntry,
    XPReason,
)


class GamificationRepository(ABC):
    """Storage-agnostic read/write capabilities for one unit of work."""

    # --- Accounts ---

    @abstractmethod
    async def get_account(self, account_id: str) -> AccountRecord | None: ...

    @abstractmethod
    async def set_account_xp(self, account_id: str, total_xp: int, level: int) -> None: ...

    @abstractmethod
    async def set_cached_countries(self, account_id: str, codes: list[str]) -> None: ...

    # --- Catch history ---

    @abstractmethod
    async def count_catches(self, account_id: str, since: datetime | None = None) -> int:
        """Catches created since ``since`` (lifetime when None)."""

    @abstractmethod
    async def distinct_species_count(self, account_id: str) -> int: ...

    @abstractmethod
    async def has_prior_catch_of_species(
        self, account_id: str, species: str, exclude_catch_id: str | None = None
    ) -> bool:
        """Case-insensitive species match, ignoring ``exclude_catch_id``."""

    @abstractmethod
    async def count_photographed_catches(self, account_id: str) -> int: ...

    @abstractmethod
    async def distinct_photographed_location_buckets(
        self, account_id: str, min_session_minutes: float
    ) -> int:
        """Distinct 2-decimal lat/lng buckets of photographed catches whose
        session lasted at least ``min_session_minutes``."""

    @abstractmethod
    async def distinct_country_codes(self, account_id: str) -> set[str]: ...

    @abstractmethod
    async def country_catch_count(self, account_id: str, country_code: str) -> int: ...

    @abstractmethod
    async def country_species_count(self, account_id: str, country_code: str) -> int: ...

    @abstractmethod
    async def distinct_moon_phases(self, account_id: str) -> set[str]: ...

    @abstractmethod
    async def catch_timestamps(self, account_id: str) -> list[datetime]: ...

    # --- Sessions ---

    @abstractmethod
    async def session_duration_minutes(self, session_id: str) -> float | None:
        """Duration of a finished session; None when open or unknown."""

    @abstractmethod
    async def count_completed_sessions(self, account_id: str) -> int: ...

    @abstractmethod
    async def count_session_catches(self, session_id: str) -> int: ...

    # --- Catalog ---

    @abstractmethod
    async def weekly_species_bonus_points(self, species: str, week_start: date) -> int | None: ...

    @abstractmethod
    async def specimen_weight_lb(self, species: str) -> float | None: ...

    @abstractmethod
    async def get_challenge_definition(self, slug: str) -> ChallengeDefinitionRecord | None:
        """Active definition for ``slug``; None when missing or inactive."""

    @abstractmethod
    async def list_event_challenges(self, event_name: str) -> list[ChallengeDefinitionRecord]: ...

    # --- Challenge progress ---

    @abstractmethod
    async def get_challenge_progress(
        self, account_id: str, challenge_id: int
    ) -> ChallengeProgressRecord | None: ...

    @abstractmethod
    async def get_challenge_progress_by_id(self, progress_id: int) -> ChallengeProgressRecord | None: ...

    @abstractmethod
    async def upsert_challenge_progress(
        self, record: ChallengeProgressRecord
    ) -> ChallengeProgressRecord:
        """Insert (``record.id is None``) or update guarded by ``record.version``.

        Returns the stored record with its new id and version.
        """

    @abstractmethod
    async def add_challenge_link(self, progress_id: int, catch_id: str) -> bool:
        """Returns False when the link already exists."""

    @abstractmethod
    async def has_challenge_link(self, progress_id: int, catch_id: str) -> bool: ...

    @abstractmethod
    async def remove_challenge_link(self, progress_id: int, catch_id: str) -> bool: ...

    @abstractmethod
    async def count_challenge_links(self, progress_id: int) -> int: ...

    @abstractmethod
    async def progress_ids_for_catch(self, catch_id: str) -> list[int]: ...

    # --- Ledger ---

    @abstractmethod
    async def append_ledger_entry(
        self,
        account_id: str,
        amount: int,
        reason: XPReason,
        reference_type: str | None,
        reference_id: str | None,
        details: dict | None = None,
    ) -> LedgerEntry: ...

    @abstractmethod
    async def find_ledger_entry(
        self, account_id: str, reason: XPReason, reference_id: str
    ) -> LedgerEntry | None: ...

    @abstractmethod
    async def negate_ledger_entry(self, entry_id: int) -> LedgerEntry:
        """Flip the sign in place and mark the entry reversed. Idempotent."""

    @abstractmethod
    async def adjust_ledger_entry(self, entry_id: int, amount: int) -> LedgerEntry: ...

    @abstractmethod
    async def sum_ledger(self, account_id: str) -> int:
        """Sum of all non-reversed entries."""

    # --- Unit of work ---

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...

"""Pydantic models passed between the engine and its repository."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class XPReason(str, Enum):
    CATCH_LOGGED = "catch_logged"
    PHOTO_ADDED = "photo_added"
    CHALLENGE_COMPLETED = "challenge_completed"
    CHALLENGE_REVOKED = "challenge_revoked"
    SESSION_COMPLETED = "session_completed"


class ChallengeScope(str, Enum):
    GLOBAL = "global"
    COUNTRY = "country"
    EVENT = "event"


# --- Inputs ---


class CatchEvent(BaseModel):
    """A logged catch as seen by the engine."""

    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    species: str
    weight_kg: float | None = None
    has_photo: bool = False
    caught_at: datetime
    session_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    weather_condition: str | None = None
    wind_speed: float | None = None
    moon_phase: str | None = None
    country_code: str | None = None


class DeletedCatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    catch_id: str
    session_id: str | None = None


# --- Repository records ---


class AccountRecord(BaseModel):
    id: str
    xp: int = 0
    level: int = 1
    countries_fished: list[str] = Field(default_factory=list)
    timezone: str | None = None


class ChallengeDefinitionRecord(BaseModel):
    id: int
    slug: str
    title: str = ""
    category: str = ""
    target: int
    xp_reward: int
    scope: ChallengeScope = ChallengeScope.GLOBAL
    scope_value: str | None = None


class ChallengeProgressRecord(BaseModel):
    """One UserChallengeProgress row. ``id is None`` means not yet persisted."""

    id: int | None = None
    account_id: str
    challenge_id: int
    slug: str = ""
    progress: int = 0
    target: int
    completed_at: datetime | None = None
    xp_awarded: int = 0
    version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class LedgerEntry(BaseModel):
    id: int
    account_id: str
    amount: int
    reason: XPReason
    reference_type: str | None = None
    reference_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    reversed: bool = False


# --- Computation ---


class XPBreakdown(BaseModel):
    base: int
    species_bonus: int = 0
    weight_bonus: int = 0
    photo_bonus: int = 0
    weekly_species_bonus: int = 0
    total: int


class AwardHistory(BaseModel):
    """The two history facts the award calculator depends on."""

    model_config = ConfigDict(frozen=True)

    has_prior_catch_of_species: bool
    weekly_bonus_points: int | None = None


class LevelProgress(BaseModel):
    current: int
    needed: int
    percentage: int


class XPGrant(BaseModel):
    amount: int
    new_xp: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


# --- Results ---


class CatchXPResult(BaseModel):
    xp_awarded: int = 0
    breakdown: XPBreakdown | None = None
    new_xp: int = 0
    new_level: int = 1
    leveled_up: bool = False
    challenges_completed: list[str] = Field(default_factory=list)
    weekly_species_points: int = 0
    rate_limited: bool = False
    failed: bool = False


class SessionXPResult(BaseModel):
    xp_awarded: int = 0
    new_xp: int = 0
    new_level: int = 1
    leveled_up: bool = False
    challenges_completed: list[str] = Field(default_factory=list)
    failed: bool = False


class PhotoReconcileResult(BaseModel):
    xp_awarded: int = 0
    reprocessed: bool = False
    challenges_completed: list[str] = Field(default_factory=list)
    failed: bool = False


class LinkRemovalResult(BaseModel):
    slug: str
    new_progress: int
    was_completed: bool
    is_now_complete: bool
    xp_revoked: int = 0


class ReversalResult(BaseModel):
    xp_reversed: int = 0
    challenges_revoked: list[str] = Field(default_factory=list)
    new_xp: int = 0
    new_level: int = 1
    failed: bool = False


class EventResult(BaseModel):
    challenges_completed: list[str] = Field(default_factory=list)
    failed: bool = False

"""ORM models for the gamification engine.

Accounts, sessions and catches are owned by the surrounding application; the
engine only reads them (and writes the cached XP / level / country columns on
accounts). Challenge progress, catch links and the XP ledger are engine-owned.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONType = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Accounts, sessions, catches (application-owned)
# ---------------------------------------------------------------------------


class Account(Base):
    """An angler profile with its denormalized gamification aggregate."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    countries_fished: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class FishingSession(Base):
    """A fishing trip; catches may belong to one."""

    __tablename__ = "fishing_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Catch(Base):
    """A logged catch with its environmental snapshot."""

    __tablename__ = "catches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("fishing_sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    species: Mapped[str] = mapped_column(String(128), nullable=False)
    weight_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    caught_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    weather_condition: Mapped[str | None] = mapped_column(String(64), nullable=True)
    wind_speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    moon_phase: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    @property
    def has_photo(self) -> bool:
        return self.photo_url is not None


# ---------------------------------------------------------------------------
# Catalog (read-only inputs)
# ---------------------------------------------------------------------------


class ChallengeDefinition(Base):
    """Achievement definitions, seeded from the default catalog."""

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    target: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default="global")
    scope_value: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class WeeklySpeciesBonus(Base):
    """Bonus points for a featured species during one ISO week."""

    __tablename__ = "weekly_species_points"
    __table_args__ = (
        UniqueConstraint("species", "week_start", name="weekly_species_points_species_week_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    species: Mapped[str] = mapped_column(String(128), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)


class SpeciesCatalogEntry(Base):
    """Species reference data; specimen weight drives the specimen challenge."""

    __tablename__ = "species_catalog"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    species: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    specimen_weight_lb: Mapped[float | None] = mapped_column(Float, nullable=True)


# ---------------------------------------------------------------------------
# Engine-owned state
# ---------------------------------------------------------------------------


class UserChallengeProgress(Base):
    """Per-account progress on a challenge. UNIQUE(account_id, challenge_id)."""

    __tablename__ = "user_challenges"
    __table_args__ = (
        UniqueConstraint("account_id", "challenge_id", name="user_challenges_account_challenge_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    challenge_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("challenges.id"), nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    challenge: Mapped[ChallengeDefinition] = relationship("ChallengeDefinition", lazy="joined")


class ChallengeCatchLink(Base):
    """Catches that contributed to a challenge. UNIQUE(user_challenge_id, catch_id)."""

    __tablename__ = "challenge_catches"
    __table_args__ = (
        UniqueConstraint("user_challenge_id", "catch_id", name="challenge_catches_uc_catch_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_challenge_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user_challenges.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # No FK: links must outlive a hard-deleted catch until the reversal pass runs.
    catch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class XPTransaction(Base):
    """XP ledger. Reversal negates amount in place and stamps reversed_at;
    rows are never deleted and reversed rows drop out of the account total.
    """

    __tablename__ = "xp_transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

"""Streak tracking: ISO-week bucketing and consecutive-week counting."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

# --- Streak challenge thresholds (consecutive weeks) ---
STREAK_CHALLENGE_MAP = {
    4: "streak_4",
    8: "streak_8",
}


def resolve_timezone(name: str | None) -> tzinfo:
    """ZoneInfo for an IANA name; UTC when absent."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local(dt: datetime, tz: tzinfo) -> datetime:
    """Convert to account-local time. Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def get_week_iso(dt: datetime) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return dt.strftime("%G-W%V")


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def local_week_start(dt: datetime, tz: tzinfo) -> date:
    """Monday of the account-local ISO week containing dt."""
    return get_monday(to_local(dt, tz))


def compute_consecutive_weeks(timestamps: Iterable[datetime], tz: tzinfo = timezone.utc) -> int:
    """Count consecutive fishing weeks ending at the most recent active week.

    Weeks start Monday 00:00 account-local. Counting walks back from the
    latest week with a catch and stops at the first empty week.
    """
    weeks = {local_week_start(ts, tz) for ts in timestamps}
    if not weeks:
        return 0

    current = max(weeks)
    streak = 0
    while current in weeks:
        streak += 1
        current -= timedelta(days=7)
    return streak

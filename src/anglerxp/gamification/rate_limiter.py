"""Catch-logging rate limiter over two trailing windows."""

from __future__ import annotations

from datetime import datetime, timedelta

from anglerxp.config import Settings
from anglerxp.gamification.repository import GamificationRepository

HOURLY_WINDOW = timedelta(hours=1)
DAILY_WINDOW = timedelta(hours=24)


async def is_rate_limited(
    repo: GamificationRepository,
    account_id: str,
    now: datetime,
    settings: Settings,
) -> bool:
    """True when the account logged too many catches recently.

    Counts include the catch currently being processed.
    """
    hourly = await repo.count_catches(account_id, since=now - HOURLY_WINDOW)
    if hourly > settings.rate_limit_hourly_max:
        return True
    daily = await repo.count_catches(account_id, since=now - DAILY_WINDOW)
    return daily > settings.rate_limit_daily_max

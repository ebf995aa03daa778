"""Level thresholds and computation.

One canonical curve. Displayed rank depends on these numbers, so any change
is a breaking change; tests pin them exactly.
"""

from __future__ import annotations

import math

from anglerxp.gamification.schemas import LevelProgress

# XP_THRESHOLDS[n] is the cumulative XP needed to leave level n (reach n + 1).
XP_THRESHOLDS: list[int] = [0, 50, 120, 220, 350, 520, 750, 1050, 1400, 1800, 2300]

MAX_TABLE_LEVEL = 10
XP_PER_LEVEL_BEYOND_TABLE = 600

TIERS: list[tuple[int, str]] = [
    (10, "bronze"),
    (20, "silver"),
    (30, "gold"),
    (50, "platinum"),
]


def xp_for_next_level(level: int) -> int:
    """Cumulative XP at which ``level`` ends and ``level + 1`` begins."""
    if level <= 0:
        return 0
    if level < MAX_TABLE_LEVEL:
        return XP_THRESHOLDS[level]
    return XP_THRESHOLDS[MAX_TABLE_LEVEL] + (level - MAX_TABLE_LEVEL) * XP_PER_LEVEL_BEYOND_TABLE


def level_for_xp(xp: int) -> int:
    """Level for a cumulative XP total. Exact inverse of xp_for_next_level()."""
    if xp < XP_THRESHOLDS[MAX_TABLE_LEVEL]:
        level = 1
        while xp >= XP_THRESHOLDS[level]:
            level += 1
        return level
    beyond = (xp - XP_THRESHOLDS[MAX_TABLE_LEVEL]) // XP_PER_LEVEL_BEYOND_TABLE
    return MAX_TABLE_LEVEL + 1 + beyond


def progress_within_level(xp: int, level: int) -> LevelProgress:
    """Progress through ``level``; percentage rounds half up and stays in [0, 100]."""
    floor_xp = xp_for_next_level(level - 1)
    needed = xp_for_next_level(level) - floor_xp
    current = xp - floor_xp
    percentage = math.floor(current / needed * 100 + 0.5)
    return LevelProgress(
        current=current,
        needed=needed,
        percentage=max(0, min(100, percentage)),
    )


def tier_for_level(level: int) -> str:
    for upper, tier in TIERS:
        if level < upper:
            return tier
    return "diamond"

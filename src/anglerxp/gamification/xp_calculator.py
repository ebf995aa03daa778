"""XP award formulas for catches and sessions. Pure; no I/O."""

from __future__ import annotations

import math

from anglerxp.gamification.schemas import AwardHistory, CatchEvent, XPBreakdown

KG_PER_LB = 0.45359237

XP_VALUES = {
    "base_with_photo": 10,
    "base_without_photo": 3,
    "photo_bonus": 5,
    "weight_bonus_per_5lb": 5,
    "new_species_bonus": 25,
    "session_base": 15,
    "session_per_catch": 2,
    "session_catch_cap": 20,
}


def kg_to_lb(weight_kg: float) -> float:
    return weight_kg / KG_PER_LB


def lb_to_kg(weight_lb: float) -> float:
    return weight_lb * KG_PER_LB


def weight_bonus(weight_kg: float | None) -> int:
    """5 XP per full 5 lb of catch weight."""
    if not weight_kg or weight_kg <= 0:
        return 0
    return math.floor(kg_to_lb(weight_kg) / 5) * XP_VALUES["weight_bonus_per_5lb"]


def compute_award(catch: CatchEvent, history: AwardHistory) -> XPBreakdown:
    """Compute the XP breakdown for logging ``catch``."""
    base = XP_VALUES["base_with_photo"] if catch.has_photo else XP_VALUES["base_without_photo"]
    species_bonus = 0 if history.has_prior_catch_of_species else XP_VALUES["new_species_bonus"]
    photo_bonus = XP_VALUES["photo_bonus"] if catch.has_photo else 0
    weekly = history.weekly_bonus_points or 0
    weight = weight_bonus(catch.weight_kg)

    return XPBreakdown(
        base=base,
        species_bonus=species_bonus,
        weight_bonus=weight,
        photo_bonus=photo_bonus,
        weekly_species_bonus=weekly,
        total=base + species_bonus + weight + photo_bonus + weekly,
    )


def photo_upgrade_delta() -> int:
    """XP owed when a photo is attached to a catch logged without one."""
    return (
        XP_VALUES["base_with_photo"] - XP_VALUES["base_without_photo"]
    ) + XP_VALUES["photo_bonus"]


def compute_session_award(catch_count: int) -> int:
    """Session completion XP: 15 base plus 2 per catch, bonus capped at 20."""
    bonus = min(max(catch_count, 0) * XP_VALUES["session_per_catch"], XP_VALUES["session_catch_cap"])
    return XP_VALUES["session_base"] + bonus

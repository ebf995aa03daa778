"""Gamification rules engine: XP awards, levels, challenges, streaks."""

from anglerxp.gamification.engine import GamificationEngine

__all__ = ["GamificationEngine"]

"""anglerxp: XP, levels and challenges for a fishing logbook."""

__version__ = "0.1.0"

"""Gamification engine exceptions.

Rate limiting is deliberately absent: a rate-limited catch is a silent skip,
not an error.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for engine errors."""


class NotAuthenticated(GamificationError):
    """No resolved account for the caller. Raised before any side effect."""


class LookupFailure(GamificationError):
    """A collaborator read or write failed; the current pass is aborted."""


class InvalidChallengeDefinition(GamificationError):
    """A rule references a slug with no active challenge definition."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"No active challenge definition for slug {slug!r}")
        self.slug = slug


class ConcurrencyConflict(GamificationError):
    """An optimistic write on a challenge progress row lost a race."""

    def __init__(self, account_id: str, challenge_id: int) -> None:
        super().__init__(
            f"Concurrent update of challenge {challenge_id} for account {account_id}"
        )
        self.account_id = account_id
        self.challenge_id = challenge_id

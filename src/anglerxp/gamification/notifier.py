"""Redis pub/sub notifications for committed gamification changes."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"
CHALLENGE_COMPLETED_CHANNEL = "pubsub:challenge_completed"
CHALLENGE_REVOKED_CHANNEL = "pubsub:challenge_revoked"


class Notifier:
    """Buffers events during a pass and publishes them after commit."""

    def __init__(self, redis: object | None, enabled: bool = True) -> None:
        self.redis = redis
        self.enabled = enabled
        self.pending: list[tuple[str, dict[str, Any]]] = []

    def level_up(self, account_id: str, old_level: int, new_level: int, xp: int) -> None:
        self.pending.append((
            LEVEL_UP_CHANNEL,
            {"account_id": account_id, "old_level": old_level, "new_level": new_level, "xp": xp},
        ))

    def challenge_completed(self, account_id: str, slug: str, xp_reward: int) -> None:
        self.pending.append((
            CHALLENGE_COMPLETED_CHANNEL,
            {"account_id": account_id, "slug": slug, "xp_reward": xp_reward},
        ))

    def challenge_revoked(self, account_id: str, slug: str, xp_revoked: int) -> None:
        self.pending.append((
            CHALLENGE_REVOKED_CHANNEL,
            {"account_id": account_id, "slug": slug, "xp_revoked": xp_revoked},
        ))

    def discard(self) -> None:
        self.pending.clear()

    async def flush(self) -> int:
        """Publish buffered events. Failures are logged, never raised."""
        events, self.pending = self.pending, []
        if self.redis is None or not self.enabled:
            return 0

        sent = 0
        for channel, payload in events:
            try:
                await self.redis.publish(channel, json.dumps(payload))  # type: ignore[union-attr]
                sent += 1
            except Exception:
                logger.warning("Failed to publish %s notification", channel, exc_info=True)
        return sent

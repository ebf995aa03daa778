"""Challenge evaluator: walks the rule table for one catch or session."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from anglerxp.errors import ConcurrencyConflict, InvalidChallengeDefinition
from anglerxp.gamification.history import HistorySnapshot
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.rules import ChallengeRule, RuleEvent, RuleKind, rules_for
from anglerxp.gamification.schemas import (
    CatchEvent,
    ChallengeDefinitionRecord,
    ChallengeProgressRecord,
    XPReason,
)
from anglerxp.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeEvaluator:
    """Evaluates challenge rules for one account pass.

    Completed definitions are collected on ``self.completed`` so the caller
    can publish them once the pass has committed.
    """

    def __init__(
        self,
        repo: GamificationRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repo = repo
        self._clock = clock or _utcnow
        self.completed: list[ChallengeDefinitionRecord] = []

    async def evaluate_catch(
        self,
        catch: CatchEvent,
        snapshot: HistorySnapshot,
        rules: Iterable[ChallengeRule] | None = None,
    ) -> list[str]:
        """Evaluate catch rules. Returns slugs completed by this call."""
        if rules is None:
            rules = rules_for(RuleEvent.CATCH)
        return await self._run(rules, catch.account_id, catch, snapshot)

    async def evaluate_session(self, snapshot: HistorySnapshot) -> list[str]:
        return await self._run(rules_for(RuleEvent.SESSION), snapshot.account_id, None, snapshot)

    async def complete_event_challenges(self, account_id: str, event_name: str) -> list[str]:
        """Complete every active event-scoped challenge bound to ``event_name``."""
        awarded: list[str] = []
        for definition in await self.repo.list_event_challenges(event_name):
            for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
                try:
                    if await self._complete_outright(account_id, definition):
                        awarded.append(definition.slug)
                    break
                except ConcurrencyConflict:
                    self._log_conflict(definition.slug, account_id, attempt)
        return awarded

    async def _run(
        self,
        rules: Iterable[ChallengeRule],
        account_id: str,
        catch: CatchEvent | None,
        snapshot: HistorySnapshot,
    ) -> list[str]:
        awarded: list[str] = []
        for rule in rules:
            slug = rule.resolve_slug(catch)
            if slug is None:
                continue
            for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
                try:
                    if await self._apply(rule, slug, account_id, catch, snapshot):
                        awarded.append(slug)
                    break
                except InvalidChallengeDefinition:
                    logger.debug("Skipping rule %s: no active definition", slug)
                    break
                except ConcurrencyConflict:
                    self._log_conflict(slug, account_id, attempt)
        return awarded

    def _log_conflict(self, slug: str, account_id: str, attempt: int) -> None:
        if attempt < MAX_WRITE_ATTEMPTS:
            logger.info("Progress conflict on %s for %s, retrying", slug, account_id)
        else:
            logger.warning("Progress conflict on %s for %s, giving up", slug, account_id)

    async def _apply(
        self,
        rule: ChallengeRule,
        slug: str,
        account_id: str,
        catch: CatchEvent | None,
        snapshot: HistorySnapshot,
    ) -> bool:
        """Advance one rule. Returns True when this call completed it."""
        if rule.kind is RuleKind.AGGREGATE:
            value = rule.metric(snapshot) if rule.metric else 0
            if value <= 0:
                return False
        elif catch is None or not rule.matches(catch, snapshot):
            return False

        definition = await self.repo.get_challenge_definition(slug)
        if definition is None:
            raise InvalidChallengeDefinition(slug)

        progress = await self.repo.get_challenge_progress(account_id, definition.id)
        if progress is not None and progress.is_completed:
            return False
        if progress is None:
            progress = ChallengeProgressRecord(
                account_id=account_id,
                challenge_id=definition.id,
                slug=slug,
                target=definition.target,
            )

        target = definition.target
        link_catch = rule.kind is not RuleKind.AGGREGATE
        if rule.kind is RuleKind.AGGREGATE:
            new_progress = max(progress.progress, min(value, target))
        else:
            if progress.id is not None and await self.repo.has_challenge_link(progress.id, catch.id):
                return False
            if rule.kind is RuleKind.ONCE:
                new_progress = target
            else:
                new_progress = min(progress.progress + 1, target)

        if not link_catch and new_progress == progress.progress and progress.id is not None:
            return False

        completes = new_progress >= target
        stored = await self.repo.upsert_challenge_progress(
            progress.model_copy(
                update={
                    "progress": new_progress,
                    "target": target,
                    "completed_at": self._clock() if completes else None,
                    "xp_awarded": definition.xp_reward if completes else 0,
                }
            )
        )
        if link_catch:
            await self.repo.add_challenge_link(stored.id, catch.id)

        if completes:
            await self._award(account_id, definition, stored)
        return completes

    async def _complete_outright(
        self, account_id: str, definition: ChallengeDefinitionRecord
    ) -> bool:
        progress = await self.repo.get_challenge_progress(account_id, definition.id)
        if progress is not None and progress.is_completed:
            return False
        if progress is None:
            progress = ChallengeProgressRecord(
                account_id=account_id,
                challenge_id=definition.id,
                slug=definition.slug,
                target=definition.target,
            )
        stored = await self.repo.upsert_challenge_progress(
            progress.model_copy(
                update={
                    "progress": definition.target,
                    "target": definition.target,
                    "completed_at": self._clock(),
                    "xp_awarded": definition.xp_reward,
                }
            )
        )
        await self._award(account_id, definition, stored)
        return True

    async def _award(
        self,
        account_id: str,
        definition: ChallengeDefinitionRecord,
        progress: ChallengeProgressRecord,
    ) -> None:
        if definition.xp_reward:
            await grant_xp(
                self.repo,
                account_id,
                definition.xp_reward,
                XPReason.CHALLENGE_COMPLETED,
                "challenge",
                str(progress.id),
                details={"slug": definition.slug},
            )
        self.completed.append(definition)
        logger.info("Challenge %s completed by %s", definition.slug, account_id)

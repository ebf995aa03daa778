"""Gamification engine facade.

Every public operation is one pass: it takes the per-account lock, opens a
unit of work, resolves the account, does its reads and writes through the
repository, and commits once. Collaborator failures roll the whole pass back
and come back as a result with ``failed=True``; the triggering catch write is
never affected. Notifications go out only after a successful commit.

An engine built with ``session_factory`` opens a fresh session per pass, so
passes for different accounts run concurrently. An engine built around one
repository shares that repository's session, and its passes run one at a time.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from anglerxp.config import Settings, get_settings
from anglerxp.errors import LookupFailure, NotAuthenticated
from anglerxp.gamification.challenge_evaluator import ChallengeEvaluator
from anglerxp.gamification.grace_period import reconcile_photo_added
from anglerxp.gamification.history import (
    account_timezone,
    load_catch_snapshot,
    load_session_snapshot,
)
from anglerxp.gamification.notifier import Notifier
from anglerxp.gamification.rate_limiter import is_rate_limited
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.reversal import remove_catch_from_challenge, reverse_catch
from anglerxp.gamification.schemas import (
    AccountRecord,
    AwardHistory,
    CatchEvent,
    CatchXPResult,
    DeletedCatch,
    EventResult,
    LinkRemovalResult,
    PhotoReconcileResult,
    ReversalResult,
    SessionXPResult,
    XPReason,
)
from anglerxp.gamification.sql_repository import SqlGamificationRepository
from anglerxp.gamification.streak_service import local_week_start, resolve_timezone
from anglerxp.gamification.xp_calculator import compute_award, compute_session_award
from anglerxp.gamification.xp_service import grant_xp, reconcile_account, refresh_account_xp

logger = structlog.get_logger()

T = TypeVar("T")

_account_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()


def account_lock(account_id: str) -> asyncio.Lock:
    """Lock shared by every engine instance for ``account_id``."""
    lock = _account_locks.get(account_id)
    if lock is None:
        lock = asyncio.Lock()
        _account_locks[account_id] = lock
    return lock


class PassContext:
    """The repository, account and pending notifications of one pass."""

    def __init__(
        self,
        repo: GamificationRepository,
        account: AccountRecord,
        notifier: Notifier,
        clock: Callable[[], datetime],
    ) -> None:
        self.repo = repo
        self.account = account
        self.notifier = notifier
        self.clock = clock

    def evaluator(self) -> ChallengeEvaluator:
        return ChallengeEvaluator(self.repo, clock=self.clock)

    def queue_completions(self, evaluator: ChallengeEvaluator) -> None:
        for definition in evaluator.completed:
            self.notifier.challenge_completed(self.account.id, definition.slug, definition.xp_reward)

    def queue_level_up(self, after: AccountRecord) -> bool:
        before = self.account
        if after.level > before.level:
            self.notifier.level_up(before.id, before.level, after.level, after.xp)
            return True
        return False

    async def current(self) -> AccountRecord:
        account = await self.repo.get_account(self.account.id)
        if account is None:
            raise LookupFailure(f"Account {self.account.id} disappeared mid-pass")
        return account

    async def refresh_countries(self) -> None:
        codes = sorted(await self.repo.distinct_country_codes(self.account.id))
        if codes != sorted(self.account.countries_fished):
            await self.repo.set_cached_countries(self.account.id, codes)


class GamificationEngine:
    """Entry point for catch, photo, session and deletion events."""

    def __init__(
        self,
        repo: GamificationRepository | None = None,
        redis: object | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        if (repo is None) == (session_factory is None):
            msg = "GamificationEngine needs exactly one of repo or session_factory"
            raise ValueError(msg)
        self.repo = repo
        self.redis = redis
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self._shared_session_lock = asyncio.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Pass plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[GamificationRepository]:
        if self._session_factory is not None:
            async with self._session_factory() as session:
                yield SqlGamificationRepository(session)
        else:
            # One session cannot carry two interleaved passes.
            async with self._shared_session_lock:
                yield self.repo  # type: ignore[misc]

    async def _run_pass(
        self,
        account_id: str,
        operation: str,
        body: Callable[[PassContext], Awaitable[T]],
        failed: Callable[[], T],
    ) -> T:
        if not account_id:
            raise NotAuthenticated("No account for gamification pass")

        notifier = Notifier(self.redis, enabled=self.settings.publish_events)
        async with account_lock(account_id), self._unit_of_work() as repo:
            try:
                account = await repo.get_account(account_id)
                if account is None:
                    raise NotAuthenticated(f"Unknown account {account_id}")
                result = await body(PassContext(repo, account, notifier, self._clock))
                await repo.commit()
            except NotAuthenticated:
                await repo.rollback()
                raise
            except LookupFailure:
                await self._abort(repo, notifier)
                logger.warning(
                    "gamification_pass_aborted",
                    operation=operation,
                    account_id=account_id,
                    exc_info=True,
                )
                return failed()
            except Exception:
                await self._abort(repo, notifier)
                logger.exception(
                    "gamification_pass_failed", operation=operation, account_id=account_id
                )
                return failed()

        await notifier.flush()
        return result

    async def _abort(self, repo: GamificationRepository, notifier: Notifier) -> None:
        notifier.discard()
        try:
            await repo.rollback()
        except LookupFailure:
            logger.warning("gamification_rollback_failed", exc_info=True)

    # ------------------------------------------------------------------
    # Catch logged
    # ------------------------------------------------------------------

    async def process_catch(self, catch: CatchEvent, now: datetime | None = None) -> CatchXPResult:
        """Award XP and evaluate challenges for a freshly committed catch."""

        async def body(ctx: PassContext) -> CatchXPResult:
            repo, account = ctx.repo, ctx.account
            current_time = now or self._clock()
            if await is_rate_limited(repo, account.id, current_time, self.settings):
                logger.info("catch_rate_limited", account_id=account.id, catch_id=catch.id)
                return CatchXPResult(
                    rate_limited=True, new_xp=account.xp, new_level=account.level
                )

            result = CatchXPResult()
            existing = await repo.find_ledger_entry(account.id, XPReason.CATCH_LOGGED, catch.id)
            if existing is None:
                tz = resolve_timezone(account_timezone(account, self.settings))
                history = AwardHistory(
                    has_prior_catch_of_species=await repo.has_prior_catch_of_species(
                        account.id, catch.species, exclude_catch_id=catch.id
                    ),
                    weekly_bonus_points=await repo.weekly_species_bonus_points(
                        catch.species, local_week_start(catch.caught_at, tz)
                    ),
                )
                breakdown = compute_award(catch, history)
                await grant_xp(
                    repo,
                    account.id,
                    breakdown.total,
                    XPReason.CATCH_LOGGED,
                    "catch",
                    catch.id,
                    details={"species": catch.species, "breakdown": breakdown.model_dump()},
                )
                result.xp_awarded = breakdown.total
                result.breakdown = breakdown
                result.weekly_species_points = breakdown.weekly_species_bonus

            if catch.country_code:
                await ctx.refresh_countries()

            evaluator = ctx.evaluator()
            if catch.has_photo:
                snapshot = await load_catch_snapshot(repo, account, catch, self.settings)
                result.challenges_completed = await evaluator.evaluate_catch(catch, snapshot)
            else:
                logger.debug("challenges_skipped_no_photo", catch_id=catch.id)

            after = await ctx.current()
            ctx.queue_completions(evaluator)
            result.leveled_up = ctx.queue_level_up(after)
            result.new_xp = after.xp
            result.new_level = after.level
            return result

        return await self._run_pass(
            catch.account_id, "process_catch", body, lambda: CatchXPResult(failed=True)
        )

    # ------------------------------------------------------------------
    # Session completed
    # ------------------------------------------------------------------

    async def process_session_completed(
        self, account_id: str, session_id: str, catch_count: int | None = None
    ) -> SessionXPResult:
        """Award session XP once and evaluate session challenges."""

        async def body(ctx: PassContext) -> SessionXPResult:
            repo, account = ctx.repo, ctx.account
            result = SessionXPResult()
            existing = await repo.find_ledger_entry(
                account.id, XPReason.SESSION_COMPLETED, session_id
            )
            if existing is None:
                count = catch_count
                if count is None:
                    count = await repo.count_session_catches(session_id)
                amount = compute_session_award(count)
                await grant_xp(
                    repo,
                    account.id,
                    amount,
                    XPReason.SESSION_COMPLETED,
                    "session",
                    session_id,
                    details={"catch_count": count},
                )
                result.xp_awarded = amount

            evaluator = ctx.evaluator()
            snapshot = await load_session_snapshot(repo, account, self.settings)
            result.challenges_completed = await evaluator.evaluate_session(snapshot)

            after = await ctx.current()
            ctx.queue_completions(evaluator)
            result.leveled_up = ctx.queue_level_up(after)
            result.new_xp = after.xp
            result.new_level = after.level
            return result

        return await self._run_pass(
            account_id,
            "process_session_completed",
            body,
            lambda: SessionXPResult(failed=True),
        )

    # ------------------------------------------------------------------
    # Photo attached later
    # ------------------------------------------------------------------

    async def reconcile_photo_added(
        self, catch: CatchEvent, attached_at: datetime | None = None
    ) -> PhotoReconcileResult:

        async def body(ctx: PassContext) -> PhotoReconcileResult:
            evaluator = ctx.evaluator()
            result = await reconcile_photo_added(
                ctx.repo,
                evaluator,
                ctx.account,
                catch,
                attached_at or self._clock(),
                self.settings,
            )
            if result.reprocessed:
                after = await ctx.current()
                ctx.queue_completions(evaluator)
                ctx.queue_level_up(after)
            return result

        return await self._run_pass(
            catch.account_id,
            "reconcile_photo_added",
            body,
            lambda: PhotoReconcileResult(failed=True),
        )

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def process_catch_deleted(
        self, account_id: str, catch_id: str, session_id: str | None = None
    ) -> ReversalResult:
        return await self.process_catches_deleted(
            account_id, [DeletedCatch(catch_id=catch_id, session_id=session_id)]
        )

    async def process_catches_deleted(
        self, account_id: str, deleted: Iterable[DeletedCatch]
    ) -> ReversalResult:
        """Reverse XP and challenge credit for deleted catches in one pass."""
        deleted = list(deleted)

        async def body(ctx: PassContext) -> ReversalResult:
            account_id = ctx.account.id
            result = ReversalResult()
            for item in deleted:
                reversed_xp, removals = await reverse_catch(ctx.repo, account_id, item)
                result.xp_reversed += reversed_xp
                for removal in removals:
                    if removal.xp_revoked:
                        result.challenges_revoked.append(removal.slug)
                        ctx.notifier.challenge_revoked(account_id, removal.slug, removal.xp_revoked)

            grant = await refresh_account_xp(ctx.repo, account_id)
            await ctx.refresh_countries()
            result.new_xp = grant.new_xp
            result.new_level = grant.new_level
            return result

        return await self._run_pass(
            account_id, "process_catches_deleted", body, lambda: ReversalResult(failed=True)
        )

    async def remove_catch_from_challenge(
        self, account_id: str, progress_id: int, catch_id: str
    ) -> LinkRemovalResult | None:
        """Detach one catch from one challenge without deleting the catch."""

        async def body(ctx: PassContext) -> LinkRemovalResult | None:
            removal = await remove_catch_from_challenge(
                ctx.repo, ctx.account.id, progress_id, catch_id
            )
            if removal is not None and removal.xp_revoked:
                ctx.notifier.challenge_revoked(ctx.account.id, removal.slug, removal.xp_revoked)
            return removal

        return await self._run_pass(
            account_id, "remove_catch_from_challenge", body, lambda: None
        )

    # ------------------------------------------------------------------
    # Events and maintenance
    # ------------------------------------------------------------------

    async def process_account_event(self, account_id: str, event_name: str) -> EventResult:
        """Complete event-scoped challenges bound to ``event_name``."""

        async def body(ctx: PassContext) -> EventResult:
            evaluator = ctx.evaluator()
            completed = await evaluator.complete_event_challenges(ctx.account.id, event_name)
            after = await ctx.current()
            ctx.queue_completions(evaluator)
            ctx.queue_level_up(after)
            return EventResult(challenges_completed=completed)

        return await self._run_pass(
            account_id, "process_account_event", body, lambda: EventResult(failed=True)
        )

    async def reconcile_account(self, account_id: str) -> AccountRecord | None:
        """Rebuild xp, level and countries from history. None on failure."""

        async def body(ctx: PassContext) -> AccountRecord:
            return await reconcile_account(ctx.repo, ctx.account.id)

        return await self._run_pass(account_id, "reconcile_account", body, lambda: None)

"""Undo XP attribution when catches are deleted."""

from __future__ import annotations

import logging

from anglerxp.errors import ConcurrencyConflict
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.schemas import DeletedCatch, LinkRemovalResult, XPReason
from anglerxp.gamification.xp_calculator import compute_session_award
from anglerxp.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

# Ledger reasons that carry XP earned directly by logging a catch.
CATCH_XP_REASONS = (XPReason.CATCH_LOGGED, XPReason.PHOTO_ADDED)


async def remove_catch_from_challenge(
    repo: GamificationRepository,
    account_id: str,
    progress_id: int,
    catch_id: str,
) -> LinkRemovalResult | None:
    """Drop one catch's contribution to a challenge and revoke if needed.

    Returns None when the progress row is unknown, belongs to another
    account, or the catch was not linked to it.
    """
    progress = await repo.get_challenge_progress_by_id(progress_id)
    if progress is None or progress.account_id != account_id:
        logger.warning("Progress %s not found for account %s", progress_id, account_id)
        return None
    if not await repo.remove_challenge_link(progress_id, catch_id):
        return None

    for attempt in (1, 2):
        if attempt == 2:
            progress = await repo.get_challenge_progress_by_id(progress_id)
            if progress is None:
                return None
        remaining = await repo.count_challenge_links(progress_id)
        was_completed = progress.is_completed
        revoke = was_completed and remaining < progress.target
        update: dict = {"progress": remaining}
        if revoke:
            update.update(completed_at=None, xp_awarded=0)
        try:
            await repo.upsert_challenge_progress(progress.model_copy(update=update))
            break
        except ConcurrencyConflict:
            if attempt == 2:
                raise
            logger.info("Progress conflict on %s during link removal, retrying", progress_id)

    xp_revoked = 0
    if revoke and progress.xp_awarded > 0:
        xp_revoked = progress.xp_awarded
        await grant_xp(
            repo,
            account_id,
            -xp_revoked,
            XPReason.CHALLENGE_REVOKED,
            "challenge",
            str(progress_id),
            details={"slug": progress.slug, "catch_id": catch_id},
        )
        logger.info("Challenge %s revoked for %s", progress.slug, account_id)

    return LinkRemovalResult(
        slug=progress.slug,
        new_progress=remaining,
        was_completed=was_completed,
        is_now_complete=was_completed and not revoke,
        xp_revoked=xp_revoked,
    )


async def recalculate_session_xp(
    repo: GamificationRepository, account_id: str, session_id: str
) -> int:
    """Lower a completed session's award to match its remaining catches.

    Returns the XP taken back; awards are never raised here.
    """
    if await repo.session_duration_minutes(session_id) is None:
        return 0
    entry = await repo.find_ledger_entry(account_id, XPReason.SESSION_COMPLETED, session_id)
    if entry is None or entry.amount <= 0:
        return 0

    new_amount = compute_session_award(await repo.count_session_catches(session_id))
    difference = entry.amount - new_amount
    if difference <= 0:
        return 0
    await repo.adjust_ledger_entry(entry.id, new_amount)
    return difference


async def reverse_catch(
    repo: GamificationRepository, account_id: str, deleted: DeletedCatch
) -> tuple[int, list[LinkRemovalResult]]:
    """Reverse everything ``deleted`` contributed.

    Returns (xp reversed, link removals). The caller refreshes the account
    aggregate once all catches in a batch have been processed.
    """
    reversed_xp = 0
    for reason in CATCH_XP_REASONS:
        entry = await repo.find_ledger_entry(account_id, reason, deleted.catch_id)
        if entry is not None and entry.amount > 0 and not entry.reversed:
            await repo.negate_ledger_entry(entry.id)
            reversed_xp += entry.amount

    removals: list[LinkRemovalResult] = []
    for progress_id in await repo.progress_ids_for_catch(deleted.catch_id):
        result = await remove_catch_from_challenge(repo, account_id, progress_id, deleted.catch_id)
        if result is not None:
            removals.append(result)
            reversed_xp += result.xp_revoked

    if deleted.session_id:
        reversed_xp += await recalculate_session_xp(repo, account_id, deleted.session_id)

    return reversed_xp, removals

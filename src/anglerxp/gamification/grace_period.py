"""Late photo credit for catches logged without a photo."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from anglerxp.config import Settings
from anglerxp.gamification.challenge_evaluator import ChallengeEvaluator
from anglerxp.gamification.history import load_catch_snapshot
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.schemas import (
    AccountRecord,
    CatchEvent,
    PhotoReconcileResult,
    XPReason,
)
from anglerxp.gamification.streak_service import to_local
from anglerxp.gamification.xp_calculator import photo_upgrade_delta
from anglerxp.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)


def within_grace_period(caught_at: datetime, attached_at: datetime, minutes: int) -> bool:
    """Inclusive: attaching exactly at the boundary still qualifies."""
    elapsed = to_local(attached_at, timezone.utc) - to_local(caught_at, timezone.utc)
    return elapsed <= timedelta(minutes=minutes)


async def reconcile_photo_added(
    repo: GamificationRepository,
    evaluator: ChallengeEvaluator,
    account: AccountRecord,
    catch: CatchEvent,
    attached_at: datetime,
    settings: Settings,
) -> PhotoReconcileResult:
    """Credit the photo upgrade and re-run challenges for ``catch``.

    No-op outside the grace window, when the original award is missing or
    reversed, or when photo XP was already credited.
    """
    if not within_grace_period(catch.caught_at, attached_at, settings.photo_grace_period_minutes):
        logger.debug("Photo for catch %s attached outside grace period", catch.id)
        return PhotoReconcileResult()

    original = await repo.find_ledger_entry(account.id, XPReason.CATCH_LOGGED, catch.id)
    if original is None or original.amount <= 0:
        return PhotoReconcileResult()
    if original.details.get("breakdown", {}).get("photo_bonus", 0) > 0:
        return PhotoReconcileResult()
    if await repo.find_ledger_entry(account.id, XPReason.PHOTO_ADDED, catch.id) is not None:
        return PhotoReconcileResult()

    delta = photo_upgrade_delta()
    await grant_xp(
        repo,
        account.id,
        delta,
        XPReason.PHOTO_ADDED,
        "catch",
        catch.id,
        details={"attached_at": attached_at.isoformat()},
    )

    photographed = catch.model_copy(update={"has_photo": True})
    snapshot = await load_catch_snapshot(repo, account, photographed, settings)
    completed = await evaluator.evaluate_catch(photographed, snapshot)

    return PhotoReconcileResult(
        xp_awarded=delta,
        reprocessed=True,
        challenges_completed=completed,
    )

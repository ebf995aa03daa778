"""XP grants against the append-only ledger, with level-up detection."""

from __future__ import annotations

import logging

from anglerxp.errors import LookupFailure
from anglerxp.gamification.level_thresholds import level_for_xp
from anglerxp.gamification.repository import GamificationRepository
from anglerxp.gamification.schemas import AccountRecord, XPGrant, XPReason

logger = logging.getLogger(__name__)


async def _require_account(repo: GamificationRepository, account_id: str) -> AccountRecord:
    account = await repo.get_account(account_id)
    if account is None:
        raise LookupFailure(f"Account {account_id} disappeared mid-pass")
    return account


async def refresh_account_xp(repo: GamificationRepository, account_id: str) -> XPGrant:
    """Recompute the account's xp and level from the ledger sum.

    ``amount`` on the returned grant is the change against the cached value.
    """
    account = await _require_account(repo, account_id)
    total = await repo.sum_ledger(account_id)
    new_level = level_for_xp(max(total, 0))
    if total != account.xp or new_level != account.level:
        await repo.set_account_xp(account_id, total, new_level)
    return XPGrant(
        amount=total - account.xp,
        new_xp=total,
        old_level=account.level,
        new_level=new_level,
    )


async def grant_xp(
    repo: GamificationRepository,
    account_id: str,
    amount: int,
    reason: XPReason,
    reference_type: str | None,
    reference_id: str | None,
    details: dict | None = None,
) -> XPGrant:
    """Append a ledger entry and bring the account aggregate in line with it.

    Negative amounts are allowed; they are how revocations are recorded.
    """
    await repo.append_ledger_entry(
        account_id, amount, reason, reference_type, reference_id, details
    )
    grant = await refresh_account_xp(repo, account_id)

    if grant.leveled_up:
        logger.info(
            "Account %s leveled up: %d -> %d", account_id, grant.old_level, grant.new_level
        )
    return XPGrant(
        amount=amount,
        new_xp=grant.new_xp,
        old_level=grant.old_level,
        new_level=grant.new_level,
    )


async def reconcile_account(repo: GamificationRepository, account_id: str) -> AccountRecord:
    """Rebuild every cached aggregate on the account from history.

    xp and level come from the ledger; countries_fished from catch history.
    """
    await refresh_account_xp(repo, account_id)
    account = await _require_account(repo, account_id)
    codes = sorted(await repo.distinct_country_codes(account_id))
    if codes != sorted(account.countries_fished):
        await repo.set_cached_countries(account_id, codes)
        account = account.model_copy(update={"countries_fished": codes})
    return account

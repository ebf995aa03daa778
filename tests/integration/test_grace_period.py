"""Late photo attachment tests."""

from __future__ import annotations

from datetime import timedelta

import pytest

from anglerxp.db.models import Catch
from anglerxp.gamification.schemas import XPReason


@pytest.fixture
def attach_photo(seeded_db):
    """Caller's primary write: store the photo on the catch row."""

    async def _attach_photo(catch):
        row = await seeded_db.get(Catch, catch.id)
        row.photo_url = "https://img.example/late.jpg"
        await seeded_db.commit()
        return catch.model_copy(update={"has_photo": True})

    return _attach_photo


class TestGracePeriod:
    @pytest.mark.asyncio
    async def test_photo_within_window_credits_twelve(self, engine, repo, account, add_catch, attach_photo):
        catch = await add_catch(account.id, "Perch", photo=False)
        logged = await engine.process_catch(catch)
        assert logged.xp_awarded == 28
        assert logged.challenges_completed == []

        await attach_photo(catch)
        result = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=59))

        assert result.xp_awarded == 12
        assert result.reprocessed
        assert sorted(result.challenges_completed) == ["catch_perch", "first_catch"]
        stored = await repo.get_account(account.id)
        assert stored.xp == 28 + 12 + 25 + 25

    @pytest.mark.asyncio
    async def test_exact_boundary_still_qualifies(self, engine, account, add_catch, attach_photo):
        catch = await add_catch(account.id, "Perch", photo=False)
        await engine.process_catch(catch)
        await attach_photo(catch)

        result = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=60))
        assert result.xp_awarded == 12

    @pytest.mark.asyncio
    async def test_photo_after_window_credits_nothing(self, engine, account, add_catch, attach_photo, ledger):
        catch = await add_catch(account.id, "Perch", photo=False)
        await engine.process_catch(catch)
        await attach_photo(catch)

        result = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=61))

        assert result.xp_awarded == 0
        assert not result.reprocessed
        reasons = [e.reason for e in await ledger(account.id)]
        assert XPReason.PHOTO_ADDED.value not in reasons

    @pytest.mark.asyncio
    async def test_attaching_twice_credits_once(self, engine, repo, account, add_catch, attach_photo):
        catch = await add_catch(account.id, "Perch", photo=False)
        await engine.process_catch(catch)
        await attach_photo(catch)

        first = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=10))
        second = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=20))

        assert first.xp_awarded == 12
        assert second.xp_awarded == 0
        assert second.challenges_completed == []
        stored = await repo.get_account(account.id)
        assert stored.xp == await repo.sum_ledger(account.id)

    @pytest.mark.asyncio
    async def test_photo_present_from_start(self, engine, account, add_catch):
        catch = await add_catch(account.id, "Perch", photo=True)
        await engine.process_catch(catch)

        result = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=5))
        assert result.xp_awarded == 0

    @pytest.mark.asyncio
    async def test_unprocessed_catch(self, engine, account, add_catch):
        catch = await add_catch(account.id, "Perch", photo=False)
        result = await engine.reconcile_photo_added(catch, catch.caught_at + timedelta(minutes=5))
        assert result.xp_awarded == 0

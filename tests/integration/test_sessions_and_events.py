"""Session completion, event challenges and account reconcile."""

from __future__ import annotations

import pytest
from sqlalchemy import update

from anglerxp.db.models import Account
from anglerxp.errors import NotAuthenticated
from anglerxp.gamification.schemas import XPReason


class TestSessionCompleted:
    @pytest.mark.asyncio
    async def test_first_session(self, engine, repo, account, add_session, add_catch):
        session_id = await add_session(account.id)
        for _ in range(4):
            await add_catch(account.id, "Roach", session_id=session_id, photo=False)

        result = await engine.process_session_completed(account.id, session_id)

        assert result.xp_awarded == 15 + 8
        assert result.challenges_completed == ["first_session"]
        assert (await repo.get_account(account.id)).xp == 23 + 25

    @pytest.mark.asyncio
    async def test_catch_bonus_capped(self, engine, account, add_session):
        session_id = await add_session(account.id)
        result = await engine.process_session_completed(account.id, session_id, catch_count=40)
        assert result.xp_awarded == 35

    @pytest.mark.asyncio
    async def test_awarded_once_per_session(self, engine, account, add_session, ledger):
        session_id = await add_session(account.id)
        await engine.process_session_completed(account.id, session_id, catch_count=2)
        again = await engine.process_session_completed(account.id, session_id, catch_count=2)

        assert again.xp_awarded == 0
        assert again.challenges_completed == []
        sessions = [e for e in await ledger(account.id) if e.reason == XPReason.SESSION_COMPLETED.value]
        assert len(sessions) == 1

    @pytest.mark.asyncio
    async def test_tenth_session(self, engine, account, add_session):
        for _ in range(9):
            session_id = await add_session(account.id)
            result = await engine.process_session_completed(account.id, session_id, catch_count=0)
            assert "session_10" not in result.challenges_completed

        result = await engine.process_session_completed(account.id, await add_session(account.id), catch_count=0)
        assert result.challenges_completed == ["session_10"]

    @pytest.mark.asyncio
    async def test_unknown_account(self, engine):
        with pytest.raises(NotAuthenticated):
            await engine.process_session_completed("ghost", "session-x", catch_count=1)


class TestAccountEvents:
    @pytest.mark.asyncio
    async def test_event_challenge_completes_once(self, engine, repo, account, add_challenge):
        await add_challenge("spring_derby", target=1, xp_reward=100, scope="event", scope_value="spring-derby")

        first = await engine.process_account_event(account.id, "spring-derby")
        second = await engine.process_account_event(account.id, "spring-derby")

        assert first.challenges_completed == ["spring_derby"]
        assert second.challenges_completed == []
        assert (await repo.get_account(account.id)).xp == 100

    @pytest.mark.asyncio
    async def test_inactive_and_unrelated_events_ignored(self, engine, account, add_challenge):
        await add_challenge("old_derby", scope="event", scope_value="spring-derby", is_active=False)
        await add_challenge("autumn_derby", scope="event", scope_value="autumn-derby")

        result = await engine.process_account_event(account.id, "spring-derby")
        assert result.challenges_completed == []


class TestReconcile:
    @pytest.mark.asyncio
    async def test_rebuilds_drifted_aggregate(self, engine, repo, account, add_catch, seeded_db):
        await engine.process_catch(await add_catch(account.id, "Perch", country_code="FR"))
        await seeded_db.execute(
            update(Account).where(Account.id == account.id).values(xp=9999, level=30, countries_fished=[])
        )
        await seeded_db.commit()

        rebuilt = await engine.reconcile_account(account.id)

        assert rebuilt.xp == await repo.sum_ledger(account.id)
        assert rebuilt.level == 2
        assert rebuilt.countries_fished == ["FR"]
        stored = await repo.get_account(account.id)
        assert (stored.xp, stored.level) == (rebuilt.xp, rebuilt.level)

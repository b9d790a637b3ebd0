"""Tests for the background match-expiry sweeper."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from academically.services.compatibility_service import CompatibilityScorer
from academically.services.directory_service import UserDirectory
from academically.services.expiry_service import ExpirySweeper
from academically.services.match_lifecycle import MatchLifecycle
from academically.services.match_repository import MatchRepository


async def _pending_match(db_session, create_student, clock):
    a = await create_student()
    b = await create_student()
    lifecycle = MatchLifecycle(
        MatchRepository(db_session), UserDirectory(db_session), CompatibilityScorer(), clock=clock
    )
    match = await lifecycle.create(a.id, b.id)
    await db_session.commit()
    return match


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_expires_and_commits(self, db_session, session_factory, create_student, clock):
        match = await _pending_match(db_session, create_student, clock)
        sweeper = ExpirySweeper(session_factory, clock=clock)

        assert await sweeper.run_once() == 0
        clock.advance(days=8)
        assert await sweeper.run_once() == 1
        assert await sweeper.run_once() == 0

        stored = await MatchRepository(db_session).get(match.id)
        assert stored.status == "expired"

    @pytest.mark.asyncio
    async def test_runs_the_lifecycle_sweep(self, session_factory, clock):
        with patch.object(MatchLifecycle, "expire_sweep", AsyncMock(return_value=2)) as sweep:
            assert await ExpirySweeper(session_factory, clock=clock).run_once() == 2

        sweep.assert_awaited_once_with(clock.now)

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, clock):
        factory = MagicMock(side_effect=RuntimeError("database unavailable"))
        sweeper = ExpirySweeper(factory, clock=clock)

        assert await sweeper.run_once() == 0


class TestLoop:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, session_factory):
        sweeper = ExpirySweeper(session_factory, interval_seconds=3600)

        with patch.object(sweeper, "run_once", AsyncMock(return_value=0)) as run_once:
            sweeper.start()
            assert sweeper.running is True
            await asyncio.sleep(0.05)
            await sweeper.stop()

        run_once.assert_awaited()
        assert sweeper.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, session_factory):
        sweeper = ExpirySweeper(session_factory, interval_seconds=3600)

        with patch.object(sweeper, "run_once", AsyncMock(return_value=0)):
            sweeper.start()
            task = sweeper._task
            sweeper.start()
            assert sweeper._task is task
            await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, session_factory):
        await ExpirySweeper(session_factory).stop()

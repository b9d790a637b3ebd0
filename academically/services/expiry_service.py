"""
AcademicAlly — Periodic match expiry.

Runs ``MatchLifecycle.expire_sweep`` on a fixed interval inside the API
process.  Each run uses its own session and commits on success; a failed
run is logged and the loop carries on with the next tick.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academically.services.compatibility_service import CompatibilityScorer
from academically.services.directory_service import UserDirectory
from academically.services.match_lifecycle import MatchLifecycle
from academically.services.match_repository import MatchRepository

logger = structlog.get_logger("academically.expiry_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpirySweeper:
    """Background task that expires stale pending matches."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float = 3600.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: asyncio.Task | None = None
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Expire everything past due right now and return the count.

        Errors are logged and reported as zero expirations.
        """
        now = self.clock()
        try:
            async with self.session_factory() as session:
                lifecycle = MatchLifecycle(
                    MatchRepository(session),
                    UserDirectory(session),
                    CompatibilityScorer(),
                    clock=self.clock,
                )
                count = await lifecycle.expire_sweep(now)
                await session.commit()
        except Exception:
            logger.exception("expiry_sweep_failed", swept_at=now.isoformat())
            return 0
        return count

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._task = asyncio.create_task(self._loop(), name="match-expiry-sweeper")
        logger.info("expiry_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopped.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("expiry_sweeper_stopped")

    async def _loop(self) -> None:
        while not self._stopped.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

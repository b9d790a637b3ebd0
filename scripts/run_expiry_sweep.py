"""Expire stale pending matches once, for cron-style deployments.

Usage::

    DATABASE_URL=postgresql://... python scripts/run_expiry_sweep.py

Run with ``EXPIRY_SWEEP_ENABLED=false`` on the API processes so only the
cron job writes expirations.
"""
import asyncio

from academically.database import async_session_factory, engine
from academically.services.expiry_service import ExpirySweeper


async def main():
    sweeper = ExpirySweeper(async_session_factory)
    try:
        count = await sweeper.run_once()
        print(f"Expired {count} pending match(es).")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

"""
Background Lifecycle Reaper
===========================

Runs every ``REAPER_INTERVAL_SECONDS`` (default 300 s).

Reads already close stale rides they touch; this sweep covers rides nobody
reads and applies the retention deadline, which the relational store has no
native TTL for.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs a cycle at a
  time across multiple API processes.
* Both steps are single conditional statements, so a sweep racing a
  request/decide on the same ride cannot lose a seat-count update.

Cycle
-----
1. Close every OPEN ride whose departure was more than 6 hours ago.
2. Delete rides (with their participants and chat) past ``expires_at``.
"""

from __future__ import annotations

import asyncio
import logging

from rideshare.config import settings
from rideshare.infrastructure.database import async_session_factory
from rideshare.infrastructure.locks import DistributedLock
from rideshare.infrastructure.redis_client import get_redis
from rideshare.infrastructure.repositories import RideRepository
from rideshare.services.lifecycle import sweep

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_reaper_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Reaper worker started (interval=%ds)", settings.reaper_interval_seconds
    )


async def stop_reaper_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Reaper worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a reaper cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_reaper_cycle()
        except Exception:
            logger.exception("Unhandled error in reaper cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.reaper_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_reaper_cycle(session_factory=async_session_factory) -> tuple[int, int]:
    """Execute one cycle.  Returns ``(closed, purged)``."""
    redis = await get_redis()
    lock = DistributedLock(redis, "lifecycle_reaper", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0, 0

    try:
        async with session_factory() as session:
            closed, purged = await sweep(RideRepository(session))
            await session.commit()
        if closed or purged:
            logger.info("Reaper cycle: %d ride(s) closed, %d purged", closed, purged)
        return closed, purged
    finally:
        await lock.release()

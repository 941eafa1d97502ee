"""
Lifecycle reaper.

``reconcile`` is the explicit read-path step: it closes the stale OPEN rides
found in a result set with one batched conditional update and hands back
updated copies, so callers never see a ride that should already be closed.
``sweep`` is the periodic counterpart run by ``rideshare.workers.reaper``.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from rideshare.domain.entities import Ride
from rideshare.domain.enums import RideStatus
from rideshare.domain.lifecycle import stale_cutoff, utcnow
from rideshare.infrastructure.repositories import RideRepository

logger = logging.getLogger(__name__)


async def reconcile(
    repo: RideRepository,
    rides: Sequence[Ride],
    now: Optional[datetime] = None,
) -> list[Ride]:
    """Close stale rides among *rides* and return the reconciled list (same order)."""
    now = now or utcnow()
    stale_ids = {ride.id for ride in rides if ride.is_stale(now)}
    if not stale_ids:
        return list(rides)

    closed = await repo.close_stale(sorted(stale_ids), stale_cutoff(now))
    logger.info("Closed %d stale ride(s) on read", closed)
    return [
        replace(
            ride,
            status=RideStatus.CLOSED,
            requests=set(ride.requests),
            confirmed_users=set(ride.confirmed_users),
        )
        if ride.id in stale_ids
        else ride
        for ride in rides
    ]


async def fetch_reconciled(
    repo: RideRepository,
    ride_id: str,
    now: Optional[datetime] = None,
    *,
    for_update: bool = False,
) -> Optional[Ride]:
    ride = await repo.get(ride_id, for_update=for_update)
    if ride is None:
        return None
    [ride] = await reconcile(repo, [ride], now)
    return ride


async def sweep(repo: RideRepository, now: Optional[datetime] = None) -> tuple[int, int]:
    """Close every stale OPEN ride and purge expired records.

    Returns ``(closed, purged)``.
    """
    now = now or utcnow()
    closed = await repo.close_all_stale(stale_cutoff(now))
    purged = await repo.purge_expired(now)
    return closed, purged

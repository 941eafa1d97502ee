"""
Location catalog: the pickup points and destinations a realm offers.

Routes are configured per realm in ``valid_routes``; only active routes are
listed.  Free-text locations on rides are not checked against the catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.domain.entities import Actor
from rideshare.domain.errors import InvalidInputError, RideNotFoundError
from rideshare.infrastructure.repositories import LocationRepository


@dataclass(frozen=True)
class Location:
    name: str
    type: Optional[str] = None


class LocationService:
    def __init__(self, session: AsyncSession):
        self.locations = LocationRepository(session)

    async def starting_points(self, actor: Actor) -> list[Location]:
        rows = await self.locations.starting_points(actor.realm_id)
        return [Location(name=name, type=kind) for name, kind in rows]

    async def destinations(
        self, actor: Actor, from_location: Optional[str]
    ) -> list[Location]:
        """Destinations reachable from *from_location* within the caller's realm."""
        name = (from_location or "").strip()
        if not name:
            raise InvalidInputError("Starting location is required")
        origin = await self.locations.get_by_name(name)
        if origin is None:
            raise RideNotFoundError("Starting location not found")
        rows = await self.locations.destinations(actor.realm_id, origin.id)
        return [Location(name=name, type=kind) for name, kind in rows]

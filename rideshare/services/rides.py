"""
Seat allocation engine and ride read paths.

``RideService`` works inside the caller's unit of work: it never commits.
A raised ``RideError`` means the caller must roll back, which also undoes
any partial write made before the failure (e.g. a seat taken for a target
whose request vanished in the meantime).

Concurrency safety
------------------
* Mutations read the ride with ``SELECT ... FOR UPDATE`` so decisions on
  the same ride are serialized by the database.
* The seat decrement is additionally a conditional ``UPDATE`` guarded by
  ``available_seats > 0``: of two racing accepts for the last seat exactly
  one succeeds, the other gets ``NoSeatsLeftError``.  Conflicts are not
  retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.domain.entities import Actor, Ride
from rideshare.domain.enums import Decision, GenderPreference, RideStatus, UserRole
from rideshare.domain.errors import (
    AlreadyRequestedError,
    InvalidInputError,
    InvalidStateError,
    NoPendingRequestError,
    NoSeatsLeftError,
    NotRequestedError,
    RideNotFoundError,
)
from rideshare.domain.lifecycle import (
    ACTIVE_LISTING_WINDOW,
    POPULARITY_WINDOW,
    parse_day,
    parse_instant,
    retention_deadline,
    utcnow,
)
from rideshare.infrastructure.repositories import ACTIVE_STATUSES, RideRepository
from rideshare.services.directory import DirectoryService, Profile, UNKNOWN_NAME
from rideshare.services.lifecycle import fetch_reconciled, reconcile

logger = logging.getLogger(__name__)

MIN_SEATS, MAX_SEATS = 1, 10
MAX_SEARCH_LIMIT = 50

STATUS_FILTERS = {
    "all": None,
    "open": RideStatus.OPEN,
    "full": RideStatus.FULL,
    "closed": RideStatus.CLOSED,
}
RELATION_FILTERS = ("all", "created", "requested", "confirmed")


@dataclass
class RideView:
    """A ride decorated with directory info for one viewer."""

    ride: Ride
    creator_name: str = UNKNOWN_NAME
    user_role: UserRole = UserRole.NONE
    request_details: list[Profile] = field(default_factory=list)
    confirmed_details: list[Profile] = field(default_factory=list)


class RideService:
    def __init__(
        self,
        session: AsyncSession,
        directory: Optional[DirectoryService] = None,
        clock=utcnow,
    ):
        self.rides = RideRepository(session)
        self.directory = directory or DirectoryService()
        self.clock = clock

    # ── Helpers ───────────────────────────────────────────────────

    async def _load(self, ride_id: str, *, for_update: bool = False) -> Ride:
        ride = await fetch_reconciled(
            self.rides, ride_id, self.clock(), for_update=for_update
        )
        if ride is None:
            raise RideNotFoundError()
        return ride

    async def _reload(self, ride_id: str) -> Ride:
        ride = await self.rides.get(ride_id)
        if ride is None:
            raise RideNotFoundError()
        return ride

    async def _decorate(
        self, rides: list[Ride], viewer: Actor, *, with_participants: bool
    ) -> list[RideView]:
        ids: set[str] = {r.creator_id for r in rides}
        if with_participants:
            for r in rides:
                ids |= r.requests | r.confirmed_users
        profiles = await self.directory.profiles(ids)

        views = []
        for r in rides:
            view = RideView(
                ride=r,
                creator_name=profiles[r.creator_id].name,
                user_role=r.role_of(viewer.id),
            )
            if with_participants:
                view.request_details = [profiles[uid] for uid in sorted(r.requests)]
                view.confirmed_details = [
                    profiles[uid] for uid in sorted(r.confirmed_users)
                ]
            views.append(view)
        return views

    # ── Creation ──────────────────────────────────────────────────

    async def create_ride(
        self,
        actor: Actor,
        *,
        from_location: str,
        to_location: str,
        available_seats: int,
        date_time: str | datetime,
        preferred_gender: GenderPreference | str = GenderPreference.ANY,
        luggage_space: bool = False,
        time_negotiation: bool = False,
        additional_notes: str = "",
        allow_chat: bool = True,
    ) -> Ride:
        if not MIN_SEATS <= available_seats <= MAX_SEATS:
            raise InvalidInputError(
                f"available_seats must be between {MIN_SEATS} and {MAX_SEATS}"
            )
        if not from_location.strip() or not to_location.strip():
            raise InvalidInputError("Locations are required")
        gender = GenderPreference.parse(preferred_gender)
        if gender is None:
            raise InvalidInputError("preferred_gender must be Any, Male or Female")
        departure = parse_instant(date_time)

        ride = await self.rides.create(
            Ride(
                creator_id=actor.id,
                creator_realm_id=actor.realm_id,
                from_location=from_location.strip(),
                to_location=to_location.strip(),
                total_seats=available_seats,
                available_seats=available_seats,
                preferred_gender=gender,
                luggage_space=luggage_space,
                time_negotiation=time_negotiation,
                additional_notes=additional_notes or "",
                date_time=departure,
                allow_chat=allow_chat,
                status=RideStatus.OPEN,
                expires_at=retention_deadline(departure, has_confirmed=False),
            )
        )
        logger.info("Ride %s created by %s (%d seats)", ride.id, actor.id, available_seats)
        return ride

    # ── Request / decide protocol ─────────────────────────────────

    async def submit_request(self, ride_id: str, actor: Actor) -> Ride:
        ride = await self._load(ride_id, for_update=True)
        ride.ensure_can_request(actor)
        if not await self.rides.add_request(ride.id, actor.id):
            raise AlreadyRequestedError()
        logger.info("User %s requested ride %s", actor.id, ride.id)
        return await self._reload(ride.id)

    async def cancel_request(self, ride_id: str, actor: Actor) -> Ride:
        ride = await self._load(ride_id, for_update=True)
        ride.ensure_pending(actor.id)
        if not await self.rides.remove_request(ride.id, actor.id):
            raise NoPendingRequestError()
        logger.info("User %s cancelled request on ride %s", actor.id, ride.id)
        return await self._reload(ride.id)

    async def decide(
        self,
        ride_id: str,
        decider: Actor,
        target_id: str,
        decision: Decision | str,
    ) -> Ride:
        try:
            decision = Decision(decision)
        except ValueError:
            raise InvalidInputError("Invalid decision value") from None

        ride = await self._load(ride_id, for_update=True)
        ride.ensure_can_decide(
            decider.id, target_id, accepting=decision is Decision.ACCEPT
        )

        if decision is Decision.REJECT:
            if not await self.rides.remove_request(ride.id, target_id):
                raise NotRequestedError()
            logger.info("Ride %s: request from %s rejected", ride.id, target_id)
            return await self._reload(ride.id)

        ride.ensure_seat_available()
        expires_at = retention_deadline(ride.date_time, has_confirmed=True)
        if not await self.rides.take_seat(ride.id, expires_at):
            logger.info("Ride %s: lost the race for the last seat", ride.id)
            raise NoSeatsLeftError()
        if not await self.rides.confirm_participant(ride.id, target_id):
            raise NotRequestedError()
        if await self.rides.mark_full_if_exhausted(ride.id):
            logger.info("Ride %s is now FULL", ride.id)
        logger.info("Ride %s: %s confirmed", ride.id, target_id)
        return await self._reload(ride.id)

    async def close(self, ride_id: str, actor: Actor) -> Ride:
        ride = await self._load(ride_id, for_update=True)
        ride.ensure_creator(actor.id, "close")
        if ride.close():
            await self.rides.close(ride.id)
            logger.info("Ride %s closed by creator", ride.id)
        return await self._reload(ride.id)

    async def reschedule(
        self, ride_id: str, actor: Actor, new_date_time: str | datetime
    ) -> Ride:
        ride = await self._load(ride_id, for_update=True)
        ride.ensure_creator(actor.id, "update time")
        departure = parse_instant(new_date_time)
        ride.ensure_not_closed()
        expires_at = retention_deadline(departure, bool(ride.confirmed_users))
        if not await self.rides.reschedule(ride.id, departure, expires_at):
            raise InvalidStateError("Ride is closed")
        logger.info("Ride %s rescheduled to %s", ride.id, departure.isoformat())
        return await self._reload(ride.id)

    async def set_chat_enabled(self, ride_id: str, actor: Actor, allow: bool) -> Ride:
        ride = await self._load(ride_id, for_update=True)
        ride.ensure_creator(actor.id, "change chat settings")
        await self.rides.set_allow_chat(ride.id, allow)
        logger.info("Ride %s chat %s", ride.id, "enabled" if allow else "disabled")
        return await self._reload(ride.id)

    # ── Reads ─────────────────────────────────────────────────────

    async def display_name(self, user_id: str) -> str:
        """Directory name for *user_id*, ``Unknown`` when it cannot be found."""
        profiles = await self.directory.profiles([user_id])
        return profiles[user_id].name

    async def get_ride(self, ride_id: str, actor: Actor) -> RideView:
        ride = await self._load(ride_id)
        ride.ensure_same_realm(actor)
        [view] = await self._decorate([ride], actor, with_participants=True)
        return view

    async def list_rides(self, actor: Actor) -> list[RideView]:
        now = self.clock()
        rides = await self.rides.list_active(actor.realm_id, now - ACTIVE_LISTING_WINDOW)
        rides = await reconcile(self.rides, rides, now)
        active = [r for r in rides if r.status in ACTIVE_STATUSES]
        return await self._decorate(active, actor, with_participants=False)

    async def search_rides(
        self,
        actor: Actor,
        *,
        from_text: Optional[str] = None,
        to_text: Optional[str] = None,
        date: Optional[str] = None,
        limit: int = 20,
    ) -> list[RideView]:
        from_text = (from_text or "").strip()
        to_text = (to_text or "").strip()
        date = (date or "").strip()
        if not (from_text or to_text or date):
            raise InvalidInputError("Please specify at least one search parameter")
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise InvalidInputError(f"limit must be between 1 and {MAX_SEARCH_LIMIT}")

        now = self.clock()
        departs_from, departs_before = now, None
        if date:
            departs_from, departs_before = parse_day(date)

        genders = {GenderPreference.ANY}
        own = GenderPreference.parse(actor.gender)
        if own is not None:
            genders.add(own)

        rides = await self.rides.search(
            actor.realm_id,
            departs_from=departs_from,
            departs_before=departs_before,
            from_text=from_text or None,
            to_text=to_text or None,
            genders=genders,
            limit=limit,
        )
        rides = await reconcile(self.rides, rides, now)
        active = [r for r in rides if r.status in ACTIVE_STATUSES]
        return await self._decorate(active, actor, with_participants=False)

    async def recent_rides(self, actor: Actor, limit: int = 6) -> list[RideView]:
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise InvalidInputError(f"limit must be between 1 and {MAX_SEARCH_LIMIT}")
        now = self.clock()
        rides = await self.rides.upcoming(actor.realm_id, now, limit)
        rides = await reconcile(self.rides, rides, now)
        active = [r for r in rides if r.status in ACTIVE_STATUSES]
        return await self._decorate(active, actor, with_participants=False)

    async def popular_destinations(self, actor: Actor) -> list[dict]:
        since = self.clock() - POPULARITY_WINDOW
        rows = await self.rides.popular_destinations(actor.realm_id, since)
        return [{"destination": dest, "count": count} for dest, count in rows]

    async def my_rides(
        self, actor: Actor, *, status: str = "all", relation: str = "all"
    ) -> list[RideView]:
        if status not in STATUS_FILTERS:
            raise InvalidInputError("status must be one of all, open, full, closed")
        if relation not in RELATION_FILTERS:
            raise InvalidInputError(
                "type must be one of all, created, requested, confirmed"
            )
        wanted = STATUS_FILTERS[status]
        # Stale OPEN rides are still OPEN in the store until reconciled below
        fetch_status = None if wanted is RideStatus.CLOSED else wanted
        rides = await self.rides.for_user(
            actor.realm_id, actor.id, status=fetch_status, relation=relation
        )
        rides = await reconcile(self.rides, rides, self.clock())
        if wanted is not None:
            rides = [r for r in rides if r.status == wanted]
        return await self._decorate(rides, actor, with_participants=True)

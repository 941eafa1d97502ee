"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``RideRepository`` hands out ``Ride``
entities, never ORM rows, and every mutation is a single conditional
statement so concurrent writers on the same ride are ordered by the
database rather than by the application.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    ChatMessageModel,
    LocationModel,
    RideModel,
    RideParticipantModel,
    UserModel,
    ValidRouteModel,
)
from rideshare.domain.entities import Ride
from rideshare.domain.enums import GenderPreference, ParticipantState, RideStatus
from rideshare.domain.errors import RideNotFoundError

ACTIVE_STATUSES = (RideStatus.OPEN, RideStatus.FULL)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Entity mapping ────────────────────────────────────────────

    async def _to_entities(self, rows: Sequence[RideModel]) -> list[Ride]:
        if not rows:
            return []
        result = await self.session.execute(
            select(
                RideParticipantModel.ride_id,
                RideParticipantModel.user_id,
                RideParticipantModel.state,
            ).where(RideParticipantModel.ride_id.in_([r.id for r in rows]))
        )
        pending: dict[str, set[str]] = defaultdict(set)
        confirmed: dict[str, set[str]] = defaultdict(set)
        for ride_id, user_id, state in result.all():
            target = confirmed if state == ParticipantState.CONFIRMED else pending
            target[ride_id].add(user_id)

        return [
            Ride(
                id=r.id,
                creator_id=r.creator_id,
                creator_realm_id=r.creator_realm_id,
                from_location=r.from_location,
                to_location=r.to_location,
                total_seats=r.total_seats,
                available_seats=r.available_seats,
                preferred_gender=GenderPreference(r.preferred_gender),
                luggage_space=r.luggage_space,
                time_negotiation=r.time_negotiation,
                additional_notes=r.additional_notes or "",
                date_time=r.date_time,
                allow_chat=r.allow_chat,
                requests=pending[r.id],
                confirmed_users=confirmed[r.id],
                status=RideStatus(r.status),
                expires_at=r.expires_at,
                created_at=r.created_at,
            )
            for r in rows
        ]

    async def _fetch(self, query) -> list[Ride]:
        result = await self.session.execute(
            query.execution_options(populate_existing=True)
        )
        return await self._to_entities(list(result.scalars().all()))

    # ── Reads ─────────────────────────────────────────────────────

    async def get(self, ride_id: str, *, for_update: bool = False) -> Optional[Ride]:
        """Point lookup.  ``for_update`` takes a row lock until commit."""
        query = select(RideModel).where(RideModel.id == ride_id)
        if for_update:
            query = query.with_for_update()
        rides = await self._fetch(query)
        return rides[0] if rides else None

    async def list_active(self, realm_id: str, departed_after: datetime) -> list[Ride]:
        return await self._fetch(
            select(RideModel)
            .where(
                RideModel.creator_realm_id == realm_id,
                RideModel.status.in_(ACTIVE_STATUSES),
                RideModel.date_time >= departed_after,
            )
            .order_by(RideModel.date_time)
        )

    async def search(
        self,
        realm_id: str,
        *,
        departs_from: datetime,
        departs_before: Optional[datetime] = None,
        from_text: Optional[str] = None,
        to_text: Optional[str] = None,
        genders: Iterable[GenderPreference] = (GenderPreference.ANY,),
        limit: int = 20,
    ) -> list[Ride]:
        query = select(RideModel).where(
            RideModel.creator_realm_id == realm_id,
            RideModel.status.in_(ACTIVE_STATUSES),
            RideModel.date_time >= departs_from,
            RideModel.preferred_gender.in_(list(genders)),
        )
        if departs_before is not None:
            query = query.where(RideModel.date_time < departs_before)
        if from_text:
            query = query.where(
                RideModel.from_location.ilike(_like_pattern(from_text), escape="\\")
            )
        if to_text:
            query = query.where(
                RideModel.to_location.ilike(_like_pattern(to_text), escape="\\")
            )
        return await self._fetch(query.order_by(RideModel.date_time).limit(limit))

    async def upcoming(self, realm_id: str, now: datetime, limit: int) -> list[Ride]:
        return await self._fetch(
            select(RideModel)
            .where(
                RideModel.creator_realm_id == realm_id,
                RideModel.status.in_(ACTIVE_STATUSES),
                RideModel.date_time >= now,
            )
            .order_by(RideModel.date_time)
            .limit(limit)
        )

    async def for_user(
        self,
        realm_id: str,
        user_id: str,
        *,
        status: Optional[RideStatus] = None,
        relation: str = "all",
    ) -> list[Ride]:
        """Rides the user created, requested or is confirmed on."""

        def _participating(state: ParticipantState):
            return RideModel.id.in_(
                select(RideParticipantModel.ride_id).where(
                    RideParticipantModel.user_id == user_id,
                    RideParticipantModel.state == state,
                )
            )

        created = RideModel.creator_id == user_id
        requested = _participating(ParticipantState.PENDING)
        confirmed = _participating(ParticipantState.CONFIRMED)
        relation_clause = {
            "created": created,
            "requested": requested,
            "confirmed": confirmed,
        }.get(relation, or_(created, requested, confirmed))

        query = select(RideModel).where(
            RideModel.creator_realm_id == realm_id, relation_clause
        )
        if status is not None:
            query = query.where(RideModel.status == status)
        return await self._fetch(query.order_by(RideModel.date_time))

    async def popular_destinations(
        self, realm_id: str, since: datetime, limit: int = 6
    ) -> list[tuple[str, int]]:
        count = func.count().label("count")
        result = await self.session.execute(
            select(RideModel.to_location, count)
            .where(
                RideModel.creator_realm_id == realm_id,
                RideModel.date_time >= since,
            )
            .group_by(RideModel.to_location)
            .order_by(count.desc(), RideModel.to_location)
            .limit(limit)
        )
        return [(destination, n) for destination, n in result.all()]

    # ── Writes ────────────────────────────────────────────────────

    async def create(self, ride: Ride) -> Ride:
        model = RideModel(
            creator_id=ride.creator_id,
            creator_realm_id=ride.creator_realm_id,
            from_location=ride.from_location,
            to_location=ride.to_location,
            total_seats=ride.total_seats,
            available_seats=ride.available_seats,
            preferred_gender=ride.preferred_gender,
            luggage_space=ride.luggage_space,
            time_negotiation=ride.time_negotiation,
            additional_notes=ride.additional_notes,
            date_time=ride.date_time,
            allow_chat=ride.allow_chat,
            status=ride.status,
            expires_at=ride.expires_at,
        )
        self.session.add(model)
        await self.session.flush()
        created = await self.get(model.id)
        if created is None:
            raise RideNotFoundError()
        return created

    async def add_request(self, ride_id: str, user_id: str) -> bool:
        """Insert a pending request.  False if the user already has a row.

        On ``False`` the session must be rolled back before further use.
        """
        try:
            await self.session.execute(
                insert(RideParticipantModel).values(
                    ride_id=ride_id,
                    user_id=user_id,
                    state=ParticipantState.PENDING,
                )
            )
        except IntegrityError:
            return False
        return True

    async def remove_request(self, ride_id: str, user_id: str) -> bool:
        """Delete a *pending* request.  False if there was none."""
        result = await self.session.execute(
            delete(RideParticipantModel)
            .where(
                RideParticipantModel.ride_id == ride_id,
                RideParticipantModel.user_id == user_id,
                RideParticipantModel.state == ParticipantState.PENDING,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def take_seat(self, ride_id: str, expires_at: datetime) -> bool:
        """Compare-and-swap seat decrement.

        Matches only while a seat is left and the ride is not closed, so of
        two racing accepts for the last seat exactly one sees ``True``.
        """
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.available_seats > 0,
                RideModel.status != RideStatus.CLOSED,
            )
            .values(
                available_seats=RideModel.available_seats - 1,
                expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_full_if_exhausted(self, ride_id: str) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.available_seats == 0,
                RideModel.status == RideStatus.OPEN,
            )
            .values(status=RideStatus.FULL)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def confirm_participant(self, ride_id: str, user_id: str) -> bool:
        """Move a pending request to confirmed.  False if it was not pending."""
        result = await self.session.execute(
            update(RideParticipantModel)
            .where(
                RideParticipantModel.ride_id == ride_id,
                RideParticipantModel.user_id == user_id,
                RideParticipantModel.state == ParticipantState.PENDING,
            )
            .values(state=ParticipantState.CONFIRMED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def close(self, ride_id: str) -> None:
        await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status != RideStatus.CLOSED)
            .values(status=RideStatus.CLOSED)
            .execution_options(synchronize_session=False)
        )

    async def reschedule(
        self, ride_id: str, date_time: datetime, expires_at: datetime
    ) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status != RideStatus.CLOSED)
            .values(date_time=date_time, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_allow_chat(self, ride_id: str, allow: bool) -> None:
        await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id)
            .values(allow_chat=allow)
            .execution_options(synchronize_session=False)
        )

    # ── Lifecycle ─────────────────────────────────────────────────

    async def close_stale(self, ride_ids: Sequence[str], cutoff: datetime) -> int:
        """Close exactly the given rides if they are still OPEN and departed before *cutoff*."""
        if not ride_ids:
            return 0
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id.in_(list(ride_ids)),
                RideModel.status == RideStatus.OPEN,
                RideModel.date_time <= cutoff,
            )
            .values(status=RideStatus.CLOSED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def close_all_stale(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.status == RideStatus.OPEN,
                RideModel.date_time <= cutoff,
            )
            .values(status=RideStatus.CLOSED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge_expired(self, now: datetime) -> int:
        """Hard-delete rides past their retention deadline, with their chat and participants."""
        expired = select(RideModel.id).where(RideModel.expires_at <= now)
        await self.session.execute(
            delete(ChatMessageModel)
            .where(ChatMessageModel.ride_id.in_(expired))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(RideParticipantModel)
            .where(RideParticipantModel.ride_id.in_(expired))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            delete(RideModel)
            .where(RideModel.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class ChatMessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        *,
        ride_id: str,
        sender_id: str,
        sender_name: str,
        message: Optional[str] = None,
        ciphertext: Optional[str] = None,
        nonce: Optional[str] = None,
    ) -> ChatMessageModel:
        row = ChatMessageModel(
            ride_id=ride_id,
            sender_id=sender_id,
            sender_name=sender_name,
            message=message,
            ciphertext=ciphertext,
            nonce=nonce,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_ride(self, ride_id: str) -> list[ChatMessageModel]:
        result = await self.session.execute(
            select(ChatMessageModel)
            .where(ChatMessageModel.ride_id == ride_id)
            .order_by(ChatMessageModel.sent_at, ChatMessageModel.id)
        )
        return list(result.scalars().all())


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_many(self, user_ids: Iterable[str]) -> list[UserModel]:
        ids = list(set(user_ids))
        if not ids:
            return []
        result = await self.session.execute(
            select(UserModel).where(UserModel.id.in_(ids))
        )
        return list(result.scalars().all())


class LocationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_name(self, name: str) -> Optional[LocationModel]:
        result = await self.session.execute(
            select(LocationModel).where(LocationModel.name == name)
        )
        return result.scalar_one_or_none()

    async def starting_points(self, realm_id: str) -> list[tuple[str, Optional[str]]]:
        """Distinct origins of the realm's active routes, by name."""
        result = await self.session.execute(
            select(LocationModel.name, LocationModel.type)
            .join(ValidRouteModel, ValidRouteModel.from_location_id == LocationModel.id)
            .where(ValidRouteModel.realm_id == realm_id, ValidRouteModel.is_active.is_(True))
            .distinct()
            .order_by(LocationModel.name)
        )
        return [(name, kind) for name, kind in result.all()]

    async def destinations(
        self, realm_id: str, from_location_id: int
    ) -> list[tuple[str, Optional[str]]]:
        result = await self.session.execute(
            select(LocationModel.name, LocationModel.type)
            .join(ValidRouteModel, ValidRouteModel.to_location_id == LocationModel.id)
            .where(
                ValidRouteModel.realm_id == realm_id,
                ValidRouteModel.is_active.is_(True),
                ValidRouteModel.from_location_id == from_location_id,
            )
            .distinct()
            .order_by(LocationModel.name)
        )
        return [(name, kind) for name, kind in result.all()]

"""Chat over the message log, gated by ``can_access``."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.domain.chat_access import can_access
from rideshare.domain.entities import Actor, Ride
from rideshare.domain.errors import ForbiddenError, InvalidInputError, RideNotFoundError
from rideshare.domain.lifecycle import as_utc, utcnow
from rideshare.infrastructure.models import ChatMessageModel
from rideshare.infrastructure.repositories import ChatMessageRepository, RideRepository
from rideshare.services.directory import DirectoryService
from rideshare.services.lifecycle import fetch_reconciled

logger = logging.getLogger(__name__)


def serialize_message(row: ChatMessageModel, ride_id: Optional[str] = None) -> dict:
    return {
        "rideId": ride_id or row.ride_id,
        "senderId": row.sender_id,
        "senderName": row.sender_name,
        "message": row.message,
        "ciphertext": row.ciphertext,
        "nonce": row.nonce,
        "sentAt": as_utc(row.sent_at).isoformat(),
    }


def ensure_chat_access(ride: Ride, actor_id: str) -> None:
    """Raise ``ForbiddenError`` with a helpful message when the gate says no."""
    if can_access(ride, actor_id):
        return
    if not ride.allow_chat:
        raise ForbiddenError("Chat disabled by creator")
    raise ForbiddenError("You are not part of this ride")


class ChatService:
    def __init__(
        self,
        session: AsyncSession,
        directory: Optional[DirectoryService] = None,
        clock=utcnow,
    ):
        self.rides = RideRepository(session)
        self.messages = ChatMessageRepository(session)
        self.directory = directory or DirectoryService()
        self.clock = clock

    async def authorized_ride(self, ride_id: str, actor: Actor) -> Ride:
        ride = await fetch_reconciled(self.rides, ride_id, self.clock())
        if ride is None:
            raise RideNotFoundError()
        ensure_chat_access(ride, actor.id)
        return ride

    async def list_messages(self, ride_id: str, actor: Actor) -> list[dict]:
        await self.authorized_ride(ride_id, actor)
        rows = await self.messages.list_for_ride(ride_id)
        return [serialize_message(row) for row in rows]

    async def post_message(
        self,
        ride_id: str,
        actor: Actor,
        *,
        message: Optional[str] = None,
        ciphertext: Optional[str] = None,
        nonce: Optional[str] = None,
    ) -> dict:
        ride = await self.authorized_ride(ride_id, actor)
        return await self.append(ride, actor, message=message, ciphertext=ciphertext, nonce=nonce)

    async def append(
        self,
        ride: Ride,
        actor: Actor,
        *,
        message: Optional[str] = None,
        ciphertext: Optional[str] = None,
        nonce: Optional[str] = None,
    ) -> dict:
        """Persist a message for an already-authorized sender."""
        if not message and not ciphertext:
            raise InvalidInputError("Either message or ciphertext is required")
        row = await self.messages.append(
            ride_id=ride.id,
            sender_id=actor.id,
            sender_name=actor.name or actor.id,
            message=message or None,
            ciphertext=ciphertext or None,
            nonce=nonce or None,
        )
        logger.debug("Message %s stored for ride %s", row.id, ride.id)
        return serialize_message(row)

    async def ride_details(self, ride_id: str, actor: Actor) -> dict:
        """Ride summary with the participant list, for the chat header."""
        ride = await self.authorized_ride(ride_id, actor)
        members = [ride.creator_id, *sorted(ride.requests), *sorted(ride.confirmed_users)]
        profiles = await self.directory.profiles(members)
        return {
            "ride": ride,
            "creator_name": profiles[ride.creator_id].name,
            "participants": [
                {"id": uid, "name": profiles[uid].name, "email": profiles[uid].email}
                for uid in members
            ],
        }

"""
Realtime chat hub.

Keeps, per running process, the set of live connections joined to each
ride room (``ride:<id>``) and fans chat messages out to them.  Every join
and every send re-resolves the ride and re-applies ``can_access``: chat may
have been disabled, or the sender dropped, since the socket joined.

The hub does not store messages; it hands them to the ``message_log``
callback and broadcasts what the log returns.  With more than one instance
behind a load balancer, pass a ``RedisRoomBridge`` so broadcasts reach
sockets held by the other instances.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

from rideshare.domain.entities import Actor, Ride
from rideshare.domain.errors import ForbiddenError, InvalidInputError, RideError, RideNotFoundError
from rideshare.services.chat import ensure_chat_access

logger = logging.getLogger(__name__)

RideLookup = Callable[[str], Awaitable[Optional[Ride]]]
MessageLog = Callable[[Ride, Actor, Dict[str, Any]], Awaitable[Dict[str, Any]]]


class Socket(Protocol):
    async def send_json(self, data: Any) -> None: ...


class Connection:
    """One authenticated socket and the rooms it has joined."""

    def __init__(self, socket: Socket, actor: Actor):
        self.id = uuid.uuid4().hex
        self.socket = socket
        self.actor = actor
        self.rooms: Set[str] = set()

    async def send_json(self, data: Dict[str, Any]) -> None:
        await self.socket.send_json(data)

    async def send_error(self, message: str, code: Optional[str] = None) -> None:
        payload = {"type": "error", "message": message}
        if code:
            payload["code"] = code
        await self.send_json(payload)

    async def send_event(self, event_type: str, **kwargs) -> None:
        await self.send_json({"type": event_type, **kwargs})


def room_name(ride_id: str) -> str:
    return f"ride:{ride_id}"


class RealtimeHub:
    def __init__(
        self,
        ride_lookup: RideLookup,
        message_log: Optional[MessageLog] = None,
        bridge=None,
    ):
        self.ride_lookup = ride_lookup
        self.message_log = message_log
        self.bridge = bridge
        self._rooms: Dict[str, Set[Connection]] = defaultdict(set)

    # ---------------------- Connection management ----------------------

    def register(self, socket: Socket, actor: Actor) -> Connection:
        conn = Connection(socket, actor)
        logger.info("User %s connected (%s)", actor.id, conn.id)
        return conn

    def disconnect(self, conn: Connection) -> None:
        """Drop the connection from every room it joined."""
        for room in list(conn.rooms):
            self._discard(room, conn)
        logger.info("User %s disconnected (%s)", conn.actor.id, conn.id)

    def members(self, ride_id: str) -> Set[Connection]:
        return set(self._rooms.get(room_name(ride_id), ()))

    def _discard(self, room: str, conn: Connection) -> None:
        conn.rooms.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(conn)
            if not members:
                del self._rooms[room]

    async def _authorize(self, conn: Connection, ride_id: str) -> Ride:
        ride = await self.ride_lookup(ride_id)
        if ride is None:
            raise RideNotFoundError()
        ensure_chat_access(ride, conn.actor.id)
        return ride

    # ---------------------- Client events ----------------------

    async def join(self, conn: Connection, ride_id: str) -> bool:
        try:
            await self._authorize(conn, ride_id)
        except RideError as exc:
            await conn.send_error(exc.message, exc.code)
            return False

        room = room_name(ride_id)
        self._rooms[room].add(conn)
        conn.rooms.add(room)
        await conn.send_event("chat:joined", rideId=ride_id)
        logger.info("User %s joined %s", conn.actor.id, room)
        return True

    async def leave(self, conn: Connection, ride_id: str) -> None:
        self._discard(room_name(ride_id), conn)
        await conn.send_event("chat:left", rideId=ride_id)

    async def send(self, conn: Connection, ride_id: str, payload: Dict[str, Any]) -> bool:
        """Validate, persist via the message log, then fan out ``chat:new``."""
        try:
            if room_name(ride_id) not in conn.rooms:
                raise ForbiddenError("Join the ride chat before sending")
            ride = await self._authorize(conn, ride_id)
            if not payload.get("message") and not payload.get("ciphertext"):
                raise InvalidInputError("Either message or ciphertext is required")
            if self.message_log is not None:
                message = await self.message_log(ride, conn.actor, payload)
            else:
                message = {
                    "rideId": ride_id,
                    "senderId": conn.actor.id,
                    "senderName": conn.actor.name,
                    "message": payload.get("message"),
                    "ciphertext": payload.get("ciphertext"),
                    "nonce": payload.get("nonce"),
                    "sentAt": datetime.now(timezone.utc).isoformat(),
                }
        except RideError as exc:
            await conn.send_error(exc.message, exc.code)
            return False

        await self.broadcast(ride_id, {"type": "chat:new", **message})
        return True

    async def handle(self, conn: Connection, data: Dict[str, Any]) -> None:
        """Route one incoming client message to the matching handler."""
        msg_type = data.get("type")
        ride_id = data.get("rideId")
        if not msg_type:
            await conn.send_error("Message type is required")
            return
        if not isinstance(ride_id, str) or not ride_id:
            await conn.send_error("rideId is required")
            return

        if msg_type == "chat:join":
            await self.join(conn, ride_id)
        elif msg_type == "chat:send":
            await self.send(conn, ride_id, data)
        elif msg_type == "chat:leave":
            await self.leave(conn, ride_id)
        else:
            await conn.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Fan-out ----------------------

    async def broadcast(self, ride_id: str, event: Dict[str, Any]) -> None:
        if self.bridge is not None:
            await self.bridge.publish(ride_id, event)
        else:
            await self.deliver_local(ride_id, event)

    async def deliver_local(self, ride_id: str, event: Dict[str, Any]) -> int:
        """Send *event* to every local connection in the ride's room."""
        room = room_name(ride_id)
        delivered = 0
        for conn in list(self._rooms.get(room, ())):
            try:
                await conn.send_json(event)
                delivered += 1
            except Exception:
                logger.warning("Dropping dead connection %s from %s", conn.id, room)
                self.disconnect(conn)
        return delivered

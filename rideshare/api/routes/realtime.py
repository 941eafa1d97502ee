"""
Realtime chat socket
====================

WS /ws/chat?token=...

Client events: ``chat:join``, ``chat:send``, ``chat:leave`` (each with a
``rideId``).  Server events: ``connection_established``, ``chat:joined``,
``chat:new``, ``chat:left``, ``error``.
"""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from rideshare.api.dependencies import get_hub, get_socket_actor
from rideshare.domain.entities import Actor
from rideshare.infrastructure.database import async_session_factory
from rideshare.infrastructure.repositories import RideRepository
from rideshare.realtime.hub import RealtimeHub
from rideshare.services.chat import ChatService
from rideshare.services.directory import DirectoryService
from rideshare.services.lifecycle import fetch_reconciled

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def build_hub(session_factory=async_session_factory, bridge=None) -> RealtimeHub:
    """Wire a hub to the ride store and the message log."""

    async def lookup_ride(ride_id):
        async with session_factory() as session:
            ride = await fetch_reconciled(RideRepository(session), ride_id)
            await session.commit()
            return ride

    async def log_message(ride, actor, payload):
        async with session_factory() as session:
            service = ChatService(session, DirectoryService(session_factory))
            message = await service.append(
                ride,
                actor,
                message=payload.get("message"),
                ciphertext=payload.get("ciphertext"),
                nonce=payload.get("nonce"),
            )
            await session.commit()
            return message

    return RealtimeHub(lookup_ride, log_message, bridge=bridge)


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    actor: Actor = Depends(get_socket_actor),
    hub: RealtimeHub = Depends(get_hub),
):
    await websocket.accept()
    conn = hub.register(websocket, actor)
    await conn.send_event("connection_established", userId=actor.id)
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await conn.send_error("Invalid JSON")
                continue
            if not isinstance(data, dict):
                await conn.send_error("Expected a JSON object")
                continue
            await hub.handle(conn, data)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(conn)

"""
Chat endpoints
==============

GET  /api/v1/chat/messages?ride_id=...  -- message history
POST /api/v1/chat/messages              -- append a message and push it to the ride room
GET  /api/v1/chat/ride?ride_id=...      -- ride summary with participants

Every endpoint is gated by the same ``can_access`` predicate the realtime
hub applies on join and send.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.api.dependencies import get_chat_service, get_current_actor, get_db, get_hub
from rideshare.api.middleware import RATE_LIMIT, limiter
from rideshare.api.schemas import (
    ChatMessageResponse,
    ChatParticipantResponse,
    ChatRideResponse,
    ErrorResponse,
    MessageCreateRequest,
    MessagesResponse,
    RideResponse,
)
from rideshare.domain.entities import Actor
from rideshare.realtime.hub import RealtimeHub
from rideshare.services.chat import ChatService

router = APIRouter(
    prefix="/chat",
    tags=["chat"],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


@router.get("/messages", response_model=MessagesResponse, summary="List chat messages")
@limiter.limit(RATE_LIMIT)
async def list_messages(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ChatService = Depends(get_chat_service),
):
    messages = await service.list_messages(ride_id, actor)
    return MessagesResponse(
        messages=[ChatMessageResponse.model_validate(m) for m in messages]
    )


@router.post(
    "/messages",
    status_code=201,
    response_model=ChatMessageResponse,
    summary="Send a chat message",
)
@limiter.limit(RATE_LIMIT)
async def send_message(
    request: Request,
    body: MessageCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: ChatService = Depends(get_chat_service),
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    message = await service.post_message(
        body.ride_id,
        actor,
        message=body.message,
        ciphertext=body.ciphertext,
        nonce=body.nonce,
    )
    # Subscribers must never see a message that could still roll back
    await db.commit()
    await hub.broadcast(body.ride_id, {"type": "chat:new", **message})
    return ChatMessageResponse.model_validate(message)


@router.get("/ride", response_model=ChatRideResponse, summary="Chat ride summary")
@limiter.limit(RATE_LIMIT)
async def chat_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ChatService = Depends(get_chat_service),
):
    details = await service.ride_details(ride_id, actor)
    ride = RideResponse.from_entity(details["ride"])
    ride.creator_name = details["creator_name"]
    return ChatRideResponse(
        ride=ride,
        participants=[ChatParticipantResponse(**p) for p in details["participants"]],
    )

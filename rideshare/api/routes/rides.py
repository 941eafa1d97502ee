"""
Ride endpoints
==============

GET  /api/v1/rides                       -- active rides in the caller's realm
GET  /api/v1/rides/search                -- filter by from / to / date
GET  /api/v1/rides/popular-destinations  -- top destinations, last 30 days
GET  /api/v1/rides/recent                -- next departures
GET  /api/v1/rides/my-rides              -- rides the caller created / requested / rides on
GET  /api/v1/rides/{ride_id}             -- one ride with participant details
POST /api/v1/rides                       -- create a ride
POST /api/v1/rides/request               -- request a seat
POST /api/v1/rides/cancel-request        -- withdraw a pending request
POST /api/v1/rides/decide                -- creator accepts / rejects a request
POST /api/v1/rides/update-time           -- creator reschedules
POST /api/v1/rides/close                 -- creator closes the ride
POST /api/v1/rides/chat-settings         -- creator enables / disables chat
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from rideshare.api.dependencies import get_current_actor, get_ride_service
from rideshare.api.middleware import RATE_LIMIT, limiter
from rideshare.api.schemas import (
    ChatSettingsRequest,
    DecideRequest,
    DestinationResponse,
    ErrorResponse,
    RideActionResponse,
    RideCreateRequest,
    RideIdRequest,
    RideResponse,
    UpdateTimeRequest,
)
from rideshare.domain.entities import Actor
from rideshare.services.rides import RideService

router = APIRouter(
    prefix="/rides",
    tags=["rides"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


# ── Reads ─────────────────────────────────────────────────────────────


@router.get("", response_model=list[RideResponse], summary="List active rides")
@limiter.limit(RATE_LIMIT)
async def list_rides(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    views = await service.list_rides(actor)
    return [RideResponse.from_view(v) for v in views]


@router.get("/search", response_model=list[RideResponse], summary="Search rides")
@limiter.limit(RATE_LIMIT)
async def search_rides(
    request: Request,
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    date: Optional[str] = None,
    limit: int = 20,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    views = await service.search_rides(
        actor, from_text=from_, to_text=to, date=date, limit=limit
    )
    return [RideResponse.from_view(v) for v in views]


@router.get(
    "/popular-destinations",
    response_model=list[DestinationResponse],
    summary="Most requested destinations in the last 30 days",
)
@limiter.limit(RATE_LIMIT)
async def popular_destinations(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    return await service.popular_destinations(actor)


@router.get("/recent", response_model=list[RideResponse], summary="Next departures")
@limiter.limit(RATE_LIMIT)
async def recent_rides(
    request: Request,
    limit: int = 6,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    views = await service.recent_rides(actor, limit)
    return [RideResponse.from_view(v) for v in views]


@router.get("/my-rides", response_model=list[RideResponse], summary="The caller's rides")
@limiter.limit(RATE_LIMIT)
async def my_rides(
    request: Request,
    status: str = "all",
    relation: str = Query("all", alias="type"),
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    views = await service.my_rides(actor, status=status, relation=relation)
    return [RideResponse.from_view(v, with_participants=True) for v in views]


@router.get("/{ride_id}", response_model=RideResponse, summary="Ride details")
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    view = await service.get_ride(ride_id, actor)
    return RideResponse.from_view(view, with_participants=True)


# ── Mutations ─────────────────────────────────────────────────────────


@router.post(
    "",
    status_code=201,
    response_model=RideActionResponse,
    summary="Create a ride",
)
@limiter.limit(RATE_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.create_ride(
        actor,
        from_location=body.from_location,
        to_location=body.to_location,
        available_seats=body.available_seats,
        date_time=body.date_time,
        preferred_gender=body.preferred_gender,
        luggage_space=body.luggage_space,
        time_negotiation=body.time_negotiation,
        additional_notes=body.additional_notes,
        allow_chat=body.allow_chat,
    )
    return RideActionResponse(
        message="Ride created successfully", ride=RideResponse.from_entity(ride)
    )


@router.post("/request", response_model=RideActionResponse, summary="Request a seat")
@limiter.limit(RATE_LIMIT)
async def request_ride(
    request: Request,
    body: RideIdRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.submit_request(body.ride_id, actor)
    return RideActionResponse(
        message="Request sent successfully", ride=RideResponse.from_entity(ride)
    )


@router.post(
    "/cancel-request",
    response_model=RideActionResponse,
    summary="Withdraw a pending request",
)
@limiter.limit(RATE_LIMIT)
async def cancel_request(
    request: Request,
    body: RideIdRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.cancel_request(body.ride_id, actor)
    return RideActionResponse(
        message="Request cancelled successfully", ride=RideResponse.from_entity(ride)
    )


@router.post(
    "/decide",
    response_model=RideActionResponse,
    summary="Accept or reject a request",
    description=(
        "Only the creator may decide.  Accepting takes a seat atomically; "
        "when two accepts race for the last seat one of them gets 409."
    ),
)
@limiter.limit(RATE_LIMIT)
async def decide_request(
    request: Request,
    body: DecideRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.decide(body.ride_id, actor, body.user_id, body.decision)
    name = await service.display_name(body.user_id)
    verb = "confirmed for the ride" if body.decision == "accept" else "rejected"
    return RideActionResponse(
        message=f"{name} has been {verb}",
        ride=RideResponse.from_entity(ride),
    )


@router.post("/update-time", response_model=RideActionResponse, summary="Reschedule")
@limiter.limit(RATE_LIMIT)
async def update_ride_time(
    request: Request,
    body: UpdateTimeRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.reschedule(body.ride_id, actor, body.date_time)
    return RideActionResponse(
        message="Ride time updated", ride=RideResponse.from_entity(ride)
    )


@router.post("/close", response_model=RideActionResponse, summary="Close a ride")
@limiter.limit(RATE_LIMIT)
async def close_ride(
    request: Request,
    body: RideIdRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.close(body.ride_id, actor)
    return RideActionResponse(
        message="Ride closed successfully", ride=RideResponse.from_entity(ride)
    )


@router.post(
    "/chat-settings",
    response_model=RideActionResponse,
    summary="Enable or disable the ride chat",
)
@limiter.limit(RATE_LIMIT)
async def chat_settings(
    request: Request,
    body: ChatSettingsRequest,
    actor: Actor = Depends(get_current_actor),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.set_chat_enabled(body.ride_id, actor, body.allow_chat)
    state = "enabled" if body.allow_chat else "disabled"
    return RideActionResponse(
        message=f"Chat {state}", ride=RideResponse.from_entity(ride)
    )

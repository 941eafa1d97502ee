"""
Location catalog endpoints
==========================

GET /api/v1/locations/starting-points              -- pickup points in the caller's realm
GET /api/v1/locations/destinations?fromLocation=X  -- destinations reachable from X
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from rideshare.api.dependencies import get_current_actor, get_location_service
from rideshare.api.middleware import RATE_LIMIT, limiter
from rideshare.api.schemas import ErrorResponse, LocationResponse
from rideshare.domain.entities import Actor
from rideshare.services.locations import LocationService

router = APIRouter(
    prefix="/locations",
    tags=["locations"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


@router.get(
    "/starting-points",
    response_model=list[LocationResponse],
    summary="Pickup points with at least one active route",
)
@limiter.limit(RATE_LIMIT)
async def starting_points(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: LocationService = Depends(get_location_service),
):
    locations = await service.starting_points(actor)
    return [LocationResponse(name=loc.name, type=loc.type) for loc in locations]


@router.get(
    "/destinations",
    response_model=list[LocationResponse],
    summary="Destinations reachable from a pickup point",
)
@limiter.limit(RATE_LIMIT)
async def destinations(
    request: Request,
    from_location: Optional[str] = Query(None, alias="fromLocation"),
    actor: Actor = Depends(get_current_actor),
    service: LocationService = Depends(get_location_service),
):
    locations = await service.destinations(actor, from_location)
    return [LocationResponse(name=loc.name, type=loc.type) for loc in locations]

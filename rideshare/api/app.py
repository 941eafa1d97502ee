"""
FastAPI application factory.

* Registers routes for rides, chat, the realtime socket and admin.
* Starts / stops the lifecycle reaper (and the optional Redis room bridge)
  via lifespan events.
* Renders every ``RideError`` as ``{"detail", "code"}`` with its status.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rideshare.api.middleware import limiter
from rideshare.api.routes import admin, chat, locations, realtime, rides
from rideshare.config import settings
from rideshare.domain.errors import RideError
from rideshare.infrastructure.redis_client import redis_client
from rideshare.realtime.bridge import RedisRoomBridge
from rideshare.workers import reaper as _reaper

logging.basicConfig(level=settings.log_level)


async def ride_error_handler(request: Request, exc: RideError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the reaper (and bridge) on startup; stop on shutdown."""
    bridge = app.state.hub.bridge
    if bridge is not None:
        await bridge.start(app.state.hub)
    await _reaper.start_reaper_loop()
    yield
    await _reaper.stop_reaper_loop()
    if bridge is not None:
        await bridge.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campus Rideshare API",
        description=(
            "Shared rides with a fixed seat count inside one campus realm: "
            "request / accept workflow, time-based auto-close and an "
            "authorization-gated realtime chat per ride."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RideError, ride_error_handler)

    # Realtime hub (one per process)
    bridge = None
    if settings.realtime_redis_bridge:
        bridge = RedisRoomBridge(redis_client())
    app.state.hub = realtime.build_hub(bridge=bridge)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(chat.router, prefix="/api/v1")
    app.include_router(locations.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")
    app.include_router(realtime.router)

    return app


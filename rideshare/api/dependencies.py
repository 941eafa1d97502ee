"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, Query, WebSocketException, status
from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.domain.entities import Actor
from rideshare.domain.errors import RideError
from rideshare.infrastructure.database import async_session_factory
from rideshare.infrastructure.identity import get_identity_client
from rideshare.realtime.hub import RealtimeHub
from rideshare.services.chat import ChatService
from rideshare.services.directory import DirectoryService
from rideshare.services.locations import LocationService
from rideshare.services.rides import RideService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_directory() -> DirectoryService:
    return DirectoryService()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


async def get_current_actor(
    authorization: Optional[str] = Header(None),
) -> Actor:
    """Resolve the caller from ``Authorization: Bearer <token>``."""
    return await get_identity_client().resolve(_bearer_token(authorization))


async def get_socket_actor(token: Optional[str] = Query(None)) -> Actor:
    """Resolve a WebSocket caller from the ``token`` query parameter."""
    try:
        return await get_identity_client().resolve(token)
    except RideError as exc:
        raise WebSocketException(
            code=status.WS_1008_POLICY_VIOLATION, reason=exc.message
        ) from exc


def get_hub(connection: HTTPConnection) -> RealtimeHub:
    return connection.app.state.hub


def get_ride_service(
    db: AsyncSession = Depends(get_db),
    directory: DirectoryService = Depends(get_directory),
) -> RideService:
    return RideService(db, directory)


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    directory: DirectoryService = Depends(get_directory),
) -> ChatService:
    return ChatService(db, directory)


def get_location_service(db: AsyncSession = Depends(get_db)) -> LocationService:
    return LocationService(db)

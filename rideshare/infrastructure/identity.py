"""
Identity resolution against the external auth service.

The service is asked who a bearer credential belongs to; the answer is
trusted verbatim for every authorization decision in the core.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from rideshare.config import settings
from rideshare.domain.entities import Actor
from rideshare.domain.errors import UnauthenticatedError, UnauthorizedError

logger = logging.getLogger(__name__)


class IdentityClient:
    def __init__(
        self,
        url: str = settings.identity_url,
        timeout: float = settings.identity_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def resolve(self, token: Optional[str]) -> Actor:
        if not token:
            raise UnauthenticatedError("No token provided")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.get(self.url, headers={"Authorization": f"Bearer {token}"})

        if resp.status_code == 401:
            raise UnauthenticatedError()
        if resp.status_code == 403:
            raise UnauthorizedError()
        resp.raise_for_status()

        body = resp.json()
        user = body.get("user", body) if isinstance(body, dict) else {}
        user_id = user.get("id")
        realm_id = user.get("realmId") or user.get("realm_id") or user.get("collegeId")
        if not user_id or not realm_id:
            logger.warning("Identity service returned an incomplete profile")
            raise UnauthenticatedError("Invalid token - user not found")

        return Actor(
            id=str(user_id),
            realm_id=str(realm_id),
            name=user.get("name") or "",
            gender=user.get("gender"),
        )


_client: Optional[IdentityClient] = None


def get_identity_client() -> IdentityClient:
    global _client
    if _client is None:
        _client = IdentityClient()
    return _client

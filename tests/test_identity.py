"""Identity client tests against a mocked HTTP transport."""

import httpx
import pytest

from rideshare.domain.errors import UnauthenticatedError, UnauthorizedError
from rideshare.infrastructure.identity import IdentityClient

URL = "http://identity.test/api/auth/me"


def _client(handler) -> IdentityClient:
    return IdentityClient(url=URL, timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_resolves_wrapped_user():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={"user": {"id": 42, "collegeId": "campus-a", "name": "Alice", "gender": "Female"}},
        )

    actor = await _client(handler).resolve("tok")

    assert seen["auth"] == "Bearer tok"
    assert actor.id == "42"
    assert actor.realm_id == "campus-a"
    assert actor.name == "Alice"
    assert actor.gender == "Female"


@pytest.mark.asyncio
async def test_resolves_bare_user_with_realm_id():
    def handler(request):
        return httpx.Response(200, json={"id": "u1", "realmId": "campus-b"})

    actor = await _client(handler).resolve("tok")
    assert (actor.id, actor.realm_id, actor.gender) == ("u1", "campus-b", None)


@pytest.mark.asyncio
async def test_missing_token():
    with pytest.raises(UnauthenticatedError, match="No token provided"):
        await _client(lambda r: httpx.Response(200, json={})).resolve(None)


@pytest.mark.asyncio
@pytest.mark.parametrize("status,exc", [(401, UnauthenticatedError), (403, UnauthorizedError)])
async def test_rejected_token(status, exc):
    with pytest.raises(exc):
        await _client(lambda r: httpx.Response(status)).resolve("tok")


@pytest.mark.asyncio
async def test_incomplete_profile():
    with pytest.raises(UnauthenticatedError, match="user not found"):
        await _client(lambda r: httpx.Response(200, json={"user": {"id": "u1"}})).resolve("tok")


@pytest.mark.asyncio
async def test_server_error_propagates():
    with pytest.raises(httpx.HTTPStatusError):
        await _client(lambda r: httpx.Response(502)).resolve("tok")

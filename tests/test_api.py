"""
Integration tests for the REST API and the chat socket.

The app runs against the per-test SQLite database; the identity service
is replaced by a token table so every request resolves to a fixed actor.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from conftest import OTHER_REALM, REALM
from rideshare.api import dependencies
from rideshare.api.app import create_app
from rideshare.api.dependencies import get_db, get_directory
from rideshare.api.middleware import limiter
from rideshare.api.routes.realtime import build_hub
from rideshare.domain.entities import Actor, Ride
from rideshare.domain.errors import UnauthenticatedError
from rideshare.domain.lifecycle import utcnow
from rideshare.infrastructure.models import LocationModel, UserModel, ValidRouteModel
from rideshare.realtime.hub import RealtimeHub
from rideshare.services.directory import DirectoryService

TOKENS = {
    "creator-token": Actor(id="creator", realm_id=REALM, name="Casey Creator", gender="Male"),
    "alice-token": Actor(id="alice", realm_id=REALM, name="Alice", gender="Female"),
    "bob-token": Actor(id="bob", realm_id=REALM, name="Bob", gender="Male"),
    "outsider-token": Actor(id="mallory", realm_id=OTHER_REALM, name="Mallory"),
}


class FakeIdentity:
    async def resolve(self, token):
        if not token:
            raise UnauthenticatedError("No token provided")
        if token not in TOKENS:
            raise UnauthenticatedError()
        return TOKENS[token]


def auth(name: str) -> dict:
    return {"Authorization": f"Bearer {name}-token"}


@pytest.fixture
def app(session_factory, monkeypatch):
    monkeypatch.setattr(dependencies, "get_identity_client", lambda: FakeIdentity())
    limiter.enabled = False

    application = create_app()

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_db
    application.dependency_overrides[get_directory] = lambda: DirectoryService(session_factory)
    application.state.hub = build_hub(session_factory)
    yield application
    limiter.enabled = True


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _create(client, *, seats=2, gender="Any", who="creator", **extra) -> dict:
    body = {
        "from_location": "Main Gate",
        "to_location": "Airport T2",
        "available_seats": seats,
        "preferred_gender": gender,
        "date_time": (utcnow() + timedelta(days=1)).isoformat(),
        **extra,
    }
    resp = await client.post("/api/v1/rides", json=body, headers=auth(who))
    assert resp.status_code == 201, resp.text
    return resp.json()["ride"]


# ── Health & auth ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    resp = await client.get("/api/v1/rides")
    assert resp.status_code == 401
    assert resp.json() == {"detail": "No token provided", "code": "UNAUTHENTICATED"}


@pytest.mark.asyncio
async def test_unknown_token_is_401(client):
    resp = await client.get("/api/v1/rides", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


# ── Ride lifecycle ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_ride(client):
    ride = await _create(client, seats=3, additional_notes="Two bags")

    assert ride["status"] == "OPEN"
    assert ride["total_seats"] == ride["available_seats"] == 3
    assert ride["creator_id"] == "creator"
    assert ride["requests"] == [] and ride["confirmed_users"] == []
    assert ride["additional_notes"] == "Two bags"


@pytest.mark.asyncio
async def test_create_ride_validation(client):
    resp = await client.post(
        "/api/v1/rides",
        json={"from_location": "Gate", "to_location": "Airport",
              "available_seats": 0, "date_time": "2026-03-01T10:00:00Z"},
        headers=auth("creator"),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_ride_gender_is_case_insensitive(client):
    ride = await _create(client, gender="male")
    assert ride["preferred_gender"] == "Male"

    resp = await client.post(
        "/api/v1/rides",
        json={"from_location": "Gate", "to_location": "Airport", "available_seats": 2,
              "preferred_gender": "robots",
              "date_time": (utcnow() + timedelta(days=1)).isoformat()},
        headers=auth("creator"),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_create_ride_bad_date(client):
    resp = await client.post(
        "/api/v1/rides",
        json={"from_location": "Gate", "to_location": "Airport",
              "available_seats": 2, "date_time": "tomorrow-ish"},
        headers=auth("creator"),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid date format"


@pytest.mark.asyncio
async def test_request_and_accept_last_seat(client):
    ride = await _create(client, seats=1)

    resp = await client.post(
        "/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice")
    )
    assert resp.status_code == 200
    assert resp.json()["ride"]["requests"] == ["alice"]

    resp = await client.post(
        "/api/v1/rides/decide",
        json={"ride_id": ride["id"], "user_id": "alice", "decision": "accept"},
        headers=auth("creator"),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Unknown has been confirmed for the ride"
    assert body["ride"]["status"] == "FULL"
    assert body["ride"]["available_seats"] == 0
    assert body["ride"]["confirmed_users"] == ["alice"]
    assert body["ride"]["requests"] == []


@pytest.mark.asyncio
async def test_decide_message_uses_directory_name(client, session_factory):
    async with session_factory() as session:
        session.add(UserModel(id="alice", realm_id=REALM, name="Alice Rao",
                              email="alice@example.edu", gender="Female"))
        await session.commit()
    ride = await _create(client, seats=2)
    for who in ("alice", "bob"):
        await client.post("/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth(who))

    accepted = await client.post(
        "/api/v1/rides/decide",
        json={"ride_id": ride["id"], "user_id": "alice", "decision": "accept"},
        headers=auth("creator"),
    )
    rejected = await client.post(
        "/api/v1/rides/decide",
        json={"ride_id": ride["id"], "user_id": "bob", "decision": "reject"},
        headers=auth("creator"),
    )

    assert accepted.json()["message"] == "Alice Rao has been confirmed for the ride"
    assert rejected.json()["message"] == "Unknown has been rejected"


@pytest.mark.asyncio
async def test_second_accept_on_full_ride_is_409(client):
    ride = await _create(client, seats=1)
    for who in ("alice", "bob"):
        await client.post("/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth(who))
    await client.post(
        "/api/v1/rides/decide",
        json={"ride_id": ride["id"], "user_id": "alice", "decision": "accept"},
        headers=auth("creator"),
    )

    resp = await client.post(
        "/api/v1/rides/decide",
        json={"ride_id": ride["id"], "user_id": "bob", "decision": "accept"},
        headers=auth("creator"),
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "NO_SEATS_LEFT"


@pytest.mark.asyncio
async def test_gender_mismatch_is_403(client):
    ride = await _create(client, gender="Male")
    resp = await client.post(
        "/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice")
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "GENDER_MISMATCH"


@pytest.mark.asyncio
async def test_decide_by_non_creator_is_403(client):
    ride = await _create(client)
    await client.post("/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice"))
    resp = await client.post(
        "/api/v1/rides/decide",
        json={"ride_id": ride["id"], "user_id": "alice", "decision": "accept"},
        headers=auth("bob"),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_cancel_twice(client):
    ride = await _create(client)
    await client.post("/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice"))

    first = await client.post(
        "/api/v1/rides/cancel-request", json={"ride_id": ride["id"]}, headers=auth("alice")
    )
    second = await client.post(
        "/api/v1/rides/cancel-request", json={"ride_id": ride["id"]}, headers=auth("alice")
    )
    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["code"] == "NO_PENDING_REQUEST"


@pytest.mark.asyncio
async def test_close_twice_and_request_after(client):
    ride = await _create(client)
    for _ in range(2):
        resp = await client.post(
            "/api/v1/rides/close", json={"ride_id": ride["id"]}, headers=auth("creator")
        )
        assert resp.status_code == 200
        assert resp.json()["ride"]["status"] == "CLOSED"

    resp = await client.post(
        "/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice")
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_update_time(client):
    ride = await _create(client)
    new_time = utcnow() + timedelta(days=4)
    resp = await client.post(
        "/api/v1/rides/update-time",
        json={"ride_id": ride["id"], "date_time": new_time.isoformat()},
        headers=auth("creator"),
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Ride time updated"


@pytest.mark.asyncio
async def test_get_ride_details(client):
    ride = await _create(client)
    await client.post("/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice"))

    resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=auth("alice"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["user_role"] == "requested"
    assert body["creator_name"] == "Unknown"
    assert [p["id"] for p in body["request_details"]] == ["alice"]


@pytest.mark.asyncio
async def test_get_ride_not_found(client):
    resp = await client.get("/api/v1/rides/missing", headers=auth("alice"))
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Ride not found", "code": "NOT_FOUND"}


@pytest.mark.asyncio
async def test_get_ride_cross_realm(client):
    ride = await _create(client)
    resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=auth("outsider"))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_listing_search_and_my_rides(client):
    ride = await _create(client, to_location="Central Station")
    await _create(client, to_location="Airport T2")

    listed = await client.get("/api/v1/rides", headers=auth("alice"))
    assert len(listed.json()) == 2

    found = await client.get(
        "/api/v1/rides/search", params={"to": "station"}, headers=auth("alice")
    )
    assert [r["id"] for r in found.json()] == [ride["id"]]

    empty = await client.get("/api/v1/rides/search", headers=auth("alice"))
    assert empty.status_code == 400

    mine = await client.get(
        "/api/v1/rides/my-rides", params={"type": "created"}, headers=auth("creator")
    )
    assert len(mine.json()) == 2
    assert all(r["user_role"] == "creator" for r in mine.json())

    popular = await client.get("/api/v1/rides/popular-destinations", headers=auth("alice"))
    assert {d["destination"] for d in popular.json()} == {"Central Station", "Airport T2"}

    recent = await client.get("/api/v1/rides/recent", headers=auth("alice"))
    assert len(recent.json()) == 2


# ── Chat ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_chat_flow(client):
    ride = await _create(client)
    await client.post("/api/v1/rides/request", json={"ride_id": ride["id"]}, headers=auth("alice"))

    resp = await client.post(
        "/api/v1/chat/messages",
        json={"ride_id": ride["id"], "message": "See you at the gate"},
        headers=auth("creator"),
    )
    assert resp.status_code == 201
    assert resp.json()["senderName"] == "Casey Creator"

    resp = await client.get(
        "/api/v1/chat/messages", params={"ride_id": ride["id"]}, headers=auth("alice")
    )
    assert resp.status_code == 200
    [message] = resp.json()["messages"]
    assert message["message"] == "See you at the gate"
    assert message["senderId"] == "creator"

    resp = await client.get(
        "/api/v1/chat/ride", params={"ride_id": ride["id"]}, headers=auth("alice")
    )
    assert [p["id"] for p in resp.json()["participants"]] == ["creator", "alice"]


@pytest.mark.asyncio
async def test_chat_denied_to_strangers_and_when_disabled(client):
    ride = await _create(client)

    resp = await client.get(
        "/api/v1/chat/messages", params={"ride_id": ride["id"]}, headers=auth("bob")
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You are not part of this ride"

    await client.post(
        "/api/v1/rides/chat-settings",
        json={"ride_id": ride["id"], "allow_chat": False},
        headers=auth("creator"),
    )
    resp = await client.get(
        "/api/v1/chat/messages", params={"ride_id": ride["id"]}, headers=auth("creator")
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Chat disabled by creator"


@pytest.mark.asyncio
async def test_empty_chat_message_rejected(client):
    ride = await _create(client)
    resp = await client.post(
        "/api/v1/chat/messages", json={"ride_id": ride["id"]}, headers=auth("creator")
    )
    assert resp.status_code == 422


# ── Location catalog ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_location_catalog(client, session_factory):
    async with session_factory() as session:
        gate = LocationModel(name="Main Gate", type="campus")
        airport = LocationModel(name="Airport T2", type="airport")
        session.add_all([gate, airport])
        await session.flush()
        session.add(ValidRouteModel(realm_id=REALM, from_location_id=gate.id,
                                    to_location_id=airport.id))
        await session.commit()

    starts = await client.get("/api/v1/locations/starting-points", headers=auth("alice"))
    assert starts.status_code == 200
    assert starts.json() == [{"name": "Main Gate", "type": "campus"}]

    dests = await client.get(
        "/api/v1/locations/destinations",
        params={"fromLocation": "Main Gate"},
        headers=auth("alice"),
    )
    assert dests.json() == [{"name": "Airport T2", "type": "airport"}]

    foreign = await client.get("/api/v1/locations/starting-points", headers=auth("outsider"))
    assert foreign.json() == []

    missing = await client.get("/api/v1/locations/destinations", headers=auth("alice"))
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Starting location is required"

    unknown = await client.get(
        "/api/v1/locations/destinations",
        params={"fromLocation": "Nowhere"},
        headers=auth("alice"),
    )
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Starting location not found"


# ── Realtime socket ───────────────────────────────────────────────────


@pytest.fixture
def socket_client(monkeypatch):
    """App whose hub resolves rides from memory, so no database is needed."""
    monkeypatch.setattr(dependencies, "get_identity_client", lambda: FakeIdentity())
    ride = Ride(
        id="r1",
        creator_id="creator",
        creator_realm_id=REALM,
        requests={"alice"},
        date_time=utcnow() + timedelta(days=1),
    )

    async def lookup(ride_id):
        return ride if ride_id == "r1" else None

    application = create_app()
    application.state.hub = RealtimeHub(lookup)
    return TestClient(application)


def test_socket_requires_token(socket_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with socket_client.websocket_connect("/ws/chat"):
            pass
    assert exc_info.value.code == 1008


def test_socket_join_and_send(socket_client):
    with socket_client.websocket_connect("/ws/chat?token=alice-token") as ws:
        assert ws.receive_json() == {"type": "connection_established", "userId": "alice"}

        ws.send_json({"type": "chat:join", "rideId": "r1"})
        assert ws.receive_json() == {"type": "chat:joined", "rideId": "r1"}

        ws.send_json({"type": "chat:send", "rideId": "r1", "message": "hello"})
        event = ws.receive_json()
        assert event["type"] == "chat:new"
        assert event["senderId"] == "alice"
        assert event["message"] == "hello"


def test_socket_rejects_non_member(socket_client):
    with socket_client.websocket_connect("/ws/chat?token=bob-token") as ws:
        ws.receive_json()
        ws.send_json({"type": "chat:join", "rideId": "r1"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["message"] == "You are not part of this ride"

"""Chat authorization gate shared by the REST chat routes and the realtime hub."""

from __future__ import annotations

from .entities import Ride


def can_access(ride: Ride, actor_id: str) -> bool:
    """True iff chat is enabled and *actor_id* is the creator, a requester or confirmed.

    Pending requesters are included so riders can coordinate while the
    creator is still deciding.
    """
    if not ride.allow_chat:
        return False
    return (
        actor_id == ride.creator_id
        or actor_id in ride.requests
        or actor_id in ride.confirmed_users
    )

"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (OPEN -> FULL -> CLOSED, OPEN -> CLOSED).
- Request/decision preconditions live on the entity so the service layer
  only orchestrates persistence.  ``requests`` and ``confirmed_users`` are
  genuine sets and are kept disjoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import RIDE_TRANSITIONS, GenderPreference, RideStatus, UserRole
from .errors import (
    AlreadyRequestedError,
    ForbiddenError,
    GenderMismatchError,
    InvalidStateError,
    NoPendingRequestError,
    NoSeatsLeftError,
    NotRequestedError,
    SelfRequestError,
)
from .lifecycle import as_utc, retention_deadline, stale_cutoff


class InvalidStateTransition(InvalidStateError):
    """Raised when a ride status change violates the state machine."""


# ── Value Object ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    """Identity resolved from a bearer credential."""

    id: str
    realm_id: str
    name: str = ""
    gender: Optional[str] = None


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: Optional[str] = None
    creator_id: str = ""
    creator_realm_id: str = ""
    from_location: str = ""
    to_location: str = ""
    total_seats: int = 1
    available_seats: int = 1
    preferred_gender: GenderPreference = GenderPreference.ANY
    luggage_space: bool = False
    time_negotiation: bool = False
    additional_notes: str = ""
    date_time: Optional[datetime] = None
    allow_chat: bool = True
    requests: set[str] = field(default_factory=set)
    confirmed_users: set[str] = field(default_factory=set)
    status: RideStatus = RideStatus.OPEN
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        overlap = self.requests & self.confirmed_users
        if overlap:
            raise ValueError(f"Actors both pending and confirmed: {sorted(overlap)}")
        if self.available_seats < 0:
            raise ValueError("available_seats must be >= 0")

    # ── State machine ─────────────────────────────────────────────

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def is_stale(self, now: datetime) -> bool:
        return (
            self.status == RideStatus.OPEN
            and self.date_time is not None
            and as_utc(self.date_time) <= stale_cutoff(now)
        )

    def retention_deadline(self) -> datetime:
        return retention_deadline(self.date_time, bool(self.confirmed_users))

    # ── Membership ────────────────────────────────────────────────

    @property
    def participants(self) -> set[str]:
        return {self.creator_id} | self.requests | self.confirmed_users

    def role_of(self, actor_id: str) -> UserRole:
        if actor_id == self.creator_id:
            return UserRole.CREATOR
        if actor_id in self.requests:
            return UserRole.REQUESTED
        if actor_id in self.confirmed_users:
            return UserRole.CONFIRMED
        return UserRole.NONE

    # ── Preconditions ─────────────────────────────────────────────

    def ensure_same_realm(self, actor: Actor) -> None:
        if actor.realm_id != self.creator_realm_id:
            raise ForbiddenError("Cross-realm access denied")

    def ensure_creator(self, actor_id: str, action: str) -> None:
        if actor_id != self.creator_id:
            raise ForbiddenError(f"Only the creator can {action}")

    def ensure_not_closed(self) -> None:
        if self.status == RideStatus.CLOSED:
            raise InvalidStateError("Ride is closed")

    def ensure_can_request(self, actor: Actor) -> None:
        self.ensure_same_realm(actor)
        self.ensure_not_closed()
        if actor.id == self.creator_id:
            raise SelfRequestError()
        if actor.id in self.requests or actor.id in self.confirmed_users:
            raise AlreadyRequestedError()
        if not self.preferred_gender.admits(actor.gender):
            raise GenderMismatchError(
                f"This ride is for {self.preferred_gender.value} only."
            )

    def ensure_pending(self, actor_id: str) -> None:
        if actor_id not in self.requests:
            raise NoPendingRequestError()

    def ensure_can_decide(
        self, decider_id: str, target_id: str, *, accepting: bool = False
    ) -> None:
        self.ensure_creator(decider_id, "decide")
        self.ensure_not_closed()
        if target_id not in self.requests:
            # Target confirmed by a concurrent accept that took the last seat
            if accepting and target_id in self.confirmed_users and self.available_seats <= 0:
                raise NoSeatsLeftError()
            raise NotRequestedError()

    def ensure_seat_available(self) -> None:
        if self.available_seats <= 0:
            raise NoSeatsLeftError()

    def close(self) -> bool:
        """Move to CLOSED.  Returns False if it already was (closing is idempotent)."""
        if self.status == RideStatus.CLOSED:
            return False
        self.transition_to(RideStatus.CLOSED)
        return True

"""Domain enumerations and state-transition rules."""

from __future__ import annotations

import enum
from typing import Optional


class RideStatus(str, enum.Enum):
    OPEN = "OPEN"
    FULL = "FULL"
    CLOSED = "CLOSED"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.OPEN: {RideStatus.FULL, RideStatus.CLOSED},
    RideStatus.FULL: {RideStatus.CLOSED},
    RideStatus.CLOSED: set(),
}


class GenderPreference(str, enum.Enum):
    ANY = "Any"
    MALE = "Male"
    FEMALE = "Female"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["GenderPreference"]:
        """Case-insensitive lookup; ``None`` for missing or unknown values."""
        if not value:
            return None
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None

    def admits(self, gender: Optional[str]) -> bool:
        """True if an actor declaring *gender* may request under this policy."""
        if self is GenderPreference.ANY:
            return True
        return GenderPreference.parse(gender) is self


class ParticipantState(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"


class Decision(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class UserRole(str, enum.Enum):
    CREATOR = "creator"
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    NONE = "none"

"""
SQLAlchemy ORM models.

Tables
------
* ``rides``              -- bookable shared trips
* ``ride_participants``  -- pending / confirmed riders, one row per (ride, user)
* ``chat_messages``      -- per-ride message log
* ``users``              -- directory projection used to decorate responses
* ``locations``          -- named pickup / drop-off points
* ``valid_routes``       -- per-realm (from, to) pairs offered when creating rides

Indexes
-------
* **B-Tree** on ``creator_realm_id, status, date_time`` for the realm-scoped
  listings, on ``expires_at`` for the retention purge, and on
  ``ride_participants.user_id`` for "my rides".

The ``(ride_id, user_id)`` primary key on ``ride_participants`` is what
keeps the pending and confirmed sets disjoint: a user has exactly one row
per ride, in exactly one state.
"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator

from .database import Base
from rideshare.domain.enums import GenderPreference, ParticipantState, RideStatus
from rideshare.domain.lifecycle import as_utc, utcnow


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite has no timezone support, so values are stored naive there and
    re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = as_utc(value)
        if dialect.name == "sqlite":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)


def _new_id() -> str:
    return uuid.uuid4().hex


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(32), primary_key=True, default=_new_id)
    creator_id = Column(String(64), nullable=False)
    creator_realm_id = Column(String(64), nullable=False)

    from_location = Column(String(120), nullable=False)
    to_location = Column(String(120), nullable=False)

    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    preferred_gender = Column(
        Enum(
            GenderPreference,
            name="genderpreference",
            values_callable=_enum_values,
        ),
        default=GenderPreference.ANY,
        nullable=False,
    )
    luggage_space = Column(Boolean, default=False, nullable=False)
    time_negotiation = Column(Boolean, default=False, nullable=False)
    additional_notes = Column(String(500), default="", nullable=False)
    allow_chat = Column(Boolean, default=True, nullable=False)

    status = Column(Enum(RideStatus, name="ridestatus"), default=RideStatus.OPEN, nullable=False)
    date_time = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="ck_rides_seats_non_negative"),
        CheckConstraint(
            "available_seats <= total_seats", name="ck_rides_seats_within_capacity"
        ),
        Index("idx_rides_realm_status_time", "creator_realm_id", "status", "date_time"),
        Index("idx_rides_creator", "creator_id"),
        Index("idx_rides_expires", "expires_at"),
    )


class RideParticipantModel(Base):
    __tablename__ = "ride_participants"

    ride_id = Column(
        String(32),
        ForeignKey("rides.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(String(64), primary_key=True)
    state = Column(
        Enum(ParticipantState, name="participantstate"),
        default=ParticipantState.PENDING,
        nullable=False,
    )
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_participants_user", "user_id"),
    )


class ChatMessageModel(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(
        String(32),
        ForeignKey("rides.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = Column(String(64), nullable=False)
    sender_name = Column(String(120), nullable=False)
    message = Column(Text, nullable=True)
    ciphertext = Column(Text, nullable=True)
    nonce = Column(String(128), nullable=True)
    sent_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_chat_messages_ride", "ride_id", "sent_at"),
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    realm_id = Column(String(64), nullable=False)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    department = Column(String(120), nullable=True)
    year = Column(String(16), nullable=True)
    gender = Column(String(16), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("idx_users_realm", "realm_id"),
    )


class LocationModel(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), unique=True, nullable=False)
    type = Column(String(40), nullable=True)


class ValidRouteModel(Base):
    __tablename__ = "valid_routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    realm_id = Column(String(64), nullable=False)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "realm_id", "from_location_id", "to_location_id", name="uq_valid_routes_pair"
        ),
        Index("idx_valid_routes_realm_from", "realm_id", "from_location_id"),
    )

"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from rideshare.domain.entities import Ride
from rideshare.domain.enums import GenderPreference
from rideshare.services.directory import Profile
from rideshare.services.rides import RideView


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    from_location: str = Field(..., min_length=2, max_length=120)
    to_location: str = Field(..., min_length=2, max_length=120)
    available_seats: int = Field(..., ge=1, le=10)
    preferred_gender: str = Field(
        GenderPreference.ANY.value, description="Any, Male or Female (case-insensitive)"
    )
    luggage_space: bool = False
    time_negotiation: bool = False
    additional_notes: str = Field("", max_length=500)
    date_time: str = Field(..., description="ISO-8601 departure instant.")
    allow_chat: bool = True


class RideIdRequest(BaseModel):
    ride_id: str = Field(..., min_length=1)


class DecideRequest(RideIdRequest):
    user_id: str = Field(..., min_length=1)
    decision: str = Field(..., description="'accept' or 'reject'")


class UpdateTimeRequest(RideIdRequest):
    date_time: str


class ChatSettingsRequest(RideIdRequest):
    allow_chat: bool


class MessageCreateRequest(RideIdRequest):
    message: Optional[str] = Field(None, max_length=4000)
    ciphertext: Optional[str] = Field(None, max_length=16000)
    nonce: Optional[str] = Field(None, max_length=128)

    @model_validator(mode="after")
    def _require_payload(self):
        if not self.message and not self.ciphertext:
            raise ValueError("Either message or ciphertext is required")
        return self


# ── Responses ─────────────────────────────────────────────────────────


class ParticipantResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "ParticipantResponse":
        return cls(
            id=profile.id,
            name=profile.name,
            email=profile.email,
            phone=profile.phone,
            department=profile.department,
            year=profile.year,
        )


class RideResponse(BaseModel):
    id: str
    creator_id: str
    creator_realm_id: str
    from_location: str
    to_location: str
    total_seats: int
    available_seats: int
    preferred_gender: str
    luggage_space: bool
    time_negotiation: bool
    additional_notes: str
    date_time: datetime
    allow_chat: bool
    requests: list[str]
    confirmed_users: list[str]
    status: str
    expires_at: datetime
    created_at: Optional[datetime] = None

    creator_name: Optional[str] = None
    user_role: Optional[str] = None
    request_details: Optional[list[ParticipantResponse]] = None
    confirmed_details: Optional[list[ParticipantResponse]] = None

    @classmethod
    def from_entity(cls, ride: Ride) -> "RideResponse":
        return cls(
            id=ride.id,
            creator_id=ride.creator_id,
            creator_realm_id=ride.creator_realm_id,
            from_location=ride.from_location,
            to_location=ride.to_location,
            total_seats=ride.total_seats,
            available_seats=ride.available_seats,
            preferred_gender=ride.preferred_gender.value,
            luggage_space=ride.luggage_space,
            time_negotiation=ride.time_negotiation,
            additional_notes=ride.additional_notes,
            date_time=ride.date_time,
            allow_chat=ride.allow_chat,
            requests=sorted(ride.requests),
            confirmed_users=sorted(ride.confirmed_users),
            status=ride.status.value,
            expires_at=ride.expires_at,
            created_at=ride.created_at,
        )

    @classmethod
    def from_view(cls, view: RideView, *, with_participants: bool = False) -> "RideResponse":
        resp = cls.from_entity(view.ride)
        resp.creator_name = view.creator_name
        resp.user_role = view.user_role.value
        if with_participants:
            resp.request_details = [
                ParticipantResponse.from_profile(p) for p in view.request_details
            ]
            resp.confirmed_details = [
                ParticipantResponse.from_profile(p) for p in view.confirmed_details
            ]
        return resp


class RideActionResponse(BaseModel):
    message: str
    ride: RideResponse


class DestinationResponse(BaseModel):
    destination: str
    count: int


class LocationResponse(BaseModel):
    name: str
    type: Optional[str] = None


class ChatMessageResponse(BaseModel):
    ride_id: str = Field(..., alias="rideId")
    sender_id: str = Field(..., alias="senderId")
    sender_name: str = Field(..., alias="senderName")
    message: Optional[str] = None
    ciphertext: Optional[str] = None
    nonce: Optional[str] = None
    sent_at: datetime = Field(..., alias="sentAt")

    model_config = {"populate_by_name": True}


class MessagesResponse(BaseModel):
    messages: list[ChatMessageResponse]


class ChatParticipantResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None


class ChatRideResponse(BaseModel):
    ride: RideResponse
    participants: list[ChatParticipantResponse]


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None

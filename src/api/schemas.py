"""Pydantic request / response schemas for the local agent API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.domain.entities import (
    Booking,
    Checkpoint,
    LocationPing,
    PositionFix,
    Trip,
    TripStats,
)
from src.domain.enums import ErrorKind, TripEvent, TripStatus
from src.domain.results import AccountOutcome


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Requests ──────────────────────────────────────────────────────────


class SignInRequest(BaseModel):
    vehicle_number: str = Field(..., max_length=32)


class CodeRequest(BaseModel):
    code: str = Field(..., max_length=8)


class CodeConfirmRequest(BaseModel):
    verification_id: str
    code: str = Field(..., max_length=8)


class FixRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    captured_at: datetime = Field(default_factory=_now)
    accuracy_m: Optional[float] = Field(None, ge=0)
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None

    def to_fix(self) -> PositionFix:
        captured_at = self.captured_at
        if captured_at.tzinfo is None:
            captured_at = captured_at.replace(tzinfo=timezone.utc)
        return PositionFix(
            latitude=self.latitude,
            longitude=self.longitude,
            captured_at=captured_at,
            accuracy_m=self.accuracy_m,
            altitude=self.altitude,
            speed=self.speed,
            heading=self.heading,
        )

    def to_ping(self) -> LocationPing:
        return LocationPing.from_fix(self.to_fix())


class LocationBatchRequest(BaseModel):
    pings: list[FixRequest] = Field(..., max_length=500)


class PermissionsRequest(BaseModel):
    foreground_location: Optional[bool] = None
    background_location: Optional[bool] = None
    camera: Optional[bool] = None


class LifecycleRequest(BaseModel):
    state: Literal["foreground", "background"]


# ── Responses ─────────────────────────────────────────────────────────


class CheckpointResponse(BaseModel):
    name: str
    address: str
    latitude: float
    longitude: float

    @classmethod
    def of(cls, checkpoint: Optional[Checkpoint]) -> Optional["CheckpointResponse"]:
        if checkpoint is None:
            return None
        return cls(
            name=checkpoint.name,
            address=checkpoint.address,
            latitude=checkpoint.latitude,
            longitude=checkpoint.longitude,
        )


class BookingResponse(BaseModel):
    booking_id: str
    status: str
    trip_status: TripStatus
    trip_id: Optional[str] = None
    journey_date: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    hydrant: Optional[CheckpointResponse] = None
    destination: Optional[CheckpointResponse] = None

    @classmethod
    def of(cls, booking: Booking) -> "BookingResponse":
        return cls(
            booking_id=booking.booking_id,
            status=booking.status.value,
            trip_status=booking.trip_status,
            trip_id=booking.trip.trip_id if booking.trip else None,
            journey_date=booking.journey_date,
            customer_name=booking.customer.name if booking.customer else None,
            customer_phone=booking.customer.contact_number if booking.customer else None,
            hydrant=CheckpointResponse.of(booking.hydrant),
            destination=CheckpointResponse.of(booking.destination),
        )


class TripResponse(BaseModel):
    trip_id: str
    status: TripStatus
    booking_id: Optional[str] = None
    journey_date: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    hydrant: Optional[CheckpointResponse] = None
    destination: Optional[CheckpointResponse] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    distance_km: float = 0.0
    hydrant_photo_url: Optional[str] = None
    delivery_video_url: Optional[str] = None

    @classmethod
    def of(cls, trip: Trip) -> "TripResponse":
        return cls(
            trip_id=trip.trip_id,
            status=trip.status,
            booking_id=trip.booking_id,
            journey_date=trip.journey_date,
            customer_name=trip.customer.name if trip.customer else None,
            customer_phone=trip.customer.contact_number if trip.customer else None,
            hydrant=CheckpointResponse.of(trip.hydrant),
            destination=CheckpointResponse.of(trip.destination),
            start_time=trip.start_time,
            end_time=trip.end_time,
            distance_km=round(trip.cumulative_distance_km, 3),
            hydrant_photo_url=trip.hydrant_proof_ref,
            delivery_video_url=trip.delivery_proof_ref,
        )


class TransitionResponse(BaseModel):
    ok: bool
    event: TripEvent
    status: Optional[TripStatus] = None
    reason: str = ""
    error: Optional[ErrorKind] = None
    noop: bool = False
    retryable: bool = False
    distance_km: Optional[float] = None
    verification_id: Optional[str] = None

    model_config = {"from_attributes": True}


class SignInResponse(BaseModel):
    outcome: AccountOutcome
    reason: str = ""
    vehicle_id: Optional[str] = None
    vehicle_number: Optional[str] = None
    verification_id: Optional[str] = None
    error: Optional[ErrorKind] = None


class TrackingStatusResponse(BaseModel):
    active: bool
    registered: bool
    trip_id: Optional[str] = None
    distance_km: float = 0.0
    restarted: bool = False


class AcceptedResponse(BaseModel):
    accepted: int


class RecentTripResponse(BaseModel):
    trip_id: str
    date: str
    origin: str
    destination: str
    status: str
    distance: str = ""


class StatsResponse(BaseModel):
    total_trips: int
    completed_trips: int
    ongoing_trips: int
    total_distance: float
    total_hours: float
    avg_rating: float
    recent_trips: list[RecentTripResponse] = []

    @classmethod
    def of(cls, stats: TripStats) -> "StatsResponse":
        return cls(
            total_trips=stats.total_trips,
            completed_trips=stats.completed_trips,
            ongoing_trips=stats.ongoing_trips,
            total_distance=stats.total_distance,
            total_hours=stats.total_hours,
            avg_rating=stats.avg_rating,
            recent_trips=[
                RecentTripResponse(
                    trip_id=r.trip_id,
                    date=r.date,
                    origin=r.origin,
                    destination=r.destination,
                    status=r.status,
                    distance=r.distance,
                )
                for r in stats.recent_trips
            ],
        )


class OutboxResponse(BaseModel):
    pending: int
    delivered: int = 0


class HealthResponse(BaseModel):
    status: str = "ok"

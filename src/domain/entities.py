"""
Domain entities.

Patterns used
-------------
- **State Pattern** on ``Trip``: enforces valid lifecycle transitions
  (pending -> accepted -> ongoing -> pickup -> delivered -> completed,
  with rejected reachable from pending).
- ``Booking.trip_status`` folds booking and trip status into the single
  status the fleet guard reasons about.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import TRIP_TRANSITIONS, BookingStatus, TripStatus
from .errors import InvalidStateTransition


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Checkpoint:
    """A hydrant or destination the trip must geofence against."""

    name: str
    address: str
    location: Coordinate

    @property
    def latitude(self) -> float:
        return self.location.latitude

    @property
    def longitude(self) -> float:
        return self.location.longitude


@dataclass(frozen=True)
class Customer:
    name: str
    contact_number: str
    address: str = ""


@dataclass(frozen=True)
class PositionFix:
    """A raw fix from the device's positioning subsystem."""

    latitude: float
    longitude: float
    captured_at: datetime
    accuracy_m: Optional[float] = None
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


@dataclass(frozen=True)
class LocationPing:
    latitude: float
    longitude: float
    captured_at: datetime
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None

    @classmethod
    def from_fix(cls, fix: PositionFix) -> "LocationPing":
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            captured_at=fix.captured_at,
            altitude=fix.altitude,
            speed=fix.speed,
            heading=fix.heading,
        )


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Trip:
    trip_id: str
    status: TripStatus = TripStatus.PENDING
    booking_id: Optional[str] = None
    journey_date: Optional[str] = None
    hydrant: Optional[Checkpoint] = None
    destination: Optional[Checkpoint] = None
    customer: Optional[Customer] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cumulative_distance_km: float = 0.0
    hydrant_proof_ref: Optional[str] = None
    delivery_proof_ref: Optional[str] = None

    def transition_to(self, new_status: TripStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = {
            target
            for (source, _event), target in TRIP_TRANSITIONS.items()
            if source == self.status
        }
        if new_status not in allowed:
            raise InvalidStateTransition(self.status, new_status)
        self.status = new_status


@dataclass(frozen=True)
class TripSummary:
    trip_id: str
    status: TripStatus


@dataclass
class Booking:
    booking_id: str
    vehicle_id: str
    status: BookingStatus = BookingStatus.PENDING
    journey_date: Optional[str] = None
    customer: Optional[Customer] = None
    hydrant: Optional[Checkpoint] = None
    destination: Optional[Checkpoint] = None
    trip: Optional[TripSummary] = None

    @property
    def trip_status(self) -> TripStatus:
        """Status of the live trip, or the booking's own status before one exists."""
        if self.trip is not None:
            return self.trip.status
        if self.status == BookingStatus.ACCEPTED:
            return TripStatus.ACCEPTED
        if self.status == BookingStatus.REJECTED:
            return TripStatus.REJECTED
        return TripStatus.PENDING


@dataclass(frozen=True)
class Vehicle:
    vehicle_id: str
    vehicle_number: str
    contact_number: str = ""


@dataclass
class VerificationSession:
    verification_id: str
    trip_id: str
    phone_number: str
    issued_at: datetime
    consumed: bool = False
    failed_attempts: int = 0


@dataclass(frozen=True)
class RecentTrip:
    trip_id: str
    date: str
    origin: str
    destination: str
    status: str
    distance: str = ""


@dataclass(frozen=True)
class TripStats:
    total_trips: int = 0
    completed_trips: int = 0
    ongoing_trips: int = 0
    total_distance: float = 0.0
    total_hours: float = 0.0
    avg_rating: float = 0.0
    recent_trips: list[RecentTrip] = field(default_factory=list)

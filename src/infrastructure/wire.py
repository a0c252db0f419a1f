"""
Wire models for the remote trip service.

The service speaks camelCase JSON; these pydantic models validate it and
convert to domain entities so nothing outside ``infrastructure`` ever sees
a raw payload.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.entities import (
    Booking,
    Checkpoint,
    Coordinate,
    Customer,
    LocationPing,
    RecentTrip,
    Trip,
    TripStats,
    TripSummary,
    Vehicle,
)
from src.domain.enums import BookingStatus, TripStatus


class _Wire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


# ── Shared pieces ─────────────────────────────────────────────────────


class CheckpointWire(_Wire):
    name: str = ""
    address: str = ""
    latitude: Optional[float] = Field(
        None, validation_alias=AliasChoices("latitude", "lat")
    )
    longitude: Optional[float] = Field(
        None, validation_alias=AliasChoices("longitude", "lng")
    )

    def to_domain(self) -> Optional[Checkpoint]:
        if self.latitude is None or self.longitude is None:
            return None
        return Checkpoint(
            name=self.name,
            address=self.address,
            location=Coordinate(self.latitude, self.longitude),
        )


class CustomerWire(_Wire):
    name: str = ""
    contact_number: str = ""
    address: str = ""

    def to_domain(self) -> Customer:
        return Customer(self.name, self.contact_number, self.address)


class TripSummaryWire(_Wire):
    trip_id: str
    status: TripStatus


# ── Responses ─────────────────────────────────────────────────────────


class VehicleCheckResponse(_Wire):
    exists: bool = False
    vehicle_id: Optional[str] = None
    contact_number: str = ""
    registered: bool = True

    def to_domain(self, vehicle_number: str) -> Vehicle:
        return Vehicle(
            vehicle_id=self.vehicle_id or "",
            vehicle_number=vehicle_number,
            contact_number=self.contact_number,
        )


class BookingWire(_Wire):
    booking_id: str = Field(validation_alias=AliasChoices("bookingId", "id"))
    journey_date: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    vehicle_id: Optional[str] = None
    customer: Optional[CustomerWire] = None
    hydrant: Optional[CheckpointWire] = None
    destination: Optional[CheckpointWire] = None
    trip: Optional[TripSummaryWire] = None

    def to_domain(self, vehicle_id: str) -> Booking:
        return Booking(
            booking_id=self.booking_id,
            vehicle_id=self.vehicle_id or vehicle_id,
            status=self.status,
            journey_date=self.journey_date,
            customer=self.customer.to_domain() if self.customer else None,
            hydrant=self.hydrant.to_domain() if self.hydrant else None,
            destination=self.destination.to_domain() if self.destination else None,
            trip=(
                TripSummary(self.trip.trip_id, self.trip.status) if self.trip else None
            ),
        )


class TripBookingWire(_Wire):
    id: str
    journey_date: Optional[str] = None
    status: Optional[str] = None


class TripDetailsWire(_Wire):
    trip_id: str
    status: TripStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    distance: Optional[float] = None
    booking: Optional[TripBookingWire] = None
    hydrant: Optional[CheckpointWire] = None
    destination: Optional[CheckpointWire] = None
    customer: Optional[CustomerWire] = None
    hydrant_photo_url: Optional[str] = None
    delivery_video_url: Optional[str] = None

    def to_domain(self) -> Trip:
        return Trip(
            trip_id=self.trip_id,
            status=self.status,
            booking_id=self.booking.id if self.booking else None,
            journey_date=self.booking.journey_date if self.booking else None,
            hydrant=self.hydrant.to_domain() if self.hydrant else None,
            destination=self.destination.to_domain() if self.destination else None,
            customer=self.customer.to_domain() if self.customer else None,
            start_time=self.start_time,
            end_time=self.end_time,
            cumulative_distance_km=self.distance or 0.0,
            hydrant_proof_ref=self.hydrant_photo_url,
            delivery_proof_ref=self.delivery_video_url,
        )


class RecentTripWire(_Wire):
    trip_id: str
    date: str = ""
    from_: str = Field("", alias="from")
    to: str = ""
    status: str = ""
    distance: Optional[str] = None


class TripStatsWire(_Wire):
    total_trips: int = 0
    completed_trips: int = 0
    ongoing_trips: int = 0
    total_distance: float = 0.0
    total_hours: float = 0.0
    avg_rating: float = 0.0

    def to_domain(self, recent: list[RecentTripWire]) -> TripStats:
        return TripStats(
            total_trips=self.total_trips,
            completed_trips=self.completed_trips,
            ongoing_trips=self.ongoing_trips,
            total_distance=self.total_distance,
            total_hours=self.total_hours,
            avg_rating=self.avg_rating,
            recent_trips=[
                RecentTrip(
                    trip_id=r.trip_id,
                    date=r.date,
                    origin=r.from_,
                    destination=r.to,
                    status=r.status,
                    distance=r.distance or "",
                )
                for r in recent
            ],
        )


# ── Requests ──────────────────────────────────────────────────────────


def location_payload(trip_id: str, ping: LocationPing) -> dict:
    return {
        "tripId": trip_id,
        "location": {
            "latitude": ping.latitude,
            "longitude": ping.longitude,
            "altitude": ping.altitude,
            "speed": ping.speed,
            "heading": ping.heading,
            "timestamp": ping.captured_at.isoformat(),
        },
    }

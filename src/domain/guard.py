"""
Booking / fleet invariant guard.

A vehicle may hold at most one accepted booking and at most one trip in
transit (``ongoing`` / ``pickup``).  The guard is evaluated against the
vehicle's full booking set at the moment of action; callers must fetch that
set fresh rather than reuse a list loaded earlier.
"""

from __future__ import annotations

from typing import Iterable

from .entities import Booking
from .enums import IN_TRANSIT_STATUSES, TripEvent, TripStatus
from .errors import InvariantViolation

TRIP_ALREADY_ACTIVE = (
    "You must complete your current trip before accepting a new one."
)
TRIP_ALREADY_ACCEPTED = (
    "You must start or complete your currently accepted trip "
    "before accepting a new one."
)
CANNOT_REJECT = "You cannot reject bookings while a trip is active or accepted."
ALREADY_ONGOING = "You already have an ongoing trip."


def _others(booking_id: str, bookings: Iterable[Booking]) -> list[Booking]:
    return [b for b in bookings if b.booking_id != booking_id]


def has_trip_in_transit(bookings: Iterable[Booking]) -> bool:
    return any(b.trip_status in IN_TRANSIT_STATUSES for b in bookings)


def has_accepted_booking(bookings: Iterable[Booking]) -> bool:
    return any(b.trip_status == TripStatus.ACCEPTED for b in bookings)


def check_vehicle_action(
    event: TripEvent, booking_id: str, bookings: Iterable[Booking]
) -> None:
    """Raise ``InvariantViolation`` if *event* on *booking_id* is not allowed."""
    others = _others(booking_id, bookings)
    in_transit = has_trip_in_transit(others)
    accepted = has_accepted_booking(others)

    if event == TripEvent.ACCEPT:
        if in_transit:
            raise InvariantViolation(TRIP_ALREADY_ACTIVE, title="Trip Already Active")
        if accepted:
            raise InvariantViolation(
                TRIP_ALREADY_ACCEPTED, title="Trip Already Accepted"
            )
    elif event == TripEvent.REJECT:
        if in_transit or accepted:
            raise InvariantViolation(CANNOT_REJECT, title="Trip Active")
    elif event == TripEvent.START:
        if in_transit:
            raise InvariantViolation(ALREADY_ONGOING, title="Trip Already Active")

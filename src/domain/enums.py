"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ONGOING = "ongoing"  # in transit, hydrant not yet cleared
    PICKUP = "pickup"  # in transit, hydrant cleared
    DELIVERED = "delivered"
    COMPLETED = "completed"
    REJECTED = "rejected"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TripEvent(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    START = "start"
    HYDRANT_REACHED = "hydrant_reached"
    WATER_DELIVERED = "water_delivered"
    CODE_REQUESTED = "code_requested"  # no status change
    CODE_CONFIRMED = "code_confirmed"


class ErrorKind(str, enum.Enum):
    INVALID_INPUT = "InvalidInput"
    PERMISSION_DENIED = "PermissionDenied"
    GEOFENCE_FAILED = "GeofenceFailed"
    REMOTE_UNAVAILABLE = "RemoteUnavailable"
    INVARIANT_VIOLATION = "InvariantViolation"
    TIMEOUT = "Timeout"


TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.REJECTED})
IN_TRANSIT_STATUSES = frozenset({TripStatus.ONGOING, TripStatus.PICKUP})


# State machine: (current status, event) -> next status
TRIP_TRANSITIONS: dict[tuple[TripStatus, TripEvent], TripStatus] = {
    (TripStatus.PENDING, TripEvent.ACCEPT): TripStatus.ACCEPTED,
    (TripStatus.PENDING, TripEvent.REJECT): TripStatus.REJECTED,
    (TripStatus.ACCEPTED, TripEvent.START): TripStatus.ONGOING,
    (TripStatus.ONGOING, TripEvent.HYDRANT_REACHED): TripStatus.PICKUP,
    (TripStatus.PICKUP, TripEvent.WATER_DELIVERED): TripStatus.DELIVERED,
    (TripStatus.DELIVERED, TripEvent.CODE_CONFIRMED): TripStatus.COMPLETED,
}


def next_status(current: TripStatus, event: TripEvent) -> TripStatus | None:
    """Return the status *event* leads to from *current*, or None if illegal."""
    return TRIP_TRANSITIONS.get((current, event))


def is_terminal(status: TripStatus) -> bool:
    return status in TERMINAL_STATUSES

"""
Error hierarchy.

Every failure the agent can hit resolves to one ``TripError`` subclass, each
tagged with an ``ErrorKind``.  Infrastructure and domain code raise these;
the trip state machine turns them into ``TransitionResult`` values so that
callers never see an uncaught fault.
"""

from __future__ import annotations

from typing import Optional

from .enums import ErrorKind, TripStatus


class TripError(Exception):
    """Base class; ``reason`` is safe to show to the driver."""

    kind: ErrorKind = ErrorKind.REMOTE_UNAVAILABLE
    retryable: bool = True

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InvalidInput(TripError):
    kind = ErrorKind.INVALID_INPUT
    retryable = False


class PermissionDenied(TripError):
    """Needs the user to grant a permission; retrying alone will not help."""

    kind = ErrorKind.PERMISSION_DENIED
    retryable = False


class GeofenceFailed(TripError):
    kind = ErrorKind.GEOFENCE_FAILED

    def __init__(self, reason: str, distance_km: Optional[float] = None):
        self.distance_km = distance_km
        super().__init__(reason)


class GeofenceInconclusive(GeofenceFailed):
    """No fix was fresh or precise enough to decide either way."""


class RemoteUnavailable(TripError):
    kind = ErrorKind.REMOTE_UNAVAILABLE


class RemoteRejected(RemoteUnavailable):
    """The service answered but declined the request."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(reason)


class InvariantViolation(TripError):
    kind = ErrorKind.INVARIANT_VIOLATION
    retryable = False

    def __init__(self, reason: str, title: str = "Trip Active"):
        self.title = title
        super().__init__(reason)


class OperationTimeout(TripError):
    kind = ErrorKind.TIMEOUT


class InvalidStateTransition(Exception):
    """Raised when a trip status change violates the state machine."""

    def __init__(self, current: TripStatus, target: TripStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current.value} to {target.value}")

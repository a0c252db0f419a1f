"""Structured outcomes returned to the UI instead of exceptions."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .entities import Vehicle
from .enums import ErrorKind, TripEvent, TripStatus
from .errors import GeofenceFailed, InvariantViolation, TripError


@dataclass(frozen=True)
class TransitionResult:
    ok: bool
    event: TripEvent
    status: Optional[TripStatus]
    reason: str = ""
    error: Optional[ErrorKind] = None
    noop: bool = False
    retryable: bool = False
    distance_km: Optional[float] = None
    verification_id: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def succeeded(cls, event, status, reason="", **extra) -> "TransitionResult":
        return cls(ok=True, event=event, status=status, reason=reason, **extra)

    @classmethod
    def skipped(cls, event, status, reason) -> "TransitionResult":
        """A transition that is not legal right now; benign, nothing changed."""
        return cls(ok=False, event=event, status=status, reason=reason, noop=True)

    @classmethod
    def failed(cls, event, status, exc: TripError) -> "TransitionResult":
        distance = exc.distance_km if isinstance(exc, GeofenceFailed) else None
        return cls(
            ok=False,
            event=event,
            status=status,
            reason=exc.reason,
            error=exc.kind,
            retryable=exc.retryable,
            distance_km=distance,
            title=exc.title if isinstance(exc, InvariantViolation) else None,
        )


class AccountOutcome(str, enum.Enum):
    EXISTING_ACCOUNT = "ExistingAccount"
    NEW_ACCOUNT = "NewAccount"
    UNRECOVERABLE = "Unrecoverable"


@dataclass(frozen=True)
class SignInResult:
    outcome: AccountOutcome
    reason: str = ""
    vehicle: Optional[Vehicle] = None
    verification_id: Optional[str] = None
    error: Optional[ErrorKind] = None

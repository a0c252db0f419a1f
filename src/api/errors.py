"""Map domain failures onto HTTP responses."""

from fastapi import HTTPException

from src.domain.enums import ErrorKind
from src.domain.errors import GeofenceFailed, InvariantViolation, TripError
from src.domain.results import TransitionResult

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.GEOFENCE_FAILED: 422,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.INVARIANT_VIOLATION: 409,
    ErrorKind.REMOTE_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
}


def http_error(exc: TripError) -> HTTPException:
    detail = {
        "error": exc.kind.value,
        "reason": exc.reason,
        "retryable": exc.retryable,
    }
    if isinstance(exc, InvariantViolation):
        detail["title"] = exc.title
    if isinstance(exc, GeofenceFailed) and exc.distance_km is not None:
        detail["distance_km"] = exc.distance_km
    return HTTPException(status_code=STATUS_BY_KIND[exc.kind], detail=detail)


def raise_for_result(result: TransitionResult) -> TransitionResult:
    """Pass successes and benign no-ops through; raise for real failures."""
    if result.ok or result.noop:
        return result
    detail = {
        "error": result.error.value if result.error else None,
        "reason": result.reason,
        "retryable": result.retryable,
        "status": result.status.value if result.status else None,
    }
    if result.title:
        detail["title"] = result.title
    if result.distance_km is not None:
        detail["distance_km"] = result.distance_km
    status_code = STATUS_BY_KIND.get(result.error, 500)
    raise HTTPException(status_code=status_code, detail=detail)

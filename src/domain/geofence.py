"""
Geofence Verifier
=================

Decides whether the device is physically at a checkpoint.

Rule
----
  pass  <=>  haversine(fix, checkpoint) <= radius_km        (default 0.07 km)

A fix is *inconclusive* (neither pass nor fail) when

* it is older than ``max_fix_age_seconds``, or
* its reported horizontal accuracy is worse than the radius itself.

Inconclusive fixes must be re-requested, never silently passed.

Complexity: O(1) per check.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .distance import distance_between
from .entities import Checkpoint, PositionFix

DEFAULT_RADIUS_KM = 0.07
DEFAULT_MAX_FIX_AGE_SECONDS = 30.0


@dataclass(frozen=True)
class GeofenceCheck:
    passed: bool
    distance_km: float
    inconclusive: Optional[str] = None

    @property
    def distance_m(self) -> float:
        return self.distance_km * 1000


def evaluate_geofence(
    fix: PositionFix,
    checkpoint: Checkpoint,
    now: Optional[datetime] = None,
    radius_km: float = DEFAULT_RADIUS_KM,
    max_fix_age_seconds: float = DEFAULT_MAX_FIX_AGE_SECONDS,
) -> GeofenceCheck:
    distance = distance_between(fix, checkpoint)

    now = now or datetime.now(timezone.utc)
    age = (now - fix.captured_at).total_seconds()
    if age > max_fix_age_seconds:
        return GeofenceCheck(
            passed=False,
            distance_km=distance,
            inconclusive=f"Location fix is {age:.0f}s old",
        )
    if fix.accuracy_m is not None and fix.accuracy_m > radius_km * 1000:
        return GeofenceCheck(
            passed=False,
            distance_km=distance,
            inconclusive=f"Location accuracy is only {fix.accuracy_m:.0f} m",
        )

    return GeofenceCheck(passed=distance <= radius_km, distance_km=distance)

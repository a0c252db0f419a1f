"""
Explicit handle for the trip currently open on this vehicle.

Passed to both the state machine and the tracker instead of a process-wide
"current trip id".  ``lock`` is the single-writer mutex for the confirmed
trip state and the cumulative distance; whoever mutates either must hold it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from src.domain.entities import LocationPing, Trip
from src.domain.tracking import DistanceAccumulator


@dataclass
class TripContext:
    trip: Trip
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    accumulator: DistanceAccumulator = field(init=False)

    def __post_init__(self):
        self.accumulator = DistanceAccumulator(self.trip.cumulative_distance_km)

    @property
    def trip_id(self) -> str:
        return self.trip.trip_id

    @property
    def distance_km(self) -> float:
        return self.accumulator.total_km

    def fold(self, ping: LocationPing) -> Optional[float]:
        """Apply a sample; caller must hold ``lock``."""
        delta = self.accumulator.fold(ping)
        if delta is not None:
            self.trip.cumulative_distance_km = self.accumulator.total_km
        return delta

    def adopt(self, fresh: Trip) -> None:
        """Replace confirmed trip fields with *fresh*, keeping the local distance."""
        fresh.cumulative_distance_km = max(
            self.accumulator.total_km, fresh.cumulative_distance_km
        )
        self.accumulator.total_km = fresh.cumulative_distance_km
        self.trip = fresh

"""Ordered folding of location samples into a cumulative trip distance."""

from __future__ import annotations

from typing import Optional

from .distance import distance_between
from .entities import LocationPing


class DistanceAccumulator:
    """
    Running great-circle distance over samples applied in capture order.

    A sample whose ``captured_at`` is not strictly newer than the last
    accepted one is discarded and contributes nothing, which keeps the
    total monotonically non-decreasing under clock skew or buffering.
    """

    def __init__(self, total_km: float = 0.0):
        self.total_km = max(0.0, total_km)
        self.last: Optional[LocationPing] = None
        self.dropped = 0

    def fold(self, ping: LocationPing) -> Optional[float]:
        """Apply *ping*; return the increment in km, or None if discarded."""
        if self.last is not None and ping.captured_at <= self.last.captured_at:
            self.dropped += 1
            return None

        delta = 0.0 if self.last is None else distance_between(self.last, ping)
        self.total_km += delta
        self.last = ping
        return delta

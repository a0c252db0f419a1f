"""
Device positioning feed.

The device's location subsystem pushes fixes into the agent (over the local
API); consumers wait for a fix with a bounded timeout.  Permission state is
mirrored here so callers can refuse work up front instead of timing out.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from src.domain.entities import PositionFix
from src.domain.errors import OperationTimeout

logger = logging.getLogger(__name__)


@dataclass
class PermissionState:
    foreground_location: bool = False
    background_location: bool = False
    camera: bool = False

    @property
    def continuous_tracking(self) -> bool:
        return self.foreground_location and self.background_location


class DevicePositioning:
    def __init__(self, permissions: Optional[PermissionState] = None):
        self.permissions = permissions or PermissionState()
        self._latest: Optional[PositionFix] = None
        self._updated = asyncio.Event()

    @property
    def latest(self) -> Optional[PositionFix]:
        return self._latest

    def publish(self, fix: PositionFix) -> None:
        """Record a new fix and wake every waiter."""
        if self._latest is not None and fix.captured_at <= self._latest.captured_at:
            logger.debug("Ignoring stale fix captured at %s", fix.captured_at)
            return
        self._latest = fix
        updated, self._updated = self._updated, asyncio.Event()
        updated.set()

    async def wait_for_fix(
        self, timeout: float, newer_than: Optional[datetime] = None
    ) -> PositionFix:
        """Return the latest fix newer than *newer_than*, waiting up to *timeout* s."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            fix = self._latest
            if fix is not None and (newer_than is None or fix.captured_at > newer_than):
                return fix
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise OperationTimeout("No location fix received from the device.")
            try:
                await asyncio.wait_for(self._updated.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                raise OperationTimeout(
                    "No location fix received from the device."
                ) from None

    async def fresh_fix(self, timeout: float, max_age_seconds: float) -> PositionFix:
        """Return a fix no older than *max_age_seconds*, requesting a new one if needed."""
        fix = self._latest
        now = datetime.now(timezone.utc)
        if fix is not None and (now - fix.captured_at).total_seconds() <= max_age_seconds:
            return fix
        return await self.wait_for_fix(
            timeout, newer_than=fix.captured_at if fix else None
        )

"""
Location Tracking Aggregator
============================

Keeps a stream of position samples flowing for the whole time a trip is in
transit and folds them into the trip's cumulative distance.

Workers (all owned by one ``LocationTracker``)
----------------------------------------------
* **sampler**  -- every ``tracking_interval_seconds`` asks the device feed for
  a fix newer than the last one; fixes closer than
  ``tracking_min_displacement_m`` to the last emitted sample are skipped.
  Also refreshes the background-task registration TTL.
* **consumer** -- sole writer of the running distance.  Takes samples off the
  queue in arrival order, folds them under the trip context lock (samples
  not newer than the last accepted one are dropped), then hands each one to
  a detached delivery task.
* **retrier**  -- resends pings parked in the outbox with exponential
  backoff; pings older than the retry window are purged unsent.

Lifecycle
---------
* ``start`` is idempotent per trip and replaces a subscription for another
  trip.  ``stop`` is idempotent; a generation counter is bumped before any
  await so no sample is applied once ``stop`` returns.
* ``resume`` re-affirms the Redis registration after the host process was
  suspended and restarts the workers if they were dropped.  The distance
  lives on the ``TripContext``, so it survives restarts untouched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config import Settings, settings as default_settings
from src.domain.distance import distance_between
from src.domain.entities import LocationPing, PositionFix
from src.domain.errors import (
    InvariantViolation,
    OperationTimeout,
    PermissionDenied,
    RemoteUnavailable,
    TripError,
)
from src.infrastructure.locks import DistributedLock
from src.infrastructure.positioning import DevicePositioning
from src.infrastructure.repositories import PingOutboxRepository, to_ping
from src.services.context import TripContext

logger = logging.getLogger(__name__)

TASK_NAME = "location-tracking"

PERMISSION_REQUIRED = (
    "This app needs location permissions to track your trip, "
    "including when the app is in the background."
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrackingStatus:
    active: bool
    registered: bool
    trip_id: Optional[str] = None
    distance_km: float = 0.0


class LocationTracker:
    def __init__(
        self,
        positioning: DevicePositioning,
        sink,
        redis: aioredis.Redis,
        session_factory: Optional[async_sessionmaker] = None,
        settings: Settings = default_settings,
    ):
        self.positioning = positioning
        self.sink = sink
        self.session_factory = session_factory
        self.settings = settings
        self._registration = DistributedLock(
            redis, TASK_NAME, ttl_seconds=settings.tracking_registration_ttl_seconds
        )
        self._ctx: Optional[TripContext] = None
        self._generation = 0
        self._queue: asyncio.Queue[tuple[int, LocationPing]] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._deliveries: set[asyncio.Task] = set()

    # ── Public API ────────────────────────────────────────────────────

    @property
    def trip_id(self) -> Optional[str]:
        return self._ctx.trip_id if self._ctx else None

    @property
    def is_active(self) -> bool:
        return self._ctx is not None and self._workers_alive()

    async def start(self, ctx: TripContext) -> None:
        if self._ctx is not None:
            if self._ctx.trip_id == ctx.trip_id and self._workers_alive():
                self._ctx = ctx
                await self._heartbeat()
                return
            await self.stop()

        if not self.positioning.permissions.continuous_tracking:
            raise PermissionDenied(PERMISSION_REQUIRED)

        await self._register()
        self._ctx = ctx
        self._spawn_workers()
        logger.info(
            "Location tracking started for trip %s (interval=%ss, min move=%sm)",
            ctx.trip_id,
            self.settings.tracking_interval_seconds,
            self.settings.tracking_min_displacement_m,
        )

    async def stop(self) -> None:
        if self._ctx is None:
            return
        self._generation += 1
        ctx, self._ctx = self._ctx, None

        await self._cancel_workers()
        self._discard_queue()
        try:
            await self._registration.release()
        except RedisError:
            logger.warning(
                "Could not release tracking registration; it will expire", exc_info=True
            )
        logger.info(
            "Location tracking stopped for trip %s (%.3f km)",
            ctx.trip_id,
            ctx.distance_km,
        )

    async def status(self) -> TrackingStatus:
        ctx = self._ctx
        registered = False
        if ctx is not None:
            try:
                registered = await self._registration.is_held()
            except RedisError:
                logger.warning("Tracking registry unreachable", exc_info=True)
        return TrackingStatus(
            active=self.is_active,
            registered=registered,
            trip_id=ctx.trip_id if ctx else None,
            distance_km=ctx.distance_km if ctx else 0.0,
        )

    async def resume(self) -> bool:
        """Re-affirm tracking after suspension. Returns True if it was restarted."""
        ctx = self._ctx
        if ctx is None:
            return False
        try:
            registered = await self._registration.refresh()
        except RedisError as exc:
            raise RemoteUnavailable("Background tracking registry is unreachable.") from exc
        if registered and self._workers_alive():
            return False

        logger.warning(
            "Tracking for trip %s was dropped while suspended; restarting", ctx.trip_id
        )
        await self._cancel_workers()
        if not self.positioning.permissions.continuous_tracking:
            await self.stop()
            raise PermissionDenied(PERMISSION_REQUIRED)
        if not registered:
            await self._register()
        self._spawn_workers()
        return True

    def submit(self, pings: Iterable[LocationPing]) -> int:
        """Queue samples the device buffered itself. Returns how many were queued."""
        if self._ctx is None:
            return 0
        queued = 0
        for ping in pings:
            self._queue.put_nowait((self._generation, ping))
            queued += 1
        return queued

    async def drain(self) -> None:
        """Wait until queued samples are applied and deliveries have settled."""
        if self.is_active:
            await self._queue.join()
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def flush_outbox(self, now: Optional[datetime] = None) -> int:
        """Resend due outbox pings. Returns how many were delivered."""
        if self.session_factory is None:
            return 0
        now = now or _now()
        cutoff = now - timedelta(seconds=self.settings.outbox_retention_seconds)
        delivered = 0

        async with self.session_factory() as session:
            repo = PingOutboxRepository(session)
            purged = await repo.purge_older_than(cutoff)
            if purged:
                logger.info("Dropped %d location pings past the retry window", purged)

            for row in await repo.due(now, limit=self.settings.outbox_batch_size):
                try:
                    await self.sink.send_location_update(row.trip_id, to_ping(row))
                except TripError:
                    await repo.mark_failed(row, now, self.backoff_seconds(row.attempts))
                else:
                    await repo.remove(row)
                    delivered += 1
            await session.commit()

        if delivered:
            logger.info("Outbox flush: %d location pings delivered", delivered)
        return delivered

    def backoff_seconds(self, attempts: int) -> float:
        return min(
            self.settings.outbox_backoff_base_seconds * 2**attempts,
            self.settings.outbox_backoff_max_seconds,
        )

    # ── Internals ─────────────────────────────────────────────────────

    def _workers_alive(self) -> bool:
        return bool(self._workers) and all(not t.done() for t in self._workers)

    def _spawn_workers(self) -> None:
        generation = self._generation
        self._workers = [
            asyncio.create_task(self._sample_loop(generation), name="tracker-sampler"),
            asyncio.create_task(self._consume_loop(), name="tracker-consumer"),
            asyncio.create_task(self._retry_loop(), name="tracker-retrier"),
        ]

    async def _cancel_workers(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    def _discard_queue(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def _register(self) -> None:
        try:
            if await self._registration.acquire():
                return
            if await self._registration.is_held():
                await self._registration.refresh()
                return
        except RedisError as exc:
            raise RemoteUnavailable("Background tracking could not be registered.") from exc
        raise InvariantViolation(
            "Location tracking is already running for another trip on this device.",
            title="Tracking Active",
        )

    async def _heartbeat(self) -> None:
        try:
            if not await self._registration.refresh():
                logger.warning("Tracking registration expired; re-registering")
                await self._registration.acquire()
        except RedisError:
            logger.warning("Could not refresh tracking registration", exc_info=True)

    async def _sample_loop(self, generation: int) -> None:
        """Periodic loop: take a fix, emit it if the vehicle moved, then sleep."""
        last: Optional[PositionFix] = None
        while True:
            try:
                fix = await self.positioning.wait_for_fix(
                    self.settings.location_timeout_seconds,
                    newer_than=last.captured_at if last else None,
                )
            except OperationTimeout:
                logger.debug("No location fix this tick; skipping sample")
            except Exception:
                logger.exception("Error reading location fix")
            else:
                moved_m = distance_between(last, fix) * 1000 if last else None
                if moved_m is None or moved_m >= self.settings.tracking_min_displacement_m:
                    self._queue.put_nowait((generation, LocationPing.from_fix(fix)))
                    last = fix
            try:
                await self._heartbeat()
            except Exception:
                logger.exception("Error refreshing tracking registration")
            await asyncio.sleep(self.settings.tracking_interval_seconds)

    async def _consume_loop(self) -> None:
        while True:
            generation, ping = await self._queue.get()
            try:
                await self._apply(generation, ping)
            except Exception:
                logger.exception("Unhandled error applying location sample")
            finally:
                self._queue.task_done()

    async def _apply(self, generation: int, ping: LocationPing) -> None:
        ctx = self._ctx
        if ctx is None or generation != self._generation:
            return
        async with ctx.lock:
            if generation != self._generation:
                return
            delta = ctx.fold(ping)
        if delta is None:
            logger.debug("Dropped out-of-order sample captured at %s", ping.captured_at)
            return
        self._spawn_delivery(ctx.trip_id, ping)

    def _spawn_delivery(self, trip_id: str, ping: LocationPing) -> None:
        task = asyncio.create_task(self._deliver(trip_id, ping))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, trip_id: str, ping: LocationPing) -> None:
        try:
            await self.sink.send_location_update(trip_id, ping)
        except TripError as exc:
            logger.warning(
                "Location update for trip %s not delivered: %s", trip_id, exc.reason
            )
            await self._park(trip_id, ping)

    async def _park(self, trip_id: str, ping: LocationPing) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as session:
                await PingOutboxRepository(session).enqueue(trip_id, ping, _now())
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Could not queue location ping for retry")

    async def _retry_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.outbox_retry_interval_seconds)
            try:
                await self.flush_outbox()
            except Exception:
                logger.exception("Unhandled error flushing location outbox")

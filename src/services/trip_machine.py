"""
Trip State Machine
==================

Orchestrates one vehicle's trips:

  pending -> accepted -> ongoing -> pickup -> delivered -> completed
         \\-> rejected

Rules
-----
* Local state is the last state the trip service *confirmed*.  A transition
  runs its checks and remote call first and only then applies the new
  status, under the trip context lock.  A failed call changes nothing.
* One transition per trip (or booking) at a time.  A second attempt while
  one is in flight, or an event that is not legal from the confirmed state,
  is a benign no-op (``TransitionResult.noop``), never an error.
* Accept / reject / start re-fetch the vehicle's bookings and run the fleet
  guard on every attempt.
* Hydrant and delivery proofs are geofenced against their checkpoint; the
  proof media is uploaded and its URL recorded on the trip.
* Tracking starts when the trip goes ``ongoing`` and stops at ``delivered``.

Every entry point returns a ``TransitionResult``; failures are mapped to an
``ErrorKind`` and nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from src.config import Settings, settings as default_settings
from src.domain.entities import Booking, Checkpoint, Trip, Vehicle
from src.domain.enums import (
    IN_TRANSIT_STATUSES,
    TripEvent,
    TripStatus,
    is_terminal,
    next_status,
)
from src.domain.errors import (
    GeofenceFailed,
    GeofenceInconclusive,
    InvalidInput,
    PermissionDenied,
    RemoteUnavailable,
    TripError,
)
from src.domain.geofence import evaluate_geofence
from src.domain.guard import check_vehicle_action
from src.domain.results import TransitionResult
from src.infrastructure.media import MediaAsset, MediaUploader
from src.infrastructure.positioning import DevicePositioning
from src.services.context import TripContext
from src.services.verification import VerificationGate
from src.workers.tracker import LocationTracker, TrackingStatus

logger = logging.getLogger(__name__)

IN_PROGRESS = "An update is already in progress. Please wait."

SUCCESS_MESSAGES = {
    TripEvent.ACCEPT: "Booking accepted successfully",
    TripEvent.REJECT: "Booking rejected successfully",
    TripEvent.START: "Trip started",
    TripEvent.HYDRANT_REACHED: "Hydrant reached status updated",
    TripEvent.WATER_DELIVERED: "Water delivery recorded",
    TripEvent.CODE_REQUESTED: "Code sent to the customer",
    TripEvent.CODE_CONFIRMED: "Trip completed",
}

Perform = Callable[[TripContext], Awaitable[tuple[dict, Optional[float]]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TripStateMachine:
    def __init__(
        self,
        client,
        tracker: LocationTracker,
        gate: VerificationGate,
        positioning: DevicePositioning,
        media: Optional[MediaUploader] = None,
        settings: Settings = default_settings,
    ):
        self.client = client
        self.tracker = tracker
        self.gate = gate
        self.positioning = positioning
        self.media = media
        self.settings = settings
        self.vehicle: Optional[Vehicle] = None
        self._ctx: Optional[TripContext] = None
        self._in_flight: set[str] = set()

    # ── State exposed to the UI ───────────────────────────────────────

    def bind_vehicle(self, vehicle: Vehicle) -> None:
        self.vehicle = vehicle

    @property
    def context(self) -> Optional[TripContext]:
        return self._ctx

    @property
    def current_trip(self) -> Optional[Trip]:
        return self._ctx.trip if self._ctx else None

    @property
    def distance_km(self) -> float:
        return self._ctx.distance_km if self._ctx else 0.0

    def snapshot(self) -> Optional[Trip]:
        """Copy of the confirmed trip, safe to hand to the UI."""
        if self._ctx is None:
            return None
        return replace(self._ctx.trip, cumulative_distance_km=self._ctx.distance_km)

    async def tracking_status(self) -> TrackingStatus:
        return await self.tracker.status()

    async def list_bookings(self) -> list[Booking]:
        return await self.client.list_bookings(self._require_vehicle().vehicle_id)

    # ── Booking transitions ───────────────────────────────────────────

    async def accept(self, booking_id: str) -> TransitionResult:
        return await self._booking_transition(booking_id, TripEvent.ACCEPT)

    async def reject(self, booking_id: str) -> TransitionResult:
        return await self._booking_transition(booking_id, TripEvent.REJECT)

    async def _booking_transition(
        self, booking_id: str, event: TripEvent
    ) -> TransitionResult:
        async def action() -> TransitionResult:
            vehicle = self._require_vehicle()
            bookings = await self.client.list_bookings(vehicle.vehicle_id)
            booking = next((b for b in bookings if b.booking_id == booking_id), None)
            if booking is None:
                raise InvalidInput("Booking not found for this vehicle.")

            current = booking.trip_status
            target = next_status(current, event)
            if target is None:
                return TransitionResult.skipped(
                    event, current, f"Booking is already {current.value}."
                )
            check_vehicle_action(event, booking_id, bookings)

            await self.client.trip_action(booking_id, vehicle.vehicle_id, event.value)
            logger.info("Booking %s: %s -> %s", booking_id, current.value, target.value)
            return TransitionResult.succeeded(event, target, SUCCESS_MESSAGES[event])

        return await self._attempt(event, f"booking:{booking_id}", None, action)

    # ── Trip transitions ──────────────────────────────────────────────

    async def start(self, trip_id: str) -> TransitionResult:
        event = TripEvent.START

        async def action() -> TransitionResult:
            vehicle = self._require_vehicle()
            bookings = await self.client.list_bookings(vehicle.vehicle_id)
            booking = next(
                (b for b in bookings if b.trip and b.trip.trip_id == trip_id), None
            )
            if booking is None:
                raise InvalidInput("Trip not found for this vehicle.")

            current = booking.trip_status
            if next_status(current, event) is None:
                return TransitionResult.skipped(
                    event, current, f"Trip is already {current.value}."
                )
            check_vehicle_action(event, booking.booking_id, bookings)
            if not self.positioning.permissions.continuous_tracking:
                raise PermissionDenied(
                    "Location permission, including background access, "
                    "is required to start a trip."
                )

            await self.client.start_trip(trip_id)
            ctx = await self._load_started(trip_id, booking)
            warning = await self._ensure_tracking(ctx)
            logger.info("Trip %s: %s -> ongoing", trip_id, current.value)
            return TransitionResult.succeeded(
                event,
                ctx.trip.status,
                warning or SUCCESS_MESSAGES[event],
                distance_km=ctx.distance_km,
            )

        return await self._attempt(event, f"trip:{trip_id}", None, action)

    async def report_hydrant(self, photo: Optional[MediaAsset] = None) -> TransitionResult:
        async def perform(ctx: TripContext):
            checkpoint = self._checkpoint(ctx.trip.hydrant, "hydrant")
            if photo is not None:
                self._require_camera()
            distance = await self._verify_presence(checkpoint)
            photo_url = await self._upload(photo) if photo is not None else None
            await self.client.report_hydrant_reached(ctx.trip_id, photo_url)
            return {"hydrant_proof_ref": photo_url}, distance

        return await self._trip_transition(TripEvent.HYDRANT_REACHED, perform)

    async def report_delivery(self, video: Optional[MediaAsset]) -> TransitionResult:
        async def perform(ctx: TripContext):
            if video is None:
                raise InvalidInput("A delivery video is required.")
            if not video.is_video:
                raise InvalidInput("Delivery proof must be a video.")
            checkpoint = self._checkpoint(ctx.trip.destination, "destination")
            self._require_camera()
            distance = await self._verify_presence(checkpoint)
            video_url = await self._upload(video)
            await self.client.report_water_delivered(ctx.trip_id, video_url)
            return {"delivery_proof_ref": video_url}, distance

        return await self._trip_transition(TripEvent.WATER_DELIVERED, perform)

    async def request_code(self) -> TransitionResult:
        event = TripEvent.CODE_REQUESTED
        ctx = self._ctx
        if ctx is None:
            return TransitionResult.failed(event, None, InvalidInput("No trip is open."))

        async def action() -> TransitionResult:
            status = ctx.trip.status
            if status != TripStatus.DELIVERED:
                return TransitionResult.skipped(
                    event, status, "A code can only be sent after delivery."
                )
            phone = ctx.trip.customer.contact_number if ctx.trip.customer else ""
            verification_id = await self.gate.issue(ctx.trip_id, phone)
            return TransitionResult.succeeded(
                event, status, SUCCESS_MESSAGES[event], verification_id=verification_id
            )

        return await self._attempt(
            event, f"trip:{ctx.trip_id}", lambda: ctx.trip.status, action
        )

    async def confirm_code(self, verification_id: str, code: str) -> TransitionResult:
        async def perform(ctx: TripContext):
            await self.gate.confirm(verification_id, code, ctx.trip_id)
            return {"end_time": _now()}, None

        return await self._trip_transition(TripEvent.CODE_CONFIRMED, perform)

    # ── Loading / resuming ────────────────────────────────────────────

    async def open_trip(self, trip_id: str) -> Trip:
        """Load *trip_id* from the service and make it the current trip."""
        trip = await self.client.get_trip(trip_id)
        ctx = self._ctx
        if ctx is not None and ctx.trip_id == trip_id:
            async with ctx.lock:
                ctx.adopt(trip)
        else:
            if self.tracker.trip_id not in (None, trip_id):
                await self.tracker.stop()
            ctx = self._ctx = TripContext(trip)

        if ctx.trip.status in IN_TRANSIT_STATUSES:
            await self.tracker.start(ctx)
        elif self.tracker.trip_id == trip_id:
            await self.tracker.stop()
        return ctx.trip

    async def resume(self) -> bool:
        """Reconcile tracking after the host process comes back to the foreground."""
        ctx = self._ctx
        if ctx is None or ctx.trip.status not in IN_TRANSIT_STATUSES:
            return False
        if self.tracker.trip_id != ctx.trip_id:
            await self.tracker.start(ctx)
            return True
        return await self.tracker.resume()

    # ── Internals ─────────────────────────────────────────────────────

    async def _attempt(
        self,
        event: TripEvent,
        key: str,
        status: Optional[Callable[[], TripStatus]],
        action: Callable[[], Awaitable[TransitionResult]],
    ) -> TransitionResult:
        def current() -> Optional[TripStatus]:
            return status() if status else None

        if key in self._in_flight:
            return TransitionResult.skipped(event, current(), IN_PROGRESS)
        self._in_flight.add(key)
        try:
            return await action()
        except TripError as exc:
            logger.info("%s failed: %s (%s)", event.value, exc.reason, exc.kind.value)
            return TransitionResult.failed(event, current(), exc)
        except Exception:
            logger.exception("Unexpected error during %s", event.value)
            return TransitionResult.failed(
                event,
                current(),
                RemoteUnavailable("Something went wrong. Please try again."),
            )
        finally:
            self._in_flight.discard(key)

    async def _trip_transition(self, event: TripEvent, perform: Perform) -> TransitionResult:
        ctx = self._ctx
        if ctx is None:
            return TransitionResult.failed(event, None, InvalidInput("No trip is open."))

        async def action() -> TransitionResult:
            current = ctx.trip.status
            target = next_status(current, event)
            if target is None:
                return TransitionResult.skipped(
                    event, current, f"Not available while the trip is {current.value}."
                )

            changes, distance = await perform(ctx)
            async with ctx.lock:
                ctx.trip.transition_to(target)
                for name, value in changes.items():
                    setattr(ctx.trip, name, value)
            logger.info("Trip %s: %s -> %s", ctx.trip_id, current.value, target.value)

            if target not in IN_TRANSIT_STATUSES and self.tracker.trip_id == ctx.trip_id:
                await self.tracker.stop()
            if is_terminal(target):
                logger.info(
                    "Trip %s closed after %.3f km", ctx.trip_id, ctx.distance_km
                )
            return TransitionResult.succeeded(
                event, target, SUCCESS_MESSAGES[event], distance_km=distance
            )

        return await self._attempt(
            event, f"trip:{ctx.trip_id}", lambda: ctx.trip.status, action
        )

    async def _load_started(self, trip_id: str, booking: Booking) -> TripContext:
        try:
            trip = await self.client.get_trip(trip_id)
        except TripError as exc:
            logger.warning("Trip %s started but details failed to load: %s", trip_id, exc.reason)
            trip = Trip(
                trip_id=trip_id,
                booking_id=booking.booking_id,
                journey_date=booking.journey_date,
                hydrant=booking.hydrant,
                destination=booking.destination,
                customer=booking.customer,
            )
        if trip.status in (TripStatus.PENDING, TripStatus.ACCEPTED):
            trip.status = TripStatus.ONGOING
        trip.start_time = trip.start_time or _now()

        if self.tracker.trip_id not in (None, trip_id):
            await self.tracker.stop()
        self._ctx = TripContext(trip)
        return self._ctx

    async def _ensure_tracking(self, ctx: TripContext) -> Optional[str]:
        try:
            await self.tracker.start(ctx)
        except TripError as exc:
            logger.warning("Tracking not started for trip %s: %s", ctx.trip_id, exc.reason)
            return f"Trip started, but location tracking is off: {exc.reason}"
        return None

    async def _verify_presence(self, checkpoint: Checkpoint) -> float:
        s = self.settings
        if not self.positioning.permissions.foreground_location:
            raise PermissionDenied("Location permission is required to confirm arrival.")

        fix = await self.positioning.fresh_fix(
            s.location_timeout_seconds, s.max_fix_age_seconds
        )
        for attempt in range(1, s.geofence_attempts + 1):
            check = evaluate_geofence(
                fix,
                checkpoint,
                radius_km=s.geofence_radius_km,
                max_fix_age_seconds=s.max_fix_age_seconds,
            )
            if check.inconclusive is None:
                if check.passed:
                    return check.distance_km
                raise GeofenceFailed(
                    f"You are {check.distance_m:.0f} m from the {checkpoint.name or 'checkpoint'}. "
                    f"Move within {s.geofence_radius_km * 1000:.0f} m and try again.",
                    distance_km=check.distance_km,
                )
            logger.info(
                "Inconclusive fix (%s), attempt %d/%d",
                check.inconclusive,
                attempt,
                s.geofence_attempts,
            )
            if attempt < s.geofence_attempts:
                fix = await self.positioning.wait_for_fix(
                    s.location_timeout_seconds, newer_than=fix.captured_at
                )

        raise GeofenceInconclusive(
            f"Could not get a precise location ({check.inconclusive}). Please try again.",
            distance_km=check.distance_km,
        )

    async def _upload(self, asset: MediaAsset) -> str:
        if self.media is None:
            raise RemoteUnavailable("Media upload is not configured.")
        return await self.media.upload(asset)

    def _require_camera(self) -> None:
        if not self.positioning.permissions.camera:
            raise PermissionDenied("Camera permission is required to record proof.")

    def _require_vehicle(self) -> Vehicle:
        if self.vehicle is None:
            raise InvalidInput("Sign in with your vehicle number first.")
        return self.vehicle

    @staticmethod
    def _checkpoint(checkpoint: Optional[Checkpoint], label: str) -> Checkpoint:
        if checkpoint is None:
            raise InvalidInput(f"The {label} location is not available for this trip.")
        return checkpoint

"""
Trip state machine tests.

Walks vehicle V1 through booking B1 (hydrant at 19.0760, 72.8777;
destination at 18.9750, 72.8258) and checks that every failure leaves the
confirmed state untouched.
"""

from __future__ import annotations

import asyncio

import pytest

from src.domain.enums import BookingStatus, ErrorKind, TripStatus
from src.domain.errors import RemoteUnavailable
from src.infrastructure.media import MediaAsset
from src.services.trip_machine import TripStateMachine
from tests.fakes import (
    CUSTOMER,
    DESTINATION,
    HYDRANT,
    fix_at,
    make_booking,
    north_of,
)

PHOTO = MediaAsset(b"jpeg-bytes", "image/jpeg", "hydrant.jpg")
VIDEO = MediaAsset(b"mp4-bytes", "video/mp4", "delivery.mp4")


async def _to_ongoing(machine: TripStateMachine) -> None:
    assert (await machine.accept("B1")).ok
    assert (await machine.start("T-B1")).ok


async def _to_pickup(machine: TripStateMachine, positioning) -> None:
    await _to_ongoing(machine)
    positioning.publish(fix_at(*north_of(HYDRANT, 5)))
    assert (await machine.report_hydrant(PHOTO)).ok


async def _to_delivered(machine: TripStateMachine, positioning) -> None:
    await _to_pickup(machine, positioning)
    positioning.publish(fix_at(*north_of(DESTINATION, 5)))
    assert (await machine.report_delivery(VIDEO)).ok


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_trip(self, machine, trip_service, positioning, tracker):
        accepted = await machine.accept("B1")
        assert accepted.ok and accepted.status == TripStatus.ACCEPTED

        started = await machine.start("T-B1")
        assert started.ok and started.status == TripStatus.ONGOING
        assert machine.current_trip.start_time is not None
        assert tracker.is_active and tracker.trip_id == "T-B1"

        positioning.publish(fix_at(*north_of(HYDRANT, 20)))
        hydrant = await machine.report_hydrant(PHOTO)
        assert hydrant.ok and hydrant.status == TripStatus.PICKUP
        assert hydrant.distance_km == pytest.approx(0.02, abs=1e-4)
        assert machine.current_trip.hydrant_proof_ref.startswith("https://")
        assert tracker.is_active

        positioning.publish(fix_at(*north_of(DESTINATION, 30)))
        delivered = await machine.report_delivery(VIDEO)
        assert delivered.ok and delivered.status == TripStatus.DELIVERED
        assert machine.current_trip.delivery_proof_ref is not None
        assert not tracker.is_active

        sent = await machine.request_code()
        assert sent.ok and sent.verification_id
        assert sent.status == TripStatus.DELIVERED

        completed = await machine.confirm_code(sent.verification_id, "1234")
        assert completed.ok and completed.status == TripStatus.COMPLETED
        assert machine.current_trip.end_time is not None
        assert trip_service.bookings["B1"].trip.status == TripStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_hydrant_photo_is_optional(self, machine, trip_service, positioning):
        await _to_ongoing(machine)
        positioning.publish(fix_at(*north_of(HYDRANT, 0)))
        result = await machine.report_hydrant()
        assert result.ok
        assert machine.current_trip.hydrant_proof_ref is None

    @pytest.mark.asyncio
    async def test_reject_pending_booking(self, machine, trip_service):
        result = await machine.reject("B1")
        assert result.ok and result.status == TripStatus.REJECTED
        assert trip_service.bookings["B1"].status == BookingStatus.REJECTED


class TestGeofenceFailures:
    @pytest.mark.asyncio
    async def test_hydrant_too_far_keeps_ongoing(self, machine, trip_service, positioning):
        await _to_ongoing(machine)
        positioning.publish(fix_at(*north_of(HYDRANT, 200)))

        result = await machine.report_hydrant(PHOTO)

        assert not result.ok and not result.noop
        assert result.error == ErrorKind.GEOFENCE_FAILED
        assert result.distance_km == pytest.approx(0.2, abs=1e-3)
        assert result.status == TripStatus.ONGOING
        assert machine.current_trip.status == TripStatus.ONGOING
        assert trip_service.called("report_hydrant_reached") == 0

    @pytest.mark.asyncio
    async def test_retry_after_moving_closer(self, machine, positioning):
        await _to_ongoing(machine)
        positioning.publish(fix_at(*north_of(HYDRANT, 200)))
        assert not (await machine.report_hydrant(PHOTO)).ok

        positioning.publish(fix_at(*north_of(HYDRANT, 10)))
        assert (await machine.report_hydrant(PHOTO)).ok

    @pytest.mark.asyncio
    async def test_delivery_at_hydrant_fails_destination_check(self, machine, positioning):
        await _to_pickup(machine, positioning)
        positioning.publish(fix_at(*north_of(HYDRANT, 0)))

        result = await machine.report_delivery(VIDEO)

        assert result.error == ErrorKind.GEOFENCE_FAILED
        assert machine.current_trip.status == TripStatus.PICKUP

    @pytest.mark.asyncio
    async def test_imprecise_fixes_are_inconclusive(self, machine, positioning):
        await _to_ongoing(machine)
        positioning.publish(fix_at(*north_of(HYDRANT, 0), accuracy_m=500))

        result = await machine.report_hydrant()

        assert not result.ok
        assert result.error == ErrorKind.TIMEOUT
        assert machine.current_trip.status == TripStatus.ONGOING

    @pytest.mark.asyncio
    async def test_inconclusive_then_precise_fix_passes(self, machine, positioning):
        await _to_ongoing(machine)
        positioning.publish(fix_at(*north_of(HYDRANT, 0), accuracy_m=500))

        async def better_fix():
            await asyncio.sleep(0.01)
            positioning.publish(fix_at(*north_of(HYDRANT, 5), accuracy_m=8))

        task = asyncio.create_task(better_fix())
        result = await machine.report_hydrant()
        await task
        assert result.ok

    @pytest.mark.asyncio
    async def test_no_fix_times_out(self, machine):
        await _to_ongoing(machine)
        result = await machine.report_hydrant()
        assert result.error == ErrorKind.TIMEOUT
        assert result.retryable


class TestGuardAndRemote:
    @pytest.mark.asyncio
    async def test_second_accept_violates_invariant_without_remote_call(
        self, machine, busy_service
    ):
        machine.client = busy_service

        result = await machine.accept("B2")

        assert not result.ok
        assert result.error == ErrorKind.INVARIANT_VIOLATION
        assert result.title == "Trip Already Active"
        assert busy_service.called("trip_action") == 0
        assert busy_service.bookings["B2"].status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_guard_uses_fresh_bookings(self, machine, trip_service):
        trip_service.bookings["B2"] = make_booking("B2")
        assert (await machine.accept("B1")).ok

        result = await machine.accept("B2")
        assert result.error == ErrorKind.INVARIANT_VIOLATION
        assert trip_service.called("list_bookings") == 2

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_state(self, machine, trip_service):
        trip_service.fail("trip_action", RemoteUnavailable("Server down"))

        result = await machine.accept("B1")

        assert result.error == ErrorKind.REMOTE_UNAVAILABLE
        assert result.retryable
        assert trip_service.bookings["B1"].status == BookingStatus.PENDING

        trip_service.heal()
        assert (await machine.accept("B1")).ok

    @pytest.mark.asyncio
    async def test_failed_start_does_not_track(self, machine, trip_service, tracker):
        assert (await machine.accept("B1")).ok
        trip_service.fail("start_trip", RemoteUnavailable("Server down"))

        result = await machine.start("T-B1")

        assert result.error == ErrorKind.REMOTE_UNAVAILABLE
        assert machine.current_trip is None
        assert not tracker.is_active

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_result(self, machine, trip_service):
        trip_service.fail("trip_action", KeyError("boom"))
        result = await machine.accept("B1")
        assert result.error == ErrorKind.REMOTE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unknown_booking(self, machine):
        result = await machine.accept("NOPE")
        assert result.error == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_requires_signed_in_vehicle(self, trip_service, tracker, gate, positioning):
        machine = TripStateMachine(trip_service, tracker, gate, positioning)
        result = await machine.accept("B1")
        assert result.error == ErrorKind.INVALID_INPUT
        assert trip_service.called("list_bookings") == 0


class TestPermissions:
    @pytest.mark.asyncio
    async def test_start_without_background_location(
        self, machine, trip_service, positioning, tracker
    ):
        assert (await machine.accept("B1")).ok
        positioning.permissions.background_location = False

        result = await machine.start("T-B1")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert trip_service.called("start_trip") == 0
        assert not tracker.is_active

    @pytest.mark.asyncio
    async def test_proof_needs_camera(self, machine, trip_service, positioning):
        await _to_ongoing(machine)
        positioning.permissions.camera = False
        positioning.publish(fix_at(*north_of(HYDRANT, 0)))

        result = await machine.report_hydrant(PHOTO)

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert trip_service.called("report_hydrant_reached") == 0


class TestNoOps:
    @pytest.mark.asyncio
    async def test_hydrant_before_start_is_noop(self, machine, trip_service):
        trip_service.bookings["B1"] = make_booking(
            "B1", BookingStatus.ACCEPTED, TripStatus.ACCEPTED
        )
        await machine.open_trip("T-B1")

        result = await machine.report_hydrant()

        assert result.noop and result.error is None
        assert result.status == TripStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_second_start_is_noop(self, machine, trip_service):
        await _to_ongoing(machine)
        result = await machine.start("T-B1")
        assert result.noop
        assert trip_service.called("start_trip") == 1

    @pytest.mark.asyncio
    async def test_code_before_delivery_is_noop(self, machine, trip_service, positioning):
        await _to_pickup(machine, positioning)
        result = await machine.request_code()
        assert result.noop
        assert trip_service.called("issue_otp") == 0

    @pytest.mark.asyncio
    async def test_nothing_open(self, machine):
        result = await machine.report_hydrant()
        assert result.error == ErrorKind.INVALID_INPUT


class TestDelivery:
    @pytest.mark.asyncio
    async def test_video_required(self, machine, trip_service, positioning):
        await _to_pickup(machine, positioning)
        result = await machine.report_delivery(None)
        assert result.error == ErrorKind.INVALID_INPUT
        assert trip_service.called("report_water_delivered") == 0

    @pytest.mark.asyncio
    async def test_photo_is_not_a_delivery_video(self, machine, positioning):
        await _to_pickup(machine, positioning)
        result = await machine.report_delivery(PHOTO)
        assert result.error == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_delivered(self, machine, trip_service, positioning):
        await _to_delivered(machine, positioning)
        sent = await machine.request_code()

        result = await machine.confirm_code(sent.verification_id, "0000")

        assert result.error == ErrorKind.INVALID_INPUT
        assert machine.current_trip.status == TripStatus.DELIVERED
        assert machine.current_trip.end_time is None

    @pytest.mark.asyncio
    async def test_malformed_code_stays_local(self, machine, trip_service, positioning):
        await _to_delivered(machine, positioning)
        sent = await machine.request_code()

        result = await machine.confirm_code(sent.verification_id, "12")

        assert result.error == ErrorKind.INVALID_INPUT
        assert trip_service.called("verify_otp") == 0

    @pytest.mark.asyncio
    async def test_code_from_another_trip_is_refused(
        self, machine, trip_service, positioning, gate
    ):
        other = await gate.issue("T-OTHER", CUSTOMER.contact_number)
        await _to_delivered(machine, positioning)

        result = await machine.confirm_code(other, "1234")

        assert not result.ok
        assert result.error == ErrorKind.INVALID_INPUT
        assert machine.current_trip.status == TripStatus.DELIVERED
        assert machine.current_trip.end_time is None
        assert trip_service.called("verify_otp") == 0
        assert trip_service.bookings["B1"].trip.status == TripStatus.DELIVERED


class TestOpenAndResume:
    @pytest.mark.asyncio
    async def test_open_in_transit_trip_starts_tracking(self, machine, busy_service, tracker):
        machine.client = busy_service

        trip = await machine.open_trip("T-B1")

        assert trip.status == TripStatus.ONGOING
        assert tracker.trip_id == "T-B1"

    @pytest.mark.asyncio
    async def test_reopen_keeps_local_distance(self, machine, busy_service):
        machine.client = busy_service
        await machine.open_trip("T-B1")
        machine.context.accumulator.total_km = 4.2

        trip = await machine.open_trip("T-B1")

        assert trip.cumulative_distance_km == pytest.approx(4.2)

    @pytest.mark.asyncio
    async def test_resume_restarts_dropped_tracking(self, machine, busy_service, fake_redis):
        machine.client = busy_service
        await machine.open_trip("T-B1")
        fake_redis.expire_all()

        assert await machine.resume() is True
        assert (await machine.tracking_status()).registered

    @pytest.mark.asyncio
    async def test_resume_without_trip(self, machine):
        assert await machine.resume() is False

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, machine, busy_service):
        machine.client = busy_service
        await machine.open_trip("T-B1")
        machine.context.accumulator.total_km = 1.5

        snap = machine.snapshot()
        snap.status = TripStatus.COMPLETED

        assert snap.cumulative_distance_km == 1.5
        assert machine.current_trip.status == TripStatus.ONGOING

"""Unit tests for trip entity state transitions (State Pattern)."""

import pytest

from src.domain.entities import Booking, Trip, TripSummary
from src.domain.enums import BookingStatus, TripEvent, TripStatus, is_terminal, next_status
from src.domain.errors import InvalidStateTransition


class TestTripStateMachine:
    def test_initial_status_is_pending(self):
        assert Trip(trip_id="T1").status == TripStatus.PENDING

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "source, target",
        [
            (TripStatus.PENDING, TripStatus.ACCEPTED),
            (TripStatus.PENDING, TripStatus.REJECTED),
            (TripStatus.ACCEPTED, TripStatus.ONGOING),
            (TripStatus.ONGOING, TripStatus.PICKUP),
            (TripStatus.PICKUP, TripStatus.DELIVERED),
            (TripStatus.DELIVERED, TripStatus.COMPLETED),
        ],
    )
    def test_valid_transition(self, source, target):
        trip = Trip(trip_id="T1", status=source)
        trip.transition_to(target)
        assert trip.status == target

    # ── Invalid transitions ───────────────────────────────────────

    def test_cannot_skip_hydrant(self):
        trip = Trip(trip_id="T1", status=TripStatus.ONGOING)
        with pytest.raises(InvalidStateTransition):
            trip.transition_to(TripStatus.DELIVERED)

    def test_cannot_go_backwards(self):
        trip = Trip(trip_id="T1", status=TripStatus.PICKUP)
        with pytest.raises(InvalidStateTransition):
            trip.transition_to(TripStatus.ONGOING)

    def test_completed_is_terminal(self):
        trip = Trip(trip_id="T1", status=TripStatus.COMPLETED)
        for target in TripStatus:
            with pytest.raises(InvalidStateTransition):
                trip.transition_to(target)

    def test_rejected_is_terminal(self):
        trip = Trip(trip_id="T1", status=TripStatus.REJECTED)
        with pytest.raises(InvalidStateTransition):
            trip.transition_to(TripStatus.ACCEPTED)
        assert is_terminal(TripStatus.REJECTED)


class TestNextStatus:
    def test_event_not_legal_from_status(self):
        assert next_status(TripStatus.ONGOING, TripEvent.ACCEPT) is None
        assert next_status(TripStatus.DELIVERED, TripEvent.HYDRANT_REACHED) is None

    def test_code_request_changes_nothing(self):
        for status in TripStatus:
            assert next_status(status, TripEvent.CODE_REQUESTED) is None


class TestBookingTripStatus:
    def test_trip_status_wins_over_booking_status(self):
        booking = Booking(
            "B1", "V1", BookingStatus.ACCEPTED, trip=TripSummary("T1", TripStatus.PICKUP)
        )
        assert booking.trip_status == TripStatus.PICKUP

    def test_accepted_booking_without_trip(self):
        assert Booking("B1", "V1", BookingStatus.ACCEPTED).trip_status == TripStatus.ACCEPTED

    def test_pending_booking(self):
        assert Booking("B1", "V1").trip_status == TripStatus.PENDING

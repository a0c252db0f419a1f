"""Vehicle sign-in returns tagged outcomes instead of raising."""

from __future__ import annotations

import pytest

from src.domain.enums import ErrorKind
from src.domain.errors import RemoteUnavailable
from src.domain.results import AccountOutcome
from src.services.session import VEHICLE_NOT_FOUND, VehicleSignIn
from src.services.trip_machine import TripStateMachine
from tests.fakes import VEHICLE


@pytest.fixture
def unbound_machine(trip_service, tracker, gate, positioning, test_settings):
    return TripStateMachine(trip_service, tracker, gate, positioning, settings=test_settings)


@pytest.fixture
def sign_in(trip_service, unbound_machine) -> VehicleSignIn:
    return VehicleSignIn(trip_service, unbound_machine)


class TestBegin:
    @pytest.mark.asyncio
    async def test_known_vehicle_gets_code(self, sign_in, trip_service):
        result = await sign_in.begin(" MH01AB1234 ")

        assert result.outcome == AccountOutcome.EXISTING_ACCOUNT
        assert result.verification_id == "ver-1"
        assert trip_service.calls[-1] == ("issue_otp", (VEHICLE.contact_number,))

    @pytest.mark.asyncio
    async def test_unregistered_vehicle_is_new_account(self, sign_in, trip_service):
        trip_service.registered = False
        result = await sign_in.begin(VEHICLE.vehicle_number)
        assert result.outcome == AccountOutcome.NEW_ACCOUNT

    @pytest.mark.asyncio
    async def test_blank_number(self, sign_in, trip_service):
        result = await sign_in.begin("   ")

        assert result.outcome == AccountOutcome.UNRECOVERABLE
        assert result.error == ErrorKind.INVALID_INPUT
        assert trip_service.calls == []

    @pytest.mark.asyncio
    async def test_unknown_vehicle(self, sign_in):
        result = await sign_in.begin("XX00")
        assert result.outcome == AccountOutcome.UNRECOVERABLE
        assert result.reason == VEHICLE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_server_down(self, sign_in, trip_service):
        trip_service.fail("check_vehicle", RemoteUnavailable("down"))
        result = await sign_in.begin(VEHICLE.vehicle_number)
        assert result.outcome == AccountOutcome.UNRECOVERABLE
        assert result.error == ErrorKind.REMOTE_UNAVAILABLE


class TestComplete:
    @pytest.mark.asyncio
    async def test_binds_vehicle_and_token(self, sign_in, trip_service, unbound_machine):
        await sign_in.begin(VEHICLE.vehicle_number)

        result = await sign_in.complete("1234")

        assert result.outcome == AccountOutcome.EXISTING_ACCOUNT
        assert result.error is None
        assert trip_service.token == "token-abc"
        assert unbound_machine.vehicle == VEHICLE

    @pytest.mark.asyncio
    async def test_wrong_code_can_retry(self, sign_in, unbound_machine):
        await sign_in.begin(VEHICLE.vehicle_number)

        wrong = await sign_in.complete("9999")
        assert wrong.error == ErrorKind.INVALID_INPUT
        assert unbound_machine.vehicle is None

        assert (await sign_in.complete("1234")).error is None

    @pytest.mark.asyncio
    async def test_complete_without_begin(self, sign_in):
        result = await sign_in.complete("1234")
        assert result.outcome == AccountOutcome.UNRECOVERABLE
        assert result.error == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_sign_out(self, sign_in, trip_service, unbound_machine):
        await sign_in.begin(VEHICLE.vehicle_number)
        await sign_in.complete("1234")

        sign_in.sign_out()

        assert trip_service.token is None
        assert unbound_machine.vehicle is None

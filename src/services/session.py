"""
Vehicle sign-in.

Two steps: ``begin`` looks the vehicle up and sends a code to its contact
number, ``complete`` verifies that code, installs the bearer token on the
trip service client and binds the vehicle to the state machine.

Both steps return a tagged ``SignInResult`` so the UI branches on
``outcome`` instead of catching one failure and trying another flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from src.domain.entities import Vehicle
from src.domain.errors import InvalidInput, RemoteRejected, TripError
from src.domain.results import AccountOutcome, SignInResult
from src.services.trip_machine import TripStateMachine
from src.services.verification import validate_code

logger = logging.getLogger(__name__)

VEHICLE_NOT_FOUND = "Vehicle not found. Please check the vehicle number."


@dataclass
class _PendingSignIn:
    vehicle: Vehicle
    verification_id: str
    outcome: AccountOutcome


class VehicleSignIn:
    def __init__(self, client, machine: TripStateMachine):
        self.client = client
        self.machine = machine
        self._pending: Optional[_PendingSignIn] = None

    @property
    def vehicle(self) -> Optional[Vehicle]:
        return self.machine.vehicle

    async def begin(self, vehicle_number: str) -> SignInResult:
        vehicle_number = (vehicle_number or "").strip()
        try:
            if not vehicle_number:
                raise InvalidInput("Please enter your vehicle number.")
            exists, vehicle, registered = await self.client.check_vehicle(vehicle_number)
            if not exists:
                logger.info("Sign-in refused: unknown vehicle %s", vehicle_number)
                raise InvalidInput(VEHICLE_NOT_FOUND)
            if not vehicle.contact_number:
                raise InvalidInput("No contact number is registered for this vehicle.")
            verification_id = await self.client.issue_otp(vehicle.contact_number)
        except TripError as exc:
            return SignInResult(
                outcome=AccountOutcome.UNRECOVERABLE, reason=exc.reason, error=exc.kind
            )

        outcome = (
            AccountOutcome.EXISTING_ACCOUNT if registered else AccountOutcome.NEW_ACCOUNT
        )
        self._pending = _PendingSignIn(vehicle, verification_id, outcome)
        logger.info("Sign-in code sent for vehicle %s (%s)", vehicle_number, outcome.value)
        return SignInResult(
            outcome=outcome,
            reason="A code was sent to the vehicle's contact number.",
            vehicle=vehicle,
            verification_id=verification_id,
        )

    async def complete(self, code: str) -> SignInResult:
        pending = self._pending
        try:
            if pending is None:
                raise InvalidInput("Enter your vehicle number to request a code first.")
            code = validate_code(code)
            try:
                token = await self.client.verify_sign_in(
                    pending.verification_id, code, pending.vehicle.contact_number
                )
            except RemoteRejected as exc:
                raise InvalidInput(exc.reason or "Invalid OTP") from exc
        except TripError as exc:
            outcome = pending.outcome if pending else AccountOutcome.UNRECOVERABLE
            return SignInResult(
                outcome=outcome,
                reason=exc.reason,
                vehicle=pending.vehicle if pending else None,
                verification_id=pending.verification_id if pending else None,
                error=exc.kind,
            )

        self.client.set_token(token)
        self.machine.bind_vehicle(pending.vehicle)
        self._pending = None
        logger.info("Vehicle %s signed in", pending.vehicle.vehicle_number)
        return SignInResult(
            outcome=pending.outcome, reason="Signed in", vehicle=pending.vehicle
        )

    def sign_out(self) -> None:
        self._pending = None
        self.client.set_token(None)
        self.machine.vehicle = None

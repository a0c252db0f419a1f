"""
Verification Gate
=================

One-time code challenge sent to the customer's phone; guards the final
``delivered -> completed`` transition.

* At most one outstanding session per trip: issuing again supersedes the
  previous session instead of accumulating.
* Codes are exactly four digits.  Malformed codes fail locally with no
  network round-trip.
* A session survives failed attempts up to ``otp_max_attempts``; after that
  the caller must issue a new code.  A confirmed session is consumed and can
  never be reused.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from src.config import Settings, settings as default_settings
from src.domain.entities import VerificationSession
from src.domain.errors import InvalidInput, OperationTimeout, RemoteRejected

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"[0-9]{4}")


def validate_code(code: str) -> str:
    if not isinstance(code, str) or not CODE_PATTERN.fullmatch(code):
        raise InvalidInput("Please enter the 4-digit code sent to the customer.")
    return code


class VerificationGate:
    def __init__(self, client, settings: Settings = default_settings):
        self.client = client
        self.settings = settings
        self._sessions: dict[str, VerificationSession] = {}

    def session_for(self, trip_id: str) -> Optional[VerificationSession]:
        return self._sessions.get(trip_id)

    async def issue(self, trip_id: str, phone_number: str) -> str:
        if not phone_number:
            raise InvalidInput("No customer phone number is on file for this trip.")
        try:
            verification_id = await asyncio.wait_for(
                self.client.issue_otp(phone_number),
                timeout=self.settings.otp_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise OperationTimeout("Sending the code timed out. Please try again.") from None

        previous = self._sessions.get(trip_id)
        if previous is not None and not previous.consumed:
            logger.info(
                "Superseding verification %s for trip %s",
                previous.verification_id,
                trip_id,
            )
        self._sessions[trip_id] = VerificationSession(
            verification_id=verification_id,
            trip_id=trip_id,
            phone_number=phone_number,
            issued_at=datetime.now(timezone.utc),
        )
        return verification_id

    async def confirm(
        self, verification_id: str, code: str, trip_id: Optional[str] = None
    ) -> VerificationSession:
        """Check *code* against the session; with *trip_id*, only that trip's session counts."""
        code = validate_code(code)
        session = self._find(verification_id)
        if session is not None and trip_id is not None and session.trip_id != trip_id:
            logger.warning(
                "Verification %s belongs to trip %s, not %s",
                verification_id,
                session.trip_id,
                trip_id,
            )
            raise InvalidInput("This code was not issued for this trip.")
        if session is None:
            raise InvalidInput("This code has expired. Please request a new one.")
        if session.consumed:
            raise InvalidInput("This code has already been used.")
        if session.failed_attempts >= self.settings.otp_max_attempts:
            raise InvalidInput("Too many incorrect attempts. Please request a new code.")
        age = (datetime.now(timezone.utc) - session.issued_at).total_seconds()
        if age > self.settings.otp_ttl_seconds:
            raise InvalidInput("This code has expired. Please request a new one.")

        try:
            await asyncio.wait_for(
                self.client.verify_otp(verification_id, code, session.trip_id),
                timeout=self.settings.otp_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise OperationTimeout("Verifying the code timed out. Please try again.") from None
        except RemoteRejected as exc:
            session.failed_attempts += 1
            logger.info(
                "Code rejected for trip %s (%d/%d)",
                session.trip_id,
                session.failed_attempts,
                self.settings.otp_max_attempts,
            )
            raise InvalidInput(exc.reason or "Invalid OTP") from exc

        session.consumed = True
        return session

    def _find(self, verification_id: str) -> Optional[VerificationSession]:
        for session in self._sessions.values():
            if session.verification_id == verification_id:
                return session
        return None

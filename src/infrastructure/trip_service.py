"""
Remote trip service client
==========================

Thin ``httpx`` wrapper around the contracts the agent consumes:

* vehicle lookup and sign-in verification
* booking listing and accept / reject
* trip start, details, hydrant and delivery proofs
* one-time codes for trip completion
* live location broadcast (a separate server)
* report statistics

Transport failures never leak as ``httpx`` exceptions: every call either
returns parsed domain data or raises a ``TripError`` subclass.

Transitions are not retried here.  The caller decides whether to re-invoke
the same (idempotent) transition; automatic retries would hide in-flight
writes from the state machine.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from src.config import settings as default_settings
from src.domain.entities import Booking, LocationPing, Trip, TripStats, Vehicle
from src.domain.enums import BookingStatus
from src.domain.errors import OperationTimeout, RemoteRejected, RemoteUnavailable

from .wire import (
    BookingWire,
    RecentTripWire,
    TripDetailsWire,
    TripStatsWire,
    VehicleCheckResponse,
    location_payload,
)

logger = logging.getLogger(__name__)


class TripServiceClient:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        location_sink_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or default_settings.trip_service_url).rstrip("/")
        self.location_sink_url = (
            location_sink_url or default_settings.location_sink_url
        ).rstrip("/")
        self.timeout = timeout or default_settings.remote_timeout_seconds
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=5.0),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        self._token: Optional[str] = None

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # ── Vehicle / identity ────────────────────────────────────────────

    async def check_vehicle(
        self, vehicle_number: str
    ) -> tuple[bool, Vehicle, bool]:
        """Return ``(exists, vehicle, registered)``."""
        data = await self._request(
            "POST",
            "/vehicle",
            body={"vehicleNumber": vehicle_number},
            expect_success=False,
        )
        parsed = self._parse(VehicleCheckResponse, data)
        return parsed.exists, parsed.to_domain(vehicle_number), parsed.registered

    async def verify_sign_in(
        self, verification_id: str, code: str, mobile_number: str
    ) -> Optional[str]:
        """Verify the sign-in code; return the bearer token if one is issued."""
        data = await self._request(
            "POST",
            "/auth/verify-otp",
            body={
                "verificationId": verification_id,
                "otp": code,
                "mobileNumber": mobile_number,
            },
        )
        return data.get("token")

    # ── Bookings ──────────────────────────────────────────────────────

    async def list_bookings(self, vehicle_id: str) -> list[Booking]:
        data = await self._request("GET", "/bookings", params={"id": vehicle_id})
        bookings = [
            self._parse(BookingWire, raw).to_domain(vehicle_id)
            for raw in data.get("bookings", [])
        ]
        return [b for b in bookings if b.status != BookingStatus.CANCELLED]

    async def trip_action(self, booking_id: str, vehicle_id: str, action: str) -> None:
        await self._request(
            "POST",
            "/trip/actions",
            params={"id": booking_id},
            body={"action": action, "vehicleId": vehicle_id},
        )

    # ── Trips ─────────────────────────────────────────────────────────

    async def start_trip(self, trip_id: str) -> None:
        await self._request("POST", "/trip/start", params={"id": trip_id})

    async def get_trip(self, trip_id: str) -> Trip:
        data = await self._request("GET", "/trip/info", params={"id": trip_id})
        return self._parse(TripDetailsWire, data.get("trip") or {}).to_domain()

    async def report_hydrant_reached(
        self, trip_id: str, photo_url: Optional[str] = None
    ) -> None:
        body = {"photoUrl": photo_url} if photo_url else None
        await self._request("POST", f"/trip/{trip_id}/reached-hydrant", body=body)

    async def report_water_delivered(self, trip_id: str, video_url: str) -> None:
        await self._request(
            "POST", f"/trip/{trip_id}/water-delivered", body={"videoUrl": video_url}
        )

    async def send_location_update(self, trip_id: str, ping: LocationPing) -> None:
        await self._request(
            "POST",
            "/broadcast/location",
            body=location_payload(trip_id, ping),
            base_url=self.location_sink_url,
            expect_success=False,
        )

    # ── One-time codes ────────────────────────────────────────────────

    async def issue_otp(self, phone_number: str) -> str:
        data = await self._request(
            "POST", "/trip/send-otp", body={"phoneNumber": phone_number}
        )
        verification_id = data.get("verificationId")
        if not verification_id:
            raise RemoteUnavailable("Code service did not return a verification id")
        return str(verification_id)

    async def verify_otp(self, verification_id: str, code: str, trip_id: str) -> None:
        await self._request(
            "POST",
            "/trip/verify-otp",
            body={"verificationId": verification_id, "otp": code, "tripId": trip_id},
        )

    # ── Reports ───────────────────────────────────────────────────────

    async def trip_stats(self, vehicle_id: str) -> TripStats:
        data = await self._request(
            "GET", "/reports/stats", params={"vehicleId": vehicle_id}
        )
        stats = self._parse(TripStatsWire, data.get("stats") or {})
        recent = [self._parse(RecentTripWire, r) for r in data.get("recentTrips", [])]
        return stats.to_domain(recent)

    # ── Internals ─────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
        base_url: Optional[str] = None,
        expect_success: bool = True,
    ) -> dict[str, Any]:
        url = f"{base_url or self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.debug("Trip service request: %s %s", method, path)
        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise OperationTimeout(
                "The server took too long to respond. Please try again."
            ) from exc
        except httpx.RequestError as exc:
            raise RemoteUnavailable(
                "Could not reach the server. Check your connection and try again."
            ) from exc

        if response.status_code >= 500:
            logger.warning("%s %s -> %d", method, path, response.status_code)
            raise RemoteUnavailable("The server is unavailable. Please try again.")

        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise RemoteUnavailable("The server sent an unreadable response.") from exc
        if not isinstance(data, dict):
            data = {"data": data}

        if response.status_code >= 400 or (
            expect_success and data.get("success") is False
        ):
            message = data.get("error") or data.get("message") or "Request failed"
            logger.info("%s %s rejected: %s", method, path, message)
            raise RemoteRejected(str(message), status_code=response.status_code)

        return data

    @staticmethod
    def _parse(model, payload):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Malformed %s payload: %s", model.__name__, exc)
            raise RemoteUnavailable("The server sent an unexpected response.") from exc

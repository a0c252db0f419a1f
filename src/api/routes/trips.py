"""
Booking and trip endpoints
==========================

GET  /api/v1/bookings                         -- bookings for the signed-in vehicle
POST /api/v1/bookings/{booking_id}/accept     -- accept a pending booking
POST /api/v1/bookings/{booking_id}/reject     -- reject a pending booking
POST /api/v1/trips/{trip_id}/start            -- start an accepted trip
GET  /api/v1/trips/{trip_id}                  -- load the trip and make it current
POST /api/v1/trips/{trip_id}/hydrant          -- hydrant reached (optional photo)
POST /api/v1/trips/{trip_id}/delivery         -- water delivered (video required)
POST /api/v1/trips/{trip_id}/code             -- send the completion code
POST /api/v1/trips/{trip_id}/code/verify      -- confirm the code, completing the trip

Transition failures come back with the status code of their error kind
(409 invariant, 422 input / geofence, 403 permission, 503 remote, 504
timeout).  Benign no-ops (already in that state, update in flight) are 200
with ``noop: true``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from src.api.dependencies import get_machine
from src.api.errors import http_error, raise_for_result
from src.api.middleware import limiter
from src.api.schemas import (
    BookingResponse,
    CodeConfirmRequest,
    TransitionResponse,
    TripResponse,
)
from src.domain.errors import TripError
from src.infrastructure.media import MediaAsset
from src.services.trip_machine import TripStateMachine

router = APIRouter(tags=["trips"])


async def _asset(upload: Optional[UploadFile], default_type: str) -> Optional[MediaAsset]:
    if upload is None:
        return None
    return MediaAsset(
        content=await upload.read(),
        mime_type=upload.content_type or default_type,
        file_name=upload.filename,
    )


async def _open(machine: TripStateMachine, trip_id: str) -> None:
    if machine.current_trip is not None and machine.current_trip.trip_id == trip_id:
        return
    try:
        await machine.open_trip(trip_id)
    except TripError as exc:
        raise http_error(exc)


@router.get("/bookings", response_model=list[BookingResponse], summary="List bookings")
@limiter.limit("100/minute")
async def list_bookings(
    request: Request,
    machine: TripStateMachine = Depends(get_machine),
):
    try:
        bookings = await machine.list_bookings()
    except TripError as exc:
        raise http_error(exc)
    return [BookingResponse.of(b) for b in bookings]


@router.post(
    "/bookings/{booking_id}/accept",
    response_model=TransitionResponse,
    summary="Accept a booking",
)
@limiter.limit("30/minute")
async def accept_booking(
    request: Request,
    booking_id: str,
    machine: TripStateMachine = Depends(get_machine),
):
    return raise_for_result(await machine.accept(booking_id))


@router.post(
    "/bookings/{booking_id}/reject",
    response_model=TransitionResponse,
    summary="Reject a booking",
)
@limiter.limit("30/minute")
async def reject_booking(
    request: Request,
    booking_id: str,
    machine: TripStateMachine = Depends(get_machine),
):
    return raise_for_result(await machine.reject(booking_id))


@router.post(
    "/trips/{trip_id}/start",
    response_model=TransitionResponse,
    summary="Start an accepted trip",
    description="Requires foreground and background location permission.",
)
@limiter.limit("30/minute")
async def start_trip(
    request: Request,
    trip_id: str,
    machine: TripStateMachine = Depends(get_machine),
):
    return raise_for_result(await machine.start(trip_id))


@router.get("/trips/{trip_id}", response_model=TripResponse, summary="Trip details")
@limiter.limit("100/minute")
async def get_trip(
    request: Request,
    trip_id: str,
    machine: TripStateMachine = Depends(get_machine),
):
    try:
        await machine.open_trip(trip_id)
    except TripError as exc:
        raise http_error(exc)
    return TripResponse.of(machine.snapshot())


@router.post(
    "/trips/{trip_id}/hydrant",
    response_model=TransitionResponse,
    summary="Report arrival at the hydrant",
)
@limiter.limit("30/minute")
async def hydrant_reached(
    request: Request,
    trip_id: str,
    photo: Optional[UploadFile] = File(None),
    machine: TripStateMachine = Depends(get_machine),
):
    await _open(machine, trip_id)
    asset = await _asset(photo, "image/jpeg")
    return raise_for_result(await machine.report_hydrant(asset))


@router.post(
    "/trips/{trip_id}/delivery",
    response_model=TransitionResponse,
    summary="Report water delivered",
)
@limiter.limit("30/minute")
async def water_delivered(
    request: Request,
    trip_id: str,
    video: Optional[UploadFile] = File(None),
    machine: TripStateMachine = Depends(get_machine),
):
    await _open(machine, trip_id)
    asset = await _asset(video, "video/mp4")
    return raise_for_result(await machine.report_delivery(asset))


@router.post(
    "/trips/{trip_id}/code",
    response_model=TransitionResponse,
    summary="Send the completion code to the customer",
)
@limiter.limit("10/minute")
async def request_code(
    request: Request,
    trip_id: str,
    machine: TripStateMachine = Depends(get_machine),
):
    await _open(machine, trip_id)
    return raise_for_result(await machine.request_code())


@router.post(
    "/trips/{trip_id}/code/verify",
    response_model=TransitionResponse,
    summary="Confirm the completion code",
)
@limiter.limit("10/minute")
async def confirm_code(
    request: Request,
    trip_id: str,
    body: CodeConfirmRequest,
    machine: TripStateMachine = Depends(get_machine),
):
    await _open(machine, trip_id)
    return raise_for_result(await machine.confirm_code(body.verification_id, body.code))

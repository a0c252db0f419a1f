"""
Device endpoints
================

POST /api/v1/device/fix          -- latest fix from the positioning subsystem
POST /api/v1/device/locations    -- samples the device buffered while offline
PUT  /api/v1/device/permissions  -- mirror of granted OS permissions
POST /api/v1/device/lifecycle    -- app moved to foreground / background
GET  /api/v1/device/tracking     -- background tracking status
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import AgentRuntime, get_runtime
from src.api.errors import http_error
from src.api.middleware import limiter
from src.api.schemas import (
    AcceptedResponse,
    FixRequest,
    LifecycleRequest,
    LocationBatchRequest,
    PermissionsRequest,
    TrackingStatusResponse,
)
from src.domain.errors import TripError
from src.workers.tracker import TrackingStatus

router = APIRouter(prefix="/device", tags=["device"])


def _status(status: TrackingStatus, restarted: bool = False) -> TrackingStatusResponse:
    return TrackingStatusResponse(
        active=status.active,
        registered=status.registered,
        trip_id=status.trip_id,
        distance_km=round(status.distance_km, 3),
        restarted=restarted,
    )


@router.post("/fix", response_model=AcceptedResponse, summary="Publish a position fix")
@limiter.limit("600/minute")
async def publish_fix(
    request: Request,
    body: FixRequest,
    runtime: AgentRuntime = Depends(get_runtime),
):
    runtime.positioning.publish(body.to_fix())
    return AcceptedResponse(accepted=1)


@router.post(
    "/locations",
    response_model=AcceptedResponse,
    summary="Submit buffered location samples",
)
@limiter.limit("60/minute")
async def submit_locations(
    request: Request,
    body: LocationBatchRequest,
    runtime: AgentRuntime = Depends(get_runtime),
):
    queued = runtime.tracker.submit(p.to_ping() for p in body.pings)
    return AcceptedResponse(accepted=queued)


@router.put(
    "/permissions",
    response_model=TrackingStatusResponse,
    summary="Update granted permissions",
)
async def update_permissions(
    body: PermissionsRequest,
    runtime: AgentRuntime = Depends(get_runtime),
):
    permissions = runtime.positioning.permissions
    for name, value in body.model_dump(exclude_none=True).items():
        setattr(permissions, name, value)

    if not permissions.continuous_tracking and runtime.tracker.is_active:
        await runtime.tracker.stop()
    return _status(await runtime.tracker.status())


@router.post(
    "/lifecycle",
    response_model=TrackingStatusResponse,
    summary="Report an app lifecycle change",
)
async def lifecycle(
    body: LifecycleRequest,
    runtime: AgentRuntime = Depends(get_runtime),
):
    restarted = False
    if body.state == "foreground":
        try:
            restarted = await runtime.machine.resume()
        except TripError as exc:
            raise http_error(exc)
    return _status(await runtime.tracker.status(), restarted)


@router.get(
    "/tracking",
    response_model=TrackingStatusResponse,
    summary="Background tracking status",
)
async def tracking_status(runtime: AgentRuntime = Depends(get_runtime)):
    return _status(await runtime.tracker.status())

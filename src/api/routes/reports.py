"""
Report endpoints
================

GET /api/v1/reports/stats -- trip statistics for the signed-in vehicle
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import AgentRuntime, get_runtime
from src.api.errors import http_error
from src.api.middleware import limiter
from src.api.schemas import StatsResponse
from src.domain.errors import InvalidInput, TripError

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/stats", response_model=StatsResponse, summary="Trip statistics")
@limiter.limit("30/minute")
async def trip_stats(
    request: Request,
    runtime: AgentRuntime = Depends(get_runtime),
):
    vehicle = runtime.machine.vehicle
    try:
        if vehicle is None:
            raise InvalidInput("Sign in with your vehicle number first.")
        stats = await runtime.client.trip_stats(vehicle.vehicle_id)
    except TripError as exc:
        raise http_error(exc)
    return StatsResponse.of(stats)

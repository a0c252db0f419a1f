"""
Sign-in endpoints
=================

POST   /api/v1/session/vehicle -- look the vehicle up and send a sign-in code
POST   /api/v1/session/verify  -- verify the code and bind the vehicle
DELETE /api/v1/session         -- forget the signed-in vehicle
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import AgentRuntime, get_runtime
from src.api.middleware import limiter
from src.api.schemas import CodeRequest, SignInRequest, SignInResponse
from src.domain.results import SignInResult

router = APIRouter(prefix="/session", tags=["session"])


def _response(result: SignInResult) -> SignInResponse:
    return SignInResponse(
        outcome=result.outcome,
        reason=result.reason,
        vehicle_id=result.vehicle.vehicle_id if result.vehicle else None,
        vehicle_number=result.vehicle.vehicle_number if result.vehicle else None,
        verification_id=result.verification_id,
        error=result.error,
    )


@router.post("/vehicle", response_model=SignInResponse, summary="Start vehicle sign-in")
@limiter.limit("10/minute")
async def begin_sign_in(
    request: Request,
    body: SignInRequest,
    runtime: AgentRuntime = Depends(get_runtime),
):
    return _response(await runtime.sign_in.begin(body.vehicle_number))


@router.post("/verify", response_model=SignInResponse, summary="Verify the sign-in code")
@limiter.limit("10/minute")
async def complete_sign_in(
    request: Request,
    body: CodeRequest,
    runtime: AgentRuntime = Depends(get_runtime),
):
    return _response(await runtime.sign_in.complete(body.code))


@router.delete("", status_code=204, summary="Sign out")
async def sign_out(runtime: AgentRuntime = Depends(get_runtime)):
    await runtime.tracker.stop()
    runtime.sign_in.sign_out()

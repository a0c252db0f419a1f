"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/outbox        -- location pings waiting for redelivery
POST /api/v1/admin/outbox/flush  -- resend due pings now
GET  /api/v1/admin/health        -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import AgentRuntime, get_db, get_runtime
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, OutboxResponse
from src.infrastructure.repositories import PingOutboxRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/outbox",
    response_model=OutboxResponse,
    summary="Count location pings awaiting redelivery",
)
@limiter.limit("100/minute")
async def outbox(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return OutboxResponse(pending=await PingOutboxRepository(db).count())


@router.post(
    "/outbox/flush",
    response_model=OutboxResponse,
    summary="Resend due location pings now",
)
@limiter.limit("10/minute")
async def flush_outbox(
    request: Request,
    runtime: AgentRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    delivered = await runtime.tracker.flush_outbox()
    return OutboxResponse(pending=await PingOutboxRepository(db).count(), delivered=delivered)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()

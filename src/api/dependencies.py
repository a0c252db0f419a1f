"""FastAPI dependency injection helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
import redis.asyncio as aioredis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings, settings as default_settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.media import MediaUploader
from src.infrastructure.positioning import DevicePositioning
from src.infrastructure.trip_service import TripServiceClient
from src.services.session import VehicleSignIn
from src.services.trip_machine import TripStateMachine
from src.services.verification import VerificationGate
from src.workers.tracker import LocationTracker


@dataclass
class AgentRuntime:
    """Every long-lived collaborator of the agent, built once per process."""

    client: TripServiceClient
    positioning: DevicePositioning
    tracker: LocationTracker
    gate: VerificationGate
    machine: TripStateMachine
    sign_in: VehicleSignIn
    session_factory: Optional[async_sessionmaker] = None
    http: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        await self.tracker.stop()
        await self.client.aclose()
        if self.http is not None:
            await self.http.aclose()


def build_runtime(
    redis: aioredis.Redis,
    http: Optional[httpx.AsyncClient] = None,
    session_factory: Optional[async_sessionmaker] = async_session_factory,
    positioning: Optional[DevicePositioning] = None,
    settings: Settings = default_settings,
) -> AgentRuntime:
    http = http or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.remote_timeout_seconds, connect=5.0)
    )
    client = TripServiceClient(
        http,
        base_url=settings.trip_service_url,
        location_sink_url=settings.location_sink_url,
        timeout=settings.remote_timeout_seconds,
    )
    positioning = positioning or DevicePositioning()
    tracker = LocationTracker(positioning, client, redis, session_factory, settings)
    gate = VerificationGate(client, settings)
    media = MediaUploader(
        http,
        cloud_name=settings.cloudinary_cloud_name,
        upload_preset=settings.cloudinary_upload_preset,
        max_video_size_mb=settings.max_video_size_mb,
    )
    machine = TripStateMachine(client, tracker, gate, positioning, media, settings)
    return AgentRuntime(
        client=client,
        positioning=positioning,
        tracker=tracker,
        gate=gate,
        machine=machine,
        sign_in=VehicleSignIn(client, machine),
        session_factory=session_factory,
        http=http,
    )


def get_runtime(request: Request) -> AgentRuntime:
    return request.app.state.runtime


def get_machine(request: Request) -> TripStateMachine:
    return get_runtime(request).machine


async def get_db(request: Request) -> AsyncSession:  # type: ignore[misc]
    """Yield an outbox DB session; commit on success, rollback on error."""
    factory = get_runtime(request).session_factory or async_session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

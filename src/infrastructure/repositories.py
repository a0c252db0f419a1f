"""
Repository Pattern -- keeps outbox SQL out of the tracking worker.

The repository receives an ``AsyncSession`` (unit-of-work) and exposes only
the queries the retry loop needs.  All timestamps are stored as UTC;
SQLite drops tzinfo, so rows are re-tagged as UTC on the way out.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PendingPingModel
from src.domain.entities import LocationPing


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_ping(row: PendingPingModel) -> LocationPing:
    return LocationPing(
        latitude=row.latitude,
        longitude=row.longitude,
        captured_at=_utc(row.captured_at),
        altitude=row.altitude,
        speed=row.speed,
        heading=row.heading,
    )


class PingOutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(
        self, trip_id: str, ping: LocationPing, now: datetime
    ) -> PendingPingModel:
        row = PendingPingModel(
            trip_id=trip_id,
            latitude=ping.latitude,
            longitude=ping.longitude,
            altitude=ping.altitude,
            speed=ping.speed,
            heading=ping.heading,
            captured_at=_utc(ping.captured_at),
            attempts=0,
            next_attempt_at=_utc(now),
            created_at=_utc(now),
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def due(self, now: datetime, limit: int = 50) -> list[PendingPingModel]:
        """Rows whose next attempt is due, oldest capture first."""
        result = await self.session.execute(
            select(PendingPingModel)
            .where(PendingPingModel.next_attempt_at <= _utc(now))
            .order_by(PendingPingModel.captured_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_failed(
        self, row: PendingPingModel, now: datetime, backoff_seconds: float
    ) -> None:
        row.attempts += 1
        row.next_attempt_at = _utc(now) + timedelta(seconds=backoff_seconds)
        await self.session.flush()

    async def remove(self, row: PendingPingModel) -> None:
        await self.session.delete(row)
        await self.session.flush()

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Drop rows created before *cutoff*; they are past the retry window."""
        result = await self.session.execute(
            delete(PendingPingModel).where(PendingPingModel.created_at < _utc(cutoff))
        )
        return result.rowcount or 0

    async def count(self, trip_id: str | None = None) -> int:
        query = select(func.count()).select_from(PendingPingModel)
        if trip_id is not None:
            query = query.where(PendingPingModel.trip_id == trip_id)
        result = await self.session.execute(query)
        return result.scalar() or 0

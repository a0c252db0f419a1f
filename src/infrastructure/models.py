"""
SQLAlchemy ORM models.

Tables
------
* ``pending_pings`` -- location samples the broadcast server did not
  acknowledge, waiting for another delivery attempt.

Indexes
-------
* **B-Tree** on ``next_attempt_at`` for the retry scan and on
  ``created_at`` for purging rows past the retry window.
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from .database import Base


class PendingPingModel(Base):
    __tablename__ = "pending_pings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(64), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    altitude = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    captured_at = Column(DateTime(timezone=True), nullable=False)

    attempts = Column(Integer, default=0, nullable=False)
    next_attempt_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_pending_pings_next_attempt", "next_attempt_at"),
        Index("idx_pending_pings_created", "created_at"),
        Index("idx_pending_pings_trip", "trip_id"),
    )

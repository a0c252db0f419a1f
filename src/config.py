"""Centralised application settings loaded from environment / .env file."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Remote services
    trip_service_url: str = "http://localhost:3000/api"
    location_sink_url: str = "http://localhost:4000"
    remote_timeout_seconds: float = 10.0

    # Media store (unsigned uploads)
    cloudinary_cloud_name: str = "tanker-fleet"
    cloudinary_upload_preset: str = "ml_default"
    max_video_size_mb: int = 100

    # Redis (background task registration)
    redis_url: str = "redis://localhost:6379/0"
    tracking_registration_ttl_seconds: int = 60

    # Local outbox for undelivered location pings
    database_url: str = "sqlite+aiosqlite:///./tracking_outbox.db"
    outbox_retry_interval_seconds: float = 15.0
    outbox_backoff_base_seconds: float = 5.0
    outbox_backoff_max_seconds: float = 300.0
    outbox_retention_seconds: int = 900  # retry window
    outbox_batch_size: int = 50

    # Geofence
    geofence_radius_km: float = 0.07  # 70 m
    max_fix_age_seconds: float = 30.0
    geofence_attempts: int = 3
    location_timeout_seconds: float = 15.0

    # Tracking
    tracking_interval_seconds: float = 10.0
    tracking_min_displacement_m: float = 10.0

    # One-time codes
    otp_timeout_seconds: float = 20.0
    otp_max_attempts: int = 3
    otp_ttl_seconds: int = 600

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()

"""
Media upload capability.

Proof photos and videos go to Cloudinary as unsigned uploads; the returned
``secure_url`` is the opaque proof reference stored on the trip.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from src.config import settings as default_settings
from src.domain.errors import InvalidInput, OperationTimeout, RemoteUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaAsset:
    content: bytes
    mime_type: str
    file_name: Optional[str] = None

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def size_mb(self) -> float:
        return len(self.content) / (1024 * 1024)


class MediaUploader:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cloud_name: Optional[str] = None,
        upload_preset: Optional[str] = None,
        max_video_size_mb: Optional[int] = None,
        timeout: float = 120.0,
    ):
        self.client = client
        self.cloud_name = cloud_name or default_settings.cloudinary_cloud_name
        self.upload_preset = upload_preset or default_settings.cloudinary_upload_preset
        self.max_video_size_mb = (
            max_video_size_mb or default_settings.max_video_size_mb
        )
        self.timeout = timeout

    def endpoint(self, asset: MediaAsset) -> str:
        kind = "video" if asset.is_video else "image"
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}/{kind}/upload"

    async def upload(self, asset: MediaAsset) -> str:
        """Upload *asset* and return its URL."""
        if not asset.content:
            raise InvalidInput("The selected file is empty.")
        if asset.is_video and asset.size_mb > self.max_video_size_mb:
            raise InvalidInput(
                f"Video size must be less than {self.max_video_size_mb}MB"
            )

        timestamp = int(time.time())
        name = asset.file_name or f"{timestamp}.{'mp4' if asset.is_video else 'jpg'}"
        data = {"upload_preset": self.upload_preset, "timestamp": str(timestamp)}
        if asset.is_video:
            data["resource_type"] = "video"

        try:
            response = await self.client.post(
                self.endpoint(asset),
                data=data,
                files={"file": (name, asset.content, asset.mime_type)},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise OperationTimeout("Upload timed out. Please try again.") from exc
        except httpx.RequestError as exc:
            raise RemoteUnavailable("Upload failed. Check your connection.") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code >= 400 or "secure_url" not in payload:
            message = (payload.get("error") or {}).get("message") or "Failed to upload media"
            logger.error("Media upload error: %s", message)
            raise RemoteUnavailable(message)

        logger.info("Uploaded %s (%.1f MB)", name, asset.size_mb)
        return payload["secure_url"]

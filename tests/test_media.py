"""Media upload tests (Cloudinary unsigned upload over a mock transport)."""

from __future__ import annotations

import httpx
import pytest

from src.domain.errors import InvalidInput, OperationTimeout, RemoteUnavailable
from src.infrastructure.media import MediaAsset, MediaUploader


def _uploader(handler, max_video_size_mb: int = 100) -> MediaUploader:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MediaUploader(
        http, cloud_name="demo", upload_preset="preset", max_video_size_mb=max_video_size_mb
    )


@pytest.mark.asyncio
async def test_video_upload_returns_secure_url():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"secure_url": "https://res.cloudinary.com/demo/v.mp4"})

    url = await _uploader(handler).upload(MediaAsset(b"video", "video/mp4", "d.mp4"))

    assert url == "https://res.cloudinary.com/demo/v.mp4"
    assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/video/upload"
    assert b"preset" in seen["body"]


@pytest.mark.asyncio
async def test_image_goes_to_image_endpoint():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"secure_url": "https://x/i.jpg"})

    await _uploader(handler).upload(MediaAsset(b"img", "image/jpeg"))
    assert seen["url"].endswith("/image/upload")


@pytest.mark.asyncio
async def test_oversized_video_refused_locally():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"secure_url": "x"})

    uploader = _uploader(handler, max_video_size_mb=1)
    with pytest.raises(InvalidInput, match="less than 1MB"):
        await uploader.upload(MediaAsset(b"0" * (2 * 1024 * 1024), "video/mp4"))
    assert calls == []


@pytest.mark.asyncio
async def test_empty_file_refused():
    with pytest.raises(InvalidInput):
        await _uploader(lambda r: httpx.Response(200)).upload(MediaAsset(b"", "image/jpeg"))


@pytest.mark.asyncio
async def test_upload_error_message_surfaces():
    handler = lambda r: httpx.Response(400, json={"error": {"message": "Upload preset not found"}})
    with pytest.raises(RemoteUnavailable, match="Upload preset not found"):
        await _uploader(handler).upload(MediaAsset(b"img", "image/jpeg"))


@pytest.mark.asyncio
async def test_upload_timeout():
    def handler(request):
        raise httpx.WriteTimeout("slow", request=request)

    with pytest.raises(OperationTimeout):
        await _uploader(handler).upload(MediaAsset(b"img", "image/jpeg"))

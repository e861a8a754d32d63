"""Supabase Storage uploads and streamed transfers to LipDub signed URLs."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

from src.config.settings import SupabaseConfig
from src.db.supabase import get_client
from src.lipdub.client import LipDubClient, LipDubError
from src.utils.logging import Timer, get_logger

ALLOWED_VIDEO_TYPES = ("video/mp4", "video/quicktime", "video/webm", "video/avi")
MAX_VIDEO_BYTES = 85 * 1024 * 1024
TRANSFER_TIMEOUT_S = 300.0

logger = get_logger(__name__)


class TransferError(RuntimeError):
    """Raised when moving bytes between storage services fails."""

    def __init__(self, message: str, *, status_code: int = 502, details: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


@dataclass(frozen=True)
class StoredVideo:
    path: str
    public_url: str


@dataclass(frozen=True)
class TransferResult:
    video_id: str
    lipdub_data: dict[str, Any] | None = None


def is_valid_supabase_url(url: str) -> bool:
    """Only Supabase Storage hosts (or localhost) are accepted as sources."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return False
    return "supabase.co" in hostname or "supabase.in" in hostname or hostname == "localhost"


def safe_file_name(file_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", file_name) or "video"


def upload_master_video(
    user_id: str,
    file_name: str,
    content_type: str,
    data: bytes,
    *,
    bucket: str | None = None,
    clock=time.time,
) -> StoredVideo:
    """Store a master video under ``<user_id>/<timestamp>_<name>``."""
    if content_type not in ALLOWED_VIDEO_TYPES:
        raise ValueError(f"Unsupported video type: {content_type}")
    if not data:
        raise ValueError("Video file is empty")
    if len(data) > MAX_VIDEO_BYTES:
        raise ValueError(f"Video exceeds {MAX_VIDEO_BYTES // (1024 * 1024)}MB limit")

    bucket = bucket or SupabaseConfig.from_env().video_bucket
    path = f"{user_id}/{int(clock() * 1000)}_{safe_file_name(file_name)}"
    storage = get_client().storage.from_(bucket)
    try:
        with Timer(f"Upload {len(data) / 1024 / 1024:.2f}MB to {bucket}/{path}", logger):
            storage.upload(path, data, {"content-type": content_type, "upsert": "false"})
    except Exception as exc:
        raise TransferError(f"Failed to upload video: {exc}", status_code=500) from exc

    return StoredVideo(path=path, public_url=storage.get_public_url(path))


def transfer_video(
    source_url: str,
    upload_url: str,
    video_id: str,
    *,
    success_url: str | None = None,
    lipdub: LipDubClient | None = None,
    http: httpx.Client | None = None,
) -> TransferResult:
    """
    Stream a video from Supabase Storage to a LipDub signed URL.

    The body is forwarded chunk by chunk without buffering the file. If a
    success URL is given LipDub is notified afterwards; a failed notification
    is only logged.
    """
    if not source_url or not upload_url or not video_id:
        raise ValueError("Missing required fields: supabaseUrl, lipdubUploadUrl, videoId")
    if not is_valid_supabase_url(source_url):
        raise ValueError("Invalid supabaseUrl")

    owns_http = http is None
    http = http or httpx.Client(timeout=TRANSFER_TIMEOUT_S)
    try:
        with Timer(f"Transfer video {video_id}", logger):
            with http.stream("GET", source_url) as source:
                if source.is_error:
                    raise TransferError(f"Failed to fetch from Supabase: {source.status_code}")

                headers = {"Content-Type": source.headers.get("content-type", "video/mp4")}
                content_length = source.headers.get("content-length")
                if content_length:
                    headers["Content-Length"] = content_length
                logger.info(
                    "Transferring video %s (%s, %s bytes)",
                    video_id,
                    headers["Content-Type"],
                    content_length or "unknown",
                )

                target = http.put(upload_url, content=source.iter_bytes(), headers=headers)
                if target.is_error:
                    logger.error("GCS upload failed: %s %s", target.status_code, target.text)
                    raise TransferError(
                        f"GCS upload failed: {target.status_code}", details=target.text
                    )
    except httpx.HTTPError as exc:
        raise TransferError(f"Transfer failed: {exc}", status_code=500) from exc
    finally:
        if owns_http:
            http.close()

    lipdub_data = None
    if success_url and lipdub is not None:
        try:
            lipdub_data = lipdub.notify_upload_success(success_url)
        except LipDubError as exc:
            logger.warning("LipDub notification failed for video %s: %s", video_id, exc)

    return TransferResult(video_id=video_id, lipdub_data=lipdub_data)


def proxy_upload(
    target_url: str,
    content_type: str | None,
    data: bytes,
    *,
    http: httpx.Client | None = None,
) -> None:
    """PUT bytes to a signed URL on behalf of a browser that can't (CORS)."""
    if not target_url:
        raise ValueError('Missing "url" query parameter')

    owns_http = http is None
    http = http or httpx.Client(timeout=60)
    try:
        response = http.put(
            target_url,
            content=data,
            headers={"Content-Type": content_type or "application/octet-stream"},
        )
    except httpx.HTTPError as exc:
        raise TransferError(f"Upload proxy failed: {exc}") from exc
    finally:
        if owns_http:
            http.close()

    if response.is_error:
        raise TransferError(
            f"Storage upload failed: {response.status_code}",
            status_code=response.status_code,
            details=response.text,
        )


def register_video_url(
    lipdub: LipDubClient,
    video_url: str,
    project_id: str | None = None,
    options: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Hand LipDub a Supabase Storage URL instead of uploading bytes."""
    if not video_url:
        raise ValueError('Missing "videoUrl" in request body')
    if not is_valid_supabase_url(video_url):
        raise ValueError("Invalid videoUrl. Must be a Supabase Storage URL.")

    data = lipdub.register_video_url(video_url, project_id=project_id, **(options or {}))
    return {
        "success": True,
        "videoId": data.get("id"),
        "status": data.get("status"),
        "url": video_url,
        "lipdubResponse": data,
    }

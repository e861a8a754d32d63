"""Signed-URL upload flows for master videos and audio tracks."""
from __future__ import annotations

import time
from typing import Callable

from src.lipdub.client import AudioUpload, LipDubClient, LipDubError, VideoUpload
from src.utils.logging import Timer, get_logger
from src.utils.polling import poll_until

logger = get_logger(__name__)

DEFAULT_PROJECT_NAME = "DobleLabs Project"
AUDIO_POLL_INTERVAL_S = 5.0
AUDIO_POLL_MAX_ATTEMPTS = 120


def normalize_audio_content_type(content_type: str | None) -> str:
    """Browsers report mp3 as audio/mp3; LipDub expects audio/mpeg."""
    if content_type == "audio/mp3":
        return "audio/mpeg"
    if not content_type or not content_type.startswith("audio/"):
        return "audio/mpeg"
    return content_type


def _put_and_confirm(
    client: LipDubClient,
    upload: VideoUpload | AudioUpload,
    data: bytes,
    content_type: str,
) -> None:
    try:
        client.upload_file_to_url(upload.upload_url, data, content_type)
    except LipDubError:
        try:
            client.notify_upload_failure(upload.failure_url)
        except LipDubError as notify_exc:
            logger.warning("Could not report failed upload to LipDub: %s", notify_exc)
        raise
    client.notify_upload_success(upload.success_url)


def upload_video(
    client: LipDubClient,
    file_name: str,
    content_type: str,
    data: bytes,
    *,
    project_name: str = DEFAULT_PROJECT_NAME,
) -> VideoUpload:
    """
    Upload a master video to LipDub.

    Initiates the upload, PUTs the bytes to the signed URL, then confirms via
    the success callback. If the PUT fails the failure callback is called and
    the error re-raised.
    """
    if not data:
        raise ValueError("Video file is empty")

    with Timer(f"Upload video {file_name}", logger):
        upload = client.initiate_video_upload(
            file_name, content_type, project_name=project_name
        )
        _put_and_confirm(client, upload, data, content_type)
    logger.info("Uploaded video %s as video_id=%s", file_name, upload.video_id)
    return upload


def upload_audio(
    client: LipDubClient,
    file_name: str,
    content_type: str | None,
    data: bytes,
) -> AudioUpload:
    """Upload a personalized audio track to LipDub."""
    if not data:
        raise ValueError("Audio file is empty")

    normalized = normalize_audio_content_type(content_type)
    logger.info(
        "Initiating audio upload file_name=%s content_type=%s size_bytes=%d",
        file_name,
        normalized,
        len(data),
    )
    upload = client.initiate_audio_upload(file_name, normalized)
    _put_and_confirm(client, upload, data, normalized)
    return upload


def wait_for_audio(
    client: LipDubClient,
    audio_id: str,
    *,
    interval_s: float = AUDIO_POLL_INTERVAL_S,
    max_attempts: int = AUDIO_POLL_MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Block until LipDub finished processing the audio.

    Checks immediately, then every ``interval_s`` seconds.

    Raises:
        LipDubError: if processing failed.
        PollTimeoutError: if it never completed.
    """

    def check(_attempt: int) -> str | None:
        status = client.get_audio_status(audio_id)
        if status.upload_status == "completed":
            return status.audio_id
        if status.upload_status == "failed":
            raise LipDubError(f"Audio processing failed for audio_id={audio_id}")
        return None

    return poll_until(
        check,
        label="Audio processing",
        interval_s=interval_s,
        max_attempts=max_attempts,
        sleep=sleep,
    )

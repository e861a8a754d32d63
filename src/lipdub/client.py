"""LipDub lip-sync API client."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx

from src.config.settings import LipDubConfig
from src.utils.logging import get_logger

logger = get_logger(__name__)


class LipDubError(RuntimeError):
    """Raised when a LipDub call fails or returns an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class VideoUpload:
    """Signed-URL upload session for a master video."""

    video_id: str
    upload_url: str
    success_url: str
    failure_url: str
    project_id: int | None = None
    scene_id: int | None = None
    actor_id: int | None = None


@dataclass(frozen=True)
class AudioUpload:
    """Signed-URL upload session for an audio track."""

    audio_id: str
    upload_url: str
    success_url: str
    failure_url: str


@dataclass(frozen=True)
class VideoStatus:
    upload_status: str
    shot_id: int | None = None
    shot_status: str | None = None
    ai_training_status: str | None = None


@dataclass(frozen=True)
class ShotStatus:
    shot_status: str
    ai_training_status: str | None = None


@dataclass(frozen=True)
class AudioStatus:
    audio_id: str
    upload_status: str


@dataclass(frozen=True)
class GenerateResult:
    generate_id: str
    status: str = "processing"


@dataclass(frozen=True)
class GenerationStatus:
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProxyResponse:
    """Raw pass-through response."""

    status_code: int
    content_type: str
    text: str


def unwrap(payload: Any) -> dict[str, Any]:
    """Strip the ``{"data": ...}`` envelope LipDub uses on some endpoints."""
    if isinstance(payload, dict):
        inner = payload.get("data")
        if isinstance(inner, dict):
            return inner
        return payload
    return {}


def _decode(text: str) -> Any:
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return {}


class LipDubClient:
    """Thin synchronous client over the LipDub REST API."""

    def __init__(self, config: LipDubConfig, *, http: httpx.Client | None = None) -> None:
        self._config = config
        self._http = http or httpx.Client(timeout=config.timeout_s)

    @classmethod
    def from_env(cls) -> LipDubClient:
        return cls(LipDubConfig.from_env())

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> LipDubClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._config.base_url}/{endpoint.lstrip('/')}"

    def _is_api_host(self, url: str) -> bool:
        """The API key is only sent to the configured LipDub host."""
        return urlsplit(url).netloc == urlsplit(self._config.base_url).netloc

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: dict | None = None,
    ) -> Any:
        url = self._url(endpoint)
        headers = {"x-api-key": self._config.api_key} if self._is_api_host(url) else {}
        try:
            response = self._http.request(method, url, headers=headers, json=json_body)
        except httpx.HTTPError as exc:
            raise LipDubError(f"LipDub request failed: {method} {endpoint}: {exc}") from exc

        if response.is_error:
            raise LipDubError(
                f"LipDub API Error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return _decode(response.text)

    # -- uploads --------------------------------------------------------------

    def initiate_video_upload(
        self,
        file_name: str,
        content_type: str,
        *,
        project_name: str,
        scene_name: str = "Scene 1",
        actor_name: str = "Actor",
    ) -> VideoUpload:
        data = unwrap(
            self._request(
                "POST",
                "/video",
                json_body={
                    "file_name": file_name,
                    "content_type": content_type,
                    "project_name": project_name,
                    "scene_name": scene_name,
                    "actor_name": actor_name,
                },
            )
        )
        try:
            return VideoUpload(
                video_id=str(data["video_id"]),
                upload_url=data["upload_url"],
                success_url=data["success_url"],
                failure_url=data["failure_url"],
                project_id=data.get("project_id"),
                scene_id=data.get("scene_id"),
                actor_id=data.get("actor_id"),
            )
        except KeyError as exc:
            raise LipDubError(f"Video upload response missing {exc}: {data}") from exc

    def initiate_audio_upload(self, file_name: str, content_type: str) -> AudioUpload:
        data = unwrap(
            self._request(
                "POST",
                "/audio",
                json_body={"file_name": file_name, "content_type": content_type},
            )
        )
        try:
            return AudioUpload(
                audio_id=str(data["audio_id"]),
                upload_url=data["upload_url"],
                success_url=data["success_url"],
                failure_url=data["failure_url"],
            )
        except KeyError as exc:
            raise LipDubError(f"Audio upload response missing {exc}: {data}") from exc

    def upload_file_to_url(self, upload_url: str, data: bytes, content_type: str) -> None:
        """PUT raw bytes to a signed storage URL (no API key)."""
        try:
            response = self._http.put(
                upload_url, content=data, headers={"Content-Type": content_type}
            )
        except httpx.HTTPError as exc:
            raise LipDubError(f"Upload failed: {exc}") from exc
        if response.is_error:
            raise LipDubError(
                f"Upload failed: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

    def notify_upload_success(self, success_url: str) -> dict[str, Any]:
        return unwrap(self._request("POST", success_url))

    def notify_upload_failure(self, failure_url: str) -> None:
        self._request("POST", failure_url)

    # -- status ---------------------------------------------------------------

    def get_video_status(self, video_id: str) -> VideoStatus:
        data = unwrap(self._request("GET", f"/video/status/{video_id}"))
        return VideoStatus(
            upload_status=data.get("upload_status") or "uploading",
            shot_id=data.get("shot_id"),
            shot_status=data.get("shot_status"),
            ai_training_status=data.get("ai_training_status"),
        )

    def get_audio_status(self, audio_id: str) -> AudioStatus:
        data = unwrap(self._request("GET", f"/audio/status/{audio_id}"))
        return AudioStatus(
            audio_id=str(data.get("audio_id") or audio_id),
            upload_status=data.get("upload_status") or "uploading",
        )

    def get_shot_status(self, shot_id: int) -> ShotStatus:
        data = unwrap(self._request("GET", f"/shots/{shot_id}/status"))
        return ShotStatus(
            shot_status=data.get("shot_status") or "not_started",
            ai_training_status=data.get("ai_training_status"),
        )

    def list_audio(self) -> list[dict[str, Any]]:
        payload = self._request("GET", "/audio")
        return list(payload.get("data") or []) if isinstance(payload, dict) else []

    def list_shots(self) -> list[dict[str, Any]]:
        payload = self._request("GET", "/shots")
        return list(payload.get("data") or []) if isinstance(payload, dict) else []

    # -- generation -----------------------------------------------------------

    def generate_video(
        self,
        shot_id: int,
        output_filename: str,
        audio_id: str | None = None,
        *,
        language: str | None = None,
        maintain_expression: bool | None = None,
    ) -> GenerateResult:
        body: dict[str, Any] = {"output_filename": output_filename}
        if audio_id:
            body["audio_id"] = audio_id
        if language:
            body["language"] = language
        if maintain_expression is not None:
            body["maintain_expression"] = maintain_expression

        payload = self._request("POST", f"/shots/{shot_id}/generate", json_body=body)
        logger.debug("generate_video raw response: %s", payload)
        data = unwrap(payload)

        generate_id = data.get("generate_id")
        if generate_id is None:
            generate_id = data.get("generateId", data.get("id"))
        if generate_id is None:
            raise LipDubError(f"LipDub generate returned no generate_id: {payload}")
        return GenerateResult(generate_id=str(generate_id), status=data.get("status") or "processing")

    def get_generation_status(self, shot_id: int, generate_id: str) -> GenerationStatus:
        data = unwrap(self._request("GET", f"/shots/{shot_id}/generate/{generate_id}"))
        return GenerationStatus(status=data.get("status") or "processing", raw=data)

    def get_download_url(self, shot_id: int, generate_id: str) -> str | None:
        data = unwrap(self._request("GET", f"/shots/{shot_id}/generate/{generate_id}/download"))
        return data.get("download_url") or None

    def register_video_url(self, video_url: str, **options: Any) -> dict[str, Any]:
        """Register a video hosted elsewhere (URL-based upload)."""
        payload = self._request("POST", "/video", json_body={"video_url": video_url, **options})
        return payload if isinstance(payload, dict) else {}

    def get_video_processing_status(self, video_id: str) -> dict[str, Any]:
        payload = self._request("GET", f"/video/{video_id}/status")
        return payload if isinstance(payload, dict) else {}

    # -- pass-through ---------------------------------------------------------

    def proxy(
        self,
        method: str,
        path: str,
        *,
        body: bytes | None = None,
        content_type: str | None = None,
    ) -> ProxyResponse:
        """Forward a request verbatim, keeping the API key server-side.

        Only paths under the configured base URL are accepted; absolute URLs
        raise ValueError. Error statuses are returned, not raised. Transport
        failures raise LipDubError without a status code.
        """
        parsed = urlsplit(path)
        if parsed.scheme or parsed.netloc:
            raise ValueError("path must be relative to the LipDub API")
        headers = {"x-api-key": self._config.api_key}
        if content_type:
            headers["Content-Type"] = content_type
        try:
            response = self._http.request(
                method,
                f"{self._config.base_url}/{path.lstrip('/')}",
                headers=headers,
                content=body if method not in ("GET", "HEAD") else None,
            )
        except httpx.HTTPError as exc:
            raise LipDubError(f"Proxy request failed: {exc}") from exc
        return ProxyResponse(
            status_code=response.status_code,
            content_type=response.headers.get("content-type", "application/json"),
            text=response.text,
        )

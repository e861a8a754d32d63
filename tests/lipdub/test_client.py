from __future__ import annotations

import json

import httpx
import pytest

from src.config.settings import LipDubConfig
from src.lipdub.client import LipDubClient, LipDubError, unwrap

BASE_URL = "https://api.lipdub.test/v1"


def _client(handler) -> tuple[LipDubClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    http = httpx.Client(transport=httpx.MockTransport(record))
    return LipDubClient(LipDubConfig(api_key="key-123", base_url=BASE_URL), http=http), seen


def test_unwrap_strips_data_envelope() -> None:
    assert unwrap({"data": {"shot_id": 3}}) == {"shot_id": 3}
    assert unwrap({"shot_id": 3}) == {"shot_id": 3}
    assert unwrap({"data": [1, 2]}) == {"data": [1, 2]}
    assert unwrap(None) == {}


def test_request_sends_api_key_and_unwraps() -> None:
    client, seen = _client(
        lambda request: httpx.Response(
            200, json={"data": {"upload_status": "completed", "shot_id": 77}}
        )
    )

    status = client.get_video_status("vid-1")

    assert status.upload_status == "completed"
    assert status.shot_id == 77
    assert seen[0].headers["x-api-key"] == "key-123"
    assert str(seen[0].url) == f"{BASE_URL}/video/status/vid-1"


def test_error_status_raises_with_body() -> None:
    client, _ = _client(lambda request: httpx.Response(404, text="shot not found"))

    with pytest.raises(LipDubError) as excinfo:
        client.get_shot_status(5)

    assert excinfo.value.status_code == 404
    assert excinfo.value.body == "shot not found"


def test_empty_or_invalid_body_decodes_to_defaults() -> None:
    client, _ = _client(lambda request: httpx.Response(200, text="not json"))

    status = client.get_generation_status(5, "gen-1")

    assert status.status == "processing"
    assert status.raw == {}


def test_transport_error_is_lipdub_error() -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = _client(fail)

    with pytest.raises(LipDubError, match="request failed"):
        client.list_shots()


def test_initiate_video_upload_maps_fields() -> None:
    client, seen = _client(
        lambda request: httpx.Response(
            200,
            json={
                "data": {
                    "video_id": 123,
                    "upload_url": "https://storage.test/put",
                    "success_url": "https://api.lipdub.test/v1/video/123/success",
                    "failure_url": "https://api.lipdub.test/v1/video/123/failure",
                    "project_id": 1,
                    "scene_id": 2,
                    "actor_id": 3,
                }
            },
        )
    )

    upload = client.initiate_video_upload("master.mp4", "video/mp4", project_name="Demo")

    assert upload.video_id == "123"
    assert upload.actor_id == 3
    body = json.loads(seen[0].content)
    assert body["project_name"] == "Demo"
    assert body["scene_name"] == "Scene 1"


def test_initiate_audio_upload_missing_field_raises() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={"audio_id": "a1"}))

    with pytest.raises(LipDubError, match="missing"):
        client.initiate_audio_upload("voice.mp3", "audio/mpeg")


def test_upload_file_to_url_puts_without_api_key() -> None:
    client, seen = _client(lambda request: httpx.Response(200))

    client.upload_file_to_url("https://storage.test/put", b"bytes", "video/mp4")

    assert seen[0].method == "PUT"
    assert seen[0].content == b"bytes"
    assert seen[0].headers["content-type"] == "video/mp4"
    assert "x-api-key" not in seen[0].headers


def test_absolute_callback_urls_are_used_verbatim() -> None:
    client, seen = _client(lambda request: httpx.Response(200, json={"ok": True}))

    client.notify_upload_success("https://callbacks.test/success?token=1")

    assert str(seen[0].url) == "https://callbacks.test/success?token=1"
    assert "x-api-key" not in seen[0].headers


def test_callbacks_on_the_api_host_carry_the_key() -> None:
    client, seen = _client(lambda request: httpx.Response(200, json={}))

    client.notify_upload_failure(f"{BASE_URL}/video/vid-1/failure")

    assert seen[0].headers["x-api-key"] == "key-123"


@pytest.mark.parametrize(
    "payload",
    [
        {"generate_id": 42},
        {"generateId": 42},
        {"id": 42},
        {"data": {"generate_id": 42, "status": "queued"}},
    ],
)
def test_generate_video_accepts_id_variants(payload: dict) -> None:
    client, seen = _client(lambda request: httpx.Response(200, json=payload))

    result = client.generate_video(9, "generated_1.mp4", "aud-1")

    assert result.generate_id == "42"
    assert str(seen[0].url) == f"{BASE_URL}/shots/9/generate"
    assert json.loads(seen[0].content) == {"output_filename": "generated_1.mp4", "audio_id": "aud-1"}


def test_generate_video_without_id_raises() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={"status": "queued"}))

    with pytest.raises(LipDubError, match="no generate_id"):
        client.generate_video(9, "generated_1.mp4")


def test_get_download_url_returns_none_when_absent() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={}))

    assert client.get_download_url(9, "gen-1") is None


def test_proxy_returns_error_statuses() -> None:
    client, seen = _client(
        lambda request: httpx.Response(
            418, text='{"error":"teapot"}', headers={"content-type": "application/json"}
        )
    )

    response = client.proxy("POST", "shots/9/generate", body=b"{}", content_type="application/json")

    assert response.status_code == 418
    assert response.text == '{"error":"teapot"}'
    assert seen[0].headers["x-api-key"] == "key-123"
    assert str(seen[0].url) == f"{BASE_URL}/shots/9/generate"


def test_proxy_transport_error_raises() -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = _client(fail)

    with pytest.raises(LipDubError) as excinfo:
        client.proxy("GET", "shots")

    assert excinfo.value.status_code is None


@pytest.mark.parametrize(
    "path",
    ["https://attacker.example/steal", "//attacker.example/steal", "http://api.lipdub.test/v1/shots"],
)
def test_proxy_rejects_absolute_urls(path: str) -> None:
    client, seen = _client(lambda request: httpx.Response(200))

    with pytest.raises(ValueError, match="relative"):
        client.proxy("GET", path)

    assert seen == []


def test_proxy_joins_leading_slash_paths_onto_base_url() -> None:
    client, seen = _client(lambda request: httpx.Response(200, json={}))

    client.proxy("GET", "/project?page=2")

    assert str(seen[0].url) == f"{BASE_URL}/project?page=2"

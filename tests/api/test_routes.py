from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from src.api import deps
from src.api.app import create_app
from src.api.routes import generation as generation_routes
from src.api.routes import integrations as integration_routes
from src.api.routes import projects as project_routes
from src.config.settings import AppConfig, CloseConfig, LipDubConfig
from src.credits.ledger import InsufficientCreditsError
from src.crm.close import CloseClient
from src.db import supabase as db
from src.db.supabase import AuthUser, GenerationJobRecord, ProjectRecord
from src.lipdub.client import AudioUpload, LipDubClient, VideoUpload
from src.utils.polling import PollTimeoutError

USER = AuthUser(id="user-1", email="ana@example.com")
PROJECT = ProjectRecord(id="proj-1", name="Promo", type="personalization", status="draft", user_id="user-1")
AUDIO_UPLOAD = AudioUpload(
    audio_id="aud-1",
    upload_url="https://s3.test/put",
    success_url="https://api.lipdub.test/ok",
    failure_url="https://api.lipdub.test/fail",
)


@pytest.fixture
def lipdub() -> MagicMock:
    return MagicMock()


@pytest.fixture
def app_config() -> dict:
    return {"config": AppConfig(admin_user_id="admin-1", cron_secret="s3cret")}


@pytest.fixture
def client(lipdub, app_config, monkeypatch) -> TestClient:
    app = create_app(AppConfig())
    app.dependency_overrides[deps.get_current_user] = lambda: USER
    app.dependency_overrides[deps.get_lipdub_client] = lambda: lipdub
    app.dependency_overrides[deps.get_email_sender] = lambda: MagicMock()
    app.dependency_overrides[deps.get_app_config] = lambda: app_config["config"]
    monkeypatch.setattr(db, "get_project", lambda project_id: PROJECT if project_id == "proj-1" else None)
    return TestClient(app)


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_token_is_unauthorized() -> None:
    response = TestClient(create_app(AppConfig())).get("/api/projects")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_validation_errors_are_bad_requests(client) -> None:
    response = client.post("/api/projects", json={})

    assert response.status_code == 400
    assert "details" in response.json()


def test_foreign_project_is_not_found(client, monkeypatch) -> None:
    other = ProjectRecord(id="proj-2", name="X", type="translation", status="draft", user_id="user-2")
    monkeypatch.setattr(db, "get_project", lambda project_id: other)

    response = client.get("/api/projects/proj-2/draft")

    assert response.status_code == 404
    assert response.json() == {"error": "Project not found"}


def test_generate_with_insufficient_credits(client, monkeypatch) -> None:
    deduct = MagicMock(side_effect=InsufficientCreditsError(1.0, 5.0))
    monkeypatch.setattr(project_routes.ledger, "deduct_credits", deduct)
    run = MagicMock()
    monkeypatch.setattr(project_routes, "run_generation", run)

    response = client.post(
        "/api/projects/proj-1/generate", json={"video_id": "vid-1", "duration_seconds": 60}
    )

    assert response.status_code == 402
    assert response.json() == {
        "error": "INSUFFICIENT_CREDITS",
        "credits_remaining": 1.0,
        "credits_needed": 5.0,
    }
    deduct.assert_called_once_with("user-1", 5.0, "proj-1")
    run.assert_not_called()


def test_generate_charges_then_runs_in_background(client, monkeypatch) -> None:
    monkeypatch.setattr(project_routes.ledger, "deduct_credits", MagicMock(return_value=45.0))
    run = MagicMock()
    monkeypatch.setattr(project_routes, "run_generation", run)

    response = client.post(
        "/api/projects/proj-1/generate",
        json={"video_id": "vid-1", "audio_id": "aud-1", "duration_seconds": 90},
    )

    assert response.status_code == 202
    assert response.json() == {"project_id": "proj-1", "status": "processing", "credits_charged": 7.5}
    run.assert_called_once_with("proj-1", "user-1", "vid-1", "aud-1", 7.5)


def test_save_draft(client, monkeypatch) -> None:
    save = MagicMock()
    monkeypatch.setattr(db, "save_project_draft", save)

    response = client.post(
        "/api/projects/proj-1/draft",
        json={"status": "draft", "generation": {"shot_id": 12, "generate_id": "gen-1"}},
    )

    assert response.json() == {"ok": True}
    save.assert_called_once_with(
        "proj-1",
        "user-1",
        status="draft",
        video=None,
        audio=None,
        generation={"shot_id": 12, "generate_id": "gen-1", "audio_id": None, "status": None},
    )


def test_download_redirects_to_signed_url(client, lipdub, monkeypatch) -> None:
    job = GenerationJobRecord(id="job-1", project_id="proj-1", status="completed", shot_id=12, generate_id="gen-1")
    monkeypatch.setattr(db, "get_latest_completed_job", lambda project_id: job)
    lipdub.get_download_url.return_value = "https://cdn.test/final.mp4"

    response = client.get("/api/projects/proj-1/download", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "https://cdn.test/final.mp4"
    lipdub.get_download_url.assert_called_once_with(12, "gen-1")


def test_download_without_completed_job(client, monkeypatch) -> None:
    monkeypatch.setattr(db, "get_latest_completed_job", lambda project_id: None)

    response = client.get("/api/projects/proj-1/download")

    assert response.status_code == 404
    assert response.json() == {"error": "No hay video completado para este proyecto"}


def test_cron_requires_configured_secret(client, app_config) -> None:
    app_config["config"] = AppConfig(cron_secret=None)

    response = client.get("/api/cron/poll-generation")

    assert response.status_code == 500
    assert response.json() == {"error": "CRON_SECRET not configured"}


def test_cron_rejects_wrong_secret(client) -> None:
    response = client.get("/api/cron/poll-generation", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


def test_cron_runs_poller(client, monkeypatch) -> None:
    summary = SimpleNamespace(message="Processed 2 jobs", processed=2, completed=1, failed=1)
    poller = MagicMock()
    poller.return_value.poll_pending_jobs.return_value = summary
    monkeypatch.setattr(generation_routes, "GenerationPoller", poller)

    response = client.get("/api/cron/poll-generation", headers={"Authorization": "Bearer s3cret"})

    assert response.status_code == 200
    assert response.json() == {"message": "Processed 2 jobs", "processed": 2, "completed": 1, "failed": 1}


def test_admin_routes_require_admin(client) -> None:
    response = client.get("/api/admin/users")

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}


def test_create_lead_requires_email(client) -> None:
    response = client.post("/api/close/create-lead", json={"firstName": "Ana"})

    assert response.status_code == 400
    assert response.json() == {"error": "Email and first name are required"}


def test_lipdub_proxy_requires_path(client) -> None:
    response = client.get("/api/lipdub")

    assert response.status_code == 400
    assert response.json() == {"error": 'Missing "path" query parameter'}


def test_lipdub_proxy_passes_response_through(client, lipdub) -> None:
    lipdub.proxy.return_value = SimpleNamespace(
        status_code=201, text='{"data": {"id": 1}}', content_type="application/json"
    )

    response = client.post("/api/lipdub?path=/project", json={"name": "Promo"})

    assert response.status_code == 201
    assert response.json() == {"data": {"id": 1}}
    method, path = lipdub.proxy.call_args.args
    assert (method, path) == ("POST", "/project")


def test_lipdub_proxy_refuses_absolute_urls() -> None:
    sent: list[str] = []

    def record(request: httpx.Request) -> httpx.Response:
        sent.append(str(request.url))
        return httpx.Response(200)

    http = httpx.Client(transport=httpx.MockTransport(record))
    real = LipDubClient(LipDubConfig(api_key="secret", base_url="https://api.lipdub.test/v1"), http=http)
    app = create_app(AppConfig())
    app.dependency_overrides[deps.get_lipdub_client] = lambda: real

    response = TestClient(app).get("/api/lipdub", params={"path": "https://attacker.example/steal"})

    assert response.status_code == 400
    assert sent == []


def test_create_lead_closes_the_crm_client(client, monkeypatch) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"id": "lead_1"}))
    http = httpx.Client(transport=transport)
    crm = CloseClient(CloseConfig(api_key="api_close"), http=http)
    monkeypatch.setattr(integration_routes.CloseClient, "from_env", classmethod(lambda cls: crm))

    response = client.post("/api/close/create-lead", json={"firstName": "Ana", "email": "ana@example.com"})

    assert response.json() == {"success": True, "closeLeadId": "lead_1", "message": "Lead created in Close CRM"}
    assert http.is_closed


def test_audio_upload_waits_for_processing(client, lipdub, monkeypatch) -> None:
    upload = MagicMock(return_value=AUDIO_UPLOAD)
    wait = MagicMock()
    monkeypatch.setattr(integration_routes.uploads, "upload_audio", upload)
    monkeypatch.setattr(integration_routes.uploads, "wait_for_audio", wait)

    response = client.post("/api/lipdub/audio", files={"file": ("voz.wav", b"RIFF", "audio/wav")})

    assert response.status_code == 201
    assert response.json() == {"audio_id": "aud-1", "upload_status": "completed"}
    upload.assert_called_once_with(lipdub, "voz.wav", "audio/wav", b"RIFF")
    wait.assert_called_once_with(lipdub, "aud-1")


def test_audio_upload_timeout_is_gateway_timeout(client, monkeypatch) -> None:
    upload = MagicMock(return_value=AUDIO_UPLOAD)
    monkeypatch.setattr(integration_routes.uploads, "upload_audio", upload)
    monkeypatch.setattr(
        integration_routes.uploads, "wait_for_audio", MagicMock(side_effect=PollTimeoutError("Audio processing", 60))
    )

    response = client.post("/api/lipdub/audio", files={"file": ("voz.wav", b"RIFF", "audio/wav")})

    assert response.status_code == 504
    assert response.json() == {"error": "Audio processing timeout after 60 attempts"}


def test_list_shots_and_audio(client, lipdub) -> None:
    lipdub.list_shots.return_value = [{"shot_id": 12}]
    lipdub.list_audio.return_value = [{"audio_id": "aud-1"}]

    assert client.get("/api/lipdub/shots").json() == {"shots": [{"shot_id": 12}]}
    assert client.get("/api/lipdub/audio").json() == {"audio": [{"audio_id": "aud-1"}]}


def test_video_upload_returns_lipdub_ids(client, lipdub, monkeypatch) -> None:
    upload = MagicMock(
        return_value=VideoUpload(
            video_id="vid-1",
            upload_url="https://s3.test/put",
            success_url="https://api.lipdub.test/ok",
            failure_url="https://api.lipdub.test/fail",
            project_id=7,
            scene_id=8,
            actor_id=9,
        )
    )
    monkeypatch.setattr(integration_routes.uploads, "upload_video", upload)

    response = client.post(
        "/api/lipdub/videos",
        files={"file": ("master.mp4", b"\x00\x00", "video/mp4")},
        data={"project_name": "Promo"},
    )

    assert response.status_code == 201
    assert response.json() == {"video_id": "vid-1", "project_id": 7, "scene_id": 8, "actor_id": 9}
    upload.assert_called_once_with(lipdub, "master.mp4", "video/mp4", b"\x00\x00", project_name="Promo")

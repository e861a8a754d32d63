from __future__ import annotations

import json

import httpx
import pytest

from src.config.settings import EmailConfig
from src.notify.email import (
    EmailError,
    EmailSender,
    project_link,
    render_completion_email,
    render_failure_email,
)


def _sender(handler, api_key: str | None = "re_test") -> tuple[EmailSender, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    config = EmailConfig(api_key=api_key, from_email="DobleLabs <noreply@test>", app_url="https://app.test")
    return EmailSender(config, http=httpx.Client(transport=httpx.MockTransport(record))), seen


def test_project_link() -> None:
    assert project_link("https://app.test/", "proj-1") == "https://app.test/app/upload?project=proj-1"


def test_completion_email_escapes_name_and_shows_download() -> None:
    body = render_completion_email('<b>"Promo"</b>', "https://app.test/p", "https://cdn.test/v.mp4")

    assert "&lt;b&gt;" in body
    assert "<b>" not in body
    assert "Descargar Video" in body
    assert "https://cdn.test/v.mp4" in body


def test_completion_email_without_download_url_has_no_button() -> None:
    body = render_completion_email("Promo", "https://app.test/p", None)

    assert "Descargar Video" not in body
    assert "Ver proyecto en DobleLabs" in body


def test_failure_email_links_project() -> None:
    body = render_failure_email("Promo", "https://app.test/app/upload?project=proj-1")

    assert "Reintentar" in body
    assert "https://app.test/app/upload?project=proj-1" in body


def test_send_without_key_only_logs() -> None:
    sender, seen = _sender(lambda request: httpx.Response(200), api_key=None)

    assert sender.send("ana@example.com", "Hola", "<p>hola</p>") is False
    assert seen == []


def test_send_posts_to_resend() -> None:
    sender, seen = _sender(lambda request: httpx.Response(200, json={"id": "email-1"}))

    assert sender.send_completion_email("ana@example.com", "Promo", "proj-1", None) is True

    request = seen[0]
    assert request.headers["authorization"] == "Bearer re_test"
    payload = json.loads(request.content)
    assert payload["to"] == "ana@example.com"
    assert payload["subject"] == '¡Tu video "Promo" está listo! - DobleLabs'
    assert "https://app.test/app/upload?project=proj-1" in payload["html"]


def test_send_error_response_raises() -> None:
    sender, _ = _sender(lambda request: httpx.Response(422, text="invalid from"))

    with pytest.raises(EmailError, match="422"):
        sender.send_failure_email("ana@example.com", "Promo", "proj-1")

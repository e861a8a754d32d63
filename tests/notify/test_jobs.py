from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from src.db.supabase import GenerationJobRecord
from src.notify import jobs
from src.notify.email import EmailError
from src.notify.jobs import notify_job_completed, notify_job_failed


@pytest.fixture
def fake_db(monkeypatch) -> MagicMock:
    db = MagicMock()
    db.get_project_name.return_value = "Promo"
    db.get_user_email.return_value = "ana@example.com"
    db.utc_now_iso.return_value = "2026-01-27T10:30:00+00:00"
    monkeypatch.setattr(jobs, "db", db)
    return db


def _job(**overrides) -> GenerationJobRecord:
    fields = {"id": "job-1", "project_id": "proj-1", "status": "completed", "user_id": "user-1"}
    fields.update(overrides)
    return GenerationJobRecord(**fields)


def test_completed_creates_notification_and_emails_once(fake_db) -> None:
    sender = MagicMock()

    notify_job_completed(_job(), "https://cdn.test/v.mp4", sender)

    fake_db.create_notification.assert_called_once_with(
        "user-1",
        "success",
        "¡Video generado!",
        body='Tu video para "Promo" está listo para descargar.',
        href="/upload?project=proj-1",
    )
    sender.send_completion_email.assert_called_once_with(
        "ana@example.com", "Promo", "proj-1", "https://cdn.test/v.mp4"
    )
    fake_db.update_generation_job.assert_called_once_with(
        "job-1", notified_at="2026-01-27T10:30:00+00:00"
    )


def test_already_notified_job_skips_email(fake_db) -> None:
    sender = MagicMock()

    notify_job_failed(_job(status="failed", notified_at="2026-01-27T10:00:00Z"), sender)

    fake_db.create_notification.assert_called_once()
    assert fake_db.create_notification.call_args.args[1] == "error"
    sender.send_failure_email.assert_not_called()
    fake_db.update_generation_job.assert_not_called()


def test_email_errors_are_swallowed(fake_db) -> None:
    sender = MagicMock()
    sender.send_failure_email.side_effect = EmailError("Resend API error 500")

    notify_job_failed(_job(status="failed"), sender)

    fake_db.update_generation_job.assert_not_called()


def test_jobs_without_owner_are_ignored(fake_db) -> None:
    notify_job_completed(_job(user_id=None), None, MagicMock())

    fake_db.create_notification.assert_not_called()

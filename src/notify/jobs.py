"""In-app and email notifications for finished generation jobs."""
from __future__ import annotations

from src.db import supabase as db
from src.db.supabase import GenerationJobRecord
from src.notify.email import EmailError, EmailSender
from src.utils.logging import get_logger

logger = get_logger(__name__)


def _project_href(project_id: str) -> str:
    return f"/upload?project={project_id}"


def _send_email_once(job: GenerationJobRecord, send) -> None:
    """Email the owner unless the job was already notified."""
    if job.notified_at or not job.user_id:
        return
    try:
        email = db.get_user_email(job.user_id)
        if email:
            send(email)
        db.update_generation_job(job.id, notified_at=db.utc_now_iso())
    except EmailError as exc:
        logger.warning("Email send failed for job %s: %s", job.id, exc)


def notify_job_completed(
    job: GenerationJobRecord,
    download_url: str | None,
    sender: EmailSender,
) -> None:
    if not job.user_id:
        return
    project_name = db.get_project_name(job.project_id)
    db.create_notification(
        job.user_id,
        "success",
        "¡Video generado!",
        body=f'Tu video para "{project_name}" está listo para descargar.',
        href=_project_href(job.project_id),
    )
    _send_email_once(
        job,
        lambda email: sender.send_completion_email(email, project_name, job.project_id, download_url),
    )


def notify_job_failed(job: GenerationJobRecord, sender: EmailSender) -> None:
    if not job.user_id:
        return
    project_name = db.get_project_name(job.project_id)
    db.create_notification(
        job.user_id,
        "error",
        "Error en generación",
        body=f'La generación del video para "{project_name}" falló. Intenta de nuevo.',
        href=_project_href(job.project_id),
    )
    _send_email_once(
        job,
        lambda email: sender.send_failure_email(email, project_name, job.project_id),
    )

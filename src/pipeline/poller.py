"""Cron poller that advances pending generation jobs."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Literal

from src.credits import ledger
from src.db import supabase as db
from src.db.supabase import GenerationJobRecord
from src.lipdub.client import LipDubClient
from src.notify.email import EmailSender
from src.notify.jobs import notify_job_completed, notify_job_failed
from src.pipeline.generation import fetch_download_url, mark_job_completed, mark_job_failed
from src.utils.logging import Timer, get_logger

logger = get_logger(__name__)

JobOutcome = Literal["completed", "failed", "processing", "skipped"]

PROGRESS_PER_MINUTE = 5
PROGRESS_CEILING = 90
LIPDUB_FAILURE_MESSAGE = "LipDub generation failed"


@dataclass(frozen=True)
class PollSummary:
    processed: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def message(self) -> str:
        if self.processed == 0 and self.completed == 0 and self.failed == 0:
            return "No pending jobs"
        return f"Processed {self.processed} jobs"


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def estimate_progress(job: GenerationJobRecord, now: datetime) -> int:
    """5% per elapsed minute, capped at 90%, never moving backwards."""
    created = _parse_timestamp(job.created_at) or _parse_timestamp(job.started_at)
    estimated = 0
    if created is not None:
        elapsed_minutes = max((now - created).total_seconds(), 0) // 60
        estimated = min(int(elapsed_minutes) * PROGRESS_PER_MINUTE, PROGRESS_CEILING)
    return max(job.progress or 0, estimated)


class GenerationPoller:
    """Checks LipDub for every queued/processing job and records the outcome."""

    def __init__(
        self,
        lipdub: LipDubClient,
        email: EmailSender,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._lipdub = lipdub
        self._email = email
        self._now = now

    def poll_pending_jobs(self) -> PollSummary:
        jobs = db.list_pending_generation_jobs()
        if not jobs:
            return PollSummary()

        processed = completed = failed = 0
        with Timer(f"Poll {len(jobs)} pending generation jobs", logger):
            for job in jobs:
                try:
                    outcome = self.poll_job(job)
                except Exception as exc:
                    logger.warning("Error polling job %s: %s", job.id, exc)
                    processed += 1
                    continue

                if outcome == "skipped":
                    continue
                processed += 1
                if outcome == "completed":
                    completed += 1
                elif outcome == "failed":
                    failed += 1

        return PollSummary(processed=processed, completed=completed, failed=failed)

    def poll_job(self, job: GenerationJobRecord) -> JobOutcome:
        if job.shot_id is None or not job.generate_id:
            return "skipped"

        status = self._lipdub.get_generation_status(job.shot_id, job.generate_id)
        if status.status == "completed":
            self._complete(job)
            return "completed"
        if status.status == "failed":
            self._fail(job)
            return "failed"

        db.update_generation_job(
            job.id,
            progress=estimate_progress(job, self._now()),
            current_step="generating",
        )
        return "processing"

    def _complete(self, job: GenerationJobRecord) -> None:
        download_url = fetch_download_url(self._lipdub, job)
        if not mark_job_completed(job, download_url):
            logger.info("Job %s was already finalized", job.id)
            return
        logger.info("Job %s completed (project_id=%s)", job.id, job.project_id)
        notify_job_completed(job, download_url, self._email)

    def _fail(self, job: GenerationJobRecord) -> None:
        if not mark_job_failed(job, LIPDUB_FAILURE_MESSAGE):
            logger.info("Job %s was already finalized", job.id)
            return
        logger.info("Job %s failed (project_id=%s)", job.id, job.project_id)

        if job.user_id and job.credits_charged > 0:
            try:
                ledger.refund_credits(
                    job.user_id,
                    job.credits_charged,
                    job.project_id,
                    reason="Reembolso por generación fallida",
                )
            except ledger.CreditError:
                logger.exception("Refund failed for job %s", job.id)

        notify_job_failed(job, self._email)

"""Shot creation and lip-sync generation workflow."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from src.credits import ledger
from src.db import supabase as db
from src.db.supabase import GenerationJobRecord
from src.lipdub.client import LipDubClient, LipDubError
from src.notify.email import EmailSender
from src.notify.jobs import notify_job_completed, notify_job_failed
from src.utils.logging import Timer, get_logger
from src.utils.polling import poll_until

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int], None]
T = TypeVar("T")


class GenerationError(RuntimeError):
    """Raised when the generation workflow fails."""

    def __init__(
        self,
        message: str,
        *,
        step: str,
        job_id: str | None = None,
        refunded: float = 0.0,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.job_id = job_id
        self.refunded = refunded


@dataclass(frozen=True)
class PollSettings:
    interval_s: float
    max_attempts: int
    backoff: float = 1.0
    max_interval_s: float | None = None


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a generation run."""

    project_id: str
    job_id: str
    shot_id: int
    generate_id: str
    status: str
    credits_charged: float
    download_url: str | None = None


VIDEO_POLL = PollSettings(interval_s=2.0, max_attempts=30)
SHOT_POLL = PollSettings(interval_s=2.0, max_attempts=30)
GENERATION_POLL = PollSettings(interval_s=3.0, max_attempts=60)


def mark_job_completed(job: GenerationJobRecord, download_url: str | None) -> bool:
    """Finalize a job as completed; False if another worker already finalized it."""
    finished = db.finish_generation_job(
        job.id,
        "completed",
        progress=100,
        current_step="completed",
        download_url=download_url,
        completed_at=db.utc_now_iso(),
    )
    if finished:
        db.update_project_status(job.project_id, "completed")
    return finished


def mark_job_failed(job: GenerationJobRecord, error: str) -> bool:
    """Finalize a job as failed; False if another worker already finalized it."""
    finished = db.finish_generation_job(
        job.id,
        "failed",
        current_step="failed",
        error=error,
        completed_at=db.utc_now_iso(),
    )
    if finished:
        db.update_project_status(job.project_id, "failed")
    return finished


def fetch_download_url(lipdub: LipDubClient, job: GenerationJobRecord) -> str | None:
    """Download URL for a finished job; None if LipDub can't provide one yet."""
    if job.shot_id is None or not job.generate_id:
        return None
    try:
        return lipdub.get_download_url(job.shot_id, job.generate_id)
    except LipDubError as exc:
        logger.warning("Could not get download URL for job %s: %s", job.id, exc)
        return None


class GenerationPipeline:
    """
    Drives one project from an uploaded video to a finished lip-synced video.

    Steps: wait for the video upload to produce a shot, wait for the shot to
    finish training, start generation (creating the ``generation_jobs`` row),
    and optionally wait for generation to finish. Credits charged for the run
    are refunded once if any step fails.
    """

    def __init__(
        self,
        lipdub: LipDubClient,
        *,
        email: EmailSender | None = None,
        video_poll: PollSettings = VIDEO_POLL,
        shot_poll: PollSettings = SHOT_POLL,
        generation_poll: PollSettings = GENERATION_POLL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._lipdub = lipdub
        self._email = email
        self._video_poll = video_poll
        self._shot_poll = shot_poll
        self._generation_poll = generation_poll
        self._sleep = sleep
        self._clock = clock
        self._on_progress = on_progress
        self.step = "creating_shot"
        self.progress = 0

    def _report(self, step: str, progress: int) -> None:
        self.step = step
        self.progress = progress
        if self._on_progress is not None:
            self._on_progress(step, progress)

    def _advance(self, step: str, increment: int, ceiling: int) -> None:
        self._report(step, min(self.progress + increment, ceiling))

    def _poll(
        self,
        settings: PollSettings,
        check: Callable[[int], T | None],
        label: str,
        **kwargs: Any,
    ) -> T:
        return poll_until(
            check,
            label=label,
            interval_s=settings.interval_s,
            max_attempts=settings.max_attempts,
            backoff=settings.backoff,
            max_interval_s=settings.max_interval_s,
            sleep=self._sleep,
            log=logger,
            **kwargs,
        )

    # -- individual steps -----------------------------------------------------

    def wait_for_video(self, video_id: str) -> int:
        """Wait until the uploaded video is processed; returns its shot ID."""
        self._report("creating_shot", 10)

        def check(_attempt: int) -> int | None:
            status = self._lipdub.get_video_status(video_id)
            if status.upload_status == "completed" and status.shot_id is not None:
                return int(status.shot_id)
            if status.upload_status == "failed":
                raise GenerationError("Video processing failed", step="creating_shot")
            self._advance("creating_shot", 2, 30)
            return None

        return self._poll(self._video_poll, check, "Video processing")

    def wait_for_shot(self, shot_id: int) -> None:
        """Wait until the facial model for the shot has finished training."""
        self._report("checking_shot", 40)

        def check(_attempt: int) -> bool | None:
            status = self._lipdub.get_shot_status(shot_id)
            if status.shot_status == "finished":
                return True
            if status.shot_status == "failed":
                raise GenerationError("Shot creation failed", step="checking_shot")
            self._advance("checking_shot", 2, 60)
            return None

        self._poll(self._shot_poll, check, "Shot processing")

    def start(
        self,
        project_id: str,
        user_id: str | None,
        shot_id: int,
        audio_id: str | None,
        *,
        credits_charged: float = 0.0,
    ) -> GenerationJobRecord:
        """Request generation from LipDub and record the job."""
        self._report("generating", 70)
        output_filename = f"generated_{int(self._clock() * 1000)}.mp4"
        generate = self._lipdub.generate_video(shot_id, output_filename, audio_id)

        job = db.create_generation_job(
            project_id,
            user_id,
            shot_id,
            generate.generate_id,
            audio_id,
            credits_charged=credits_charged,
        )
        db.update_project_status(project_id, "processing")
        logger.info(
            "Started generation project_id=%s shot_id=%s generate_id=%s job_id=%s",
            project_id,
            shot_id,
            generate.generate_id,
            job.id,
        )
        return job

    def wait_for_generation(self, job: GenerationJobRecord) -> str | None:
        """Wait until LipDub finishes; returns the download URL if available."""
        if job.shot_id is None or not job.generate_id:
            raise GenerationError("Job has no shot or generate ID", step="checking_generate", job_id=job.id)
        self._report("checking_generate", 80)

        def check(_attempt: int) -> bool | None:
            status = self._lipdub.get_generation_status(job.shot_id, job.generate_id)  # type: ignore[arg-type]
            if status.status == "completed":
                return True
            if status.status == "failed":
                raise GenerationError("Video generation failed", step="checking_generate", job_id=job.id)
            self._advance("checking_generate", 1, 95)
            db.update_generation_job(job.id, progress=self.progress, current_step="generating")
            return None

        # Generation status may not be queryable right after the request.
        self._poll(self._generation_poll, check, "Generation", retry_on=(LipDubError,))
        return fetch_download_url(self._lipdub, job)

    # -- full run ---------------------------------------------------------------

    def run(
        self,
        project_id: str,
        user_id: str,
        video_id: str,
        audio_id: str | None,
        *,
        credits: float = 0.0,
        already_charged: bool = False,
        wait_for_completion: bool = True,
    ) -> GenerationResult:
        """
        Run the workflow end to end.

        Args:
            credits: Price of the run. Deducted first unless already_charged.
            already_charged: The caller deducted ``credits`` itself; they are
                still refunded on failure.
            wait_for_completion: Poll until the video is ready instead of
                leaving the job to the cron poller.

        Raises:
            InsufficientCreditsError: before any LipDub call.
            GenerationError: any later failure (credits already refunded).
        """
        charged = 0.0
        if credits > 0:
            if not already_charged:
                ledger.deduct_credits(user_id, credits, project_id)
            charged = credits

        job: GenerationJobRecord | None = None
        finished = False
        try:
            with Timer(f"Generation workflow project_id={project_id}", logger):
                shot_id = self.wait_for_video(video_id)
                self.wait_for_shot(shot_id)
                job = self.start(project_id, user_id, shot_id, audio_id, credits_charged=charged)

                download_url = None
                status = "processing"
                if wait_for_completion:
                    download_url = self.wait_for_generation(job)
                    finished = mark_job_completed(job, download_url)
                    status = "completed"
                    self._report("complete", 100)
        except Exception as exc:
            step = exc.step if isinstance(exc, GenerationError) else self.step
            refunded = self._compensate(project_id, user_id, job, charged, str(exc))
            self._report("error", self.progress)
            raise GenerationError(
                str(exc),
                step=step,
                job_id=job.id if job else None,
                refunded=refunded,
            ) from exc

        if finished and self._email is not None:
            try:
                notify_job_completed(job, download_url, self._email)
            except Exception:
                logger.exception("Could not notify completion of job %s", job.id)

        return GenerationResult(
            project_id=project_id,
            job_id=job.id,
            shot_id=job.shot_id,  # type: ignore[arg-type]
            generate_id=job.generate_id,  # type: ignore[arg-type]
            status=status,
            credits_charged=charged,
            download_url=download_url,
        )

    def _compensate(
        self,
        project_id: str,
        user_id: str,
        job: GenerationJobRecord | None,
        charged: float,
        error: str,
    ) -> float:
        """Refund and record a failure.

        Once a job row exists, the refund belongs to whoever moves it out of
        processing. If the cron poller got there first (or the row could not be
        updated, leaving it to the poller) nothing is refunded here.
        """
        logger.error("Generation failed for project_id=%s at %s: %s", project_id, self.step, error)
        if job is not None:
            try:
                finished = mark_job_failed(job, error)
            except Exception:
                logger.exception("Could not record failure of job %s", job.id)
                return 0.0
            if not finished:
                logger.info("Job %s was already finalized; skipping refund", job.id)
                return 0.0

        refunded = 0.0
        if charged > 0:
            try:
                ledger.refund_credits(
                    user_id,
                    charged,
                    project_id,
                    reason=f"Reembolso por generación fallida: {error}"[:255],
                )
                refunded = charged
            except ledger.CreditError:
                logger.exception("Refund of %g credits failed for user %s", charged, user_id)

        if job is not None and self._email is not None:
            try:
                notify_job_failed(job, self._email)
            except Exception:
                logger.exception("Could not notify failure of job %s", job.id)
        return refunded


def start_generation(
    lipdub: LipDubClient,
    project_id: str,
    user_id: str | None,
    shot_id: int,
    audio_id: str | None,
) -> GenerationJobRecord:
    """Start generation for an already-trained shot and leave it to the poller."""
    if not project_id or shot_id is None:
        raise ValueError("project_id and shot_id are required")
    return GenerationPipeline(lipdub).start(project_id, user_id, shot_id, audio_id)

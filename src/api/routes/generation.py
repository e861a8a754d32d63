"""Generation job start/status and the cron poller endpoint."""
from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException

from src.api.deps import bearer_token, get_app_config, get_email_sender, get_lipdub_client
from src.api.schemas import (
    GenerationJobResponse,
    GenerationStartRequest,
    GenerationStartResponse,
    PollResponse,
)
from src.config.settings import AppConfig
from src.db import supabase as db
from src.lipdub.client import LipDubClient
from src.notify.email import EmailSender
from src.pipeline.generation import start_generation
from src.pipeline.poller import GenerationPoller

router = APIRouter(tags=["generation"])


@router.post("/api/generation/start", response_model=GenerationStartResponse)
def start(
    request: GenerationStartRequest,
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> GenerationStartResponse:
    job = start_generation(
        lipdub, request.project_id, request.user_id, request.shot_id, request.audio_id
    )
    return GenerationStartResponse(
        job=GenerationJobResponse.model_validate(job),
        generate_id=job.generate_id or "",
    )


@router.get("/api/generation/status/{job_id}", response_model=GenerationJobResponse)
def status(job_id: str) -> GenerationJobResponse:
    job = db.get_generation_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return GenerationJobResponse.model_validate(job)


def verify_cron_secret(
    authorization: str | None = Header(default=None),
    config: AppConfig = Depends(get_app_config),
) -> None:
    if not config.cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET not configured")
    token = bearer_token(authorization) or ""
    if not hmac.compare_digest(token, config.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get(
    "/api/cron/poll-generation",
    response_model=PollResponse,
    dependencies=[Depends(verify_cron_secret)],
)
def poll_generation(
    lipdub: LipDubClient = Depends(get_lipdub_client),
    email: EmailSender = Depends(get_email_sender),
) -> PollResponse:
    summary = GenerationPoller(lipdub, email).poll_pending_jobs()
    return PollResponse(
        message=summary.message,
        processed=summary.processed,
        completed=summary.completed,
        failed=summary.failed,
    )

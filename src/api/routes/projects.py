"""Project CRUD, draft resume, download and generation kickoff."""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import RedirectResponse

from src.api.deps import get_current_user, get_lipdub_client, get_owned_project
from src.api.schemas import (
    DraftResponse,
    DraftSaveRequest,
    GenerateAccepted,
    GenerateRequest,
    ProjectCreateRequest,
    ProjectListItem,
    ProjectResponse,
)
from src.credits import ledger
from src.db import supabase as db
from src.db.supabase import AuthUser, ProjectRecord
from src.lipdub.client import LipDubClient
from src.notify.email import EmailSender
from src.pipeline.generation import GenerationError, GenerationPipeline
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("", response_model=list[ProjectListItem])
def list_projects(user: AuthUser = Depends(get_current_user)) -> list[ProjectListItem]:
    return [
        ProjectListItem(
            **ProjectResponse.model_validate(summary.project).model_dump(),
            generation_status=summary.generation_status,
            shot_id=summary.shot_id,
            generate_id=summary.generate_id,
        )
        for summary in db.list_projects_with_generation(user.id)
    ]


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(
    request: ProjectCreateRequest,
    user: AuthUser = Depends(get_current_user),
) -> ProjectResponse:
    project = db.create_project(user.id, request.name, request.type)
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}/draft", response_model=DraftResponse)
def get_draft(project: ProjectRecord = Depends(get_owned_project)) -> DraftResponse:
    draft = db.get_project_draft(project.id)
    if draft is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return DraftResponse.model_validate(draft, from_attributes=True)


@router.post("/{project_id}/draft")
def save_draft(
    request: DraftSaveRequest,
    project: ProjectRecord = Depends(get_owned_project),
    user: AuthUser = Depends(get_current_user),
) -> dict:
    db.save_project_draft(
        project.id,
        user.id,
        status=request.status,
        video=request.video.model_dump(exclude_none=True) if request.video else None,
        audio=request.audio.model_dump(exclude_none=True) if request.audio else None,
        generation=request.generation.model_dump() if request.generation else None,
    )
    return {"ok": True}


@router.get("/{project_id}/download")
def download(
    project: ProjectRecord = Depends(get_owned_project),
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> RedirectResponse:
    job = db.get_latest_completed_job(project.id)
    if job is None or job.shot_id is None or not job.generate_id:
        raise HTTPException(status_code=404, detail="No hay video completado para este proyecto")

    download_url = lipdub.get_download_url(job.shot_id, job.generate_id)
    if not download_url:
        raise HTTPException(status_code=502, detail="No se pudo obtener el enlace de descarga")
    return RedirectResponse(download_url)


def run_generation(
    project_id: str,
    user_id: str,
    video_id: str,
    audio_id: str | None,
    credits: float,
) -> None:
    """Background task: the request already charged ``credits``."""
    with LipDubClient.from_env() as lipdub:
        pipeline = GenerationPipeline(lipdub, email=EmailSender.from_env())
        try:
            pipeline.run(
                project_id,
                user_id,
                video_id,
                audio_id,
                credits=credits,
                already_charged=True,
            )
        except GenerationError as exc:
            logger.error(
                "Generation for project %s failed at %s (refunded %g): %s",
                project_id,
                exc.step,
                exc.refunded,
                exc,
            )


@router.post("/{project_id}/generate", response_model=GenerateAccepted, status_code=202)
def generate(
    request: GenerateRequest,
    background_tasks: BackgroundTasks,
    project: ProjectRecord = Depends(get_owned_project),
    user: AuthUser = Depends(get_current_user),
) -> GenerateAccepted:
    credits = 0.0
    if request.duration_seconds:
        credits = ledger.credits_for_duration(request.duration_seconds)
        ledger.deduct_credits(user.id, credits, project.id)

    background_tasks.add_task(
        run_generation, project.id, user.id, request.video_id, request.audio_id, credits
    )
    return GenerateAccepted(project_id=project.id, credits_charged=credits)

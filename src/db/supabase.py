"""Supabase client and CRUD operations for projects and generation state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from supabase import Client, create_client

from src.config.settings import SupabaseConfig
from src.utils.logging import get_logger

ProjectType = Literal["personalization", "translation"]
ProjectStatus = Literal["draft", "processing", "completed", "failed"]
JobStatus = Literal["queued", "processing", "completed", "failed"]
NotificationType = Literal["info", "success", "warning", "error"]

PENDING_JOB_STATUSES: tuple[str, ...] = ("queued", "processing")
DEFAULT_SOURCE_LANGUAGE = "Spanish (Mexico)"

PROJECT_COLUMNS = "id, user_id, name, type, status, source_language, created_at, updated_at"
VIDEO_COLUMNS = (
    "id, project_id, file_name, file_size, lipdub_project_id, lipdub_scene_id, "
    "lipdub_actor_id, lipdub_video_id, upload_status"
)
AUDIO_COLUMNS = "id, project_id, audio_id, file_name, content_type, upload_status"

logger = get_logger(__name__)


@dataclass
class AuthUser:
    """Authenticated Supabase user."""

    id: str
    email: str | None = None


@dataclass
class ProjectRecord:
    """Project database record."""

    id: str
    name: str
    type: ProjectType
    status: ProjectStatus
    user_id: str | None = None
    source_language: str | None = None
    created_at: str | None = None  # ISO 8601 string from Supabase
    updated_at: str | None = None


@dataclass
class ProjectSummary:
    """Project with the state of its latest generation job."""

    project: ProjectRecord
    generation_status: str | None = None
    shot_id: int | None = None
    generate_id: str | None = None


@dataclass
class VideoRecord:
    """Master video uploaded for a project."""

    id: str
    project_id: str
    upload_status: str
    file_name: str | None = None
    file_size: int | None = None
    lipdub_project_id: int | None = None
    lipdub_scene_id: int | None = None
    lipdub_actor_id: int | None = None
    lipdub_video_id: str | None = None


@dataclass
class AudioRecord:
    """Personalized audio track for a project."""

    id: str
    project_id: str
    upload_status: str
    audio_id: str | None = None
    file_name: str | None = None
    content_type: str | None = None


@dataclass
class GenerationJobRecord:
    """One generation request against LipDub."""

    id: str
    project_id: str
    status: JobStatus
    progress: int = 0
    user_id: str | None = None
    shot_id: int | None = None
    generate_id: str | None = None
    audio_id: str | None = None
    current_step: str | None = None
    error: str | None = None
    download_url: str | None = None
    credits_charged: float = 0.0
    notified_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class NotificationRecord:
    """In-app notification."""

    id: str
    user_id: str
    type: NotificationType
    title: str
    body: str | None = None
    href: str | None = None
    read_at: str | None = None
    created_at: str | None = None


@dataclass
class ProjectDraft:
    """Everything needed to resume the upload wizard for a project."""

    project: ProjectRecord
    video: VideoRecord | None = None
    audio: AudioRecord | None = None
    generation: GenerationJobRecord | None = None


# Singleton client
_client: Client | None = None


def get_client() -> Client:
    """Get or create the service-role Supabase client singleton.

    Requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables.
    """
    global _client
    if _client is None:
        config = SupabaseConfig.from_env()
        _client = create_client(config.url, config.service_role_key)
    return _client


def reset_client() -> None:
    """Drop the cached client (tests, credential rotation)."""
    global _client
    _client = None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_auth_user(access_token: str) -> AuthUser | None:
    """Resolve a Supabase access token to its user, None if invalid."""
    client = get_client()
    try:
        response = client.auth.get_user(access_token)
    except Exception as exc:  # gotrue raises AuthApiError for bad/expired tokens
        logger.info("Rejected access token: %s", exc)
        return None
    user = getattr(response, "user", None)
    if user is None:
        return None
    return AuthUser(id=str(user.id), email=getattr(user, "email", None))


def get_user_email(user_id: str) -> str | None:
    """Look up the email of an auth user by ID."""
    client = get_client()
    response = client.auth.admin.get_user_by_id(user_id)
    user = getattr(response, "user", None)
    return getattr(user, "email", None) if user is not None else None


def _first(result: Any) -> dict | None:
    data = getattr(result, "data", None)
    if not data:
        return None
    return data[0]


def _row_to_project(row: dict) -> ProjectRecord:
    """Convert database row to ProjectRecord."""
    return ProjectRecord(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        status=row["status"],
        user_id=row.get("user_id"),
        source_language=row.get("source_language"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_video(row: dict) -> VideoRecord:
    return VideoRecord(
        id=row["id"],
        project_id=row["project_id"],
        upload_status=row.get("upload_status") or "pending",
        file_name=row.get("file_name"),
        file_size=row.get("file_size"),
        lipdub_project_id=row.get("lipdub_project_id"),
        lipdub_scene_id=row.get("lipdub_scene_id"),
        lipdub_actor_id=row.get("lipdub_actor_id"),
        lipdub_video_id=row.get("lipdub_video_id"),
    )


def _row_to_audio(row: dict) -> AudioRecord:
    return AudioRecord(
        id=row["id"],
        project_id=row["project_id"],
        upload_status=row.get("upload_status") or "pending",
        audio_id=row.get("audio_id"),
        file_name=row.get("file_name"),
        content_type=row.get("content_type"),
    )


def _row_to_job(row: dict) -> GenerationJobRecord:
    """Convert database row to GenerationJobRecord."""
    return GenerationJobRecord(
        id=row["id"],
        project_id=row["project_id"],
        status=row["status"],
        progress=int(row.get("progress") or 0),
        user_id=row.get("user_id"),
        shot_id=row.get("shot_id"),
        generate_id=row.get("generate_id"),
        audio_id=row.get("audio_id"),
        current_step=row.get("current_step"),
        error=row.get("error"),
        download_url=row.get("download_url"),
        credits_charged=float(row.get("credits_charged") or 0),
        notified_at=row.get("notified_at"),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_notification(row: dict) -> NotificationRecord:
    return NotificationRecord(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        body=row.get("body"),
        href=row.get("href"),
        read_at=row.get("read_at"),
        created_at=row.get("created_at"),
    )


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def create_project(user_id: str, name: str, project_type: ProjectType) -> ProjectRecord:
    """Create a new project in 'draft' status.

    Args:
        user_id: Supabase auth user ID of the owner.
        name: Display name.
        project_type: 'personalization' or 'translation'.

    Returns:
        Created ProjectRecord.
    """
    name = name.strip()
    if not name:
        raise ValueError("Project name cannot be empty")

    client = get_client()
    result = (
        client.table("projects")
        .insert(
            {
                "user_id": user_id,
                "name": name,
                "type": project_type,
                "status": "draft",
                "source_language": DEFAULT_SOURCE_LANGUAGE,
            }
        )
        .execute()
    )
    row = _first(result)
    if row is None:
        raise RuntimeError("Failed to create project record")
    return _row_to_project(row)


def get_project(project_id: str) -> ProjectRecord | None:
    """Get project by ID, None if it doesn't exist."""
    client = get_client()
    result = client.table("projects").select(PROJECT_COLUMNS).eq("id", project_id).execute()
    row = _first(result)
    return _row_to_project(row) if row else None


def list_projects(user_id: str) -> list[ProjectRecord]:
    """List a user's projects, most recently updated first."""
    client = get_client()
    result = (
        client.table("projects")
        .select(PROJECT_COLUMNS)
        .eq("user_id", user_id)
        .order("updated_at", desc=True)
        .execute()
    )
    return [_row_to_project(row) for row in result.data or []]


def list_projects_with_generation(user_id: str) -> list[ProjectSummary]:
    """List projects merged with the status of each project's latest job."""
    projects = list_projects(user_id)
    if not projects:
        return []

    client = get_client()
    result = (
        client.table("generation_jobs")
        .select("project_id, shot_id, generate_id, status")
        .in_("project_id", [p.id for p in projects])
        .order("created_at", desc=True)
        .execute()
    )

    # Rows arrive newest first, so the first row seen per project wins.
    latest: dict[str, dict] = {}
    for job in result.data or []:
        latest.setdefault(job["project_id"], job)

    summaries = []
    for project in projects:
        job = latest.get(project.id)
        summaries.append(
            ProjectSummary(
                project=project,
                generation_status=job["status"] if job else None,
                shot_id=job.get("shot_id") if job else None,
                generate_id=job.get("generate_id") if job else None,
            )
        )
    return summaries


def update_project_status(project_id: str, status: ProjectStatus) -> None:
    client = get_client()
    client.table("projects").update({"status": status}).eq("id", project_id).execute()


def get_project_name(project_id: str, default: str = "Tu proyecto") -> str:
    client = get_client()
    row = _first(client.table("projects").select("name").eq("id", project_id).execute())
    if not row or not row.get("name"):
        return default
    return row["name"]


# ---------------------------------------------------------------------------
# Videos and audio (one row of each per project)
# ---------------------------------------------------------------------------


def _upsert_project_child(table: str, project_id: str, fields: dict) -> dict:
    client = get_client()
    existing = _first(
        client.table(table).select("id").eq("project_id", project_id).limit(1).execute()
    )
    if existing:
        result = client.table(table).update(fields).eq("id", existing["id"]).execute()
    else:
        result = client.table(table).insert({"project_id": project_id, **fields}).execute()

    row = _first(result)
    if row is None:
        raise RuntimeError(f"Failed to upsert {table} record for project {project_id}")
    return row


def upsert_video(project_id: str, **fields: Any) -> VideoRecord:
    """Update the project's video row, creating it when missing."""
    return _row_to_video(_upsert_project_child("videos", project_id, fields))


def upsert_audio_file(project_id: str, **fields: Any) -> AudioRecord:
    """Update the project's audio row, creating it when missing."""
    return _row_to_audio(_upsert_project_child("audio_files", project_id, fields))


# ---------------------------------------------------------------------------
# Generation jobs
# ---------------------------------------------------------------------------


def create_generation_job(
    project_id: str,
    user_id: str | None,
    shot_id: int,
    generate_id: str,
    audio_id: str | None = None,
    *,
    credits_charged: float = 0.0,
    current_step: str | None = "generating",
) -> GenerationJobRecord:
    """Insert a job in 'processing' status with progress 0."""
    client = get_client()
    result = (
        client.table("generation_jobs")
        .insert(
            {
                "project_id": project_id,
                "user_id": user_id,
                "shot_id": shot_id,
                "generate_id": generate_id,
                "audio_id": audio_id,
                "status": "processing",
                "progress": 0,
                "current_step": current_step,
                "credits_charged": credits_charged,
                "started_at": utc_now_iso(),
            }
        )
        .execute()
    )
    row = _first(result)
    if row is None:
        raise RuntimeError("Failed to create generation job")
    return _row_to_job(row)


def get_generation_job(job_id: str) -> GenerationJobRecord | None:
    client = get_client()
    row = _first(client.table("generation_jobs").select("*").eq("id", job_id).execute())
    return _row_to_job(row) if row else None


def list_pending_generation_jobs() -> list[GenerationJobRecord]:
    """Jobs still queued or processing, oldest first."""
    client = get_client()
    result = (
        client.table("generation_jobs")
        .select("*")
        .in_("status", list(PENDING_JOB_STATUSES))
        .order("created_at", desc=False)
        .execute()
    )
    return [_row_to_job(row) for row in result.data or []]


def update_generation_job(job_id: str, **fields: Any) -> None:
    """Update selected columns of a generation job."""
    if not fields:
        return
    client = get_client()
    client.table("generation_jobs").update(fields).eq("id", job_id).execute()


def finish_generation_job(job_id: str, status: JobStatus, **fields: Any) -> bool:
    """Move a pending job to a final status.

    The update only matches while the job is still queued or processing, so
    when the workflow and the cron poller race exactly one of them gets True
    and owns the refund and notifications.
    """
    client = get_client()
    result = (
        client.table("generation_jobs")
        .update({"status": status, **fields})
        .eq("id", job_id)
        .in_("status", list(PENDING_JOB_STATUSES))
        .execute()
    )
    return bool(result.data)


def list_user_generation_jobs(user_id: str, limit: int = 20) -> list[GenerationJobRecord]:
    client = get_client()
    result = (
        client.table("generation_jobs")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return [_row_to_job(row) for row in result.data or []]


def get_latest_generation_job(project_id: str) -> GenerationJobRecord | None:
    client = get_client()
    result = (
        client.table("generation_jobs")
        .select("*")
        .eq("project_id", project_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    row = _first(result)
    return _row_to_job(row) if row else None


def get_latest_completed_job(project_id: str) -> GenerationJobRecord | None:
    client = get_client()
    result = (
        client.table("generation_jobs")
        .select("*")
        .eq("project_id", project_id)
        .eq("status", "completed")
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    row = _first(result)
    return _row_to_job(row) if row else None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def create_notification(
    user_id: str,
    notification_type: NotificationType,
    title: str,
    body: str | None = None,
    href: str | None = None,
) -> NotificationRecord | None:
    client = get_client()
    result = (
        client.table("notifications")
        .insert(
            {
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "body": body,
                "href": href,
            }
        )
        .execute()
    )
    row = _first(result)
    return _row_to_notification(row) if row else None


def list_unread_notifications(user_id: str, limit: int = 20) -> list[NotificationRecord]:
    client = get_client()
    result = (
        client.table("notifications")
        .select("*")
        .eq("user_id", user_id)
        .is_("read_at", "null")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return [_row_to_notification(row) for row in result.data or []]


def mark_notification_read(notification_id: str, user_id: str) -> None:
    client = get_client()
    (
        client.table("notifications")
        .update({"read_at": utc_now_iso()})
        .eq("id", notification_id)
        .eq("user_id", user_id)
        .execute()
    )


def mark_all_notifications_read(user_id: str) -> None:
    client = get_client()
    (
        client.table("notifications")
        .update({"read_at": utc_now_iso()})
        .eq("user_id", user_id)
        .is_("read_at", "null")
        .execute()
    )


# ---------------------------------------------------------------------------
# Draft resume
# ---------------------------------------------------------------------------


def get_project_draft(project_id: str) -> ProjectDraft | None:
    """Load a project with its video, audio and latest generation job."""
    project = get_project(project_id)
    if project is None:
        return None

    client = get_client()
    video_row = _first(
        client.table("videos").select(VIDEO_COLUMNS).eq("project_id", project_id).limit(1).execute()
    )
    audio_row = _first(
        client.table("audio_files")
        .select(AUDIO_COLUMNS)
        .eq("project_id", project_id)
        .limit(1)
        .execute()
    )

    return ProjectDraft(
        project=project,
        video=_row_to_video(video_row) if video_row else None,
        audio=_row_to_audio(audio_row) if audio_row else None,
        generation=get_latest_generation_job(project_id),
    )


def save_project_draft(
    project_id: str,
    user_id: str,
    *,
    status: ProjectStatus | None = None,
    video: dict | None = None,
    audio: dict | None = None,
    generation: dict | None = None,
) -> None:
    """Persist whichever wizard sections were provided.

    ``generation`` must contain shot_id and generate_id; its status defaults to
    'processing'. It updates the project's latest job or creates one.
    """
    client = get_client()

    if status is not None:
        (
            client.table("projects")
            .update({"status": status})
            .eq("id", project_id)
            .eq("user_id", user_id)
            .execute()
        )

    if video:
        upsert_video(project_id, **video)

    if audio:
        upsert_audio_file(project_id, **audio)

    if generation:
        payload = {
            "shot_id": generation["shot_id"],
            "generate_id": generation["generate_id"],
            "status": generation.get("status") or "processing",
        }
        if generation.get("audio_id"):
            payload["audio_id"] = generation["audio_id"]

        existing = get_latest_generation_job(project_id)
        if existing is not None:
            update_generation_job(existing.id, **payload)
        else:
            (
                client.table("generation_jobs")
                .insert(
                    {
                        "project_id": project_id,
                        "user_id": user_id,
                        **payload,
                        "started_at": utc_now_iso(),
                    }
                )
                .execute()
            )

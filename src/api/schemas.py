"""Request and response models for the HTTP API."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ProjectType = Literal["personalization", "translation"]
ProjectStatus = Literal["draft", "processing", "completed", "failed"]


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -- projects -----------------------------------------------------------------


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: ProjectType = "personalization"


class ProjectResponse(_Record):
    id: str
    name: str
    type: ProjectType
    status: ProjectStatus
    source_language: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ProjectListItem(ProjectResponse):
    generation_status: str | None = None
    shot_id: int | None = None
    generate_id: str | None = None


class VideoResponse(_Record):
    id: str
    upload_status: str
    file_name: str | None = None
    file_size: int | None = None
    lipdub_project_id: int | None = None
    lipdub_scene_id: int | None = None
    lipdub_actor_id: int | None = None
    lipdub_video_id: str | None = None


class AudioResponse(_Record):
    id: str
    upload_status: str
    audio_id: str | None = None
    file_name: str | None = None
    content_type: str | None = None


class GenerationJobResponse(_Record):
    id: str
    project_id: str
    status: str
    progress: int = 0
    shot_id: int | None = None
    generate_id: str | None = None
    audio_id: str | None = None
    current_step: str | None = None
    error: str | None = None
    download_url: str | None = None
    credits_charged: float = 0.0
    started_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None


class DraftResponse(BaseModel):
    project: ProjectResponse
    video: VideoResponse | None = None
    audio: AudioResponse | None = None
    generation: GenerationJobResponse | None = None


class DraftVideo(BaseModel):
    lipdub_project_id: int | None = None
    lipdub_scene_id: int | None = None
    lipdub_actor_id: int | None = None
    lipdub_video_id: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    upload_status: str | None = None


class DraftAudio(BaseModel):
    audio_id: str | None = None
    file_name: str | None = None
    content_type: str | None = None
    upload_status: str | None = None


class DraftGeneration(BaseModel):
    shot_id: int
    generate_id: str
    audio_id: str | None = None
    status: str | None = None


class DraftSaveRequest(BaseModel):
    status: ProjectStatus | None = None
    video: DraftVideo | None = None
    audio: DraftAudio | None = None
    generation: DraftGeneration | None = None


class GenerateRequest(BaseModel):
    video_id: str = Field(min_length=1)
    audio_id: str | None = None
    duration_seconds: float | None = Field(default=None, gt=0)


class GenerateAccepted(BaseModel):
    project_id: str
    status: str = "processing"
    credits_charged: float = 0.0


# -- credits ------------------------------------------------------------------


class DeductRequest(BaseModel):
    credits_to_deduct: float
    project_id: str | None = None


class RefundRequest(BaseModel):
    amount: float
    project_id: str | None = None
    reason: str | None = None


class BalanceResponse(BaseModel):
    success: bool = True
    credits_remaining: float


class CreditPackageResponse(_Record):
    id: str
    name: str
    price_cents_mxn: int
    credits: float
    minutes_equivalent: float = 0
    features: list[str] = Field(default_factory=list)
    is_best_value: bool = False
    includes_scripts: bool = False


# -- generation ---------------------------------------------------------------


class GenerationStartRequest(BaseModel):
    project_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    shot_id: int
    audio_id: str = Field(min_length=1)


class GenerationStartResponse(BaseModel):
    job: GenerationJobResponse
    generate_id: str


class PollResponse(BaseModel):
    message: str
    processed: int = 0
    completed: int = 0
    failed: int = 0


# -- stripe -------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    package_id: str = Field(min_length=1)


class CheckoutResponse(BaseModel):
    url: str


class WebhookResponse(BaseModel):
    received: bool = True
    already_processed: bool = False


# -- admin --------------------------------------------------------------------


class AdminUserResponse(_Record):
    id: str
    email: str | None = None
    full_name: str | None = None
    created_at: str | None = None
    last_sign_in_at: str | None = None
    credits_remaining: float = 0.0
    banned: bool = False


class PaymentResponse(_Record):
    id: str
    user_id: str
    email: str | None = None
    amount: float
    type: str
    description: str | None = None
    package_id: str | None = None
    package_name: str | None = None
    price_mxn: float | None = None
    stripe_session_id: str | None = None
    created_at: str | None = None


class GrantCreditsRequest(BaseModel):
    user_id: str = Field(min_length=1)
    amount: float


class UserActionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    action: str


# -- integrations -------------------------------------------------------------


class CreateLeadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None
    phone: str | None = None
    source: str | None = None
    user_id: str | None = Field(default=None, alias="userId")


class VideoTransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    supabase_url: str | None = Field(default=None, alias="supabaseUrl")
    lipdub_upload_url: str | None = Field(default=None, alias="lipdubUploadUrl")
    video_id: str | None = Field(default=None, alias="videoId")
    success_url: str | None = Field(default=None, alias="successUrl")
    failure_url: str | None = Field(default=None, alias="failureUrl")


class VideoUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_url: str | None = Field(default=None, alias="videoUrl")
    project_id: str | None = Field(default=None, alias="projectId")
    options: dict[str, Any] = Field(default_factory=dict)


class StoredVideoResponse(BaseModel):
    path: str
    url: str


# -- notifications ------------------------------------------------------------


class NotificationResponse(_Record):
    id: str
    type: str
    title: str
    body: str | None = None
    href: str | None = None
    read_at: str | None = None
    created_at: str | None = None

"""LipDub pass-through and uploads, upload proxies, storage uploads and the CRM lead hook."""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool

from src.api.deps import get_current_user, get_lipdub_client
from src.api.schemas import (
    CreateLeadRequest,
    StoredVideoResponse,
    VideoTransferRequest,
    VideoUrlRequest,
)
from src.crm.close import CloseClient
from src.db.supabase import AuthUser
from src.lipdub import uploads
from src.lipdub.client import LipDubClient
from src.storage import transfer

router = APIRouter(tags=["integrations"])


@router.api_route("/api/lipdub", methods=["GET", "POST", "PUT"])
async def lipdub_proxy(
    request: Request,
    path: str | None = None,
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> Response:
    if not path:
        raise HTTPException(status_code=400, detail='Missing "path" query parameter')
    body = None if request.method in ("GET", "HEAD") else await request.body()
    proxied = await run_in_threadpool(
        lipdub.proxy,
        request.method,
        path,
        body=body,
        content_type=request.headers.get("content-type"),
    )
    return Response(
        content=proxied.text,
        status_code=proxied.status_code,
        media_type=proxied.content_type,
    )


@router.post("/api/lipdub/videos", status_code=201)
async def upload_video_to_lipdub(
    file: UploadFile = File(...),
    project_name: str = Form(uploads.DEFAULT_PROJECT_NAME),
    _user: AuthUser = Depends(get_current_user),
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    data = await file.read()
    upload = await run_in_threadpool(
        uploads.upload_video,
        lipdub,
        file.filename or "video.mp4",
        file.content_type or "video/mp4",
        data,
        project_name=project_name,
    )
    return {
        "video_id": upload.video_id,
        "project_id": upload.project_id,
        "scene_id": upload.scene_id,
        "actor_id": upload.actor_id,
    }


@router.post("/api/lipdub/audio", status_code=201)
async def upload_audio_to_lipdub(
    file: UploadFile = File(...),
    wait: bool = True,
    _user: AuthUser = Depends(get_current_user),
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    """Upload an audio track; with ``wait`` block until LipDub has processed it."""
    data = await file.read()
    upload = await run_in_threadpool(
        uploads.upload_audio, lipdub, file.filename or "audio.mp3", file.content_type, data
    )
    upload_status = "processing"
    if wait:
        await run_in_threadpool(uploads.wait_for_audio, lipdub, upload.audio_id)
        upload_status = "completed"
    return {"audio_id": upload.audio_id, "upload_status": upload_status}


@router.get("/api/lipdub/audio")
def list_audio(
    _user: AuthUser = Depends(get_current_user),
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    return {"audio": lipdub.list_audio()}


@router.get("/api/lipdub/shots")
def list_shots(
    _user: AuthUser = Depends(get_current_user),
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    return {"shots": lipdub.list_shots()}


@router.put("/api/proxy-upload")
async def proxy_upload(request: Request, url: str | None = None) -> dict:
    data = await request.body()
    await run_in_threadpool(
        transfer.proxy_upload, url or "", request.headers.get("content-type"), data
    )
    return {"ok": True}


@router.post("/api/video-transfer")
def video_transfer(
    request: VideoTransferRequest,
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    result = transfer.transfer_video(
        request.supabase_url or "",
        request.lipdub_upload_url or "",
        request.video_id or "",
        success_url=request.success_url,
        lipdub=lipdub,
    )
    return {
        "success": True,
        "videoId": result.video_id,
        "message": "Video transferred successfully",
        "lipdubData": result.lipdub_data,
    }


@router.post("/api/video-upload")
def register_video_url(
    request: VideoUrlRequest,
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    return transfer.register_video_url(
        lipdub, request.video_url or "", request.project_id, request.options
    )


@router.get("/api/video-upload")
def video_processing_status(
    video_id: str | None = Query(default=None, alias="videoId"),
    lipdub: LipDubClient = Depends(get_lipdub_client),
) -> dict:
    if not video_id:
        raise HTTPException(status_code=400, detail='Missing "videoId" query parameter')
    return lipdub.get_video_processing_status(video_id)


@router.post("/api/storage/videos", response_model=StoredVideoResponse, status_code=201)
async def upload_master_video(
    file: UploadFile = File(...),
    user: AuthUser = Depends(get_current_user),
) -> StoredVideoResponse:
    data = await file.read()
    stored = await run_in_threadpool(
        transfer.upload_master_video,
        user.id,
        file.filename or "video",
        file.content_type or "",
        data,
    )
    return StoredVideoResponse(path=stored.path, url=stored.public_url)


@router.post("/api/close/create-lead")
def create_lead(request: CreateLeadRequest) -> dict:
    if not request.email or not request.first_name:
        raise HTTPException(status_code=400, detail="Email and first name are required")
    with CloseClient.from_env() as close:
        lead_id = close.create_lead(
            request.first_name,
            request.email,
            last_name=request.last_name,
            phone=request.phone,
            source=request.source,
            user_id=request.user_id,
        )
    return {"success": True, "closeLeadId": lead_id, "message": "Lead created in Close CRM"}

"""In-app notification inbox."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.deps import get_current_user
from src.api.schemas import NotificationResponse
from src.db import supabase as db
from src.db.supabase import AuthUser

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
def unread(user: AuthUser = Depends(get_current_user)) -> list[NotificationResponse]:
    return [NotificationResponse.model_validate(n) for n in db.list_unread_notifications(user.id)]


@router.post("/read-all")
def read_all(user: AuthUser = Depends(get_current_user)) -> dict:
    db.mark_all_notifications_read(user.id)
    return {"ok": True}


@router.post("/{notification_id}/read")
def read_one(notification_id: str, user: AuthUser = Depends(get_current_user)) -> dict:
    db.mark_notification_read(notification_id, user.id)
    return {"ok": True}

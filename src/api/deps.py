"""FastAPI dependencies: auth, ownership checks and integration clients."""
from __future__ import annotations

from typing import Iterator

from fastapi import Depends, Header, HTTPException

from src.admin.service import is_admin
from src.billing.stripe_checkout import StripeBilling
from src.config.settings import AppConfig
from src.db import supabase as db
from src.db.supabase import AuthUser, ProjectRecord
from src.lipdub.client import LipDubClient
from src.notify.email import EmailSender


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_app_config() -> AppConfig:
    return AppConfig.from_env()


def get_current_user(authorization: str | None = Header(default=None)) -> AuthUser:
    token = bearer_token(authorization)
    user = db.get_auth_user(token) if token else None
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def get_admin_user(
    user: AuthUser = Depends(get_current_user),
    config: AppConfig = Depends(get_app_config),
) -> AuthUser:
    if not is_admin(user.id, config):
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def get_owned_project(project_id: str, user: AuthUser = Depends(get_current_user)) -> ProjectRecord:
    project = db.get_project(project_id)
    if project is None or project.user_id != user.id:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def get_lipdub_client() -> Iterator[LipDubClient]:
    client = LipDubClient.from_env()
    try:
        yield client
    finally:
        client.close()


def get_email_sender() -> EmailSender:
    return EmailSender.from_env()


def get_stripe_billing() -> StripeBilling:
    return StripeBilling.from_env()

"""Admin panel endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from src.admin import service
from src.api.deps import get_admin_user
from src.api.schemas import (
    AdminUserResponse,
    BalanceResponse,
    GrantCreditsRequest,
    PaymentResponse,
    UserActionRequest,
)
from src.db.supabase import AuthUser

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users")
def users(_admin: AuthUser = Depends(get_admin_user)) -> dict:
    return {"users": [AdminUserResponse.model_validate(user) for user in service.list_users()]}


@router.get("/payments")
def payments(_admin: AuthUser = Depends(get_admin_user)) -> dict:
    return {
        "payments": [PaymentResponse.model_validate(payment) for payment in service.list_payments()]
    }


@router.post("/credits", response_model=BalanceResponse)
def grant_credits(
    request: GrantCreditsRequest,
    admin: AuthUser = Depends(get_admin_user),
) -> BalanceResponse:
    balance = service.grant_credits(admin.id, request.user_id, request.amount)
    return BalanceResponse(credits_remaining=balance)


@router.post("/actions")
def user_action(
    request: UserActionRequest,
    admin: AuthUser = Depends(get_admin_user),
) -> dict:
    service.perform_user_action(admin.id, request.user_id, request.action)
    return {"success": True}

"""Credit balance, deduction, refunds and the package catalogue."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.deps import get_current_user
from src.api.schemas import BalanceResponse, CreditPackageResponse, DeductRequest, RefundRequest
from src.credits import ledger
from src.db import billing
from src.db.supabase import AuthUser

router = APIRouter(prefix="/api/credits", tags=["credits"])


@router.post("/deduct", response_model=BalanceResponse)
def deduct(request: DeductRequest, user: AuthUser = Depends(get_current_user)) -> BalanceResponse:
    balance = ledger.deduct_credits(user.id, request.credits_to_deduct, request.project_id)
    return BalanceResponse(credits_remaining=balance)


@router.post("/refund", response_model=BalanceResponse)
def refund(request: RefundRequest, user: AuthUser = Depends(get_current_user)) -> BalanceResponse:
    balance = ledger.refund_credits(user.id, request.amount, request.project_id, request.reason)
    return BalanceResponse(credits_remaining=balance)


@router.get("/balance", response_model=BalanceResponse)
def balance(user: AuthUser = Depends(get_current_user)) -> BalanceResponse:
    return BalanceResponse(credits_remaining=ledger.get_balance(user.id))


@router.get("/packages", response_model=list[CreditPackageResponse])
def packages() -> list[CreditPackageResponse]:
    return [CreditPackageResponse.model_validate(package) for package in billing.list_credit_packages()]

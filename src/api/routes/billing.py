"""Stripe checkout and webhook endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from src.api.deps import get_current_user, get_stripe_billing
from src.api.schemas import CheckoutRequest, CheckoutResponse, WebhookResponse
from src.billing.stripe_checkout import StripeBilling
from src.db.supabase import AuthUser

router = APIRouter(prefix="/api/stripe", tags=["stripe"])


@router.post("/checkout", response_model=CheckoutResponse)
def checkout(
    request: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    stripe_billing: StripeBilling = Depends(get_stripe_billing),
) -> CheckoutResponse:
    return CheckoutResponse(url=stripe_billing.create_checkout_session(user, request.package_id))


@router.post("/webhook", response_model=WebhookResponse)
async def webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    stripe_billing: StripeBilling = Depends(get_stripe_billing),
) -> WebhookResponse:
    payload = await request.body()
    result = await run_in_threadpool(stripe_billing.handle_webhook, payload, stripe_signature)
    return WebhookResponse(already_processed=result.already_processed)

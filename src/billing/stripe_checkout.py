"""Stripe Checkout for credit packages and the fulfilment webhook."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import stripe

from src.config.settings import AppConfig, StripeConfig
from src.credits import ledger
from src.db import billing
from src.db.billing import CreditPackageRecord
from src.db.supabase import AuthUser
from src.utils.logging import get_logger

CURRENCY = "mxn"
COMPLETED_EVENT = "checkout.session.completed"

logger = get_logger(__name__)


class PackageNotFoundError(LookupError):
    """Raised when a credit package is missing or inactive."""


class StripeWebhookError(RuntimeError):
    """Raised when a webhook request can't be accepted."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class WebhookResult:
    event_type: str
    already_processed: bool = False
    credits_added: float | None = None


def package_description(package: CreditPackageRecord) -> str:
    description = f"{package.credits:g} créditos ({package.minutes_equivalent:g} min de contenido)"
    if package.includes_scripts:
        description += " + Acceso a Guiones AI"
    return description


def build_line_item(package: CreditPackageRecord) -> dict[str, Any]:
    """Use the configured Stripe price when there is one, else inline price data."""
    if package.stripe_price_id:
        return {"price": package.stripe_price_id, "quantity": 1}
    return {
        "price_data": {
            "currency": CURRENCY,
            "product_data": {
                "name": package.name,
                "description": package_description(package),
            },
            "unit_amount": package.price_cents_mxn,
        },
        "quantity": 1,
    }


class StripeBilling:
    """Creates checkout sessions and applies completed payments."""

    def __init__(self, config: StripeConfig, app_url: str) -> None:
        self._config = config
        self._app_url = app_url.rstrip("/")

    @classmethod
    def from_env(cls) -> StripeBilling:
        return cls(StripeConfig.from_env(), AppConfig.from_env().app_url)

    def create_checkout_session(self, user: AuthUser, package_id: str) -> str:
        """Create a one-time payment session and return its URL."""
        if not package_id:
            raise ValueError("package_id is required")

        package = billing.get_credit_package(package_id)
        if package is None:
            raise PackageNotFoundError("Package not found")

        session = stripe.checkout.Session.create(
            api_key=self._config.secret_key,
            mode="payment",
            currency=CURRENCY,
            line_items=[build_line_item(package)],
            success_url=(
                f"{self._app_url}/app/subscription?success=true"
                "&session_id={CHECKOUT_SESSION_ID}"
            ),
            cancel_url=f"{self._app_url}/app/subscription?canceled=true",
            metadata={
                "user_id": user.id,
                "package_id": package.id,
                "credits": f"{package.credits:g}",
                "package_name": package.name,
                "includes_scripts": str(package.includes_scripts).lower(),
            },
            customer_email=user.email,
        )
        logger.info("Created checkout session %s for user %s", session.id, user.id)
        return session.url

    def handle_webhook(self, payload: bytes, signature: str | None) -> WebhookResult:
        """
        Verify and apply a Stripe event.

        Only ``checkout.session.completed`` changes state; it adds the
        purchased credits once per session.
        """
        if not signature:
            raise StripeWebhookError("Missing stripe-signature")
        if not self._config.webhook_secret:
            raise StripeWebhookError("STRIPE_WEBHOOK_SECRET not configured", status_code=500)

        try:
            stripe.Webhook.construct_event(payload, signature, self._config.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.error("Stripe webhook verification failed: %s", exc)
            raise StripeWebhookError(str(exc) or "Webhook verification failed") from exc

        event = json.loads(payload)
        event_type = event.get("type", "unknown")
        if event_type != COMPLETED_EVENT:
            return WebhookResult(event_type=event_type)

        session = (event.get("data") or {}).get("object") or {}
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        try:
            credits = float(metadata.get("credits") or 0)
        except ValueError:
            credits = 0.0

        if not user_id or credits <= 0:
            logger.error("Webhook missing metadata: %s", metadata)
            raise StripeWebhookError("Missing metadata")

        try:
            new_balance = ledger.apply_purchase(
                user_id,
                credits,
                session["id"],
                package_id=metadata.get("package_id"),
                package_name=metadata.get("package_name"),
            )
        except ledger.NoActiveSubscriptionError as exc:
            logger.error("No active subscription for user: %s", user_id)
            raise StripeWebhookError("No active subscription", status_code=500) from exc

        if new_balance is None:
            return WebhookResult(event_type=event_type, already_processed=True)
        return WebhookResult(event_type=event_type, credits_added=credits)

"""Credit bookkeeping: deductions, refunds, admin grants and purchases.

Every balance change writes exactly one row to ``credit_transactions`` and the
balance of the active subscription never goes below zero.
"""
from __future__ import annotations

import math

from postgrest.exceptions import APIError

from src.db import billing
from src.db.supabase import get_client
from src.utils.logging import get_logger

CREDITS_PER_MINUTE = 5
MAX_BALANCE_UPDATE_ATTEMPTS = 3

logger = get_logger(__name__)


class CreditError(RuntimeError):
    """Raised when a credit operation cannot be completed."""


class InsufficientCreditsError(CreditError):
    """Raised when the active balance cannot cover a deduction."""

    def __init__(self, remaining: float, needed: float) -> None:
        super().__init__(f"Insufficient credits: {remaining:g} remaining, {needed:g} needed")
        self.remaining = remaining
        self.needed = needed


class NoActiveSubscriptionError(CreditError):
    """Raised when the user has no active subscription to credit or debit."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No active subscription found for user {user_id}")
        self.user_id = user_id


def credits_for_duration(seconds: float) -> float:
    """Price of generating ``seconds`` of video, rounded up to the cent."""
    if seconds <= 0:
        raise ValueError("duration must be > 0")
    cents = math.ceil(round(seconds / 60 * CREDITS_PER_MINUTE * 100, 6))
    return cents / 100


def _positive(amount: float, name: str) -> float:
    if amount is None or isinstance(amount, bool):
        raise ValueError(f"{name} must be a positive number")
    value = float(amount)
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive number")
    return value


def _adjust_balance(user_id: str, delta: float) -> float:
    """Apply ``delta`` to the active subscription with compare-and-set.

    Raises:
        NoActiveSubscriptionError: no active subscription.
        InsufficientCreditsError: a negative delta exceeds the balance.
        CreditError: the balance kept changing underneath us.
    """
    for _ in range(MAX_BALANCE_UPDATE_ATTEMPTS):
        sub = billing.get_active_subscription(user_id)
        if sub is None:
            raise NoActiveSubscriptionError(user_id)

        new_balance = round(sub.credits_remaining + delta, 2)
        if new_balance < 0:
            raise InsufficientCreditsError(sub.credits_remaining, -delta)

        if billing.set_credits_remaining(sub.id, new_balance, expected=sub.credits_remaining):
            return new_balance
        logger.warning("Balance for user %s changed concurrently, retrying", user_id)

    raise CreditError(f"Could not update balance for user {user_id}")


def get_balance(user_id: str) -> float:
    sub = billing.get_active_subscription(user_id)
    return sub.credits_remaining if sub else 0.0


def deduct_credits(user_id: str, amount: float, project_id: str | None = None) -> float:
    """
    Deduct credits for a generation request.

    Uses the ``deduct_credits`` database function when it exists (atomic in
    Postgres) and falls back to a compare-and-set update otherwise.

    Returns:
        The new balance.

    Raises:
        ValueError: amount is not positive.
        InsufficientCreditsError: the balance is too low or there is no
            active subscription.
    """
    amount = _positive(amount, "credits_to_deduct")
    client = get_client()

    try:
        result = client.rpc(
            "deduct_credits", {"p_user_id": user_id, "p_amount": amount}
        ).execute()
    except APIError as exc:
        if "deduct_credits" not in str(exc.message or exc):
            raise CreditError(f"Credit deduction failed: {exc.message or exc}") from exc
        logger.info("deduct_credits RPC unavailable, using fallback update")
        try:
            new_balance = _adjust_balance(user_id, -amount)
        except NoActiveSubscriptionError as no_sub:
            raise InsufficientCreditsError(0.0, amount) from no_sub
    else:
        data = result.data
        if data is None or data is False:
            raise InsufficientCreditsError(get_balance(user_id), amount)
        new_balance = get_balance(user_id) if data is True else float(data)

    billing.record_credit_transaction(
        user_id,
        -amount,
        "deduction",
        project_id=project_id,
        description=f"Deducción de {amount:g} créditos para generación de video",
    )
    logger.info("Deducted %g credits from user %s (balance %g)", amount, user_id, new_balance)
    return new_balance


def refund_credits(
    user_id: str,
    amount: float,
    project_id: str | None = None,
    reason: str | None = None,
) -> float:
    """Give credits back after a failed generation. Returns the new balance."""
    amount = _positive(amount, "amount")
    new_balance = _adjust_balance(user_id, amount)
    billing.record_credit_transaction(
        user_id,
        amount,
        "refund",
        project_id=project_id,
        description=reason or f"Reembolso de {amount:g} créditos",
    )
    logger.info("Refunded %g credits to user %s (balance %g)", amount, user_id, new_balance)
    return new_balance


def grant_credits(user_id: str, amount: float, granted_by: str | None = None) -> float:
    """Admin grant. Returns the new balance."""
    amount = _positive(amount, "amount")
    new_balance = _adjust_balance(user_id, amount)
    billing.record_credit_transaction(
        user_id,
        amount,
        "admin_grant",
        description=f"Admin grant: {amount:g} créditos por {granted_by or 'admin'}",
    )
    return new_balance


def apply_purchase(
    user_id: str,
    credits: float,
    session_id: str,
    *,
    package_id: str | None = None,
    package_name: str | None = None,
) -> float | None:
    """
    Credit a completed Stripe checkout session.

    Idempotent on ``session_id``: returns None when the session was already
    applied, otherwise the new balance.
    """
    credits = _positive(credits, "credits")
    if billing.find_transaction_by_session(session_id) is not None:
        logger.info("Checkout session %s already processed", session_id)
        return None

    new_balance = _adjust_balance(user_id, credits)
    billing.record_credit_transaction(
        user_id,
        credits,
        "purchase",
        stripe_session_id=session_id,
        package_id=package_id,
        description=f"Compra: {package_name or 'Paquete de créditos'} — {credits:g} créditos",
    )
    logger.info("Added %g credits to user %s. New balance: %g", credits, user_id, new_balance)
    return new_balance

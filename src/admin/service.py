"""Admin panel operations: users, payments, credit grants and account actions."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from src.config.settings import AppConfig
from src.credits import ledger
from src.db import billing
from src.db.supabase import get_client
from src.utils.logging import get_logger

UserAction = Literal["ban", "unban", "delete"]

# Supabase has no permanent ban; 100 years.
BAN_DURATION = "876000h"
UNBAN_DURATION = "none"

logger = get_logger(__name__)


class AdminActionError(ValueError):
    """Raised for admin actions that are not allowed."""


@dataclass
class AdminUser:
    id: str
    email: str | None
    full_name: str | None
    created_at: str | None
    last_sign_in_at: str | None
    credits_remaining: float
    banned: bool


@dataclass
class PaymentRecord:
    id: str
    user_id: str
    email: str | None
    amount: float
    type: str
    description: str | None
    package_id: str | None
    package_name: str | None
    price_mxn: float | None
    stripe_session_id: str | None
    created_at: str | None


def is_admin(user_id: str | None, config: AppConfig | None = None) -> bool:
    """Only ADMIN_USER_ID is an admin; when unset nobody is."""
    admin_id = (config or AppConfig.from_env()).admin_user_id
    return bool(admin_id) and user_id == admin_id


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _is_banned(banned_until: Any, now: datetime) -> bool:
    if not banned_until:
        return False
    if isinstance(banned_until, str):
        try:
            banned_until = datetime.fromisoformat(banned_until.replace("Z", "+00:00"))
        except ValueError:
            return False
    if banned_until.tzinfo is None:
        banned_until = banned_until.replace(tzinfo=timezone.utc)
    return banned_until > now


def _list_auth_users() -> list[Any]:
    response = get_client().auth.admin.list_users()
    # Older clients return a response object instead of a list.
    return list(getattr(response, "users", response) or [])


def list_users(now: datetime | None = None) -> list[AdminUser]:
    """Auth users merged with their profile and credit balance."""
    now = now or datetime.now(timezone.utc)
    profiles = {profile.id: profile for profile in billing.list_profiles()}
    balances = {sub.user_id: sub.credits_remaining for sub in billing.list_active_subscriptions()}

    users = []
    for user in _list_auth_users():
        user_id = str(user.id)
        profile = profiles.get(user_id)
        users.append(
            AdminUser(
                id=user_id,
                email=getattr(user, "email", None),
                full_name=profile.full_name if profile else None,
                created_at=_iso(getattr(user, "created_at", None)),
                last_sign_in_at=_iso(getattr(user, "last_sign_in_at", None)),
                credits_remaining=balances.get(user_id, 0.0),
                banned=_is_banned(getattr(user, "banned_until", None), now),
            )
        )
    return users


def list_payments(limit: int = 200) -> list[PaymentRecord]:
    """The most recent credit transactions of every type with buyer email and package price."""
    transactions = billing.list_recent_transactions(limit)
    packages = {package.id: package for package in billing.list_credit_packages(active_only=False)}
    emails = {str(user.id): getattr(user, "email", None) for user in _list_auth_users()}

    payments = []
    for tx in transactions:
        package = packages.get(tx.package_id) if tx.package_id else None
        payments.append(
            PaymentRecord(
                id=tx.id,
                user_id=tx.user_id,
                email=emails.get(tx.user_id),
                amount=tx.amount,
                type=tx.type,
                description=tx.description,
                package_id=tx.package_id,
                package_name=package.name if package else None,
                price_mxn=package.price_cents_mxn / 100 if package else None,
                stripe_session_id=tx.stripe_session_id,
                created_at=tx.created_at,
            )
        )
    return payments


def grant_credits(admin_id: str, user_id: str, amount: float) -> float:
    if not user_id:
        raise ValueError("user_id is required")
    balance = ledger.grant_credits(user_id, amount, granted_by=admin_id)
    logger.info("Admin %s granted %g credits to %s", admin_id, amount, user_id)
    return balance


def perform_user_action(actor_id: str, user_id: str, action: str) -> None:
    """Ban, unban or delete an auth user."""
    if not user_id:
        raise AdminActionError("user_id is required")
    if user_id == actor_id:
        raise AdminActionError("Cannot perform actions on your own account")

    admin_api = get_client().auth.admin
    if action == "ban":
        admin_api.update_user_by_id(user_id, {"ban_duration": BAN_DURATION})
    elif action == "unban":
        admin_api.update_user_by_id(user_id, {"ban_duration": UNBAN_DURATION})
    elif action == "delete":
        admin_api.delete_user(user_id)
    else:
        raise AdminActionError(f"Unknown action: {action}")

    logger.info("Admin %s performed %s on user %s", actor_id, action, user_id)

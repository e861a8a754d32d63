"""Supabase CRUD for subscriptions, credit transactions, packages and profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from src.db.supabase import get_client

TransactionType = Literal["deduction", "refund", "purchase", "admin_grant"]


@dataclass
class SubscriptionRecord:
    """Active subscription holding a user's credit balance."""

    id: str
    user_id: str
    status: str
    credits_remaining: float


@dataclass
class CreditTransactionRecord:
    """Row of the credit audit trail."""

    id: str
    user_id: str
    amount: float
    type: TransactionType
    project_id: str | None = None
    stripe_session_id: str | None = None
    package_id: str | None = None
    description: str | None = None
    created_at: str | None = None


@dataclass
class CreditPackageRecord:
    """Credit package sold through Stripe Checkout."""

    id: str
    name: str
    price_cents_mxn: int
    credits: float
    minutes_equivalent: float = 0
    features: list[str] = field(default_factory=list)
    is_best_value: bool = False
    includes_scripts: bool = False
    stripe_price_id: str | None = None
    active: bool = True
    sort_order: int = 0


@dataclass
class ProfileRecord:
    id: str
    full_name: str | None = None
    avatar_url: str | None = None
    created_at: str | None = None


def _row_to_subscription(row: dict) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row["id"],
        user_id=row.get("user_id", ""),
        status=row.get("status", "active"),
        credits_remaining=float(row.get("credits_remaining") or 0),
    )


def _row_to_transaction(row: dict) -> CreditTransactionRecord:
    return CreditTransactionRecord(
        id=row["id"],
        user_id=row["user_id"],
        amount=float(row["amount"]),
        type=row["type"],
        project_id=row.get("project_id"),
        stripe_session_id=row.get("stripe_session_id"),
        package_id=row.get("package_id"),
        description=row.get("description"),
        created_at=row.get("created_at"),
    )


def _row_to_package(row: dict) -> CreditPackageRecord:
    return CreditPackageRecord(
        id=row["id"],
        name=row["name"],
        price_cents_mxn=int(row["price_cents_mxn"]),
        credits=float(row["credits"]),
        minutes_equivalent=float(row.get("minutes_equivalent") or 0),
        features=list(row.get("features") or []),
        is_best_value=bool(row.get("is_best_value")),
        includes_scripts=bool(row.get("includes_scripts")),
        stripe_price_id=row.get("stripe_price_id"),
        active=bool(row.get("active", True)),
        sort_order=int(row.get("sort_order") or 0),
    )


def _row_to_profile(row: dict) -> ProfileRecord:
    return ProfileRecord(
        id=row["id"],
        full_name=row.get("full_name"),
        avatar_url=row.get("avatar_url"),
        created_at=row.get("created_at"),
    )


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


def get_active_subscription(user_id: str) -> SubscriptionRecord | None:
    """Get the user's active subscription, None if there is none."""
    client = get_client()
    result = (
        client.table("user_subscriptions")
        .select("id, user_id, status, credits_remaining")
        .eq("user_id", user_id)
        .eq("status", "active")
        .limit(1)
        .execute()
    )
    if not result.data:
        return None
    return _row_to_subscription(result.data[0])


def set_credits_remaining(
    subscription_id: str,
    balance: float,
    *,
    expected: float | None = None,
) -> bool:
    """Overwrite the balance of an active subscription.

    When ``expected`` is given the update only applies if the stored balance
    still equals it (compare-and-set).

    Returns:
        True if a row was updated.

    Raises:
        ValueError: If balance is negative.
    """
    if balance < 0:
        raise ValueError("Credit balance cannot be negative")

    client = get_client()
    query = (
        client.table("user_subscriptions")
        .update({"credits_remaining": balance})
        .eq("id", subscription_id)
        .eq("status", "active")
    )
    if expected is not None:
        query = query.eq("credits_remaining", expected)
    result = query.execute()
    return bool(result.data)


def list_active_subscriptions() -> list[SubscriptionRecord]:
    client = get_client()
    result = (
        client.table("user_subscriptions")
        .select("id, user_id, status, credits_remaining")
        .eq("status", "active")
        .execute()
    )
    return [_row_to_subscription(row) for row in result.data or []]


# ---------------------------------------------------------------------------
# Credit transactions
# ---------------------------------------------------------------------------


def record_credit_transaction(
    user_id: str,
    amount: float,
    transaction_type: TransactionType,
    *,
    description: str | None = None,
    project_id: str | None = None,
    stripe_session_id: str | None = None,
    package_id: str | None = None,
) -> None:
    client = get_client()
    client.table("credit_transactions").insert(
        {
            "user_id": user_id,
            "amount": amount,
            "type": transaction_type,
            "description": description,
            "project_id": project_id,
            "stripe_session_id": stripe_session_id,
            "package_id": package_id,
        }
    ).execute()


def find_transaction_by_session(session_id: str) -> CreditTransactionRecord | None:
    client = get_client()
    result = (
        client.table("credit_transactions")
        .select("*")
        .eq("stripe_session_id", session_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        return None
    return _row_to_transaction(result.data[0])


def list_recent_transactions(limit: int = 200) -> list[CreditTransactionRecord]:
    client = get_client()
    result = (
        client.table("credit_transactions")
        .select(
            "id, user_id, amount, type, project_id, stripe_session_id, package_id, "
            "description, created_at"
        )
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return [_row_to_transaction(row) for row in result.data or []]


# ---------------------------------------------------------------------------
# Credit packages and profiles
# ---------------------------------------------------------------------------


def list_credit_packages(*, active_only: bool = True) -> list[CreditPackageRecord]:
    client = get_client()
    query = client.table("credit_packages").select("*")
    if active_only:
        query = query.eq("active", True)
    result = query.order("sort_order", desc=False).execute()
    return [_row_to_package(row) for row in result.data or []]


def get_credit_package(package_id: str, *, active_only: bool = True) -> CreditPackageRecord | None:
    client = get_client()
    query = client.table("credit_packages").select("*").eq("id", package_id)
    if active_only:
        query = query.eq("active", True)
    result = query.execute()
    if not result.data:
        return None
    return _row_to_package(result.data[0])


def list_profiles() -> list[ProfileRecord]:
    client = get_client()
    result = client.table("profiles").select("id, full_name, avatar_url, created_at").execute()
    return [_row_to_profile(row) for row in result.data or []]

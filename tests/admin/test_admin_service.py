from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from src.admin import service
from src.admin.service import AdminActionError
from src.config.settings import AppConfig
from src.db.billing import (
    CreditPackageRecord,
    CreditTransactionRecord,
    ProfileRecord,
    SubscriptionRecord,
)

NOW = datetime(2026, 1, 27, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_client(monkeypatch) -> MagicMock:
    client = MagicMock()
    client.auth.admin.list_users.return_value = [
        SimpleNamespace(
            id="user-1",
            email="ana@example.com",
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            last_sign_in_at=None,
            banned_until=None,
        ),
        SimpleNamespace(
            id="user-2",
            email="beto@example.com",
            created_at="2026-01-02T00:00:00Z",
            last_sign_in_at="2026-01-20T00:00:00Z",
            banned_until="2126-01-01T00:00:00Z",
        ),
    ]
    monkeypatch.setattr(service, "get_client", lambda: client)
    return client


def test_is_admin() -> None:
    config = AppConfig(admin_user_id="admin-1")

    assert service.is_admin("admin-1", config) is True
    assert service.is_admin("user-1", config) is False
    assert service.is_admin("admin-1", AppConfig(admin_user_id=None)) is False
    assert service.is_admin(None, AppConfig(admin_user_id=None)) is False


def test_list_users_merges_profiles_and_balances(fake_client, monkeypatch) -> None:
    monkeypatch.setattr(
        service.billing, "list_profiles", lambda: [ProfileRecord(id="user-1", full_name="Ana López")]
    )
    monkeypatch.setattr(
        service.billing,
        "list_active_subscriptions",
        lambda: [SubscriptionRecord(id="sub-1", user_id="user-1", status="active", credits_remaining=42.5)],
    )

    users = service.list_users(now=NOW)

    ana, beto = users
    assert ana.full_name == "Ana López"
    assert ana.credits_remaining == 42.5
    assert ana.created_at == "2026-01-01T00:00:00+00:00"
    assert ana.banned is False
    assert beto.full_name is None
    assert beto.credits_remaining == 0.0
    assert beto.banned is True


def test_list_payments_keeps_type_and_description(fake_client, monkeypatch) -> None:
    monkeypatch.setattr(
        service.billing,
        "list_recent_transactions",
        lambda limit: [
            CreditTransactionRecord(
                id="tx-1",
                user_id="user-1",
                amount=100,
                type="purchase",
                package_id="pkg-1",
                stripe_session_id="cs_1",
                description="Compra: Pro",
            ),
            CreditTransactionRecord(id="tx-2", user_id="user-9", amount=-5, type="deduction", project_id="proj-1"),
        ],
    )
    monkeypatch.setattr(
        service.billing,
        "list_credit_packages",
        lambda active_only: [CreditPackageRecord(id="pkg-1", name="Pro", price_cents_mxn=99900, credits=100)],
    )

    purchase, deduction = service.list_payments()

    assert purchase.email == "ana@example.com"
    assert purchase.package_name == "Pro"
    assert purchase.price_mxn == 999.0
    assert purchase.type == "purchase"
    assert purchase.description == "Compra: Pro"
    assert deduction.type == "deduction"
    assert deduction.amount == -5
    assert deduction.email is None
    assert deduction.price_mxn is None


def test_grant_credits_goes_through_ledger(monkeypatch) -> None:
    grant = MagicMock(return_value=15.0)
    monkeypatch.setattr(service.ledger, "grant_credits", grant)

    assert service.grant_credits("admin-1", "user-1", 5) == 15.0
    grant.assert_called_once_with("user-1", 5, granted_by="admin-1")


@pytest.mark.parametrize(
    ("action", "method", "args"),
    [
        ("ban", "update_user_by_id", ("user-1", {"ban_duration": "876000h"})),
        ("unban", "update_user_by_id", ("user-1", {"ban_duration": "none"})),
        ("delete", "delete_user", ("user-1",)),
    ],
)
def test_perform_user_action(fake_client, action, method, args) -> None:
    service.perform_user_action("admin-1", "user-1", action)

    getattr(fake_client.auth.admin, method).assert_called_once_with(*args)


def test_cannot_act_on_own_account(fake_client) -> None:
    with pytest.raises(AdminActionError, match="own account"):
        service.perform_user_action("admin-1", "admin-1", "ban")

    fake_client.auth.admin.update_user_by_id.assert_not_called()


def test_unknown_action(fake_client) -> None:
    with pytest.raises(AdminActionError, match="Unknown action"):
        service.perform_user_action("admin-1", "user-1", "promote")

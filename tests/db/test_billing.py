"""Unit tests for billing CRUD operations."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from src.db.billing import (
    _row_to_package,
    find_transaction_by_session,
    get_active_subscription,
    list_credit_packages,
    record_credit_transaction,
    set_credits_remaining,
)


def test_row_to_package_converts_correctly() -> None:
    row = {
        "id": "pkg-1",
        "name": "Starter",
        "price_cents_mxn": 49900,
        "credits": "50",
        "minutes_equivalent": 10,
        "features": None,
        "includes_scripts": True,
    }
    package = _row_to_package(row)

    assert package.credits == 50.0
    assert package.features == []
    assert package.includes_scripts is True
    assert package.stripe_price_id is None


@patch("src.db.billing.get_client")
def test_get_active_subscription_returns_none_when_missing(mock_get_client: MagicMock) -> None:
    mock_client = MagicMock()
    mock_get_client.return_value = mock_client
    chain = mock_client.table.return_value.select.return_value.eq.return_value.eq.return_value
    chain.limit.return_value.execute.return_value.data = []

    assert get_active_subscription("user-1") is None


@patch("src.db.billing.get_client")
def test_get_active_subscription_reads_balance(mock_get_client: MagicMock) -> None:
    mock_client = MagicMock()
    mock_get_client.return_value = mock_client
    chain = mock_client.table.return_value.select.return_value.eq.return_value.eq.return_value
    chain.limit.return_value.execute.return_value.data = [
        {"id": "sub-1", "user_id": "user-1", "status": "active", "credits_remaining": "12.5"}
    ]

    sub = get_active_subscription("user-1")

    assert sub is not None
    assert sub.credits_remaining == 12.5
    mock_client.table.assert_called_with("user_subscriptions")


def test_set_credits_remaining_rejects_negative_balance() -> None:
    """Test that set_credits_remaining raises ValueError for negative balance."""
    with pytest.raises(ValueError, match="cannot be negative"):
        set_credits_remaining("sub-1", -1)


@patch("src.db.billing.get_client")
def test_set_credits_remaining_compare_and_set(mock_get_client: MagicMock) -> None:
    mock_client = MagicMock()
    mock_get_client.return_value = mock_client
    by_status = mock_client.table.return_value.update.return_value.eq.return_value.eq.return_value
    by_status.eq.return_value.execute.return_value.data = []

    updated = set_credits_remaining("sub-1", 5.0, expected=10.0)

    assert updated is False
    by_status.eq.assert_called_with("credits_remaining", 10.0)


@patch("src.db.billing.get_client")
def test_record_credit_transaction_inserts_row(mock_get_client: MagicMock) -> None:
    mock_client = MagicMock()
    mock_get_client.return_value = mock_client

    record_credit_transaction("user-1", -5, "deduction", project_id="proj-1", description="d")

    mock_client.table.assert_called_with("credit_transactions")
    payload = mock_client.table.return_value.insert.call_args.args[0]
    assert payload["amount"] == -5
    assert payload["type"] == "deduction"
    assert payload["project_id"] == "proj-1"
    assert payload["stripe_session_id"] is None


@patch("src.db.billing.get_client")
def test_find_transaction_by_session(mock_get_client: MagicMock) -> None:
    mock_client = MagicMock()
    mock_get_client.return_value = mock_client
    chain = mock_client.table.return_value.select.return_value.eq.return_value
    chain.limit.return_value.execute.return_value.data = [
        {"id": "tx-1", "user_id": "user-1", "amount": 50, "type": "purchase", "stripe_session_id": "cs_1"}
    ]

    tx = find_transaction_by_session("cs_1")

    assert tx is not None and tx.type == "purchase"
    mock_client.table.return_value.select.return_value.eq.assert_called_with("stripe_session_id", "cs_1")


@patch("src.db.billing.get_client")
def test_list_credit_packages_active_sorted(mock_get_client: MagicMock) -> None:
    mock_client = MagicMock()
    mock_get_client.return_value = mock_client
    active = mock_client.table.return_value.select.return_value.eq.return_value
    active.order.return_value.execute.return_value.data = [
        {"id": "pkg-1", "name": "Starter", "price_cents_mxn": 100, "credits": 10},
    ]

    packages = list_credit_packages()

    assert [p.id for p in packages] == ["pkg-1"]
    mock_client.table.return_value.select.return_value.eq.assert_called_with("active", True)
    active.order.assert_called_with("sort_order", desc=False)

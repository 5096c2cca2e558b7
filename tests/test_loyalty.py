import asyncio
from unittest.mock import AsyncMock

import pytest

from jewelbill.schemas.customer import CustomerRecord
from jewelbill.schemas.loyalty import LoyaltySettings
from jewelbill.services.exceptions import (
    DownstreamServiceError,
    LoyaltyBalanceConflictError,
)
from jewelbill.services.loyalty import LoyaltyLedgerAdjuster, calculate_points_earned
from jewelbill.services.mock_store import DEMO_SHOP_ID, get_mock_store


CUSTOMER_ID = "c0ffee00-0000-4000-8000-000000000001"
OTHER_SHOP_ID = "11111111-2222-4333-8444-555555555555"


def _add_customer(balance: int, shop_id: str = DEMO_SHOP_ID) -> None:
    get_mock_store().customers.add(
        CustomerRecord(
            id=CUSTOMER_ID,
            shop_id=shop_id,
            name="Meera",
            phone="9876543210",
            loyalty_points=balance,
        )
    )


def _balance() -> int:
    return asyncio.run(get_mock_store().customers.get_loyalty_balance(CUSTOMER_ID))


def _ledger():
    return asyncio.run(get_mock_store().loyalty_ledger.list(CUSTOMER_ID))


def _apply(adjuster, grand_total: float, requested: int = 0, invoice_id: str = "inv-1", shop_id: str = DEMO_SHOP_ID):
    return asyncio.run(
        adjuster.apply(
            shop_id=shop_id,
            customer_id=CUSTOMER_ID,
            invoice_id=invoice_id,
            invoice_number="INV-00001",
            grand_total=grand_total,
            points_requested=requested,
        )
    )


def test_points_earned_are_floored() -> None:
    flat = LoyaltySettings(shop_id=DEMO_SHOP_ID, is_enabled=True, flat_points_ratio=0.01)
    percentage = LoyaltySettings(
        shop_id=DEMO_SHOP_ID, is_enabled=True, earning_type="percentage", percentage_back=2.5
    )

    assert calculate_points_earned(999, flat) == 9
    assert calculate_points_earned(1000, flat) == 10
    assert calculate_points_earned(1234.56, percentage) == 30
    assert calculate_points_earned(0, flat) == 0
    assert calculate_points_earned(5000, None) == 0


def test_points_earned_without_ratio_is_zero() -> None:
    settings = LoyaltySettings(shop_id=DEMO_SHOP_ID, is_enabled=True, earning_type="percentage")

    assert calculate_points_earned(5000, settings) == 0


def test_earned_points_are_added_and_logged(mock_client) -> None:
    _add_customer(0)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 5000)

    assert outcome.status == "applied"
    assert outcome.points_earned == 50
    assert outcome.balance_before == 0
    assert outcome.balance_after == 50
    assert _balance() == 50

    entries = _ledger()
    assert len(entries) == 1
    assert entries[0].points_change == 50
    assert entries[0].invoice_id == "inv-1"
    assert entries[0].reason == "Invoice INV-00001 - Earned: 50, Redeemed: 0"


def test_redemption_is_netted_against_earned_points(mock_client) -> None:
    _add_customer(200)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 5000, requested=150)

    assert outcome.status == "applied"
    assert outcome.points_redeemed == 150
    assert _balance() == 100
    assert _ledger()[0].points_change == -100


def test_redemption_above_balance_falls_back_to_earned_points(mock_client) -> None:
    _add_customer(100)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 5000, requested=150)

    assert outcome.status == "corrected"
    assert outcome.points_requested == 150
    assert outcome.points_redeemed == 0
    assert _balance() == 150

    entry = _ledger()[0]
    assert entry.points_change == 50
    assert "corrected" in entry.reason
    assert "150" in entry.reason


def test_correction_with_nothing_earned_is_still_logged(mock_client) -> None:
    _add_customer(100)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 50, requested=150)

    assert outcome.status == "corrected"
    assert outcome.points_earned == 0
    assert outcome.balance_after == 100
    assert _balance() == 100

    entries = _ledger()
    assert len(entries) == 1
    assert entries[0].points_change == 0
    assert "corrected" in entries[0].reason
    assert _apply(adjuster, 50, requested=150).status == "skipped"


def test_redemption_below_minimum_is_dropped(mock_client) -> None:
    _add_customer(500)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 5000, requested=50)

    assert outcome.status == "applied"
    assert outcome.points_requested == 50
    assert outcome.points_redeemed == 0
    assert "minimum 100" in outcome.reason
    assert _balance() == 550


def test_redemption_is_dropped_when_disabled(mock_client) -> None:
    store = get_mock_store()
    store.loyalty_settings._settings[DEMO_SHOP_ID].redemption_enabled = False
    _add_customer(500)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 5000, requested=200)

    assert outcome.points_redeemed == 0
    assert _balance() == 550


def test_zero_net_change_writes_nothing(mock_client) -> None:
    _add_customer(300)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 10000, requested=100)

    assert outcome.status == "skipped"
    assert outcome.points_earned == 100
    assert _balance() == 300
    assert _ledger() == []


def test_disabled_programme_is_a_no_op(mock_client) -> None:
    _add_customer(40, shop_id=OTHER_SHOP_ID)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    outcome = _apply(adjuster, 5000, requested=10, shop_id=OTHER_SHOP_ID)

    assert outcome.status == "skipped"
    assert outcome.points_requested == 10
    assert _balance() == 40
    assert _ledger() == []


def test_loyalty_is_applied_once_per_invoice(mock_client) -> None:
    _add_customer(0)
    adjuster = LoyaltyLedgerAdjuster(mock_client)

    first = _apply(adjuster, 5000)
    second = _apply(adjuster, 5000)

    assert first.status == "applied"
    assert second.status == "skipped"
    assert _balance() == 50
    assert len(_ledger()) == 1


class RacingCustomers:
    """Customer repository where another writer lands before the first update."""

    def __init__(self, inner, bump: int = 10) -> None:
        self._inner = inner
        self._bump = bump
        self.cas_calls = 0

    async def get_loyalty_balance(self, customer_id: str) -> int:
        return await self._inner.get_loyalty_balance(customer_id)

    async def compare_and_set_loyalty_balance(self, customer_id, expected, new_balance) -> bool:
        self.cas_calls += 1
        if self.cas_calls == 1:
            await self._inner.compare_and_set_loyalty_balance(
                customer_id, expected, expected + self._bump
            )
        return await self._inner.compare_and_set_loyalty_balance(
            customer_id, expected, new_balance
        )


def test_concurrent_balance_change_is_retried(mock_client) -> None:
    _add_customer(100)
    customers = RacingCustomers(get_mock_store().customers)
    adjuster = LoyaltyLedgerAdjuster(mock_client, customer_repository=customers)

    outcome = _apply(adjuster, 5000)

    assert customers.cas_calls == 2
    assert outcome.balance_before == 110
    assert _balance() == 160


def test_balance_that_keeps_changing_raises_conflict(mock_client) -> None:
    _add_customer(100)
    customers = AsyncMock()
    customers.get_loyalty_balance.return_value = 100
    customers.compare_and_set_loyalty_balance.return_value = False
    adjuster = LoyaltyLedgerAdjuster(
        mock_client, customer_repository=customers, max_attempts=2
    )

    with pytest.raises(LoyaltyBalanceConflictError):
        _apply(adjuster, 5000)

    assert customers.compare_and_set_loyalty_balance.await_count == 2
    assert _ledger() == []


def test_ledger_write_failure_keeps_balance_update(mock_client) -> None:
    _add_customer(0)
    ledger = AsyncMock()
    ledger.exists_for_invoice.return_value = False
    ledger.append.side_effect = DownstreamServiceError("insert failed", status_code=500)
    adjuster = LoyaltyLedgerAdjuster(mock_client, ledger_repository=ledger)

    outcome = _apply(adjuster, 5000)

    assert outcome.status == "applied"
    assert _balance() == 50
    ledger.append.assert_awaited_once()


def test_balance_read_failure_propagates(mock_client) -> None:
    customers = AsyncMock()
    customers.get_loyalty_balance.side_effect = DownstreamServiceError(
        "customers unavailable", status_code=503
    )
    adjuster = LoyaltyLedgerAdjuster(mock_client, customer_repository=customers)

    with pytest.raises(DownstreamServiceError):
        _apply(adjuster, 5000)

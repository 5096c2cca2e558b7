from __future__ import annotations

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import List, Optional

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.loyalty import LoyaltyLedgerEntry, LoyaltyOutcome, LoyaltySettings
from jewelbill.services.exceptions import LoyaltyBalanceConflictError
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import (
    CustomerRepository,
    LoyaltyLedgerRepository,
    LoyaltySettingsRepository,
)
from jewelbill.services.supabase_store import (
    SupabaseCustomerRepository,
    SupabaseLoyaltyLedgerRepository,
    SupabaseLoyaltySettingsRepository,
)

logger = logging.getLogger(__name__)


def calculate_points_earned(grand_total: float, settings: Optional[LoyaltySettings]) -> int:
    """Points earned on ``grand_total``, always rounded down."""

    if settings is None or grand_total <= 0:
        return 0
    total = Decimal(str(grand_total))
    if settings.earning_type == "flat" and settings.flat_points_ratio:
        raw = total * Decimal(str(settings.flat_points_ratio))
    elif settings.earning_type == "percentage" and settings.percentage_back:
        raw = total * Decimal(str(settings.percentage_back)) / Decimal(100)
    else:
        return 0
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


class LoyaltyLedgerAdjuster:
    """Applies the net loyalty change for one committed invoice.

    Policy violations (redemption below the shop minimum, redemption larger
    than the balance) never fail the invoice: they fall back to a smaller
    change and are reported through the returned :class:`LoyaltyOutcome`.
    Errors while writing the balance propagate; errors while appending the
    ledger entry are logged and ignored.
    """

    def __init__(
        self,
        client: SupabaseClient,
        *,
        settings_repository: LoyaltySettingsRepository | None = None,
        customer_repository: CustomerRepository | None = None,
        ledger_repository: LoyaltyLedgerRepository | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._client = client
        self._max_attempts = max(1, max_attempts)
        if self._client.use_mock_data:
            store = get_mock_store()
            self._settings = settings_repository or store.loyalty_settings
            self._customers = customer_repository or store.customers
            self._ledger = ledger_repository or store.loyalty_ledger
        else:
            self._settings = settings_repository or SupabaseLoyaltySettingsRepository(client)
            self._customers = customer_repository or SupabaseCustomerRepository(client)
            self._ledger = ledger_repository or SupabaseLoyaltyLedgerRepository(client)

    async def apply(
        self,
        *,
        shop_id: str,
        customer_id: str,
        invoice_id: str,
        invoice_number: str,
        grand_total: float,
        points_requested: int = 0,
    ) -> LoyaltyOutcome:
        requested = max(0, int(points_requested or 0))

        settings = await self._settings.get(shop_id)
        if settings is None or not settings.is_enabled:
            return LoyaltyOutcome(
                status="skipped",
                reason="Loyalty programme is disabled for this shop",
                points_requested=requested,
            )

        if await self._ledger.exists_for_invoice(invoice_id):
            logger.warning("Loyalty already applied for invoice %s; skipping", invoice_id)
            return LoyaltyOutcome(
                status="skipped",
                reason=f"Loyalty already applied for invoice {invoice_number}",
                points_requested=requested,
            )

        earned = calculate_points_earned(grand_total, settings)
        redeemed = requested
        notes: List[str] = []

        if redeemed and not settings.redemption_enabled:
            logger.warning(
                "Redemption of %s points ignored on invoice %s: redemption disabled",
                redeemed,
                invoice_number,
            )
            notes.append(f"redemption of {redeemed} ignored (redemption disabled)")
            redeemed = 0
        elif redeemed and settings.min_points_required and redeemed < settings.min_points_required:
            logger.warning(
                "Redemption of %s points ignored on invoice %s: below minimum %s",
                redeemed,
                invoice_number,
                settings.min_points_required,
            )
            notes.append(
                f"redemption of {redeemed} ignored (minimum {settings.min_points_required})"
            )
            redeemed = 0

        if earned - redeemed == 0:
            return LoyaltyOutcome(
                status="skipped",
                reason="; ".join(["No net points change", *notes]),
                points_earned=earned,
                points_requested=requested,
                points_redeemed=redeemed,
            )

        for attempt in range(1, self._max_attempts + 1):
            current = await self._customers.get_loyalty_balance(customer_id)
            if redeemed > current:
                logger.error(
                    "Loyalty integrity violation on invoice %s: customer %s redeeming %s "
                    "with balance %s; applying earned points only",
                    invoice_number,
                    customer_id,
                    redeemed,
                    current,
                )
                status = "corrected"
                applied_redemption = 0
                reason = (
                    f"Invoice {invoice_number} - Earned: {earned}, "
                    f"Redemption of {redeemed} rejected (balance {current}) - corrected"
                )
            else:
                status = "applied"
                applied_redemption = redeemed
                reason = (
                    f"Invoice {invoice_number} - Earned: {earned}, Redeemed: {redeemed}"
                )

            delta = earned - applied_redemption
            new_balance = current + delta
            # A correction with nothing earned leaves the balance alone but is still logged.
            if delta == 0 or await self._customers.compare_and_set_loyalty_balance(
                customer_id, current, new_balance
            ):
                break
            logger.warning(
                "Loyalty balance of customer %s changed during update (attempt %s/%s)",
                customer_id,
                attempt,
                self._max_attempts,
            )
        else:
            raise LoyaltyBalanceConflictError(
                f"Loyalty balance of customer {customer_id} kept changing; "
                f"gave up after {self._max_attempts} attempts"
            )

        await self._append_ledger_entry(
            LoyaltyLedgerEntry(
                customer_id=customer_id,
                shop_id=shop_id,
                invoice_id=invoice_id,
                points_change=delta,
                reason=reason,
            )
        )
        logger.info(
            "Loyalty %s for customer %s: %s -> %s", status, customer_id, current, new_balance
        )
        return LoyaltyOutcome(
            status=status,
            reason="; ".join([reason, *notes]),
            points_earned=earned,
            points_requested=requested,
            points_redeemed=applied_redemption,
            balance_before=current,
            balance_after=new_balance,
        )

    async def _append_ledger_entry(self, entry: LoyaltyLedgerEntry) -> None:
        try:
            await self._ledger.append(entry)
        except Exception:
            logger.exception(
                "Failed to write loyalty ledger entry for invoice %s", entry.invoice_id
            )

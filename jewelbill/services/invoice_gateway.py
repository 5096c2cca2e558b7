from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.customer import CustomerSnapshot
from jewelbill.schemas.invoice import PersistedInvoice
from jewelbill.services.exceptions import (
    CreateInvoiceFailedError,
    DuplicateInvoiceNumberError,
)
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import InvoicePersistenceError, InvoiceRepository
from jewelbill.services.supabase_store import SupabaseInvoiceRepository

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
INVOICE_NUMBER_CONSTRAINT = "unique_invoice_number_per_shop"


def is_duplicate_invoice_number(error: InvoicePersistenceError) -> bool:
    return error.code == UNIQUE_VIOLATION or INVOICE_NUMBER_CONSTRAINT in str(error)


class InvoicePersistenceGateway:
    """Single entry point to the atomic invoice-creation procedure.

    The procedure assigns the invoice number, prices the items, applies the
    discount and inserts header and items together. Its ``grand_total`` is
    the only total later steps may rely on.
    """

    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: InvoiceRepository | None = None,
    ) -> None:
        self._client = client
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().invoices
        else:
            self._repository = repository or SupabaseInvoiceRepository(client)

    async def create(
        self,
        *,
        shop_id: str,
        customer_id: Optional[str],
        snapshot: CustomerSnapshot,
        items: List[Dict[str, Any]],
        discount: float,
        notes: Optional[str],
        user_id: str,
        status: str,
        invoice_number: Optional[str] = None,
    ) -> PersistedInvoice:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
        try:
            return await self._repository.create_with_items(
                shop_id=shop_id,
                customer_id=customer_id,
                snapshot=snapshot,
                items=items,
                discount=discount,
                notes=notes,
                user_id=user_id,
                status=status,
                invoice_number=invoice_number,
            )
        except InvoicePersistenceError as exc:
            logger.error("Create invoice failed for shop %s: %s (code=%s)", shop_id, exc, exc.code)
            if is_duplicate_invoice_number(exc):
                raise DuplicateInvoiceNumberError(
                    "Invoice number already exists for this shop. Please use a different number.",
                    cause=exc,
                ) from exc
            raise CreateInvoiceFailedError(
                f"Failed to create invoice: {exc}", cause=exc
            ) from exc
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while creating invoice")
            raise CreateInvoiceFailedError(
                f"Failed to create invoice: {exc}", cause=exc
            ) from exc

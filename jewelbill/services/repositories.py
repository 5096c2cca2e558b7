"""Storage interfaces consumed by the invoicing services.

Two adapters implement every protocol here: the in-memory store in
:mod:`jewelbill.services.mock_store` and the PostgREST-backed store in
:mod:`jewelbill.services.supabase_store`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from jewelbill.schemas.audit import AuditLogEntry
from jewelbill.schemas.customer import CustomerRecord, CustomerSnapshot
from jewelbill.schemas.loyalty import LoyaltyLedgerEntry, LoyaltySettings
from jewelbill.schemas.invoice import PersistedInvoice
from jewelbill.schemas.subscription import Plan, ShopUsage


class InvoicePersistenceError(Exception):
    """Structured error reported by the invoice-creation procedure."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class AuthRepository(Protocol):
    async def get_user_id(self, access_token: str) -> Optional[str]:
        """Return the user id for a valid access token."""


class ShopRoleRepository(Protocol):
    async def get_role(self, user_id: str, shop_id: str) -> Optional[str]:
        """Return the user's active role in the shop, if any."""


class RateLimitRepository(Protocol):
    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        """Count one request against ``key`` and report whether it is allowed."""


class SubscriptionRepository(Protocol):
    async def get_plan_and_usage(self, shop_id: str) -> tuple[Plan, ShopUsage]:
        ...


class CustomerRepository(Protocol):
    async def find_by_phone(self, shop_id: str, phone: str) -> Optional[CustomerRecord]:
        ...

    async def update_profile(self, customer_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def create(
        self, shop_id: str, user_id: str, snapshot: CustomerSnapshot
    ) -> str:
        ...

    async def get_loyalty_balance(self, customer_id: str) -> int:
        ...

    async def compare_and_set_loyalty_balance(
        self, customer_id: str, expected: int, new_balance: int
    ) -> bool:
        """Write ``new_balance`` only if the stored balance still equals ``expected``."""


class InvoiceRepository(Protocol):
    async def create_with_items(
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
        invoice_number: Optional[str],
    ) -> PersistedInvoice:
        """Atomically insert header and items; raise InvoicePersistenceError on failure."""


class LoyaltySettingsRepository(Protocol):
    async def get(self, shop_id: str) -> Optional[LoyaltySettings]:
        ...

    async def upsert(self, settings: LoyaltySettings) -> LoyaltySettings:
        ...


class LoyaltyLedgerRepository(Protocol):
    async def exists_for_invoice(self, invoice_id: str) -> bool:
        ...

    async def append(self, entry: LoyaltyLedgerEntry) -> LoyaltyLedgerEntry:
        ...


class AuditLogRepository(Protocol):
    async def insert(self, entry: AuditLogEntry) -> None:
        ...


class CacheRepository(Protocol):
    async def invalidate(self, path: str) -> None:
        ...

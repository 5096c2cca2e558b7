from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, DefaultDict, Deque, Dict, List, Optional, Set, Tuple

from jewelbill.schemas.audit import AuditLogEntry
from jewelbill.schemas.customer import CustomerRecord, CustomerSnapshot
from jewelbill.schemas.invoice import PersistedInvoice
from jewelbill.schemas.loyalty import LoyaltyLedgerEntry, LoyaltySettings
from jewelbill.schemas.subscription import (
    DEFAULT_FREE_PLAN,
    USAGE_COUNTERS,
    Plan,
    ShopUsage,
)
from jewelbill.services.repositories import InvoicePersistenceError

DEMO_SHOP_ID = "7d3f6a52-2f8e-4c1b-9a0e-5b6c1d2e3f40"
DEMO_OWNER_ID = "0b7e9f4c-6a1d-4e2b-8c3f-1a2b3c4d5e6f"
DEMO_OWNER_TOKEN = "demo-owner-token"

UNIQUE_VIOLATION = "23505"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _period_start() -> str:
    now = datetime.now(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc).isoformat()


class _BaseRepository:
    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):05d}"


class AuthRepository:
    def __init__(self) -> None:
        self._tokens: Dict[str, str] = {}

    def register(self, access_token: str, user_id: str) -> None:
        self._tokens[access_token] = user_id

    async def get_user_id(self, access_token: str) -> Optional[str]:
        return self._tokens.get(access_token)


class ShopRoleRepository:
    def __init__(self) -> None:
        self._roles: Dict[Tuple[str, str], Tuple[str, bool]] = {}

    def assign(self, user_id: str, shop_id: str, role: str, *, is_active: bool = True) -> None:
        self._roles[(user_id, shop_id)] = (role, is_active)

    async def get_role(self, user_id: str, shop_id: str) -> Optional[str]:
        entry = self._roles.get((user_id, shop_id))
        if entry is None:
            return None
        role, is_active = entry
        return role if is_active else None


class RateLimitRepository:
    """Sliding-window request counter kept in process memory."""

    def __init__(self) -> None:
        self._hits: DefaultDict[str, Deque[float]] = defaultdict(deque)

    def _evict_idle(self, now: float, window_seconds: int) -> None:
        idle = [
            key for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= window_seconds
        ]
        for key in idle:
            del self._hits[key]

    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.monotonic()
        self._evict_idle(now, window_seconds)
        hits = self._hits[key]
        while hits and now - hits[0] >= window_seconds:
            hits.popleft()
        if len(hits) >= limit:
            return False
        hits.append(now)
        return True


class SubscriptionRepository:
    def __init__(self) -> None:
        self._plans: Dict[str, Plan] = {}
        self._usage: Dict[str, ShopUsage] = {}

    def set_plan(self, shop_id: str, plan: Plan) -> None:
        self._plans[shop_id] = plan

    def _usage_for(self, shop_id: str) -> ShopUsage:
        usage = self._usage.get(shop_id)
        if usage is None:
            usage = ShopUsage(shop_id=shop_id, period_start=_period_start())
            self._usage[shop_id] = usage
        return usage

    def record_usage(self, shop_id: str, metric: str, delta: int = 1) -> None:
        usage = self._usage_for(shop_id)
        counter = USAGE_COUNTERS[metric]
        setattr(usage, counter, getattr(usage, counter) + delta)
        usage.updated_at = _utc_now_iso()

    async def get_plan_and_usage(self, shop_id: str) -> tuple[Plan, ShopUsage]:
        plan = self._plans.get(shop_id, DEFAULT_FREE_PLAN)
        return plan, self._usage_for(shop_id).model_copy()


class CustomerRepository:
    def __init__(self) -> None:
        self._customers: Dict[str, CustomerRecord] = {}

    def add(self, record: CustomerRecord) -> CustomerRecord:
        self._customers[record.id] = record
        return record

    async def get(self, customer_id: str) -> Optional[CustomerRecord]:
        record = self._customers.get(customer_id)
        return record.model_copy() if record is not None else None

    async def list(self, shop_id: Optional[str] = None) -> List[CustomerRecord]:
        return [
            record.model_copy()
            for record in self._customers.values()
            if shop_id is None or record.shop_id == shop_id
        ]

    async def find_by_phone(self, shop_id: str, phone: str) -> Optional[CustomerRecord]:
        for record in self._customers.values():
            if record.shop_id == shop_id and record.phone == phone:
                return record.model_copy()
        return None

    async def update_profile(self, customer_id: str, fields: Dict[str, Any]) -> None:
        record = self._customers.get(customer_id)
        if record is None:
            raise KeyError(f"Customer {customer_id} not found")
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = _utc_now_iso()

    async def create(
        self, shop_id: str, user_id: str, snapshot: CustomerSnapshot
    ) -> str:
        now = _utc_now_iso()
        record = CustomerRecord(
            id=str(uuid.uuid4()),
            shop_id=shop_id,
            user_id=user_id,
            name=snapshot.name,
            phone=snapshot.phone,
            email=snapshot.email,
            address=snapshot.address,
            state=snapshot.state,
            pincode=snapshot.pincode,
            loyalty_points=0,
            created_at=now,
            updated_at=now,
        )
        self._customers[record.id] = record
        return record.id

    async def get_loyalty_balance(self, customer_id: str) -> int:
        record = self._customers.get(customer_id)
        if record is None:
            raise KeyError(f"Customer {customer_id} not found")
        return record.loyalty_points

    async def compare_and_set_loyalty_balance(
        self, customer_id: str, expected: int, new_balance: int
    ) -> bool:
        record = self._customers.get(customer_id)
        if record is None:
            raise KeyError(f"Customer {customer_id} not found")
        if record.loyalty_points != expected:
            return False
        record.loyalty_points = new_balance
        record.updated_at = _utc_now_iso()
        return True


class InvoiceRepository:
    """Stands in for the ``create_invoice_with_items`` database procedure."""

    def __init__(self, subscriptions: SubscriptionRepository | None = None) -> None:
        self._invoices: Dict[str, Dict[str, object]] = {}
        self._numbers: DefaultDict[str, Set[str]] = defaultdict(set)
        self._sequences: DefaultDict[str, itertools.count] = defaultdict(
            lambda: itertools.count(1)
        )
        self._tax_rates: Dict[str, Tuple[float, float]] = {}
        self._subscriptions = subscriptions
        self._lock = asyncio.Lock()

    def set_tax_rates(self, shop_id: str, sgst: float, cgst: float) -> None:
        self._tax_rates[shop_id] = (sgst, cgst)

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
        async with self._lock:
            taken = self._numbers[shop_id]
            if invoice_number:
                if invoice_number in taken:
                    raise InvoicePersistenceError(
                        'duplicate key value violates unique constraint '
                        '"unique_invoice_number_per_shop"',
                        code=UNIQUE_VIOLATION,
                    )
                number = invoice_number
            else:
                number = self._next_number(shop_id)

            subtotal = 0.0
            for item in items:
                subtotal += float(item.get("netWeight", 0)) * float(item.get("rate", 0))
                subtotal += float(item.get("making", 0))
                subtotal += float(item.get("stoneAmount", 0) or 0)
            sgst_rate, cgst_rate = self._tax_rates.get(shop_id, (1.5, 1.5))
            sgst_amount = subtotal * sgst_rate / 100
            cgst_amount = subtotal * cgst_rate / 100
            grand_total = round(
                max(0.0, subtotal + sgst_amount + cgst_amount - float(discount)), 2
            )

            invoice_id = str(uuid.uuid4())
            taken.add(number)
            self._invoices[invoice_id] = {
                "id": invoice_id,
                "shop_id": shop_id,
                "customer_id": customer_id,
                "customer_snapshot": snapshot.model_dump(),
                "items": [dict(item) for item in items],
                "invoice_number": number,
                "discount": float(discount),
                "notes": notes,
                "status": status,
                "subtotal": round(subtotal, 2),
                "sgst_amount": round(sgst_amount, 2),
                "cgst_amount": round(cgst_amount, 2),
                "grand_total": grand_total,
                "created_by": user_id,
                "created_at": _utc_now_iso(),
            }
            if self._subscriptions is not None:
                self._subscriptions.record_usage(shop_id, "invoices", 1)

        return PersistedInvoice(
            invoice_id=invoice_id, invoice_number=number, grand_total=grand_total
        )

    def _next_number(self, shop_id: str) -> str:
        taken = self._numbers[shop_id]
        while True:
            candidate = f"INV-{next(self._sequences[shop_id]):05d}"
            if candidate not in taken:
                return candidate

    async def list(self, shop_id: Optional[str] = None) -> List[Dict[str, object]]:
        return [
            dict(invoice)
            for invoice in self._invoices.values()
            if shop_id is None or invoice["shop_id"] == shop_id
        ]

    async def get(self, invoice_id: str) -> Optional[Dict[str, object]]:
        invoice = self._invoices.get(invoice_id)
        return dict(invoice) if invoice is not None else None


class LoyaltySettingsRepository:
    def __init__(self) -> None:
        self._settings: Dict[str, LoyaltySettings] = {}

    async def get(self, shop_id: str) -> Optional[LoyaltySettings]:
        settings = self._settings.get(shop_id)
        return settings.model_copy() if settings is not None else None

    async def upsert(self, settings: LoyaltySettings) -> LoyaltySettings:
        stored = settings.model_copy(update={"updated_at": _utc_now_iso()})
        self._settings[settings.shop_id] = stored
        return stored.model_copy()


class LoyaltyLedgerRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("LOY")
        self._entries: List[LoyaltyLedgerEntry] = []

    async def exists_for_invoice(self, invoice_id: str) -> bool:
        return any(entry.invoice_id == invoice_id for entry in self._entries)

    async def append(self, entry: LoyaltyLedgerEntry) -> LoyaltyLedgerEntry:
        stored = entry.model_copy(
            update={"id": self._next_id(), "created_at": _utc_now_iso()}
        )
        self._entries.append(stored)
        return stored

    async def list(self, customer_id: Optional[str] = None) -> List[LoyaltyLedgerEntry]:
        return [
            entry.model_copy()
            for entry in self._entries
            if customer_id is None or entry.customer_id == customer_id
        ]


class AuditLogRepository:
    def __init__(self) -> None:
        self._entries: List[AuditLogEntry] = []

    async def insert(self, entry: AuditLogEntry) -> None:
        self._entries.append(entry)

    async def list(self, shop_id: Optional[str] = None) -> List[AuditLogEntry]:
        return [
            entry.model_copy()
            for entry in self._entries
            if shop_id is None or entry.shop_id == shop_id
        ]


class CacheRepository:
    """Records invalidated view paths in place of a real page cache."""

    def __init__(self) -> None:
        self.invalidated: List[str] = []

    async def invalidate(self, path: str) -> None:
        self.invalidated.append(path)


@dataclass
class MockDataStore:
    auth: AuthRepository
    shop_roles: ShopRoleRepository
    rate_limits: RateLimitRepository
    subscriptions: SubscriptionRepository
    customers: CustomerRepository
    invoices: InvoiceRepository
    loyalty_settings: LoyaltySettingsRepository
    loyalty_ledger: LoyaltyLedgerRepository
    audit_logs: AuditLogRepository
    cache: CacheRepository


def _seed_demo_shop(store: MockDataStore) -> None:
    store.auth.register(DEMO_OWNER_TOKEN, DEMO_OWNER_ID)
    store.shop_roles.assign(DEMO_OWNER_ID, DEMO_SHOP_ID, "owner")
    store.loyalty_settings._settings[DEMO_SHOP_ID] = LoyaltySettings(
        shop_id=DEMO_SHOP_ID,
        is_enabled=True,
        earning_type="flat",
        flat_points_ratio=0.01,
        min_points_required=100,
        updated_at=_utc_now_iso(),
    )


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        subscriptions = SubscriptionRepository()
        _mock_store = MockDataStore(
            auth=AuthRepository(),
            shop_roles=ShopRoleRepository(),
            rate_limits=RateLimitRepository(),
            subscriptions=subscriptions,
            customers=CustomerRepository(),
            invoices=InvoiceRepository(subscriptions),
            loyalty_settings=LoyaltySettingsRepository(),
            loyalty_ledger=LoyaltyLedgerRepository(),
            audit_logs=AuditLogRepository(),
            cache=CacheRepository(),
        )
        _seed_demo_shop(_mock_store)
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None

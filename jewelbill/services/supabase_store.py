"""Repository adapters backed by Supabase tables and database functions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.audit import AuditLogEntry
from jewelbill.schemas.customer import CustomerRecord, CustomerSnapshot
from jewelbill.schemas.invoice import PersistedInvoice
from jewelbill.schemas.loyalty import LoyaltyLedgerEntry, LoyaltySettings
from jewelbill.schemas.subscription import DEFAULT_FREE_PLAN, Plan, ShopUsage
from jewelbill.services.exceptions import DownstreamServiceError
from jewelbill.services.repositories import InvoicePersistenceError


RETURN_REPRESENTATION = "return=representation"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(rows: Any) -> Optional[Dict[str, Any]]:
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows


class SupabaseAuthRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_user_id(self, access_token: str) -> Optional[str]:
        user = await self._client.get_user(access_token)
        if not user:
            return None
        return user.get("id")


class SupabaseShopRoleRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_role(self, user_id: str, shop_id: str) -> Optional[str]:
        rows = await self._client.get(
            "/rest/v1/user_shop_roles",
            params={
                "select": "role",
                "user_id": f"eq.{user_id}",
                "shop_id": f"eq.{shop_id}",
                "is_active": "eq.true",
                "limit": 1,
            },
        )
        row = _first(rows)
        return row.get("role") if row else None


class SupabaseRateLimitRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        allowed = await self._client.rpc(
            "check_rate_limit",
            {"p_key": key, "p_limit": limit, "p_window_seconds": window_seconds},
        )
        return bool(allowed)


class SupabaseSubscriptionRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_plan_and_usage(self, shop_id: str) -> tuple[Plan, ShopUsage]:
        subscription = _first(
            await self._client.get(
                "/rest/v1/shop_subscriptions",
                params={"select": "*,plan:plans(*)", "shop_id": f"eq.{shop_id}", "limit": 1},
            )
        )
        if subscription and subscription.get("current_period_start"):
            period_start = str(subscription["current_period_start"])
        else:
            now = datetime.now(timezone.utc)
            period_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc).isoformat()

        usage_row = _first(
            await self._client.get(
                "/rest/v1/shop_usage_limits",
                params={
                    "select": "*",
                    "shop_id": f"eq.{shop_id}",
                    "period_start": f"gte.{period_start}",
                    "order": "period_start.desc",
                    "limit": 1,
                },
            )
        )

        plan_row = subscription.get("plan") if subscription else None
        plan = Plan.model_validate(plan_row) if plan_row else DEFAULT_FREE_PLAN
        usage = (
            ShopUsage.model_validate(usage_row)
            if usage_row
            else ShopUsage(shop_id=shop_id, period_start=period_start)
        )
        return plan, usage


class SupabaseCustomerRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def find_by_phone(self, shop_id: str, phone: str) -> Optional[CustomerRecord]:
        row = _first(
            await self._client.get(
                "/rest/v1/customers",
                params={
                    "select": "*",
                    "shop_id": f"eq.{shop_id}",
                    "phone": f"eq.{phone}",
                    "limit": 1,
                },
            )
        )
        return CustomerRecord.model_validate(row) if row else None

    async def update_profile(self, customer_id: str, fields: Dict[str, Any]) -> None:
        payload = {**fields, "updated_at": _utc_now_iso()}
        await self._client.patch(
            "/rest/v1/customers", payload, params={"id": f"eq.{customer_id}"}
        )

    async def create(
        self, shop_id: str, user_id: str, snapshot: CustomerSnapshot
    ) -> str:
        payload = {
            "user_id": user_id,
            "shop_id": shop_id,
            "name": snapshot.name,
            "phone": snapshot.phone,
            "email": snapshot.email,
            "address": snapshot.address,
            "state": snapshot.state,
            "pincode": snapshot.pincode,
            "loyalty_points": 0,
        }
        row = _first(
            await self._client.post(
                "/rest/v1/customers",
                payload,
                params={"select": "id"},
                prefer=RETURN_REPRESENTATION,
            )
        )
        if not row or not row.get("id"):
            raise DownstreamServiceError("Customer insert returned no row")
        return str(row["id"])

    async def get_loyalty_balance(self, customer_id: str) -> int:
        row = _first(
            await self._client.get(
                "/rest/v1/customers",
                params={"select": "loyalty_points", "id": f"eq.{customer_id}", "limit": 1},
            )
        )
        if row is None:
            raise DownstreamServiceError(f"Customer {customer_id} not found")
        return int(row.get("loyalty_points") or 0)

    async def compare_and_set_loyalty_balance(
        self, customer_id: str, expected: int, new_balance: int
    ) -> bool:
        rows = await self._client.patch(
            "/rest/v1/customers",
            {"loyalty_points": new_balance, "updated_at": _utc_now_iso()},
            params={
                "id": f"eq.{customer_id}",
                "loyalty_points": f"eq.{expected}",
                "select": "id",
            },
            prefer=RETURN_REPRESENTATION,
        )
        return bool(rows)


class SupabaseInvoiceRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

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
        params = {
            "p_shop_id": shop_id,
            "p_customer_id": customer_id,
            "p_customer_name": snapshot.name,
            "p_customer_phone": snapshot.phone,
            "p_customer_address": snapshot.address,
            "p_customer_snapshot": snapshot.model_dump(),
            "p_items": items,
            "p_discount": discount,
            "p_notes": notes,
            "p_user_id": user_id,
            "p_status": status,
            "p_invoice_number": invoice_number,
        }
        try:
            data = await self._client.rpc("create_invoice_with_items", params)
        except DownstreamServiceError as exc:
            raise InvoicePersistenceError(str(exc), code=exc.error_code) from exc

        row = _first(data)
        if not row or "invoice_id" not in row:
            raise InvoicePersistenceError(f"Unexpected procedure result: {data!r}")
        return PersistedInvoice(
            invoice_id=str(row["invoice_id"]),
            invoice_number=str(row["invoice_number"]),
            grand_total=float(row["grand_total"]),
        )


class SupabaseLoyaltySettingsRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, shop_id: str) -> Optional[LoyaltySettings]:
        row = _first(
            await self._client.get(
                "/rest/v1/shop_loyalty_settings",
                params={"select": "*", "shop_id": f"eq.{shop_id}", "limit": 1},
            )
        )
        return LoyaltySettings.model_validate(row) if row else None

    async def upsert(self, settings: LoyaltySettings) -> LoyaltySettings:
        payload = settings.model_dump(mode="json")
        payload["updated_at"] = _utc_now_iso()
        row = _first(
            await self._client.post(
                "/rest/v1/shop_loyalty_settings",
                payload,
                params={"on_conflict": "shop_id"},
                prefer=f"resolution=merge-duplicates,{RETURN_REPRESENTATION}",
            )
        )
        return LoyaltySettings.model_validate(row) if row else settings


class SupabaseLoyaltyLedgerRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def exists_for_invoice(self, invoice_id: str) -> bool:
        rows = await self._client.get(
            "/rest/v1/customer_loyalty_logs",
            params={"select": "id", "invoice_id": f"eq.{invoice_id}", "limit": 1},
        )
        return bool(rows)

    async def append(self, entry: LoyaltyLedgerEntry) -> LoyaltyLedgerEntry:
        payload = entry.model_dump(exclude={"id", "created_at"})
        row = _first(
            await self._client.post(
                "/rest/v1/customer_loyalty_logs", payload, prefer=RETURN_REPRESENTATION
            )
        )
        return LoyaltyLedgerEntry.model_validate(row) if row else entry


class SupabaseAuditLogRepository:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def insert(self, entry: AuditLogEntry) -> None:
        payload = entry.model_dump()
        payload["created_at"] = entry.created_at or _utc_now_iso()
        await self._client.post("/rest/v1/audit_logs", payload)

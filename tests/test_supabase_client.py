import asyncio
import json

import httpx
import pytest

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.loyalty import LoyaltyLedgerEntry
from jewelbill.services.cache import INVOICE_VIEWS, CacheInvalidator, WebhookCacheRepository
from jewelbill.services.exceptions import DownstreamServiceError
from jewelbill.services.supabase_store import (
    SupabaseAuthRepository,
    SupabaseCustomerRepository,
    SupabaseLoyaltyLedgerRepository,
    SupabaseRateLimitRepository,
)


BASE_URL = "https://jewelbill-test.supabase.co"


def _client(handler) -> SupabaseClient:
    return SupabaseClient(
        BASE_URL,
        api_key="service-role-key",
        use_mock_data=False,
        transport=httpx.MockTransport(handler),
    )


def _run(client: SupabaseClient, coro):
    async def _inner():
        try:
            return await coro
        finally:
            await client.close()

    return asyncio.run(_inner())


def test_missing_base_url_forces_mock_mode() -> None:
    client = SupabaseClient(None, use_mock_data=False)

    assert client.use_mock_data is True
    with pytest.raises(RuntimeError):
        asyncio.run(client.get("/rest/v1/customers"))


def test_requests_carry_service_key() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["apikey"] = request.headers.get("apikey")
        seen["authorization"] = request.headers.get("authorization")
        return httpx.Response(200, json=[{"role": "owner"}])

    client = _client(handler)
    rows = _run(client, client.get("/rest/v1/user_shop_roles", params={"select": "role"}))

    assert rows == [{"role": "owner"}]
    assert seen == {"apikey": "service-role-key", "authorization": "Bearer service-role-key"}


def test_error_body_code_is_preserved() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={
                "code": "23505",
                "message": 'duplicate key value violates unique constraint "unique_invoice_number_per_shop"',
            },
        )

    client = _client(handler)
    with pytest.raises(DownstreamServiceError) as excinfo:
        _run(client, client.rpc("create_invoice_with_items", {"p_shop_id": "s"}))

    assert excinfo.value.error_code == "23505"
    assert excinfo.value.upstream_status == 409
    assert "unique_invoice_number_per_shop" in str(excinfo.value)


def test_non_json_error_body_uses_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    client = _client(handler)
    with pytest.raises(DownstreamServiceError) as excinfo:
        _run(client, client.get("/rest/v1/customers"))

    assert excinfo.value.error_code is None
    assert str(excinfo.value) == "upstream unavailable"


def test_connection_failure_is_downstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(DownstreamServiceError) as excinfo:
        _run(client, client.get("/rest/v1/customers"))

    assert excinfo.value.upstream_status is None


def test_empty_response_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    client = _client(handler)

    assert _run(client, client.post("/rest/v1/audit_logs", {"action": "CREATE"})) is None


def test_invalid_token_resolves_to_no_user() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/user"
        if request.headers["authorization"] == "Bearer good-token":
            return httpx.Response(200, json={"id": "user-1"})
        return httpx.Response(401, json={"msg": "invalid JWT"})

    client = _client(handler)
    repository = SupabaseAuthRepository(client)

    async def _lookup():
        return (
            await repository.get_user_id("good-token"),
            await repository.get_user_id("expired-token"),
        )

    assert _run(client, _lookup()) == ("user-1", None)


def test_balance_update_is_conditional_on_expected_value() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.params["loyalty_points"] == "eq.100":
            return httpx.Response(200, json=[{"id": "cust-1"}])
        return httpx.Response(200, json=[])

    client = _client(handler)
    repository = SupabaseCustomerRepository(client)

    async def _update():
        return (
            await repository.compare_and_set_loyalty_balance("cust-1", 100, 150),
            await repository.compare_and_set_loyalty_balance("cust-1", 90, 140),
        )

    assert _run(client, _update()) == (True, False)

    first = calls[0]
    assert first.method == "PATCH"
    assert first.url.path == "/rest/v1/customers"
    assert first.url.params["id"] == "eq.cust-1"
    assert first.headers["prefer"] == "return=representation"
    assert json.loads(first.content)["loyalty_points"] == 150


def test_ledger_entry_and_rate_limit_calls() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/rest/v1/rpc/check_rate_limit":
            return httpx.Response(200, json=False)
        return httpx.Response(201, json=[{"id": "log-1", **json.loads(request.content)}])

    client = _client(handler)
    ledger = SupabaseLoyaltyLedgerRepository(client)
    limiter = SupabaseRateLimitRepository(client)
    entry = LoyaltyLedgerEntry(
        customer_id="cust-1",
        shop_id="shop-1",
        invoice_id="inv-1",
        points_change=-40,
        reason="Invoice INV-00007 - Earned: 10, Redeemed: 50",
    )

    async def _calls():
        return await ledger.append(entry), await limiter.hit("rate_limit:1.2.3.4:/x", 10, 60)

    stored, allowed = _run(client, _calls())

    assert stored.id == "log-1"
    assert stored.points_change == -40
    assert allowed is False
    assert json.loads(calls[1].content) == {
        "p_key": "rate_limit:1.2.3.4:/x",
        "p_limit": 10,
        "p_window_seconds": 60,
    }


def test_webhook_cache_backend_posts_each_path() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.headers.get("x-revalidate-secret"), json.loads(request.content)))
        if json.loads(request.content)["path"].endswith("/dashboard"):
            return httpx.Response(500)
        return httpx.Response(200, json={"revalidated": True})

    remote = SupabaseClient(BASE_URL, use_mock_data=False)
    repository = WebhookCacheRepository(
        "https://shop.example.com/api/revalidate",
        secret="s3cret",
        transport=httpx.MockTransport(handler),
    )
    invalidator = CacheInvalidator(remote, repository=repository)

    invalidated = _run(remote, invalidator.invalidate_shop_views("shop-1", INVOICE_VIEWS))

    assert invalidated == [
        "/shop/shop-1/invoices",
        "/shop/shop-1/customers",
        "/shop/shop-1/loyalty",
    ]
    assert seen[0] == ("s3cret", {"path": "/shop/shop-1/invoices"})
    assert len(seen) == 4


def test_remote_mode_without_cache_backend_skips() -> None:
    remote = SupabaseClient(BASE_URL, use_mock_data=False)
    invalidator = CacheInvalidator(remote)

    assert _run(remote, invalidator.invalidate_shop_views("shop-1", INVOICE_VIEWS)) == []

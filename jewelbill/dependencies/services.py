from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, Header, Request

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.config import Settings, get_settings
from jewelbill.services import (
    InvoiceService,
    ItemDescriptionService,
    LoyaltyLedgerAdjuster,
    LoyaltySettingsService,
)
from jewelbill.services.cache import CacheInvalidator, WebhookCacheRepository
from jewelbill.services.gates import Authenticator, RateLimiter
from jewelbill.services.invoice import RequestContext
from jewelbill.services.item_description import GeminiItemDescriptionGenerator

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase_client_cached() -> SupabaseClient:
    settings = get_settings()
    client = SupabaseClient(
        settings.supabase_url,
        api_key=settings.supabase_service_key,
        timeout=settings.supabase_timeout,
        use_mock_data=settings.use_mock_data,
    )
    logger.info("Supabase client ready (mock mode: %s)", client.use_mock_data)
    return client


def get_supabase_client(settings: Settings = Depends(get_settings)) -> SupabaseClient:
    return get_supabase_client_cached()


def client_ip_from(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


async def get_current_user(
    authorization: str | None = Header(default=None),
    client: SupabaseClient = Depends(get_supabase_client),
) -> str:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    return await Authenticator(client).authenticate(token)


async def get_request_context(
    request: Request,
    user_id: str = Depends(get_current_user),
) -> RequestContext:
    return RequestContext(
        user_id=user_id,
        client_ip=client_ip_from(request),
        user_agent=request.headers.get("user-agent"),
        path=request.url.path,
    )


def get_cache_invalidator(
    client: SupabaseClient = Depends(get_supabase_client),
    settings: Settings = Depends(get_settings),
) -> CacheInvalidator:
    repository = None
    if not client.use_mock_data and settings.revalidate_url:
        repository = WebhookCacheRepository(
            str(settings.revalidate_url), secret=settings.revalidate_secret
        )
    return CacheInvalidator(client, repository=repository)


def get_invoice_service(
    client: SupabaseClient = Depends(get_supabase_client),
    settings: Settings = Depends(get_settings),
    cache_invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> InvoiceService:
    return InvoiceService(
        client,
        rate_limiter=RateLimiter(
            client,
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        loyalty_adjuster=LoyaltyLedgerAdjuster(
            client, max_attempts=settings.loyalty_balance_max_attempts
        ),
        cache_invalidator=cache_invalidator,
    )


def get_loyalty_settings_service(
    client: SupabaseClient = Depends(get_supabase_client),
    cache_invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> LoyaltySettingsService:
    return LoyaltySettingsService(client, cache_invalidator=cache_invalidator)


def get_item_description_service(
    settings: Settings = Depends(get_settings),
) -> ItemDescriptionService:
    generator = GeminiItemDescriptionGenerator(
        api_key=settings.google_api_key,
        model=settings.item_description_model,
    )
    return ItemDescriptionService(generator)

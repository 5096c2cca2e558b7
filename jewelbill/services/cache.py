from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import httpx

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import CacheRepository

logger = logging.getLogger(__name__)

INVOICE_VIEWS = ("invoices", "dashboard", "customers", "loyalty")
LOYALTY_SETTINGS_VIEWS = ("settings", "loyalty")


def shop_view_path(shop_id: str, view: str) -> str:
    return f"/shop/{shop_id}/{view}"


class WebhookCacheRepository:
    """Asks the web frontend to revalidate a rendered path."""

    def __init__(
        self,
        url: str,
        *,
        secret: Optional[str] = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = str(url)
        self._headers = {"x-revalidate-secret": secret} if secret else {}
        self._timeout = timeout
        self._transport = transport

    async def invalidate(self, path: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._url, json={"path": path}, headers=self._headers
            )
            response.raise_for_status()


class CacheInvalidator:
    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: CacheRepository | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().cache

    async def invalidate_shop_views(self, shop_id: str, views: Iterable[str]) -> List[str]:
        """Invalidate each view path; failures are logged and skipped."""

        paths = [shop_view_path(shop_id, view) for view in views]
        if self._repository is None:
            logger.debug("No cache backend configured; skipping invalidation of %s", paths)
            return []
        invalidated: List[str] = []
        for path in paths:
            try:
                await self._repository.invalidate(path)
            except Exception:
                logger.exception("Cache invalidation failed for %s", path)
                continue
            invalidated.append(path)
        return invalidated

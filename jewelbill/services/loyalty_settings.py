from __future__ import annotations

import logging

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.loyalty import LoyaltySettings, LoyaltySettingsUpdate
from jewelbill.services.audit import AuditLogger
from jewelbill.services.cache import LOYALTY_SETTINGS_VIEWS, CacheInvalidator
from jewelbill.services.exceptions import InvalidLoyaltySettingsError, ServiceError
from jewelbill.services.gates import INVOICE_ROLES, ShopAccessChecker
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import LoyaltySettingsRepository
from jewelbill.services.supabase_store import SupabaseLoyaltySettingsRepository

logger = logging.getLogger(__name__)

SETTINGS_ROLES = ("owner", "manager")


class LoyaltySettingsService:
    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: LoyaltySettingsRepository | None = None,
        access_checker: ShopAccessChecker | None = None,
        cache_invalidator: CacheInvalidator | None = None,
    ) -> None:
        self._client = client
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().loyalty_settings
        else:
            self._repository = repository or SupabaseLoyaltySettingsRepository(client)
        self._access_checker = access_checker or ShopAccessChecker(client)
        self._cache = cache_invalidator or CacheInvalidator(client)

    async def get(self, shop_id: str, user_id: str) -> LoyaltySettings:
        await self._access_checker.require_role(
            user_id, shop_id, INVOICE_ROLES, action="view loyalty settings"
        )
        settings = await self._repository.get(shop_id)
        return settings or LoyaltySettings(shop_id=shop_id)

    async def update(
        self, shop_id: str, user_id: str, update: LoyaltySettingsUpdate
    ) -> LoyaltySettings:
        await self._access_checker.require_role(
            user_id, shop_id, SETTINGS_ROLES, action="change loyalty settings"
        )
        current = await self._repository.get(shop_id) or LoyaltySettings(shop_id=shop_id)
        changes = update.model_dump(exclude_unset=True)
        merged = LoyaltySettings.model_validate({**current.model_dump(), **changes})
        missing = merged.missing_earning_rate() if merged.is_enabled else None
        if missing:
            raise InvalidLoyaltySettingsError(
                missing, f"{missing} is required for {merged.earning_type} earning"
            )

        try:
            stored = await self._repository.upsert(merged)
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while saving loyalty settings")
            raise ServiceError("Failed to update loyalty settings", cause=exc)

        logger.info("Loyalty settings for shop %s updated: %s", shop_id, sorted(changes))
        await AuditLogger(self._client, user_id=user_id, shop_id=shop_id).log_update(
            "loyalty_settings", shop_id, {"changes": changes}
        )
        await self._cache.invalidate_shop_views(shop_id, LOYALTY_SETTINGS_VIEWS)
        return stored

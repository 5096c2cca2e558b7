"""Checks that run before any invoice data is written."""

from __future__ import annotations

import logging
from typing import Iterable

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.subscription import USAGE_COUNTERS, UsageCheck
from jewelbill.services.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    PlanLimitExceededError,
    RateLimitExceededError,
)
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import (
    AuthRepository,
    RateLimitRepository,
    ShopRoleRepository,
    SubscriptionRepository,
)
from jewelbill.services.supabase_store import (
    SupabaseAuthRepository,
    SupabaseRateLimitRepository,
    SupabaseShopRoleRepository,
    SupabaseSubscriptionRepository,
)

logger = logging.getLogger(__name__)

INVOICE_ROLES = ("owner", "manager", "staff")


class Authenticator:
    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: AuthRepository | None = None,
    ) -> None:
        self._client = client
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().auth
        else:
            self._repository = repository or SupabaseAuthRepository(client)

    async def authenticate(self, access_token: str | None) -> str:
        """Return the user id behind ``access_token`` or raise AuthenticationError."""

        if not access_token:
            raise AuthenticationError("Unauthorized")
        user_id = await self._repository.get_user_id(access_token)
        if not user_id:
            raise AuthenticationError("Unauthorized")
        return user_id


class RateLimiter:
    def __init__(
        self,
        client: SupabaseClient,
        *,
        limit: int = 10,
        window_seconds: int = 60,
        repository: RateLimitRepository | None = None,
    ) -> None:
        self._client = client
        self._limit = limit
        self._window_seconds = window_seconds
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().rate_limits
        else:
            self._repository = repository or SupabaseRateLimitRepository(client)

    @staticmethod
    def key_for(client_ip: str | None, path: str) -> str:
        return f"rate_limit:{client_ip or 'unknown'}:{path}"

    async def check(self, key: str) -> None:
        try:
            allowed = await self._repository.hit(key, self._limit, self._window_seconds)
        except Exception:
            # Fail open when the limiter backend is unavailable.
            logger.exception("Rate limit check failed for %s", key)
            return
        if not allowed:
            logger.warning("Rate limit exceeded for %s", key)
            raise RateLimitExceededError("Too many requests. Please try again later.")


class UsageLimiter:
    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: SubscriptionRepository | None = None,
    ) -> None:
        self._client = client
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().subscriptions
        else:
            self._repository = repository or SupabaseSubscriptionRepository(client)

    async def check(self, shop_id: str, metric: str, additional_usage: int = 0) -> UsageCheck:
        plan, usage = await self._repository.get_plan_and_usage(shop_id)
        limit = getattr(plan.limits, metric)
        used = int(getattr(usage, USAGE_COUNTERS[metric]))
        if limit == -1:
            return UsageCheck(allowed=True, limit=-1, used=used)
        return UsageCheck(allowed=used + additional_usage <= limit, limit=limit, used=used)

    async def enforce(self, shop_id: str, metric: str, additional_usage: int = 1) -> UsageCheck:
        result = await self.check(shop_id, metric, additional_usage)
        if not result.allowed:
            logger.info(
                "Shop %s reached its %s limit (%s/%s)", shop_id, metric, result.used, result.limit
            )
            raise PlanLimitExceededError(
                f"Your plan allows {result.limit} {metric} per period and {result.used} "
                "have been used. Upgrade your plan to continue.",
                metric=metric,
                used=result.used,
                limit=result.limit,
            )
        return result


class ShopAccessChecker:
    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: ShopRoleRepository | None = None,
    ) -> None:
        self._client = client
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().shop_roles
        else:
            self._repository = repository or SupabaseShopRoleRepository(client)

    async def require_role(
        self,
        user_id: str,
        shop_id: str,
        allowed_roles: Iterable[str] = INVOICE_ROLES,
        *,
        action: str = "perform this action",
    ) -> str:
        role = await self._repository.get_role(user_id, shop_id)
        if not role or role not in set(allowed_roles):
            logger.info("User %s denied in shop %s (role=%s)", user_id, shop_id, role)
            raise PermissionDeniedError(
                f"You do not have permission to {action} in this shop."
            )
        return role

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.audit import AuditAction, AuditLogEntry
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import AuditLogRepository
from jewelbill.services.supabase_store import SupabaseAuditLogRepository

logger = logging.getLogger(__name__)


class AuditLogger:
    """Audit trail writer bound to one actor in one shop.

    Writes are best effort: a failed insert is logged and never raised.
    """

    def __init__(
        self,
        client: SupabaseClient,
        *,
        user_id: str,
        shop_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        repository: AuditLogRepository | None = None,
    ) -> None:
        self._client = client
        self._user_id = user_id
        self._shop_id = shop_id
        self._ip_address = ip_address or "unknown"
        self._user_agent = user_agent or "unknown"
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().audit_logs
        else:
            self._repository = repository or SupabaseAuditLogRepository(client)

    async def log(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = AuditLogEntry(
            shop_id=self._shop_id,
            user_id=self._user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
            ip_address=self._ip_address,
            user_agent=self._user_agent,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            await self._repository.insert(entry)
        except Exception:
            logger.exception("Audit log write failed for %s %s", entity_type, entity_id)
            return
        logger.debug("Audit %s %s %s by %s", action, entity_type, entity_id, self._user_id)

    async def log_create(
        self, entity_type: str, entity_id: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        await self.log("CREATE", entity_type, entity_id, metadata)

    async def log_update(
        self, entity_type: str, entity_id: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        await self.log("UPDATE", entity_type, entity_id, metadata)

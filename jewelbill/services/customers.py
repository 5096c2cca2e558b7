from __future__ import annotations

import logging
from typing import Optional

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.customer import CustomerSnapshot
from jewelbill.services.mock_store import get_mock_store
from jewelbill.services.repositories import CustomerRepository
from jewelbill.services.supabase_store import SupabaseCustomerRepository

logger = logging.getLogger(__name__)


class CustomerResolver:
    """Find-or-create the shop customer an invoice is billed to."""

    def __init__(
        self,
        client: SupabaseClient,
        *,
        repository: CustomerRepository | None = None,
    ) -> None:
        self._client = client
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().customers
        else:
            self._repository = repository or SupabaseCustomerRepository(client)

    async def resolve(
        self,
        shop_id: str,
        user_id: str,
        snapshot: CustomerSnapshot,
        *,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        """Return the customer id to attach to the invoice, or ``None`` for a walk-in.

        An explicit ``customer_id`` is trusted as-is. Otherwise the phone number
        is matched within the shop: a match has its name/address/state/pincode
        refreshed from the snapshot, no match creates a customer with a zero
        loyalty balance. Failures are logged and degrade to ``None`` so the sale
        itself still goes through.
        """

        if customer_id:
            return customer_id
        if not snapshot.phone:
            return None

        try:
            existing = await self._repository.find_by_phone(shop_id, snapshot.phone)
            if existing is not None:
                await self._repository.update_profile(
                    existing.id,
                    {
                        "name": snapshot.name,
                        "address": snapshot.address,
                        "state": snapshot.state,
                        "pincode": snapshot.pincode,
                    },
                )
                logger.debug("Matched customer %s by phone", existing.id)
                return existing.id

            new_id = await self._repository.create(shop_id, user_id, snapshot)
            logger.info("Created customer %s in shop %s", new_id, shop_id)
            return new_id
        except Exception:
            logger.exception("Error upserting customer for shop %s", shop_id)
            return None

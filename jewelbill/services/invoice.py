from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.schemas.customer import CustomerSnapshot
from jewelbill.schemas.invoice import CreateInvoiceRequest, CreateInvoiceResponse
from jewelbill.schemas.loyalty import LoyaltyOutcome
from jewelbill.services.audit import AuditLogger
from jewelbill.services.cache import INVOICE_VIEWS, CacheInvalidator
from jewelbill.services.customers import CustomerResolver
from jewelbill.services.gates import (
    INVOICE_ROLES,
    RateLimiter,
    ShopAccessChecker,
    UsageLimiter,
)
from jewelbill.services.invoice_gateway import InvoicePersistenceGateway
from jewelbill.services.loyalty import LoyaltyLedgerAdjuster
from jewelbill.services.repositories import AuditLogRepository

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Who is calling and from where."""

    user_id: str
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    path: str = "/api/v1/invoices"


class InvoiceService:
    """Creates an invoice and runs its follow-up bookkeeping.

    Order of work: rate limit, plan usage and shop role gates; customer
    resolution; the atomic invoice write; then loyalty, audit and cache
    invalidation. Nothing is written before the gates pass, and nothing after
    the invoice write can undo it.
    """

    def __init__(
        self,
        client: SupabaseClient,
        *,
        rate_limiter: RateLimiter | None = None,
        usage_limiter: UsageLimiter | None = None,
        access_checker: ShopAccessChecker | None = None,
        customer_resolver: CustomerResolver | None = None,
        gateway: InvoicePersistenceGateway | None = None,
        loyalty_adjuster: LoyaltyLedgerAdjuster | None = None,
        cache_invalidator: CacheInvalidator | None = None,
        audit_repository: AuditLogRepository | None = None,
    ) -> None:
        self._client = client
        self._rate_limiter = rate_limiter or RateLimiter(client)
        self._usage_limiter = usage_limiter or UsageLimiter(client)
        self._access_checker = access_checker or ShopAccessChecker(client)
        self._customer_resolver = customer_resolver or CustomerResolver(client)
        self._gateway = gateway or InvoicePersistenceGateway(client)
        self._loyalty = loyalty_adjuster or LoyaltyLedgerAdjuster(client)
        self._cache = cache_invalidator or CacheInvalidator(client)
        self._audit_repository = audit_repository

    async def create(
        self, request: CreateInvoiceRequest, context: RequestContext
    ) -> CreateInvoiceResponse:
        shop_id = str(request.shop_id)
        logger.info("Creating invoice in shop %s for %s", shop_id, request.customer_name)

        await self._rate_limiter.check(RateLimiter.key_for(context.client_ip, context.path))
        await self._usage_limiter.enforce(shop_id, "invoices", 1)
        role = await self._access_checker.require_role(
            context.user_id, shop_id, INVOICE_ROLES, action="create invoices"
        )

        snapshot = CustomerSnapshot(
            name=request.customer_name,
            phone=request.customer_phone,
            address=request.customer_address,
            state=request.customer_state,
            pincode=request.customer_pincode,
            email=request.customer_email,
        )
        customer_id = await self._customer_resolver.resolve(
            shop_id,
            context.user_id,
            snapshot,
            customer_id=str(request.customer_id) if request.customer_id else None,
        )

        invoice = await self._gateway.create(
            shop_id=shop_id,
            customer_id=customer_id,
            snapshot=snapshot,
            items=[
                item.model_dump(by_alias=True, exclude_none=True) for item in request.items
            ],
            discount=request.discount,
            notes=request.notes,
            user_id=context.user_id,
            status=request.status,
            invoice_number=request.invoice_number,
        )
        logger.info(
            "Invoice %s (%s) created in shop %s, grand total %.2f",
            invoice.invoice_number,
            invoice.invoice_id,
            shop_id,
            invoice.grand_total,
        )

        requested = request.loyalty_points_redeemed or 0
        loyalty_status = "not_applicable"
        outcome: Optional[LoyaltyOutcome] = None
        if customer_id:
            if request.loyalty_points_earned is not None:
                logger.debug(
                    "Ignoring client supplied loyaltyPointsEarned=%s on invoice %s",
                    request.loyalty_points_earned,
                    invoice.invoice_number,
                )
            try:
                outcome = await self._loyalty.apply(
                    shop_id=shop_id,
                    customer_id=customer_id,
                    invoice_id=invoice.invoice_id,
                    invoice_number=invoice.invoice_number,
                    grand_total=invoice.grand_total,
                    points_requested=requested,
                )
                loyalty_status = outcome.status
            except Exception:
                logger.exception(
                    "Loyalty adjustment failed for invoice %s; invoice kept",
                    invoice.invoice_number,
                )
                loyalty_status = "failed"

        audit = AuditLogger(
            self._client,
            user_id=context.user_id,
            shop_id=shop_id,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
            repository=self._audit_repository,
        )
        await audit.log_create(
            "invoice",
            invoice.invoice_id,
            {
                "invoiceNumber": invoice.invoice_number,
                "customerName": request.customer_name,
                "grandTotal": invoice.grand_total,
                "itemCount": len(request.items),
                "role": role,
            },
        )

        await self._cache.invalidate_shop_views(shop_id, INVOICE_VIEWS)

        return CreateInvoiceResponse(
            invoice_id=invoice.invoice_id,
            invoice_number=invoice.invoice_number,
            grand_total=invoice.grand_total,
            message=f"Invoice #{invoice.invoice_number} created successfully",
            customer_id=customer_id,
            loyalty_status=loyalty_status,
            loyalty_points_earned=outcome.points_earned if outcome else 0,
            loyalty_points_requested=requested,
            loyalty_points_redeemed=outcome.points_redeemed if outcome else 0,
        )

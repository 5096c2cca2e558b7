"""Service package public API definitions.

Service implementations are imported lazily. ``jewelbill.clients.supabase``
imports ``jewelbill.services.exceptions``, which executes this module first;
importing the services eagerly here would pull the client back in and
create a circular import at start up.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "CustomerResolver",
    "InvoicePersistenceGateway",
    "InvoiceService",
    "ItemDescriptionService",
    "LoyaltyLedgerAdjuster",
    "LoyaltySettingsService",
]

_SERVICE_MODULES = {
    "CustomerResolver": "customers",
    "InvoicePersistenceGateway": "invoice_gateway",
    "InvoiceService": "invoice",
    "ItemDescriptionService": "item_description",
    "LoyaltyLedgerAdjuster": "loyalty",
    "LoyaltySettingsService": "loyalty_settings",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .customers import CustomerResolver as CustomerResolver
    from .invoice import InvoiceService as InvoiceService
    from .invoice_gateway import InvoicePersistenceGateway as InvoicePersistenceGateway
    from .item_description import ItemDescriptionService as ItemDescriptionService
    from .loyalty import LoyaltyLedgerAdjuster as LoyaltyLedgerAdjuster
    from .loyalty_settings import LoyaltySettingsService as LoyaltySettingsService

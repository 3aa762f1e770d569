"""Commerce layer — catalog, confirmation gate, purchase protocol."""

from ticketgate.commerce.catalog import BUY_PREFIX, CatalogPublisher, CatalogService, render_catalog
from ticketgate.commerce.confirmation import (
    ConfirmationGate,
    ConfirmationRequest,
    ConfirmationState,
)
from ticketgate.commerce.purchases import (
    CANCEL_PREFIX,
    CONFIRM_PREFIX,
    DigitalContent,
    PurchaseOutcome,
    PurchaseService,
)

__all__ = [
    "BUY_PREFIX",
    "CANCEL_PREFIX",
    "CONFIRM_PREFIX",
    "CatalogPublisher",
    "CatalogService",
    "ConfirmationGate",
    "ConfirmationRequest",
    "ConfirmationState",
    "DigitalContent",
    "PurchaseOutcome",
    "PurchaseService",
    "render_catalog",
]

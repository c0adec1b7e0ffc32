"""Entitlement resolution over principals and the subscription ledger."""

from .models import Entitlement, EntitlementResult
from .resolver import resolve_entitlement, select_active_subscription
from .service import EntitlementListener, EntitlementService

__all__ = [
    "Entitlement",
    "EntitlementListener",
    "EntitlementResult",
    "EntitlementService",
    "resolve_entitlement",
    "select_active_subscription",
]

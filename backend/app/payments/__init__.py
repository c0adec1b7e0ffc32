"""Mobile-money checkout: plan offers, provider client and orchestrator."""

from .catalog import OFFER_CATALOG, PlanOffer, find_offer, get_offer, list_offers, price_for
from .client import MobileMoneyClient
from .models import (
    CheckoutInProgressError,
    CheckoutResult,
    CheckoutState,
    PaymentErrorKind,
    PaymentProviderError,
    PaymentRequest,
)
from .orchestrator import CancellationToken, PaymentGateway, PaymentOrchestrator
from .phone import normalize_msisdn
from .registry import CheckoutHandle, CheckoutRegistry

__all__ = [
    "CancellationToken",
    "CheckoutHandle",
    "CheckoutInProgressError",
    "CheckoutRegistry",
    "CheckoutResult",
    "CheckoutState",
    "MobileMoneyClient",
    "OFFER_CATALOG",
    "PaymentErrorKind",
    "PaymentGateway",
    "PaymentOrchestrator",
    "PaymentProviderError",
    "PaymentRequest",
    "PlanOffer",
    "find_offer",
    "get_offer",
    "list_offers",
    "normalize_msisdn",
    "price_for",
]

"""Subscription ledger: records, backing stores, and the expiry sweep."""

from .models import (
    Subscription,
    SubscriptionDuration,
    SubscriptionPlan,
    SubscriptionStatus,
    can_transition,
    duration_to_timedelta,
    generate_subscription_id,
)
from .service import (
    InvalidTransitionError,
    LedgerSummary,
    SubscriptionLedger,
    SubscriptionNotFoundError,
)
from .store import SUBSCRIPTIONS, USERS, DocumentStore, InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "InvalidTransitionError",
    "LedgerSummary",
    "SUBSCRIPTIONS",
    "Subscription",
    "SubscriptionDuration",
    "SubscriptionLedger",
    "SubscriptionNotFoundError",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "USERS",
    "can_transition",
    "duration_to_timedelta",
    "generate_subscription_id",
]

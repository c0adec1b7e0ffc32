"""Static catalog of purchasable subscription offers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..ledger.models import SubscriptionDuration, SubscriptionPlan


@dataclass(frozen=True)
class PlanOffer:
    """A priced plan/duration pair shown at checkout."""

    id: str
    label: str
    plan: SubscriptionPlan
    duration: SubscriptionDuration
    price: int
    features: Tuple[str, ...] = ()
    currency: str = "UGX"

    @property
    def description(self) -> str:
        """Human-readable text sent with the deposit request."""

        return f"Subscription: {self.label} {self.plan.value}"


_NORMAL_FEATURES = ("Full movie and series catalog", "HD streaming", "Watch on any device")
_AGENT_FEATURES = ("Everything in normal plans", "Agent library access", "Download for resale")

OFFER_CATALOG: Dict[str, PlanOffer] = {
    offer.id: offer
    for offer in (
        PlanOffer(
            id="normal-1day",
            label="Classic",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_DAY,
            price=5000,
            features=_NORMAL_FEATURES,
        ),
        PlanOffer(
            id="normal-1week",
            label="Square",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_WEEK,
            price=10000,
            features=_NORMAL_FEATURES,
        ),
        PlanOffer(
            id="normal-1month",
            label="Balanced",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_MONTH,
            price=25000,
            features=_NORMAL_FEATURES,
        ),
        PlanOffer(
            id="agent-1week",
            label="Agent Weekly",
            plan=SubscriptionPlan.AGENT,
            duration=SubscriptionDuration.ONE_WEEK,
            price=20000,
            features=_AGENT_FEATURES,
        ),
        PlanOffer(
            id="agent-1month",
            label="Agent Monthly",
            plan=SubscriptionPlan.AGENT,
            duration=SubscriptionDuration.ONE_MONTH,
            price=50000,
            features=_AGENT_FEATURES,
        ),
    )
}


def get_offer(offer_id: str) -> PlanOffer:
    """Return an offer definition, raising if unknown."""

    try:
        return OFFER_CATALOG[offer_id]
    except KeyError as exc:
        raise KeyError(f"Unknown plan offer: {offer_id}") from exc


def find_offer(plan: SubscriptionPlan, duration: SubscriptionDuration) -> Optional[PlanOffer]:
    for offer in OFFER_CATALOG.values():
        if offer.plan == plan and offer.duration == duration:
            return offer
    return None


def list_offers(plan: Optional[SubscriptionPlan] = None) -> List[PlanOffer]:
    offers = [offer for offer in OFFER_CATALOG.values() if plan is None or offer.plan == plan]
    return sorted(offers, key=lambda offer: (offer.plan.value != "normal", offer.price))


def price_for(plan: SubscriptionPlan, duration: SubscriptionDuration) -> int:
    """Catalog price for a plan/duration pair; 0 when the pair is not sold (e.g. admin-only grants)."""

    offer = find_offer(plan, duration)
    return offer.price if offer else 0


__all__ = ["OFFER_CATALOG", "PlanOffer", "find_offer", "get_offer", "list_offers", "price_for"]

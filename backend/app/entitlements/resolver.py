"""Pure entitlement resolution over a ledger snapshot."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from ..identity.models import Principal
from ..ledger.models import Subscription, SubscriptionPlan
from .models import Entitlement, EntitlementResult

_PLAN_RANK = {SubscriptionPlan.NORMAL: 0, SubscriptionPlan.AGENT: 1}


def select_active_subscription(
    user_id: str,
    subscriptions: Iterable[Subscription],
    now: datetime,
) -> Optional[Subscription]:
    """Pick the one record that drives entitlement for ``user_id``.

    Candidates are active and end strictly after ``now``. Agent beats normal;
    ties go to the later end date, then to the greater id, so the choice never
    depends on snapshot order.
    """

    candidates = [record for record in subscriptions if record.user_id == user_id and record.is_live(now)]
    if not candidates:
        return None
    return max(candidates, key=lambda record: (_PLAN_RANK[record.plan], record.end_date, record.id))


def resolve_entitlement(
    principal: Optional[Principal],
    subscriptions: Iterable[Subscription],
    now: datetime,
) -> EntitlementResult:
    if principal is None:
        return EntitlementResult(entitlement=Entitlement.NONE, resolved_at=now)

    subscription = select_active_subscription(principal.id, subscriptions, now)
    if principal.is_admin:
        entitlement = Entitlement.ADMIN
    elif subscription is None:
        entitlement = Entitlement.NONE
    elif subscription.plan == SubscriptionPlan.AGENT:
        entitlement = Entitlement.AGENT
    else:
        entitlement = Entitlement.NORMAL

    return EntitlementResult(
        entitlement=entitlement,
        principal_id=principal.id,
        subscription=subscription,
        resolved_at=now,
    )


__all__ = ["resolve_entitlement", "select_active_subscription"]

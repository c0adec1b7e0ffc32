"""Entitlement lookups and the public plan catalog."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..feature_gates import EntitlementContext, FeatureGateError
from ..identity import Principal
from ..ledger import SubscriptionPlan
from ..payments import list_offers
from ..schemas.subscriptions import EntitlementResponse, PlanOfferResponse
from ..services import subscriptions as subscription_services
from .auth import get_current_user

router = APIRouter(prefix="/api", tags=["entitlements"])


@router.get("/entitlements/me", response_model=EntitlementResponse)
def read_my_entitlement(*, current_user: Principal = Depends(get_current_user)) -> EntitlementResponse:
    service = subscription_services.get_entitlement_service()
    try:
        result = service.for_user(current_user.id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return EntitlementResponse.from_result(result)


@router.get("/entitlements/me/access", response_model=EntitlementResponse)
def check_content_access(
    agent_only: bool = Query(False, alias="agentOnly"),
    *,
    current_user: Principal = Depends(get_current_user),
) -> EntitlementResponse:
    """Succeed only when the caller may watch the requested content tier."""

    service = subscription_services.get_entitlement_service()
    try:
        result = service.for_user(current_user.id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    try:
        EntitlementContext(result).require(agent_only=agent_only)
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc
    return EntitlementResponse.from_result(result)


@router.get("/plans", response_model=List[PlanOfferResponse])
def list_plans(plan: Optional[SubscriptionPlan] = Query(None)) -> List[PlanOfferResponse]:
    return [PlanOfferResponse.from_offer(offer) for offer in list_offers(plan)]

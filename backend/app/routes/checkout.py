"""Mobile-money checkout endpoints backed by the per-user checkout registry."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..identity import Principal
from ..payments import CheckoutInProgressError, get_offer
from ..schemas.subscriptions import CheckoutRequest, CheckoutStatusResponse
from ..services import subscriptions as subscription_services
from .auth import get_current_user

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("", response_model=CheckoutStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_checkout(
    payload: CheckoutRequest,
    *,
    current_user: Principal = Depends(get_current_user),
) -> CheckoutStatusResponse:
    try:
        offer = get_offer(payload.offer_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown offer {payload.offer_id}") from exc

    registry = subscription_services.get_checkout_registry()
    try:
        handle = registry.start(current_user.id, offer, payload.phone_number)
    except CheckoutInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return CheckoutStatusResponse.from_handle(handle)


@router.get("", response_model=CheckoutStatusResponse)
def read_checkout(*, current_user: Principal = Depends(get_current_user)) -> CheckoutStatusResponse:
    handle = subscription_services.get_checkout_registry().get(current_user.id)
    if handle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No checkout in progress")
    return CheckoutStatusResponse.from_handle(handle)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def cancel_checkout(*, current_user: Principal = Depends(get_current_user)) -> None:
    """Close the checkout; polling stops before its next status request.

    Closing a checkout that already finished forgets it.
    """

    registry = subscription_services.get_checkout_registry()
    if not (registry.cancel(current_user.id) or registry.discard(current_user.id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No checkout in progress")

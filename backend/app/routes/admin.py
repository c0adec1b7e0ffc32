"""Administrative endpoints for managing users and subscriptions."""
from __future__ import annotations

from typing import Callable, List, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..admin import AdminStats
from ..identity import Principal
from ..ledger import InvalidTransitionError, Subscription
from ..schemas.subscriptions import GrantRequest, RevokeResponse, RoleUpdateRequest, SubscriptionUpdateRequest
from ..services import subscriptions as subscription_services
from .auth import get_current_user

router = APIRouter(prefix="/api/admin", tags=["admin"])

T = TypeVar("T")


def _run(action: Callable[[], T]) -> T:
    """Invoke an admin service call, mapping domain errors to HTTP errors."""

    try:
        return action()
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/subscriptions", response_model=List[Subscription])
def list_subscriptions(
    user_id: Optional[str] = Query(None, alias="userId"),
    *,
    current_user: Principal = Depends(get_current_user),
) -> List[Subscription]:
    service = subscription_services.get_admin_service()
    return _run(lambda: service.list_subscriptions(current_user, user_id=user_id))


@router.post("/subscriptions", response_model=Subscription, status_code=status.HTTP_201_CREATED)
def grant_subscription(
    payload: GrantRequest,
    *,
    current_user: Principal = Depends(get_current_user),
) -> Subscription:
    service = subscription_services.get_admin_service()
    return _run(lambda: service.grant(current_user, payload.user_id, payload.plan, payload.duration))


@router.patch("/subscriptions/{subscription_id}", response_model=Subscription)
def update_subscription(
    subscription_id: str,
    payload: SubscriptionUpdateRequest,
    *,
    current_user: Principal = Depends(get_current_user),
) -> Subscription:
    service = subscription_services.get_admin_service()
    changes = payload.changes()
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes supplied")
    if set(changes) == {"status"}:
        return _run(lambda: service.edit_status(current_user, subscription_id, changes["status"]))
    return _run(lambda: service.edit_fields(current_user, subscription_id, changes))


@router.post("/subscriptions/{subscription_id}/cancel", response_model=Subscription)
def cancel_subscription(
    subscription_id: str,
    *,
    current_user: Principal = Depends(get_current_user),
) -> Subscription:
    service = subscription_services.get_admin_service()
    return _run(lambda: service.cancel(current_user, subscription_id))


@router.get("/users", response_model=List[Principal])
def list_users(*, current_user: Principal = Depends(get_current_user)) -> List[Principal]:
    service = subscription_services.get_admin_service()
    return _run(lambda: service.list_users(current_user))


@router.patch("/users/{user_id}/role", response_model=Principal)
def update_user_role(
    user_id: str,
    payload: RoleUpdateRequest,
    *,
    current_user: Principal = Depends(get_current_user),
) -> Principal:
    service = subscription_services.get_admin_service()
    return _run(lambda: service.set_role(current_user, user_id, payload.role))


@router.delete("/users/{user_id}", response_model=RevokeResponse)
def revoke_user(
    user_id: str,
    *,
    current_user: Principal = Depends(get_current_user),
) -> RevokeResponse:
    service = subscription_services.get_admin_service()
    removed = _run(lambda: service.revoke(current_user, user_id))
    return RevokeResponse(user_id=user_id, subscriptions_removed=removed)


@router.get("/stats", response_model=AdminStats)
def read_stats(*, current_user: Principal = Depends(get_current_user)) -> AdminStats:
    service = subscription_services.get_admin_service()
    return _run(lambda: service.stats(current_user))

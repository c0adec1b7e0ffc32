"""API schemas for auth, entitlement, checkout and admin endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements import Entitlement, EntitlementResult
from ..identity import PrincipalRole
from ..ledger import Subscription, SubscriptionDuration, SubscriptionPlan, SubscriptionStatus
from ..payments import CheckoutHandle, CheckoutState, PaymentErrorKind, PlanOffer


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: str
    password: str = Field(min_length=6)


class FederatedLoginRequest(BaseModel):
    id_token: str = Field(alias="idToken")

    model_config = ConfigDict(populate_by_name=True)


class EntitlementResponse(BaseModel):
    entitlement: Entitlement
    is_admin: bool = Field(alias="isAdmin")
    has_normal_access: bool = Field(alias="hasNormalAccess")
    has_agent_access: bool = Field(alias="hasAgentAccess")
    subscription: Optional[Subscription] = None
    resolved_at: datetime = Field(alias="resolvedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: EntitlementResult) -> "EntitlementResponse":
        return cls(
            entitlement=result.entitlement,
            is_admin=result.is_admin,
            has_normal_access=result.has_normal_access,
            has_agent_access=result.has_agent_access,
            subscription=result.subscription,
            resolved_at=result.resolved_at,
        )


class PlanOfferResponse(BaseModel):
    id: str
    label: str
    plan: SubscriptionPlan
    duration: SubscriptionDuration
    price: int
    currency: str
    features: List[str] = Field(default_factory=list)

    @classmethod
    def from_offer(cls, offer: PlanOffer) -> "PlanOfferResponse":
        return cls(
            id=offer.id,
            label=offer.label,
            plan=offer.plan,
            duration=offer.duration,
            price=offer.price,
            currency=offer.currency,
            features=list(offer.features),
        )


class CheckoutRequest(BaseModel):
    offer_id: str = Field(alias="offerId")
    phone_number: str = Field(alias="phoneNumber", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutStatusResponse(BaseModel):
    state: CheckoutState
    offer_id: str = Field(alias="offerId")
    attempts: int = 0
    max_attempts: int = Field(alias="maxAttempts")
    error: Optional[str] = None
    error_kind: Optional[PaymentErrorKind] = Field(alias="errorKind", default=None)
    subscription: Optional[Subscription] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_handle(cls, handle: CheckoutHandle) -> "CheckoutStatusResponse":
        request = handle.orchestrator.request
        result = handle.result
        return cls(
            state=handle.state,
            offer_id=handle.offer.id,
            attempts=request.attempt if request else 0,
            max_attempts=handle.orchestrator.max_attempts,
            error=result.error if result else None,
            error_kind=result.error_kind if result else None,
            subscription=result.subscription if result else None,
        )


class GrantRequest(BaseModel):
    user_id: str = Field(alias="userId")
    plan: SubscriptionPlan
    duration: SubscriptionDuration

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionUpdateRequest(BaseModel):
    user_id: Optional[str] = Field(alias="userId", default=None)
    plan: Optional[SubscriptionPlan] = None
    duration: Optional[SubscriptionDuration] = None
    status: Optional[SubscriptionStatus] = None
    start_date: Optional[datetime] = Field(alias="startDate", default=None)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class RoleUpdateRequest(BaseModel):
    role: PrincipalRole


class RevokeResponse(BaseModel):
    user_id: str = Field(alias="userId")
    subscriptions_removed: int = Field(alias="subscriptionsRemoved")

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "CheckoutRequest",
    "CheckoutStatusResponse",
    "EntitlementResponse",
    "FederatedLoginRequest",
    "GrantRequest",
    "LoginRequest",
    "PlanOfferResponse",
    "RegisterRequest",
    "RevokeResponse",
    "RoleUpdateRequest",
    "SubscriptionUpdateRequest",
]

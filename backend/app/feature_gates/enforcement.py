"""Checks that turn an entitlement result into allow or raise."""
from __future__ import annotations

from typing import Optional

from fastapi import status

from ..entitlements import EntitlementResult
from .exceptions import FeatureGateError


def require_authenticated(result: EntitlementResult) -> None:
    if not result.is_authenticated:
        raise FeatureGateError(
            "authentication_required",
            "Sign in to continue.",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


def require_normal_access(result: EntitlementResult, *, message: Optional[str] = None) -> None:
    """Ensure the resolved entitlement unlocks the normal catalog.

    Parameters
    ----------
    result:
        Entitlement resolved for the caller.
    message:
        Optional human-friendly message explaining the failure.
    """

    require_authenticated(result)
    if not result.has_normal_access:
        raise FeatureGateError(
            "subscription_required",
            message or "An active subscription is required.",
            required_tier="normal",
            entitlement=result.entitlement,
        )


def require_agent_access(result: EntitlementResult, *, message: Optional[str] = None) -> None:
    """Ensure the resolved entitlement unlocks agent content."""

    require_authenticated(result)
    if not result.has_agent_access:
        raise FeatureGateError(
            "agent_subscription_required",
            message or "An agent subscription is required.",
            required_tier="agent",
            entitlement=result.entitlement,
        )

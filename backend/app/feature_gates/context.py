"""Convenience wrapper around entitlement results for feature gating."""
from __future__ import annotations

from dataclasses import dataclass

from ..entitlements import Entitlement, EntitlementResult
from .enforcement import require_agent_access, require_normal_access


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for a subject's entitlement."""

    result: EntitlementResult

    @property
    def entitlement(self) -> Entitlement:
        return self.result.entitlement

    @property
    def subscription_id(self):
        return self.result.subscription.id if self.result.subscription else None

    def can_watch(self, *, agent_only: bool = False) -> bool:
        if agent_only:
            return self.result.has_agent_access
        return self.result.has_normal_access

    def require(self, *, agent_only: bool = False) -> None:
        """Raise :class:`FeatureGateError` unless the content tier is unlocked."""

        if agent_only:
            require_agent_access(self.result)
        else:
            require_normal_access(self.result)

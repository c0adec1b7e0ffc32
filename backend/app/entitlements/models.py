"""Domain models for entitlement resolution."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..ledger.models import Subscription


class Entitlement(str, Enum):
    """Access tier derived for a principal at a point in time."""

    NONE = "none"
    NORMAL = "normal"
    AGENT = "agent"
    ADMIN = "admin"


_NORMAL_TIERS = frozenset({Entitlement.NORMAL, Entitlement.AGENT, Entitlement.ADMIN})
_AGENT_TIERS = frozenset({Entitlement.AGENT, Entitlement.ADMIN})


class EntitlementResult(BaseModel):
    """Resolved entitlement along with the subscription that produced it."""

    entitlement: Entitlement
    principal_id: Optional[str] = None
    subscription: Optional[Subscription] = None
    resolved_at: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def is_authenticated(self) -> bool:
        return self.principal_id is not None

    @property
    def is_admin(self) -> bool:
        return self.entitlement == Entitlement.ADMIN

    @property
    def has_normal_access(self) -> bool:
        return self.entitlement in _NORMAL_TIERS

    @property
    def has_agent_access(self) -> bool:
        return self.entitlement in _AGENT_TIERS


__all__ = ["Entitlement", "EntitlementResult"]

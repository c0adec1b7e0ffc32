"""Typed representations of administrative overrides."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AdminAction(str, Enum):
    """Ledger and profile mutations an admin can perform."""

    GRANTED = "granted"
    STATUS_EDITED = "status_edited"
    FIELDS_EDITED = "fields_edited"
    CANCELLED = "cancelled"
    REVOKED = "revoked"
    ROLE_CHANGED = "role_changed"


class AdminAuditEvent(BaseModel):
    """Audit trail entry emitted for every override."""

    action: AdminAction
    actor_id: str
    subject_id: str = Field(description="User or subscription the action applied to.")
    metadata: Dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class AdminRequiredError(PermissionError):
    """Raised when a non-admin principal attempts an override."""


class AdminStats(BaseModel):
    """Dashboard figures derived from profiles and the ledger."""

    total_users: int
    total_subscriptions: int
    active_subscriptions: int
    expired_subscriptions: int
    cancelled_subscriptions: int
    revenue: int
    currency: str = "UGX"
    generated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


__all__ = ["AdminAction", "AdminAuditEvent", "AdminRequiredError", "AdminStats"]

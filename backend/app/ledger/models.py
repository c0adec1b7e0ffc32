"""Domain models for the subscription ledger."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SubscriptionPlan(str, Enum):
    """Content tiers a subscription can unlock."""

    NORMAL = "normal"
    AGENT = "agent"


class SubscriptionDuration(str, Enum):
    """Purchasable subscription lengths."""

    ONE_DAY = "1day"
    ONE_WEEK = "1week"
    ONE_MONTH = "1month"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for subscriptions."""

    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not SubscriptionStatus.ACTIVE


_DURATIONS: Dict[SubscriptionDuration, timedelta] = {
    SubscriptionDuration.ONE_DAY: timedelta(days=1),
    SubscriptionDuration.ONE_WEEK: timedelta(days=7),
    SubscriptionDuration.ONE_MONTH: timedelta(days=30),
}


def duration_to_timedelta(duration: SubscriptionDuration) -> timedelta:
    """Return the fixed length of a subscription duration."""

    return _DURATIONS[SubscriptionDuration(duration)]


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    """Return whether a status change moves the lifecycle forward."""

    if current == target:
        return True
    return current == SubscriptionStatus.ACTIVE


def generate_subscription_id(*, issuer: str = "", now: Optional[datetime] = None) -> str:
    """Build a collision-resistant id from a millisecond timestamp.

    ``issuer`` separates admin-issued records from paid ones so that two
    writers minting ids in the same millisecond never collide.
    """

    moment = now or datetime.now(timezone.utc)
    millis = int(moment.timestamp() * 1000)
    prefix = f"sub-{issuer}-" if issuer else "sub-"
    return f"{prefix}{millis}-{uuid4().hex[:8]}"


def _ensure_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Subscription(BaseModel):
    """A single ledger record granting a plan for a fixed window."""

    id: str
    user_id: str = Field(alias="userId")
    plan: SubscriptionPlan
    duration: SubscriptionDuration
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("start_date", "end_date")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _ensure_aware(value)

    @model_validator(mode="after")
    def _check_window(self) -> "Subscription":
        expected = self.start_date + duration_to_timedelta(self.duration)
        if self.end_date != expected:
            raise ValueError("endDate must equal startDate plus the subscription duration")
        return self

    @classmethod
    def open(
        cls,
        *,
        user_id: str,
        plan: SubscriptionPlan,
        duration: SubscriptionDuration,
        start_date: datetime,
        subscription_id: Optional[str] = None,
        issuer: str = "",
    ) -> "Subscription":
        """Create an active subscription whose window starts at ``start_date``."""

        start = _ensure_aware(start_date)
        return cls(
            id=subscription_id or generate_subscription_id(issuer=issuer, now=start),
            user_id=user_id,
            plan=plan,
            duration=duration,
            status=SubscriptionStatus.ACTIVE,
            start_date=start,
            end_date=start + duration_to_timedelta(duration),
        )

    @classmethod
    def from_document(cls, document_id: str, document: Mapping[str, Any]) -> "Subscription":
        payload = dict(document)
        payload["id"] = document_id
        return cls.model_validate(payload)

    def to_document(self) -> Dict[str, Any]:
        """Serialize using the persisted field names."""

        return self.model_dump(mode="json", by_alias=True)

    def is_live(self, now: datetime) -> bool:
        """Active and not yet past its end date."""

        return self.status == SubscriptionStatus.ACTIVE and self.end_date > now

    def is_overdue(self, now: datetime) -> bool:
        """Still marked active even though the window has closed."""

        return self.status == SubscriptionStatus.ACTIVE and self.end_date < now


__all__ = [
    "Subscription",
    "SubscriptionDuration",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "can_transition",
    "duration_to_timedelta",
    "generate_subscription_id",
]

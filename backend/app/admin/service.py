"""Privileged ledger mutations that bypass payment."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Protocol

from ..identity.models import Principal, PrincipalRole
from ..identity.repository import ProfileRepository
from ..ledger.models import Subscription, SubscriptionDuration, SubscriptionPlan, SubscriptionStatus
from ..ledger.service import SubscriptionLedger
from .models import AdminAction, AdminAuditEvent, AdminRequiredError, AdminStats

logger = logging.getLogger(__name__)


class AdminAuditLogger(Protocol):
    """Interface for emitting admin audit events."""

    def log(self, event: AdminAuditEvent) -> None:
        ...


class LoggingAdminAuditLogger:
    """Forwards admin audit events to the application logger."""

    def log(self, event: AdminAuditEvent) -> None:
        logger.info(
            "Admin %s actor=%s subject=%s metadata=%s",
            event.action.value,
            event.actor_id,
            event.subject_id,
            event.metadata,
        )


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _zero_price(plan: SubscriptionPlan, duration: SubscriptionDuration) -> int:
    return 0


@dataclass
class AdminOverrideService:
    """Grants, edits and revokes subscriptions on behalf of an admin.

    Granted records have exactly the shape of paid ones, so entitlement
    resolution cannot tell them apart.
    """

    ledger: SubscriptionLedger
    profiles: ProfileRepository
    audit_logger: AdminAuditLogger
    clock: Optional[Callable[[], datetime]] = None
    price_for: Callable[[SubscriptionPlan, SubscriptionDuration], int] = _zero_price

    def grant(
        self,
        actor: Principal,
        user_id: str,
        plan: SubscriptionPlan,
        duration: SubscriptionDuration,
    ) -> Subscription:
        self._require_admin(actor)
        self._require_profile(user_id)
        record = Subscription.open(
            user_id=user_id,
            plan=SubscriptionPlan(plan),
            duration=SubscriptionDuration(duration),
            start_date=_current_time(self.clock),
            issuer="admin",
        )
        created = self.ledger.create(record)
        self._audit(
            AdminAction.GRANTED,
            actor,
            user_id,
            {"subscription_id": created.id, "plan": created.plan.value, "duration": created.duration.value},
        )
        return created

    def edit_status(self, actor: Principal, subscription_id: str, status: SubscriptionStatus) -> Subscription:
        self._require_admin(actor)
        updated = self.ledger.update_partial(subscription_id, {"status": SubscriptionStatus(status)})
        self._audit(AdminAction.STATUS_EDITED, actor, subscription_id, {"status": updated.status.value})
        return updated

    def edit_fields(self, actor: Principal, subscription_id: str, fields: Mapping[str, Any]) -> Subscription:
        self._require_admin(actor)
        updated = self.ledger.update_partial(subscription_id, fields)
        self._audit(AdminAction.FIELDS_EDITED, actor, subscription_id, {"fields": ",".join(sorted(fields))})
        return updated

    def cancel(self, actor: Principal, subscription_id: str) -> Subscription:
        self._require_admin(actor)
        cancelled = self.ledger.cancel(subscription_id)
        self._audit(AdminAction.CANCELLED, actor, subscription_id)
        return cancelled

    def revoke(self, actor: Principal, user_id: str) -> int:
        """Delete a user's profile and every subscription they own."""

        self._require_admin(actor)
        if actor.id == user_id:
            raise PermissionError("Admins cannot delete their own account")
        self._require_profile(user_id)
        self.profiles.delete_profile(user_id)
        removed = self.ledger.delete_by_user(user_id)
        self._audit(AdminAction.REVOKED, actor, user_id, {"subscriptions_removed": str(removed)})
        return removed

    def set_role(self, actor: Principal, user_id: str, role: PrincipalRole) -> Principal:
        self._require_admin(actor)
        role = PrincipalRole(role)
        if actor.id == user_id and role != PrincipalRole.ADMIN:
            raise PermissionError("Admins cannot demote themselves")
        before = self._require_profile(user_id)
        updated = self.profiles.update_profile(user_id, {"role": role.value})
        if updated is None:
            raise LookupError(f"User {user_id} not found")
        self._audit(
            AdminAction.ROLE_CHANGED,
            actor,
            user_id,
            {"role_before": before.role.value, "role_after": updated.role.value},
        )
        return updated

    def list_users(self, actor: Principal) -> List[Principal]:
        self._require_admin(actor)
        return sorted(self.profiles.list_profiles(), key=lambda principal: principal.created_at)

    def list_subscriptions(self, actor: Principal, *, user_id: Optional[str] = None) -> List[Subscription]:
        self._require_admin(actor)
        records = self.ledger.list_by_user(user_id) if user_id else self.ledger.list()
        return sorted(records, key=lambda record: record.start_date, reverse=True)

    def stats(self, actor: Principal) -> AdminStats:
        self._require_admin(actor)
        summary = self.ledger.summarize(self.price_for)
        return AdminStats(
            total_users=len(self.profiles.list_profiles()),
            total_subscriptions=summary.total,
            active_subscriptions=summary.active,
            expired_subscriptions=summary.expired,
            cancelled_subscriptions=summary.cancelled,
            revenue=summary.revenue,
            generated_at=_current_time(self.clock),
        )

    def _require_admin(self, actor: Optional[Principal]) -> None:
        if actor is None or not actor.is_admin:
            raise AdminRequiredError("Administrator privileges are required")

    def _require_profile(self, user_id: str) -> Principal:
        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise LookupError(f"User {user_id} not found")
        return profile

    def _audit(
        self,
        action: AdminAction,
        actor: Principal,
        subject_id: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.audit_logger.log(
            AdminAuditEvent(
                action=action,
                actor_id=actor.id,
                subject_id=subject_id,
                metadata=dict(metadata or {}),
                timestamp=_current_time(self.clock),
            )
        )


__all__ = ["AdminAuditLogger", "AdminOverrideService", "LoggingAdminAuditLogger"]

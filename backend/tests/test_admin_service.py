from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from backend.app.admin import AdminAction, AdminAuditEvent, AdminOverrideService, AdminRequiredError
from backend.app.entitlements import EntitlementService
from backend.app.identity import DocumentProfileRepository, Principal, PrincipalRole
from backend.app.ledger import (
    InMemoryDocumentStore,
    InvalidTransitionError,
    Subscription,
    SubscriptionDuration,
    SubscriptionLedger,
    SubscriptionPlan,
    SubscriptionStatus,
)
from backend.app.payments import price_for

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class RecordingAuditLogger:
    def __init__(self) -> None:
        self.events: List[AdminAuditEvent] = []

    def log(self, event: AdminAuditEvent) -> None:
        self.events.append(event)


def _principal(principal_id: str, role: PrincipalRole = PrincipalRole.USER) -> Principal:
    return Principal(id=principal_id, email=f"{principal_id}@example.com", name=principal_id, role=role, created_at=NOW)


ADMIN = _principal("admin-1", PrincipalRole.ADMIN)
USER = _principal("user-1")


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def ledger(store: InMemoryDocumentStore) -> SubscriptionLedger:
    ledger = SubscriptionLedger(store, clock=lambda: NOW)
    ledger.start()
    return ledger


@pytest.fixture
def profiles(store: InMemoryDocumentStore) -> DocumentProfileRepository:
    repository = DocumentProfileRepository(store)
    repository.create_profile(ADMIN)
    repository.create_profile(USER)
    return repository


@pytest.fixture
def audit() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def service(ledger, profiles, audit) -> AdminOverrideService:
    return AdminOverrideService(
        ledger=ledger,
        profiles=profiles,
        audit_logger=audit,
        clock=lambda: NOW,
        price_for=price_for,
    )


def test_grant_unlocks_access_without_payment(service, ledger, profiles, audit) -> None:
    entitlements = EntitlementService(None, ledger, profiles, clock=lambda: NOW)
    assert entitlements.has_normal_access("user-1") is False

    granted = service.grant(ADMIN, "user-1", SubscriptionPlan.NORMAL, SubscriptionDuration.ONE_MONTH)

    assert granted.id.startswith("sub-admin-")
    assert granted.start_date == NOW
    assert granted.end_date == NOW + timedelta(days=30)
    assert entitlements.has_normal_access("user-1") is True
    assert entitlements.has_agent_access("user-1") is False
    assert audit.events[-1].action == AdminAction.GRANTED


def test_grant_requires_existing_user(service) -> None:
    with pytest.raises(LookupError):
        service.grant(ADMIN, "ghost", SubscriptionPlan.NORMAL, SubscriptionDuration.ONE_DAY)


def test_non_admin_is_rejected_everywhere(service, ledger) -> None:
    record = ledger.create(
        Subscription.open(
            user_id="user-1",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_WEEK,
            start_date=NOW,
        )
    )
    calls = [
        lambda: service.grant(USER, "user-1", SubscriptionPlan.AGENT, SubscriptionDuration.ONE_WEEK),
        lambda: service.edit_status(USER, record.id, SubscriptionStatus.CANCELLED),
        lambda: service.edit_fields(USER, record.id, {"plan": "agent"}),
        lambda: service.cancel(USER, record.id),
        lambda: service.revoke(USER, "admin-1"),
        lambda: service.set_role(USER, "user-1", PrincipalRole.ADMIN),
        lambda: service.list_users(USER),
        lambda: service.list_subscriptions(USER),
        lambda: service.stats(USER),
    ]

    for call in calls:
        with pytest.raises(AdminRequiredError):
            call()

    assert ledger.get(record.id).plan == SubscriptionPlan.NORMAL
    assert len(ledger.list()) == 1


def test_edit_fields_recomputes_window(service) -> None:
    granted = service.grant(ADMIN, "user-1", SubscriptionPlan.NORMAL, SubscriptionDuration.ONE_DAY)

    updated = service.edit_fields(ADMIN, granted.id, {"plan": "agent", "duration": "1week"})

    assert updated.plan == SubscriptionPlan.AGENT
    assert updated.end_date == granted.start_date + timedelta(days=7)


def test_status_edits_are_forward_only(service) -> None:
    granted = service.grant(ADMIN, "user-1", SubscriptionPlan.NORMAL, SubscriptionDuration.ONE_DAY)

    cancelled = service.cancel(ADMIN, granted.id)
    assert cancelled.status == SubscriptionStatus.CANCELLED

    with pytest.raises(InvalidTransitionError):
        service.edit_status(ADMIN, granted.id, SubscriptionStatus.ACTIVE)


def test_revoke_cascades_subscriptions(service, ledger, profiles, audit) -> None:
    service.grant(ADMIN, "user-1", SubscriptionPlan.NORMAL, SubscriptionDuration.ONE_DAY)
    service.grant(ADMIN, "user-1", SubscriptionPlan.AGENT, SubscriptionDuration.ONE_WEEK)
    service.grant(ADMIN, "admin-1", SubscriptionPlan.AGENT, SubscriptionDuration.ONE_WEEK)

    removed = service.revoke(ADMIN, "user-1")

    assert removed == 2
    assert profiles.get_profile("user-1") is None
    assert ledger.list_by_user("user-1") == []
    assert len(ledger.list_by_user("admin-1")) == 1
    assert audit.events[-1].action == AdminAction.REVOKED


def test_admin_cannot_revoke_or_demote_self(service) -> None:
    with pytest.raises(PermissionError):
        service.revoke(ADMIN, "admin-1")
    with pytest.raises(PermissionError):
        service.set_role(ADMIN, "admin-1", PrincipalRole.USER)


def test_set_role_promotes_user(service, profiles) -> None:
    updated = service.set_role(ADMIN, "user-1", PrincipalRole.ADMIN)

    assert updated.is_admin
    assert profiles.get_profile("user-1").is_admin


def test_list_subscriptions_newest_first(service, ledger) -> None:
    ledger.create(
        Subscription.open(
            user_id="user-1",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_WEEK,
            start_date=NOW - timedelta(days=1),
            subscription_id="sub-older",
        )
    )
    ledger.create(
        Subscription.open(
            user_id="admin-1",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_WEEK,
            start_date=NOW,
            subscription_id="sub-newer",
        )
    )

    assert [record.id for record in service.list_subscriptions(ADMIN)] == ["sub-newer", "sub-older"]
    assert [record.id for record in service.list_subscriptions(ADMIN, user_id="user-1")] == ["sub-older"]
    assert [principal.id for principal in service.list_users(ADMIN)] == ["admin-1", "user-1"]


def test_stats_uses_catalog_prices(service) -> None:
    service.grant(ADMIN, "user-1", SubscriptionPlan.NORMAL, SubscriptionDuration.ONE_WEEK)
    cancelled = service.grant(ADMIN, "user-1", SubscriptionPlan.AGENT, SubscriptionDuration.ONE_MONTH)
    service.cancel(ADMIN, cancelled.id)
    service.grant(ADMIN, "user-1", SubscriptionPlan.AGENT, SubscriptionDuration.ONE_DAY)

    stats = service.stats(ADMIN)

    assert stats.total_users == 2
    assert stats.total_subscriptions == 3
    assert stats.active_subscriptions == 2
    assert stats.cancelled_subscriptions == 1
    # agent/1day is not sold, so it contributes nothing.
    assert stats.revenue == 10000 + 50000
    assert stats.currency == "UGX"

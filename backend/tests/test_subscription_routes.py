from __future__ import annotations

import asyncio
import inspect
from types import SimpleNamespace

import pytest
from fastapi import HTTPException, Response

from backend.app.admin import AdminOverrideService, LoggingAdminAuditLogger
from backend.app.config import load_settings
from backend.app.entitlements import Entitlement, EntitlementService
from backend.app.identity import DocumentProfileRepository, LocalIdentityProvider, PrincipalRole
from backend.app.ledger import (
    InMemoryDocumentStore,
    SubscriptionDuration,
    SubscriptionLedger,
    SubscriptionPlan,
    SubscriptionStatus,
)
from backend.app.payments import CheckoutRegistry, CheckoutState, PaymentOrchestrator, price_for
from backend.app.payments.models import DepositResponse, PhoneValidationResponse, RequestStatusResponse
from backend.app.routes import admin as admin_routes
from backend.app.routes import auth as auth_routes
from backend.app.routes import checkout as checkout_routes
from backend.app.routes import entitlements as entitlement_routes
from backend.app.schemas.subscriptions import (
    CheckoutRequest,
    GrantRequest,
    LoginRequest,
    RegisterRequest,
    RoleUpdateRequest,
    SubscriptionUpdateRequest,
)
from backend.app.services import subscriptions as subscription_services


class ImmediateGateway:
    async def validate_phone(self, msisdn: str) -> PhoneValidationResponse:
        return PhoneValidationResponse(success=True)

    async def deposit(self, msisdn: str, amount: int, description: str) -> DepositResponse:
        return DepositResponse(success=True, internal_reference="ref-1")

    async def request_status(self, internal_reference: str) -> RequestStatusResponse:
        return RequestStatusResponse(success=True, request_status="success")


@pytest.fixture
def wired(monkeypatch):
    settings = load_settings({"ADMIN_EMAILS": "boss@example.com"})
    store = InMemoryDocumentStore()
    profiles = DocumentProfileRepository(store)
    ledger = SubscriptionLedger(store)
    ledger.start()
    provider = LocalIdentityProvider(secret_key="test-secret", bcrypt_rounds=4)
    entitlements = EntitlementService(None, ledger, profiles)
    admin = AdminOverrideService(
        ledger=ledger,
        profiles=profiles,
        audit_logger=LoggingAdminAuditLogger(),
        price_for=price_for,
    )
    registry = CheckoutRegistry(lambda: PaymentOrchestrator(ImmediateGateway(), ledger, poll_interval=0))

    monkeypatch.setattr(subscription_services, "get_settings", lambda: settings)
    monkeypatch.setattr(subscription_services, "get_profile_repository", lambda: profiles)
    monkeypatch.setattr(subscription_services, "get_ledger", lambda: ledger)
    monkeypatch.setattr(subscription_services, "get_identity_provider", lambda: provider)
    monkeypatch.setattr(subscription_services, "get_entitlement_service", lambda: entitlements)
    monkeypatch.setattr(subscription_services, "get_admin_service", lambda: admin)
    monkeypatch.setattr(subscription_services, "get_checkout_registry", lambda: registry)
    return SimpleNamespace(ledger=ledger, profiles=profiles, provider=provider, registry=registry)


def _register(name: str, email: str):
    response = Response()
    principal = auth_routes.register(RegisterRequest(name=name, email=email, password="secret1"), response)
    return principal, response


def test_register_sets_session_cookie(wired) -> None:
    principal, response = _register("Ada", "ada@example.com")

    assert principal.name == "Ada"
    assert principal.role == PrincipalRole.USER
    assert "session=" in response.headers["set-cookie"]
    assert "httponly" in response.headers["set-cookie"].lower()

    token = wired.provider.issue_session_token(principal.id)
    assert auth_routes.get_current_user(session_token=token) == principal


def test_login_with_bad_password_is_unauthorized(wired) -> None:
    _register("Ada", "ada@example.com")

    with pytest.raises(HTTPException) as exc:
        auth_routes.login(LoginRequest(email="ada@example.com", password="nope!!"), Response())

    assert exc.value.status_code == 401


def test_duplicate_registration_is_rejected(wired) -> None:
    _register("Ada", "ada@example.com")

    with pytest.raises(HTTPException) as exc:
        _register("Ada", "ada@example.com")

    assert exc.value.status_code == 400


def test_current_user_requires_valid_token(wired) -> None:
    with pytest.raises(HTTPException) as missing:
        auth_routes.get_current_user(session_token=None)
    with pytest.raises(HTTPException) as invalid:
        auth_routes.get_current_user(session_token="garbage")

    assert missing.value.status_code == 401
    assert invalid.value.status_code == 401
    assert auth_routes.get_optional_current_user(session_token="garbage") is None


def test_logout_clears_cookie(wired) -> None:
    response = Response()

    assert auth_routes.logout(response) == {"ok": True}
    assert "session=" in response.headers["set-cookie"]


def test_session_cookie_is_written_and_read_under_one_name(wired, monkeypatch) -> None:
    monkeypatch.setattr(
        subscription_services,
        "get_settings",
        lambda: load_settings({"SESSION_COOKIE_NAME": "elsewhere"}),
    )

    _, response = _register("Ada", "ada@example.com")
    alias = inspect.signature(auth_routes.get_current_user).parameters["session_token"].default.alias

    assert alias == auth_routes.SESSION_COOKIE_NAME
    assert response.headers["set-cookie"].startswith(f"{auth_routes.SESSION_COOKIE_NAME}=")


def test_plans_are_listed_normal_first(wired) -> None:
    plans = entitlement_routes.list_plans(plan=None)
    agent_plans = entitlement_routes.list_plans(plan=SubscriptionPlan.AGENT)

    assert [plan.id for plan in plans] == [
        "normal-1day",
        "normal-1week",
        "normal-1month",
        "agent-1week",
        "agent-1month",
    ]
    assert [plan.price for plan in agent_plans] == [20000, 50000]


def test_admin_grant_unlocks_entitlement(wired) -> None:
    boss, _ = _register("Boss", "boss@example.com")
    ada, _ = _register("Ada", "ada@example.com")
    assert boss.is_admin

    before = entitlement_routes.read_my_entitlement(current_user=ada)
    assert before.entitlement == Entitlement.NONE

    granted = admin_routes.grant_subscription(
        GrantRequest(userId=ada.id, plan="normal", duration="1week"),
        current_user=boss,
    )
    after = entitlement_routes.read_my_entitlement(current_user=ada)

    assert after.entitlement == Entitlement.NORMAL
    assert after.subscription is not None
    assert after.subscription.id == granted.id
    assert entitlement_routes.check_content_access(agent_only=False, current_user=ada).has_normal_access

    with pytest.raises(HTTPException) as exc:
        entitlement_routes.check_content_access(agent_only=True, current_user=ada)
    assert exc.value.status_code == 403
    assert exc.value.detail["error"] == "agent_subscription_required"


def test_admin_routes_reject_regular_users(wired) -> None:
    ada, _ = _register("Ada", "ada@example.com")

    with pytest.raises(HTTPException) as exc:
        admin_routes.read_stats(current_user=ada)

    assert exc.value.status_code == 403


def test_admin_subscription_edits_map_errors(wired) -> None:
    boss, _ = _register("Boss", "boss@example.com")
    ada, _ = _register("Ada", "ada@example.com")
    granted = admin_routes.grant_subscription(
        GrantRequest(userId=ada.id, plan="normal", duration="1day"),
        current_user=boss,
    )

    upgraded = admin_routes.update_subscription(
        granted.id,
        SubscriptionUpdateRequest(plan="agent", duration="1month"),
        current_user=boss,
    )
    assert upgraded.plan == SubscriptionPlan.AGENT
    assert upgraded.duration == SubscriptionDuration.ONE_MONTH

    cancelled = admin_routes.cancel_subscription(granted.id, current_user=boss)
    assert cancelled.status == SubscriptionStatus.CANCELLED

    with pytest.raises(HTTPException) as conflict:
        admin_routes.update_subscription(granted.id, SubscriptionUpdateRequest(status="active"), current_user=boss)
    with pytest.raises(HTTPException) as missing:
        admin_routes.cancel_subscription("sub-missing", current_user=boss)
    with pytest.raises(HTTPException) as empty:
        admin_routes.update_subscription(granted.id, SubscriptionUpdateRequest(), current_user=boss)

    assert conflict.value.status_code == 409
    assert missing.value.status_code == 404
    assert empty.value.status_code == 400


def test_admin_user_management(wired) -> None:
    boss, _ = _register("Boss", "boss@example.com")
    ada, _ = _register("Ada", "ada@example.com")
    admin_routes.grant_subscription(GrantRequest(userId=ada.id, plan="agent", duration="1week"), current_user=boss)

    promoted = admin_routes.update_user_role(ada.id, RoleUpdateRequest(role="admin"), current_user=boss)
    assert promoted.is_admin

    stats = admin_routes.read_stats(current_user=boss)
    assert stats.total_users == 2
    assert stats.revenue == 20000

    revoked = admin_routes.revoke_user(ada.id, current_user=boss)
    assert revoked.subscriptions_removed == 1
    assert [user.id for user in admin_routes.list_users(current_user=boss)] == [boss.id]

    with pytest.raises(HTTPException) as self_delete:
        admin_routes.revoke_user(boss.id, current_user=boss)
    assert self_delete.value.status_code == 403


def test_checkout_flow_activates_subscription(wired) -> None:
    ada, _ = _register("Ada", "ada@example.com")

    async def scenario():
        started = await checkout_routes.start_checkout(
            CheckoutRequest(offerId="normal-1day", phoneNumber="0772123456"),
            current_user=ada,
        )
        await wired.registry.get(ada.id).task
        return started, checkout_routes.read_checkout(current_user=ada)

    started, finished = asyncio.run(scenario())

    assert started.offer_id == "normal-1day"
    assert finished.state == CheckoutState.SUCCEEDED
    assert finished.subscription is not None
    assert entitlement_routes.read_my_entitlement(current_user=ada).entitlement == Entitlement.NORMAL

    checkout_routes.cancel_checkout(current_user=ada)
    assert wired.registry.get(ada.id) is None
    with pytest.raises(HTTPException) as gone:
        checkout_routes.read_checkout(current_user=ada)
    assert gone.value.status_code == 404


def test_checkout_errors(wired) -> None:
    ada, _ = _register("Ada", "ada@example.com")

    with pytest.raises(HTTPException) as unknown_offer:
        asyncio.run(
            checkout_routes.start_checkout(
                CheckoutRequest(offerId="gold-1year", phoneNumber="0772123456"),
                current_user=ada,
            )
        )
    with pytest.raises(HTTPException) as nothing_running:
        checkout_routes.read_checkout(current_user=ada)
    with pytest.raises(HTTPException) as nothing_to_cancel:
        checkout_routes.cancel_checkout(current_user=ada)

    assert unknown_offer.value.status_code == 404
    assert nothing_running.value.status_code == 404
    assert nothing_to_cancel.value.status_code == 404


def test_healthz_reports_ok() -> None:
    from backend.main import healthz

    assert healthz() == {"ok": True}

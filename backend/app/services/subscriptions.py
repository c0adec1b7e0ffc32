"""Application wiring for identity, ledger, entitlement and checkout services."""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from ..admin import AdminOverrideService, LoggingAdminAuditLogger
from ..config import Settings, load_settings
from ..entitlements import EntitlementService
from ..identity import DocumentProfileRepository, LocalIdentityProvider, SessionStore
from ..ledger import DocumentStore, InMemoryDocumentStore, SubscriptionLedger
from ..ledger.repository import PostgresDocumentStore, connection_factory
from ..payments import CheckoutRegistry, MobileMoneyClient, PaymentOrchestrator, price_for

logger = logging.getLogger("subscriptions")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    settings = get_settings()
    if settings.ledger_backend == "postgres":
        store = PostgresDocumentStore(connection_factory(settings.db_config))
        store.ensure_schema()
        return store
    logger.warning("Using in-memory ledger storage; records are lost on restart")
    return InMemoryDocumentStore()


@lru_cache(maxsize=1)
def get_profile_repository() -> DocumentProfileRepository:
    return DocumentProfileRepository(get_document_store())


@lru_cache(maxsize=1)
def get_ledger() -> SubscriptionLedger:
    ledger = SubscriptionLedger(get_document_store())
    ledger.start()
    return ledger


@lru_cache(maxsize=1)
def get_identity_provider() -> LocalIdentityProvider:
    settings = get_settings()
    return LocalIdentityProvider(
        secret_key=settings.jwt_secret_key,
        token_ttl=timedelta(minutes=settings.jwt_exp_minutes),
    )


def new_session() -> SessionStore:
    """A fresh session bound to the shared provider and profile store."""

    return SessionStore(
        get_identity_provider(),
        get_profile_repository(),
        admin_emails=get_settings().admin_emails,
    )


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    return EntitlementService(None, get_ledger(), get_profile_repository())


@lru_cache(maxsize=1)
def get_admin_service() -> AdminOverrideService:
    return AdminOverrideService(
        ledger=get_ledger(),
        profiles=get_profile_repository(),
        audit_logger=LoggingAdminAuditLogger(),
        price_for=price_for,
    )


@lru_cache(maxsize=1)
def get_payment_client() -> MobileMoneyClient:
    settings = get_settings()
    return MobileMoneyClient(
        settings.payment_api_base_url,
        timeout_seconds=settings.payment_http_timeout,
    )


def _build_orchestrator() -> PaymentOrchestrator:
    settings = get_settings()
    return PaymentOrchestrator(
        get_payment_client(),
        get_ledger(),
        max_attempts=settings.payment_max_attempts,
        poll_interval=settings.payment_poll_interval,
        country_code=settings.payment_country_code,
    )


@lru_cache(maxsize=1)
def get_checkout_registry() -> CheckoutRegistry:
    return CheckoutRegistry(_build_orchestrator)


async def run_ledger_sync(
    ledger: SubscriptionLedger,
    store: DocumentStore,
    *,
    interval: float,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """Deliver change-feed notifications and sweep on a fixed cadence.

    Failures are logged and retried on the next tick.
    """

    stop = stop or asyncio.Event()
    pump_interval = min(interval, 1.0)
    elapsed = interval
    while not stop.is_set():
        try:
            if isinstance(store, PostgresDocumentStore):
                await asyncio.to_thread(store.pump)
            if elapsed >= interval:
                await asyncio.to_thread(ledger.sweep)
                elapsed = 0.0
        except Exception:
            logger.exception("Ledger sync tick failed")
        try:
            await asyncio.wait_for(stop.wait(), pump_interval)
        except asyncio.TimeoutError:
            elapsed += pump_interval


__all__ = [
    "get_admin_service",
    "get_checkout_registry",
    "get_document_store",
    "get_entitlement_service",
    "get_identity_provider",
    "get_ledger",
    "get_payment_client",
    "get_profile_repository",
    "get_settings",
    "new_session",
    "run_ledger_sync",
]

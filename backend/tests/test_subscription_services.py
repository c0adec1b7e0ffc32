from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timedelta, timezone

from backend.app.config import load_settings
from backend.app.ledger import (
    InMemoryDocumentStore,
    Subscription,
    SubscriptionDuration,
    SubscriptionLedger,
    SubscriptionPlan,
    SubscriptionStatus,
)
from backend.app.services import subscriptions as subscription_services


def test_run_ledger_sync_sweeps_until_stopped() -> None:
    store = InMemoryDocumentStore()
    ledger = SubscriptionLedger(store)
    overdue = ledger.create(
        Subscription.open(
            user_id="user-1",
            plan=SubscriptionPlan.NORMAL,
            duration=SubscriptionDuration.ONE_DAY,
            start_date=datetime.now(timezone.utc) - timedelta(days=3),
        )
    )

    async def scenario() -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(subscription_services.run_ledger_sync(ledger, store, interval=0.01, stop=stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    assert ledger.get(overdue.id).status == SubscriptionStatus.EXPIRED


def test_run_ledger_sync_sweeps_off_the_event_loop() -> None:
    store = InMemoryDocumentStore()
    ledger = SubscriptionLedger(store)
    sweep_threads = []

    def sweep(now=None):
        sweep_threads.append(threading.get_ident())
        return []

    ledger.sweep = sweep

    async def scenario() -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(subscription_services.run_ledger_sync(ledger, store, interval=0.01, stop=stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    assert sweep_threads
    assert threading.get_ident() not in sweep_threads


def test_memory_backend_wiring(monkeypatch) -> None:
    settings = load_settings({"ADMIN_EMAILS": "boss@example.com"})
    monkeypatch.setattr(subscription_services, "get_settings", lambda: settings)
    subscription_services.get_document_store.cache_clear()
    subscription_services.get_profile_repository.cache_clear()
    subscription_services.get_ledger.cache_clear()
    try:
        store = subscription_services.get_document_store()
        ledger = subscription_services.get_ledger()
        session = subscription_services.new_session()

        assert isinstance(store, InMemoryDocumentStore)
        assert ledger.is_live
        assert session.principal is None
        assert subscription_services.get_ledger() is ledger
    finally:
        subscription_services.get_ledger().stop()
        subscription_services.get_identity_provider.cache_clear()
        subscription_services.get_document_store.cache_clear()
        subscription_services.get_profile_repository.cache_clear()
        subscription_services.get_ledger.cache_clear()

"""Live subscription ledger with an expiry sweep."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from .models import Subscription, SubscriptionDuration, SubscriptionPlan, SubscriptionStatus, can_transition
from .store import SUBSCRIPTIONS, DocumentStore, Snapshot, Unsubscribe

logger = logging.getLogger(__name__)

LedgerListener = Callable[[Tuple[Subscription, ...]], None]

_EDITABLE_FIELDS = {"user_id", "plan", "duration", "status", "start_date"}
_ALIASES = {"userId": "user_id", "startDate": "start_date", "endDate": "end_date"}


class SubscriptionNotFoundError(LookupError):
    """Raised when a subscription id is not present in the ledger."""


class InvalidTransitionError(ValueError):
    """Raised when an update would move a subscription backwards."""


@dataclass(frozen=True)
class LedgerSummary:
    """Aggregate counts for administrative dashboards."""

    total: int
    active: int
    expired: int
    cancelled: int
    revenue: int


class SubscriptionLedger:
    """Coordinates all reads and writes of subscription records.

    Once :meth:`start` attaches to the store's change feed, the ledger keeps a
    live view of every record and sweeps overdue ones to ``expired`` on each
    refresh. Listeners registered through :meth:`subscribe` receive the
    refreshed view.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._records: Tuple[Subscription, ...] = ()
        self._listeners: List[LedgerListener] = []
        self._detach: Optional[Unsubscribe] = None
        self._lock = Lock()
        self._view_lock = Lock()

    @property
    def is_live(self) -> bool:
        return self._detach is not None

    def start(self) -> None:
        if self._detach is None:
            self._detach = self._store.subscribe(SUBSCRIPTIONS, self._on_change)

    def stop(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def subscribe(self, listener: LedgerListener) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> Tuple[Subscription, ...]:
        """Return the latest view, reading through when not attached to the feed."""

        if self.is_live:
            return self._records
        return _parse_snapshot(self._store.list(SUBSCRIPTIONS))

    def list(self) -> List[Subscription]:
        return list(self.snapshot())

    def list_by_user(self, user_id: str) -> List[Subscription]:
        return [record for record in self.snapshot() if record.user_id == user_id]

    def get(self, subscription_id: str) -> Subscription:
        document = self._store.get(SUBSCRIPTIONS, subscription_id)
        if document is None:
            raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")
        return Subscription.from_document(subscription_id, document)

    def create(self, record: Subscription) -> Subscription:
        if self._store.get(SUBSCRIPTIONS, record.id) is not None:
            raise ValueError(f"Subscription {record.id} already exists")
        self._store.put(SUBSCRIPTIONS, record.id, record.to_document())
        logger.info(
            "Subscription created id=%s user=%s plan=%s duration=%s",
            record.id,
            record.user_id,
            record.plan.value,
            record.duration.value,
        )
        return record

    def update_partial(self, subscription_id: str, fields: Mapping[str, Any]) -> Subscription:
        """Apply an edit, recomputing ``end_date`` from the resulting window."""

        changes = _normalize_fields(fields)
        current = self.get(subscription_id)

        target_status = SubscriptionStatus(changes.get("status", current.status))
        if not can_transition(current.status, target_status):
            raise InvalidTransitionError(
                f"Cannot move subscription {subscription_id} from {current.status.value} to {target_status.value}"
            )

        start_date = changes.get("start_date", current.start_date)
        duration = SubscriptionDuration(changes.get("duration", current.duration))
        try:
            updated = Subscription.open(
                subscription_id=current.id,
                user_id=changes.get("user_id", current.user_id),
                plan=SubscriptionPlan(changes.get("plan", current.plan)),
                duration=duration,
                start_date=start_date,
            ).model_copy(update={"status": target_status})
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc

        before = current.to_document()
        diff = {key: value for key, value in updated.to_document().items() if before.get(key) != value}
        if not diff:
            return current

        stored = self._store.update(
            SUBSCRIPTIONS,
            subscription_id,
            diff,
            expected={"status": current.status.value},
        )
        if stored is None:
            # Either deleted or moved to another status since it was read.
            latest = self.get(subscription_id)
            raise InvalidTransitionError(
                f"Subscription {subscription_id} changed concurrently (now {latest.status.value})"
            )
        logger.info("Subscription updated id=%s fields=%s", subscription_id, sorted(diff))
        return Subscription.from_document(subscription_id, stored)

    def cancel(self, subscription_id: str) -> Subscription:
        return self.update_partial(subscription_id, {"status": SubscriptionStatus.CANCELLED})

    def delete_by_user(self, user_id: str) -> int:
        removed = 0
        for record in _parse_snapshot(self._store.list(SUBSCRIPTIONS)):
            if record.user_id == user_id and self._store.delete(SUBSCRIPTIONS, record.id):
                removed += 1
        logger.info("Deleted %s subscriptions for user=%s", removed, user_id)
        return removed

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Flip overdue active records to ``expired`` using the latest store state."""

        expired = self._sweep(_parse_snapshot(self._store.list(SUBSCRIPTIONS)), now or self._clock())
        if self.is_live:
            self._refresh()
        return expired

    def summarize(self, price_for: Callable[[SubscriptionPlan, SubscriptionDuration], int]) -> LedgerSummary:
        records = self.snapshot()
        counts: Dict[SubscriptionStatus, int] = {status: 0 for status in SubscriptionStatus}
        revenue = 0
        for record in records:
            counts[record.status] += 1
            revenue += price_for(record.plan, record.duration)
        return LedgerSummary(
            total=len(records),
            active=counts[SubscriptionStatus.ACTIVE],
            expired=counts[SubscriptionStatus.EXPIRED],
            cancelled=counts[SubscriptionStatus.CANCELLED],
            revenue=revenue,
        )

    def _sweep(self, records: Sequence[Subscription], now: datetime) -> List[str]:
        expired: List[str] = []
        for record in records:
            if not record.is_overdue(now):
                continue
            try:
                stored = self._store.update(
                    SUBSCRIPTIONS,
                    record.id,
                    {"status": SubscriptionStatus.EXPIRED.value},
                    expected={"status": SubscriptionStatus.ACTIVE.value},
                )
            except Exception:
                logger.warning("Expiry write failed for subscription %s; retrying next refresh", record.id, exc_info=True)
                continue
            if stored is not None:
                expired.append(record.id)
        if expired:
            logger.info("Expired %s subscriptions: %s", len(expired), ", ".join(expired))
        return expired

    def _refresh(self) -> Tuple[Subscription, ...]:
        with self._view_lock:
            records = _parse_snapshot(self._store.list(SUBSCRIPTIONS))
            self._records = records
        return records

    def _on_change(self, snapshot: Snapshot) -> None:
        # Notifications may arrive out of order across threads; always re-read.
        records = self._refresh()
        self._sweep(records, self._clock())
        with self._lock:
            listeners = list(self._listeners)
        current = self._records
        for listener in listeners:
            listener(current)


def _normalize_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for key, value in fields.items():
        name = _ALIASES.get(key, key)
        if name == "end_date":
            raise ValueError("endDate is derived from startDate and duration and cannot be set")
        if name not in _EDITABLE_FIELDS:
            raise ValueError(f"Field {key!r} cannot be edited")
        changes[name] = value
    if "start_date" in changes and isinstance(changes["start_date"], str):
        changes["start_date"] = datetime.fromisoformat(changes["start_date"].replace("Z", "+00:00"))
    return changes


def _parse_snapshot(snapshot: Snapshot) -> Tuple[Subscription, ...]:
    records: List[Subscription] = []
    for document_id, document in snapshot.items():
        try:
            records.append(Subscription.from_document(document_id, document))
        except ValidationError:
            logger.warning("Skipping malformed subscription document %s", document_id, exc_info=True)
    return tuple(records)


__all__ = [
    "InvalidTransitionError",
    "LedgerListener",
    "LedgerSummary",
    "SubscriptionLedger",
    "SubscriptionNotFoundError",
]

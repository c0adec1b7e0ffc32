"""Service exposing entitlement checks for the session and for arbitrary users."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional

from ..identity.repository import ProfileRepository
from ..identity.session import SessionStore
from ..ledger.service import SubscriptionLedger
from .models import EntitlementResult
from .resolver import resolve_entitlement

EntitlementListener = Callable[[EntitlementResult], None]


class EntitlementService:
    """Recomputes entitlements from the latest principal and ledger snapshot.

    Nothing is cached: every call resolves against current state, and
    listeners are re-notified whenever the session or the ledger changes.
    """

    def __init__(
        self,
        session: Optional[SessionStore],
        ledger: SubscriptionLedger,
        profiles: ProfileRepository,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session = session
        self._ledger = ledger
        self._profiles = profiles
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._listeners: List[EntitlementListener] = []
        self._detach: List[Callable[[], None]] = []
        self._lock = Lock()

    def current(self, now: Optional[datetime] = None) -> EntitlementResult:
        """Entitlement of the signed-in principal; ``none`` without a session."""

        principal = self._session.principal if self._session is not None else None
        return resolve_entitlement(principal, self._ledger.snapshot(), now or self._clock())

    def for_user(self, user_id: str, now: Optional[datetime] = None) -> EntitlementResult:
        principal = self._profiles.get_profile(user_id)
        if principal is None:
            raise LookupError(f"No profile found for user={user_id}")
        return resolve_entitlement(principal, self._ledger.snapshot(), now or self._clock())

    def has_normal_access(self, user_id: str, now: Optional[datetime] = None) -> bool:
        return self.for_user(user_id, now).has_normal_access

    def has_agent_access(self, user_id: str, now: Optional[datetime] = None) -> bool:
        return self.for_user(user_id, now).has_agent_access

    def subscribe(self, listener: EntitlementListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)
            if not self._detach:
                self._detach = [self._ledger.subscribe(lambda _records: self._publish())]
                if self._session is not None:
                    self._detach.append(self._session.subscribe(lambda _principal: self._publish()))

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
                if not self._listeners:
                    for detach in self._detach:
                        detach()
                    self._detach = []

        return unsubscribe

    def _publish(self) -> None:
        result = self.current()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(result)


__all__ = ["EntitlementListener", "EntitlementService"]

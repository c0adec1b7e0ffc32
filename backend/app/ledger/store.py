"""Document store abstraction backing the ledger and profile records."""
from __future__ import annotations

import copy
import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Snapshot = Dict[str, Document]
ChangeCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]

SUBSCRIPTIONS = "subscriptions"
USERS = "users"


class DocumentStore(Protocol):
    """Keyed document collections with a push-style change feed.

    Every write is atomic for a single document. ``update`` accepts an
    ``expected`` mapping and only applies when each listed field currently
    holds the given value.
    """

    def list(self, collection: str) -> Snapshot:
        ...

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        ...

    def put(self, collection: str, document_id: str, document: Mapping[str, Any]) -> Document:
        ...

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Document]:
        ...

    def delete(self, collection: str, document_id: str) -> bool:
        ...

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        ...


class InMemoryDocumentStore:
    """Process-local store that notifies subscribers after every write."""

    def __init__(self) -> None:
        self._collections: Dict[str, Snapshot] = {}
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._lock = Lock()

    def list(self, collection: str) -> Snapshot:
        with self._lock:
            return copy.deepcopy(self._collections.get(collection, {}))

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        with self._lock:
            document = self._collections.get(collection, {}).get(document_id)
            return copy.deepcopy(document) if document is not None else None

    def put(self, collection: str, document_id: str, document: Mapping[str, Any]) -> Document:
        stored = copy.deepcopy(dict(document))
        stored.pop("id", None)
        with self._lock:
            self._collections.setdefault(collection, {})[document_id] = stored
        self._notify(collection)
        return copy.deepcopy(stored)

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Document]:
        with self._lock:
            document = self._collections.get(collection, {}).get(document_id)
            if document is None:
                return None
            if expected and any(document.get(key) != value for key, value in expected.items()):
                return None
            document.update(copy.deepcopy(dict(fields)))
            document.pop("id", None)
            updated = copy.deepcopy(document)
        self._notify(collection)
        return updated

    def delete(self, collection: str, document_id: str) -> bool:
        with self._lock:
            removed = self._collections.get(collection, {}).pop(document_id, None)
        if removed is None:
            return False
        self._notify(collection)
        return True

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers.setdefault(collection, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(collection, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        # Match real-time backends, which deliver the current value on attach.
        callback(self.list(collection))
        return unsubscribe

    def _notify(self, collection: str) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(collection, []))
        if not callbacks:
            return
        snapshot = self.list(collection)
        for callback in callbacks:
            try:
                callback(copy.deepcopy(snapshot))
            except Exception:
                logger.exception("Change subscriber failed for collection=%s", collection)


__all__ = [
    "ChangeCallback",
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SUBSCRIPTIONS",
    "Snapshot",
    "USERS",
    "Unsubscribe",
]

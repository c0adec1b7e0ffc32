"""PostgreSQL-backed document store with a LISTEN/NOTIFY change feed."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import psycopg2
import psycopg2.extensions
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .store import ChangeCallback, Document, Snapshot, Unsubscribe

logger = logging.getLogger(__name__)

NOTIFY_CHANNEL = "ledger_changes"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ledger_documents (
    collection TEXT NOT NULL,
    document_id TEXT NOT NULL,
    body JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection, document_id)
)
"""


@contextmanager
def managed_connection(connect: Callable[[], PgConnection]):
    """Open a connection and commit or roll back around the block."""

    connection = connect()
    try:
        yield connection
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


class PostgresDocumentStore:
    """Concrete store persisting documents as JSONB rows.

    Writes announce the touched collection on ``NOTIFY_CHANNEL`` inside the
    same transaction, so subscribers only hear about committed changes.
    Notifications are delivered when :meth:`pump` is called.
    """

    def __init__(self, connect: Callable[[], PgConnection]) -> None:
        self._connect = connect
        self._listener: Optional[PgConnection] = None
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._lock = Lock()

    def ensure_schema(self) -> None:
        with self._cursor() as cursor:
            cursor.execute(SCHEMA_SQL)

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        with managed_connection(self._connect) as connection:
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def list(self, collection: str) -> Snapshot:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT document_id, body
                FROM ledger_documents
                WHERE collection = %s
                """,
                (collection,),
            )
            rows = cursor.fetchall() or []
        return {row["document_id"]: dict(row["body"]) for row in rows}

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT body
                FROM ledger_documents
                WHERE collection = %s AND document_id = %s
                LIMIT 1
                """,
                (collection, document_id),
            )
            row = cursor.fetchone()
        return dict(row["body"]) if row else None

    def put(self, collection: str, document_id: str, document: Mapping[str, Any]) -> Document:
        body = {key: value for key, value in document.items() if key != "id"}
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO ledger_documents (collection, document_id, body)
                VALUES (%s, %s, %s)
                ON CONFLICT (collection, document_id) DO UPDATE SET
                    body = EXCLUDED.body,
                    updated_at = NOW()
                RETURNING body
                """,
                (collection, document_id, psycopg2.extras.Json(body)),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist document")
            cursor.execute("SELECT pg_notify(%s, %s)", (NOTIFY_CHANNEL, collection))
        return dict(row["body"])

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Document]:
        changes = {key: value for key, value in fields.items() if key != "id"}
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE ledger_documents
                SET body = body || %s, updated_at = NOW()
                WHERE collection = %s AND document_id = %s AND body @> %s
                RETURNING body
                """,
                (
                    psycopg2.extras.Json(changes),
                    collection,
                    document_id,
                    psycopg2.extras.Json(dict(expected or {})),
                ),
            )
            row = cursor.fetchone()
            if row:
                cursor.execute("SELECT pg_notify(%s, %s)", (NOTIFY_CHANNEL, collection))
        return dict(row["body"]) if row else None

    def delete(self, collection: str, document_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM ledger_documents
                WHERE collection = %s AND document_id = %s
                """,
                (collection, document_id),
            )
            removed = cursor.rowcount > 0
            if removed:
                cursor.execute("SELECT pg_notify(%s, %s)", (NOTIFY_CHANNEL, collection))
        return removed

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        self._ensure_listener()
        with self._lock:
            self._subscribers.setdefault(collection, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(collection, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        callback(self.list(collection))
        return unsubscribe

    def pump(self) -> int:
        """Deliver pending notifications; returns the number of collections refreshed."""

        if self._listener is None:
            return 0
        self._listener.poll()
        touched = set()
        while self._listener.notifies:
            notification = self._listener.notifies.pop(0)
            touched.add(notification.payload)
        for collection in touched:
            with self._lock:
                callbacks = list(self._subscribers.get(collection, []))
            if not callbacks:
                continue
            snapshot = self.list(collection)
            for callback in callbacks:
                try:
                    callback(dict(snapshot))
                except Exception:
                    logger.exception("Change subscriber failed for collection=%s", collection)
        return len(touched)

    def close(self) -> None:
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    def _ensure_listener(self) -> None:
        if self._listener is not None:
            return
        listener = self._connect()
        listener.set_isolation_level(psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT)
        with listener.cursor() as cursor:
            cursor.execute(f"LISTEN {NOTIFY_CHANNEL}")
        self._listener = listener


def connection_factory(db_config: Mapping[str, Any]) -> Callable[[], PgConnection]:
    """Return a zero-argument callable opening connections with ``db_config``."""

    def connect() -> PgConnection:
        return psycopg2.connect(**db_config)

    return connect


__all__ = ["NOTIFY_CHANNEL", "PostgresDocumentStore", "connection_factory", "managed_connection"]

"""Profile persistence on top of the shared document store."""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Protocol

from pydantic import ValidationError

from ..ledger.store import USERS, DocumentStore
from .models import Principal

logger = logging.getLogger(__name__)


class ProfileRepository(Protocol):
    """Data access layer for principal profile records."""

    def get_profile(self, principal_id: str) -> Optional[Principal]:
        ...

    def create_profile(self, principal: Principal) -> Principal:
        ...

    def update_profile(self, principal_id: str, fields: Mapping[str, Any]) -> Optional[Principal]:
        ...

    def delete_profile(self, principal_id: str) -> bool:
        ...

    def list_profiles(self) -> List[Principal]:
        ...


class DocumentProfileRepository:
    """Stores profiles in the ``users`` collection keyed by principal id."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get_profile(self, principal_id: str) -> Optional[Principal]:
        document = self._store.get(USERS, principal_id)
        return Principal.from_document(principal_id, document) if document is not None else None

    def create_profile(self, principal: Principal) -> Principal:
        """Insert ``principal`` unless a profile already exists; returns the stored one."""

        existing = self.get_profile(principal.id)
        if existing is not None:
            return existing
        self._store.put(USERS, principal.id, principal.to_document())
        return principal

    def update_profile(self, principal_id: str, fields: Mapping[str, Any]) -> Optional[Principal]:
        changes = {key: (value.value if hasattr(value, "value") else value) for key, value in fields.items()}
        document = self._store.update(USERS, principal_id, changes)
        return Principal.from_document(principal_id, document) if document is not None else None

    def delete_profile(self, principal_id: str) -> bool:
        return self._store.delete(USERS, principal_id)

    def list_profiles(self) -> List[Principal]:
        profiles: List[Principal] = []
        for principal_id, document in self._store.list(USERS).items():
            try:
                profiles.append(Principal.from_document(principal_id, document))
            except ValidationError:
                logger.warning("Skipping malformed profile document %s", principal_id, exc_info=True)
        return profiles


__all__ = ["DocumentProfileRepository", "ProfileRepository"]

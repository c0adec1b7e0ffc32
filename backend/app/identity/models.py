"""Domain models for signed-in principals."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class PrincipalRole(str, Enum):
    """Roles a principal can hold."""

    USER = "user"
    ADMIN = "admin"


class IdentityClaims(BaseModel):
    """What the identity provider asserts about an authenticated account."""

    uid: str
    email: str = ""
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    role_claim: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Principal(BaseModel):
    """Profile record mirrored from the identity provider on first sign-in."""

    id: str
    email: str
    name: str
    role: PrincipalRole = PrincipalRole.USER
    avatar: Optional[str] = None
    created_at: datetime = Field(
        alias="createdAt",
        default_factory=lambda: datetime.now(timezone.utc),
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == PrincipalRole.ADMIN

    @classmethod
    def from_document(cls, document_id: str, document: Mapping[str, Any]) -> "Principal":
        payload = dict(document)
        payload["id"] = document_id
        return cls.model_validate(payload)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["IdentityClaims", "Principal", "PrincipalRole"]

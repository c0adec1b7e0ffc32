"""Exceptions raised when content tiers are locked."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from ..entitlements import Entitlement


class FeatureGateError(Exception):
    """A locked tier, reported to API callers as a structured 401 or 403."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int = status.HTTP_403_FORBIDDEN,
        required_tier: Optional[str] = None,
        entitlement: Optional[Entitlement] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.required_tier = required_tier
        self.entitlement = entitlement

    @property
    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.required_tier is not None:
            body["required_tier"] = self.required_tier
        if self.entitlement is not None:
            body["entitlement"] = self.entitlement.value
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.payload)

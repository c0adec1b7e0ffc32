"""HTTP client for the mobile-money payment provider."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .models import DepositResponse, PaymentProviderError, PhoneValidationResponse, RequestStatusResponse

logger = logging.getLogger(__name__)

_ResponseModel = TypeVar("_ResponseModel", bound=BaseModel)


class MobileMoneyClient:
    """Thin async wrapper around the provider's JSON endpoints.

    The provider answers rejections with ``success: false`` bodies, sometimes
    on non-2xx statuses, so bodies are decoded regardless of status code.
    Anything that cannot be decoded raises :class:`PaymentProviderError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds)
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def validate_phone(self, msisdn: str) -> PhoneValidationResponse:
        return await self._request(
            "POST",
            "/validate-phone",
            PhoneValidationResponse,
            json={"msisdn": msisdn},
        )

    async def deposit(self, msisdn: str, amount: int, description: str) -> DepositResponse:
        return await self._request(
            "POST",
            "/deposit",
            DepositResponse,
            json={"msisdn": msisdn, "amount": int(amount), "description": description},
        )

    async def request_status(self, internal_reference: str) -> RequestStatusResponse:
        return await self._request(
            "GET",
            "/request-status",
            RequestStatusResponse,
            params={"internal_reference": internal_reference},
        )

    async def _request(
        self,
        method: str,
        path: str,
        response_model: Type[_ResponseModel],
        **kwargs: Any,
    ) -> _ResponseModel:
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PaymentProviderError(f"{method} {path} failed: {exc}") from exc

        try:
            body: Dict[str, Any] = response.json()
        except ValueError as exc:
            raise PaymentProviderError(
                f"{method} {path} returned undecodable body (HTTP {response.status_code})"
            ) from exc

        if not isinstance(body, dict):
            raise PaymentProviderError(f"{method} {path} returned a non-object body")

        try:
            parsed = response_model.model_validate(body)
        except ValidationError as exc:
            raise PaymentProviderError(f"{method} {path} returned an unexpected payload") from exc

        logger.debug("Provider %s %s -> HTTP %s %s", method, path, response.status_code, body)
        return parsed


__all__ = ["MobileMoneyClient"]

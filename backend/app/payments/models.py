"""Domain models for the mobile-money checkout flow."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..ledger.models import Subscription


class CheckoutState(str, Enum):
    """States of a single checkout attempt."""

    IDLE = "idle"
    PHONE_VALIDATING = "phone_validating"
    DEPOSIT_INITIATING = "deposit_initiating"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {CheckoutState.SUCCEEDED, CheckoutState.FAILED, CheckoutState.TIMED_OUT, CheckoutState.CANCELLED}
)


class PaymentErrorKind(str, Enum):
    """Categories of terminal checkout errors."""

    VALIDATION = "validation"
    INITIATION = "initiation"
    PROVIDER_FAILURE = "provider_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PhoneValidationResponse(BaseModel):
    success: bool = False
    message: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class DepositResponse(BaseModel):
    success: bool = False
    internal_reference: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class RequestStatusResponse(BaseModel):
    success: bool = False
    # Kept as a plain string: providers occasionally report states outside the documented set.
    request_status: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


@dataclass
class PaymentRequest:
    """Transient state for one checkout attempt; never persisted."""

    phone_number: str
    normalized_msisdn: str
    max_attempts: int
    poll_interval: float
    internal_reference: Optional[str] = None
    attempt: int = 0

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempt)


class CheckoutResult(BaseModel):
    """Terminal outcome reported back to the caller."""

    state: CheckoutState
    user_id: str
    offer_id: str
    subscription: Optional[Subscription] = None
    error: Optional[str] = None
    error_kind: Optional[PaymentErrorKind] = None
    attempts: int = 0
    internal_reference: Optional[str] = None
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.state == CheckoutState.SUCCEEDED


class PaymentProviderError(Exception):
    """Transport, HTTP or decoding failure talking to the payment provider."""


class CheckoutInProgressError(RuntimeError):
    """Raised when a checkout is started while another one is still running."""


__all__ = [
    "CheckoutInProgressError",
    "CheckoutResult",
    "CheckoutState",
    "DepositResponse",
    "PaymentErrorKind",
    "PaymentProviderError",
    "PaymentRequest",
    "PhoneValidationResponse",
    "RequestStatus",
    "RequestStatusResponse",
]

"""State machine driving one mobile-money checkout attempt."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional, Protocol

from ..ledger.models import Subscription
from ..ledger.service import SubscriptionLedger
from .catalog import PlanOffer
from .models import (
    CheckoutInProgressError,
    CheckoutResult,
    CheckoutState,
    DepositResponse,
    PaymentErrorKind,
    PaymentProviderError,
    PaymentRequest,
    PhoneValidationResponse,
    RequestStatus,
    RequestStatusResponse,
)
from .phone import DEFAULT_COUNTRY_CODE, normalize_msisdn

logger = logging.getLogger("payments")

StateListener = Callable[[CheckoutState, Optional[PaymentRequest]], None]

INVALID_PHONE_MESSAGE = "Invalid phone number"
INITIATION_FAILED_MESSAGE = "Payment initiation failed"
PAYMENT_FAILED_MESSAGE = "Payment failed"
TIMEOUT_MESSAGE = "Payment timeout. Please check your phone."
PROVIDER_UNREACHABLE_MESSAGE = "Could not reach the payment provider. Please try again."
ACTIVATION_FAILED_MESSAGE = "Payment received but the subscription could not be activated. Please contact support."
CANCELLED_MESSAGE = "Checkout was closed before the payment completed."


class PaymentGateway(Protocol):
    """Provider operations used by the orchestrator."""

    async def validate_phone(self, msisdn: str) -> PhoneValidationResponse:
        ...

    async def deposit(self, msisdn: str, amount: int, description: str) -> DepositResponse:
        ...

    async def request_status(self, internal_reference: str) -> RequestStatusResponse:
        ...


class CancellationToken:
    """Cooperative cancel signal shared between a checkout view and its poll loop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns ``True`` if cancelled meanwhile."""

        if self._event.is_set():
            return True
        if timeout <= 0:
            await asyncio.sleep(0)
            return self._event.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class PaymentOrchestrator:
    """Runs validate → deposit → poll → finalize for one checkout view.

    A run ends in ``SUCCEEDED``, ``FAILED``, ``TIMED_OUT`` or ``CANCELLED``;
    the next :meth:`checkout` call starts again from ``IDLE``. Only a
    successful run writes to the ledger, exactly once.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        ledger: SubscriptionLedger,
        *,
        max_attempts: int = 30,
        poll_interval: float = 2.0,
        country_code: str = DEFAULT_COUNTRY_CODE,
        activation_attempts: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._gateway = gateway
        self._ledger = ledger
        self.max_attempts = max_attempts
        self.poll_interval = max(0.0, poll_interval)
        self.country_code = country_code
        self._activation_attempts = max(1, activation_attempts)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = CheckoutState.IDLE
        self._request: Optional[PaymentRequest] = None
        self._listeners: List[StateListener] = []
        self._lock = Lock()

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def request(self) -> Optional[PaymentRequest]:
        return self._request

    @property
    def is_running(self) -> bool:
        return self._state not in {CheckoutState.IDLE} and not self._state.is_terminal

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        if self.is_running:
            raise CheckoutInProgressError("Cannot reset while a checkout is running")
        self._request = None
        self._transition(CheckoutState.IDLE)

    async def checkout(
        self,
        user_id: str,
        offer: PlanOffer,
        phone_number: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> CheckoutResult:
        if self.is_running:
            raise CheckoutInProgressError("A checkout is already in progress")
        if self._state != CheckoutState.IDLE:
            self.reset()
        token = token or CancellationToken()

        self._transition(CheckoutState.PHONE_VALIDATING)
        try:
            msisdn = normalize_msisdn(phone_number, country_code=self.country_code)
        except ValueError:
            return self._fail(user_id, offer, PaymentErrorKind.VALIDATION, INVALID_PHONE_MESSAGE)

        self._request = PaymentRequest(
            phone_number=phone_number,
            normalized_msisdn=msisdn,
            max_attempts=self.max_attempts,
            poll_interval=self.poll_interval,
        )

        try:
            validation = await self._gateway.validate_phone(msisdn)
        except PaymentProviderError:
            logger.warning("Phone validation request failed msisdn=%s", msisdn, exc_info=True)
            return self._fail(user_id, offer, PaymentErrorKind.VALIDATION, PROVIDER_UNREACHABLE_MESSAGE)
        if not validation.success:
            return self._fail(user_id, offer, PaymentErrorKind.VALIDATION, validation.message or INVALID_PHONE_MESSAGE)
        if token.cancelled:
            return self._cancel(user_id, offer)

        self._transition(CheckoutState.DEPOSIT_INITIATING)
        try:
            deposit = await self._gateway.deposit(msisdn, offer.price, offer.description)
        except PaymentProviderError:
            logger.warning("Deposit request failed msisdn=%s offer=%s", msisdn, offer.id, exc_info=True)
            return self._fail(user_id, offer, PaymentErrorKind.INITIATION, PROVIDER_UNREACHABLE_MESSAGE)
        if not deposit.success or not deposit.internal_reference:
            return self._fail(user_id, offer, PaymentErrorKind.INITIATION, deposit.message or INITIATION_FAILED_MESSAGE)
        self._request.internal_reference = deposit.internal_reference
        logger.info(
            "Deposit initiated user=%s offer=%s reference=%s amount=%s",
            user_id,
            offer.id,
            deposit.internal_reference,
            offer.price,
        )

        self._transition(CheckoutState.POLLING)
        return await self._poll(user_id, offer, token)

    async def _poll(self, user_id: str, offer: PlanOffer, token: CancellationToken) -> CheckoutResult:
        request = self._request
        if request is None or request.internal_reference is None:
            raise RuntimeError("Status polling requires an initiated deposit")
        reference = request.internal_reference

        while request.attempt < request.max_attempts:
            if token.cancelled:
                return self._cancel(user_id, offer)
            request.attempt += 1
            try:
                status = await self._gateway.request_status(reference)
            except PaymentProviderError as exc:
                logger.debug("Status check %s/%s for %s failed: %s", request.attempt, request.max_attempts, reference, exc)
                status = None

            if status is not None:
                if status.success and status.request_status == RequestStatus.SUCCESS.value:
                    return await self._succeed(user_id, offer)
                if status.request_status == RequestStatus.FAILED.value:
                    return self._fail(
                        user_id,
                        offer,
                        PaymentErrorKind.PROVIDER_FAILURE,
                        status.message or PAYMENT_FAILED_MESSAGE,
                    )

            if request.attempt < request.max_attempts and await token.wait(request.poll_interval):
                return self._cancel(user_id, offer)

        logger.warning("Payment %s timed out after %s status checks", reference, request.attempt)
        return self._finish(
            CheckoutState.TIMED_OUT,
            user_id,
            offer,
            error=TIMEOUT_MESSAGE,
            error_kind=PaymentErrorKind.TIMEOUT,
        )

    async def _succeed(self, user_id: str, offer: PlanOffer) -> CheckoutResult:
        record = Subscription.open(
            user_id=user_id,
            plan=offer.plan,
            duration=offer.duration,
            start_date=self._clock(),
        )
        for attempt in range(1, self._activation_attempts + 1):
            try:
                created = await asyncio.to_thread(self._ledger.create, record)
            except Exception:
                logger.exception(
                    "Ledger write %s/%s failed after payment reference=%s",
                    attempt,
                    self._activation_attempts,
                    self._reference(),
                )
                continue
            return self._finish(CheckoutState.SUCCEEDED, user_id, offer, subscription=created)

        logger.error("Payment %s succeeded but no subscription was recorded for user=%s", self._reference(), user_id)
        return self._finish(
            CheckoutState.FAILED,
            user_id,
            offer,
            error=ACTIVATION_FAILED_MESSAGE,
            error_kind=PaymentErrorKind.INITIATION,
        )

    def _fail(self, user_id: str, offer: PlanOffer, kind: PaymentErrorKind, message: str) -> CheckoutResult:
        logger.info("Checkout failed user=%s offer=%s kind=%s message=%s", user_id, offer.id, kind.value, message)
        return self._finish(CheckoutState.FAILED, user_id, offer, error=message, error_kind=kind)

    def _cancel(self, user_id: str, offer: PlanOffer) -> CheckoutResult:
        if self._reference():
            logger.warning("Checkout closed while payment %s was pending", self._reference())
        return self._finish(
            CheckoutState.CANCELLED,
            user_id,
            offer,
            error=CANCELLED_MESSAGE,
            error_kind=PaymentErrorKind.CANCELLED,
        )

    def _finish(
        self,
        state: CheckoutState,
        user_id: str,
        offer: PlanOffer,
        *,
        subscription: Optional[Subscription] = None,
        error: Optional[str] = None,
        error_kind: Optional[PaymentErrorKind] = None,
    ) -> CheckoutResult:
        result = CheckoutResult(
            state=state,
            user_id=user_id,
            offer_id=offer.id,
            subscription=subscription,
            error=error,
            error_kind=error_kind,
            attempts=self._request.attempt if self._request else 0,
            internal_reference=self._reference(),
            finished_at=self._clock(),
        )
        self._transition(state)
        return result

    def _reference(self) -> Optional[str]:
        return self._request.internal_reference if self._request else None

    def _transition(self, state: CheckoutState) -> None:
        if state == self._state:
            return
        logger.debug("Checkout state %s -> %s", self._state.value, state.value)
        self._state = state
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state, self._request)


__all__ = [
    "ACTIVATION_FAILED_MESSAGE",
    "CancellationToken",
    "INITIATION_FAILED_MESSAGE",
    "INVALID_PHONE_MESSAGE",
    "PAYMENT_FAILED_MESSAGE",
    "PaymentGateway",
    "PaymentOrchestrator",
    "StateListener",
    "TIMEOUT_MESSAGE",
]

"""Tracks the running checkout of each user so it can be inspected or closed."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .catalog import PlanOffer
from .models import CheckoutInProgressError, CheckoutResult, CheckoutState
from .orchestrator import CancellationToken, PaymentOrchestrator

logger = logging.getLogger("payments")


@dataclass
class CheckoutHandle:
    """A user's checkout view: its orchestrator, cancel token and task."""

    orchestrator: PaymentOrchestrator
    offer: PlanOffer
    token: CancellationToken = field(default_factory=CancellationToken)
    task: Optional["asyncio.Task[CheckoutResult]"] = None

    @property
    def state(self) -> CheckoutState:
        return self.orchestrator.state

    @property
    def result(self) -> Optional[CheckoutResult]:
        if self.task is None or not self.task.done() or self.task.cancelled():
            return None
        if self.task.exception() is not None:
            return None
        return self.task.result()


class CheckoutRegistry:
    """One checkout per user, each running as an asyncio task."""

    def __init__(self, orchestrator_factory: Callable[[], PaymentOrchestrator]) -> None:
        self._factory = orchestrator_factory
        self._handles: Dict[str, CheckoutHandle] = {}

    def start(self, user_id: str, offer: PlanOffer, phone_number: str) -> CheckoutHandle:
        existing = self._handles.get(user_id)
        if existing is not None and existing.task is not None and not existing.task.done():
            raise CheckoutInProgressError("A checkout is already in progress")

        handle = CheckoutHandle(orchestrator=self._factory(), offer=offer)
        handle.task = asyncio.create_task(
            handle.orchestrator.checkout(user_id, offer, phone_number, token=handle.token),
            name=f"checkout:{user_id}",
        )
        handle.task.add_done_callback(lambda task: _log_task_failure(user_id, task))
        self._handles[user_id] = handle
        return handle

    def get(self, user_id: str) -> Optional[CheckoutHandle]:
        return self._handles.get(user_id)

    def cancel(self, user_id: str) -> bool:
        """Close the user's checkout; the poll loop stops before its next request."""

        handle = self._handles.get(user_id)
        if handle is None or handle.task is None or handle.task.done():
            return False
        handle.token.cancel()
        return True

    def discard(self, user_id: str) -> bool:
        """Forget a finished checkout; a running one is left in place."""

        handle = self._handles.get(user_id)
        if handle is None or handle.task is None or not handle.task.done():
            return False
        del self._handles[user_id]
        return True

    async def shutdown(self) -> None:
        tasks = []
        for handle in self._handles.values():
            handle.token.cancel()
            if handle.task is not None:
                tasks.append(handle.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._handles.clear()


def _log_task_failure(user_id: str, task: "asyncio.Task[CheckoutResult]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Checkout task for user=%s crashed", user_id, exc_info=exc)


__all__ = ["CheckoutHandle", "CheckoutRegistry"]

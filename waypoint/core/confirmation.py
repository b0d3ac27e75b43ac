"""Human-in-the-loop confirmation for sensitive steps.

A request registers a one-shot future keyed by ``(task_id, step_id)`` and
asks the notifier to prompt the user. Whichever comes first wins: a matching
decision resolves the future, or the timeout resolves the request as denied.
Decisions that arrive after that are dropped.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from waypoint.notify.base import Notifier
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_TIMEOUT = 120.0


@dataclass
class ConfirmationRequest:
    task_id: str
    step_id: str
    message: str
    created_at: float
    expires_at: float
    future: asyncio.Future[bool] = field(repr=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.task_id, self.step_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "task_id": self.task_id,
            "step_id": self.step_id,
            "message": self.message,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }


class ConfirmationGateway:
    def __init__(self, notifier: Notifier, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._notifier = notifier
        self._timeout = timeout
        self._pending: dict[tuple[str, str], ConfirmationRequest] = {}

    async def request(
        self,
        task_id: str,
        step_id: str,
        message: str,
        timeout: float | None = None,
    ) -> bool:
        """Wait for the user's decision. Denial, timeout and channel errors return False."""
        timeout = self._timeout if timeout is None else timeout
        key = (task_id, step_id)

        stale = self._pending.pop(key, None)
        if stale is not None and not stale.future.done():
            stale.future.set_result(False)

        now = time.time()
        request = ConfirmationRequest(
            task_id=task_id,
            step_id=step_id,
            message=message,
            created_at=now,
            expires_at=now + timeout,
            future=asyncio.get_running_loop().create_future(),
        )
        # Register before prompting so a fast reply cannot be missed
        self._pending[key] = request

        try:
            try:
                await self._notifier.request_decision(task_id, step_id, message)
            except Exception:
                log.exception("confirmation_channel_unavailable", task_id=task_id, step_id=step_id)
                return False

            log.info("confirmation_pending", task_id=task_id, step_id=step_id, timeout=timeout)
            try:
                approved = await asyncio.wait_for(request.future, timeout=timeout)
            except asyncio.TimeoutError:
                log.info("confirmation_timed_out", task_id=task_id, step_id=step_id)
                return False

            log.info("confirmation_resolved", task_id=task_id, step_id=step_id, approved=approved)
            return approved
        finally:
            if self._pending.get(key) is request:
                del self._pending[key]

    def decide(self, task_id: str, step_id: str | None, approved: bool) -> bool:
        """Deliver a decision. Returns True if it resolved an outstanding request."""
        request = self._find(task_id, step_id)
        if request is None or request.future.done():
            log.info("confirmation_decision_discarded", task_id=task_id, step_id=step_id)
            return False

        request.future.set_result(bool(approved))
        del self._pending[request.key]
        return True

    def pending(self) -> list[ConfirmationRequest]:
        return [r for r in self._pending.values() if not r.future.done()]

    def _find(self, task_id: str, step_id: str | None) -> ConfirmationRequest | None:
        if step_id is not None:
            return self._pending.get((task_id, step_id))
        # Steps run sequentially, so a task has at most one outstanding request
        for request in self._pending.values():
            if request.task_id == task_id:
                return request
        return None

"""Fixed-backoff retry around a single step dispatch."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine

from waypoint.core.errors import StepFailure
from waypoint.handlers.base import StepOutcome
from waypoint.planner.models import Step
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

AttemptFn = Callable[[], Awaitable[StepOutcome]]
SleepFn = Callable[[float], Coroutine[Any, Any, None]]


class RetryPolicy:
    """Up to ``retry.count + 1`` attempts with a constant sleep between them.

    Only success ends the loop early; every failure kind spends the budget.

    Nothing here survives a restart: a resumed step starts a fresh budget.
    """

    def __init__(self, sleep: SleepFn = asyncio.sleep) -> None:
        self._sleep = sleep

    async def run(self, step: Step, attempt_fn: AttemptFn, task_id: str = "") -> StepOutcome:
        """Return the first successful outcome, or raise StepFailure."""
        max_attempts = step.retry.count + 1

        for attempt in range(1, max_attempts + 1):
            outcome = await attempt_fn()
            if outcome.success:
                if attempt > 1:
                    log.info("step_succeeded_after_retry", task_id=task_id, step_id=step.step_id, attempt=attempt)
                return outcome

            log.warning(
                "step_attempt_failed",
                task_id=task_id,
                step_id=step.step_id,
                attempt=attempt,
                max_attempts=max_attempts,
                reason=outcome.failure_reason,
            )
            if attempt == max_attempts:
                raise StepFailure(step.step_id, outcome, attempt)
            await self._sleep(step.retry.backoff_s)

        raise RuntimeError("Unreachable")

"""Step type registry and dispatch."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable

from waypoint.core.errors import DispatchUnsupported
from waypoint.handlers.base import StepHandler, StepOutcome
from waypoint.planner.models import Step
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

UNSUPPORTED_STEP_TYPE = "unsupported step type"


class StepDispatcher:
    """Resolves a step's type tag to a handler and runs it.

    Handler faults and timeouts come back as failure outcomes; only task
    cancellation propagates.
    """

    def __init__(self, handlers: Iterable[StepHandler] = ()) -> None:
        self._handlers: dict[str, StepHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: StepHandler, *, replace: bool = False) -> None:
        tags = (handler.step_type, *handler.aliases)
        if not replace:
            taken = [t for t in tags if t in self._handlers]
            if taken:
                raise ValueError(f"Step type already registered: {', '.join(taken)}")
        for tag in tags:
            self._handlers[tag] = handler

    def unregister(self, step_type: str) -> bool:
        return self._handlers.pop(step_type, None) is not None

    def resolve(self, step_type: str) -> StepHandler | None:
        return self._handlers.get(step_type)

    def require(self, step_type: str) -> StepHandler:
        handler = self._handlers.get(step_type)
        if handler is None:
            raise DispatchUnsupported(step_type)
        return handler

    @property
    def step_types(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, step: Step, work_dir: Path, task_id: str) -> StepOutcome:
        try:
            handler = self.require(step.type)
        except DispatchUnsupported:
            log.warning("step_type_unsupported", task_id=task_id, step_id=step.step_id, type=step.type)
            return StepOutcome.fail(UNSUPPORTED_STEP_TYPE)

        work_dir.mkdir(parents=True, exist_ok=True)
        log.debug("step_dispatch", task_id=task_id, step_id=step.step_id, type=step.type, params=dict(step.params))

        try:
            outcome = await asyncio.wait_for(
                handler.handle(step.params, work_dir, task_id, step.timeout_s),
                timeout=step.timeout_s,
            )
        except asyncio.TimeoutError:
            return StepOutcome.fail(f"timed out after {step.timeout_s:g}s")
        except Exception as e:
            log.exception("step_handler_error", task_id=task_id, step_id=step.step_id, type=step.type)
            return StepOutcome.fail(f"{type(e).__name__}: {e}")

        if not isinstance(outcome, StepOutcome):
            return StepOutcome.fail("handler returned no outcome")
        return outcome

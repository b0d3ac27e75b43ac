"""Control-flow and notification step handlers."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Mapping

from waypoint.handlers.base import StepHandler, StepOutcome
from waypoint.notify.base import Notifier


class NoopHandler(StepHandler):
    @property
    def step_type(self) -> str:
        return "noop"

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        return StepOutcome.ok()


class WaitHandler(StepHandler):
    @property
    def step_type(self) -> str:
        return "wait"

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        seconds = params.get("seconds", 1)
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds < 0:
            return StepOutcome.fail("'seconds' must be a non-negative number")
        if seconds >= timeout:
            return StepOutcome.fail(f"Wait of {seconds}s exceeds step timeout {timeout:g}s")
        await asyncio.sleep(seconds)
        return StepOutcome.ok()


class NotificationHandler(StepHandler):
    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier

    @property
    def step_type(self) -> str:
        return "send_notification"

    @property
    def aliases(self) -> tuple[str, ...]:
        return ("notify",)

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        title = str(params.get("title", "Waypoint"))
        body = str(params.get("body", ""))
        await self._notifier.notify(title, body, task_id=task_id)
        return StepOutcome.ok()

"""Concurrent task runner: one asyncio task per plan."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from waypoint.core.checkpoint import Checkpoint
from waypoint.core.errors import TaskConflictError
from waypoint.notify.base import Notifier
from waypoint.planner.engine import ExecutionEngine
from waypoint.planner.models import TaskPlan
from waypoint.planner.parser import parse_plan, validate_plan
from waypoint.utils.logging import get_logger

log = get_logger(__name__)


class TaskRunner:
    """Runs plans through the engine concurrently.

    Canceling a task stops it at its next suspension point; the checkpoint
    keeps its last written state so a later run resumes it. Shutdown cancels
    everything without notifying, since the tasks are expected to resume.
    """

    def __init__(self, engine: ExecutionEngine, notifier: Notifier) -> None:
        self._engine = engine
        self._notifier = notifier
        self._tasks: dict[str, asyncio.Task[Checkpoint | None]] = {}
        self._canceled: set[str] = set()
        self._results: dict[str, Checkpoint | None] = {}

    def submit(self, plan: TaskPlan | Mapping[str, Any]) -> asyncio.Task[Checkpoint | None]:
        """Start ``plan``. Raises PlanValidationError or TaskConflictError synchronously."""
        if isinstance(plan, TaskPlan):
            validate_plan(plan)
        else:
            plan = parse_plan(plan)

        if plan.task_id in self._tasks:
            raise TaskConflictError(f"Task {plan.task_id} is already running")

        task = asyncio.create_task(self._run(plan), name=f"waypoint:{plan.task_id}")
        self._tasks[plan.task_id] = task
        log.info("task_submitted", task_id=plan.task_id, steps=len(plan.steps))
        return task

    def cancel(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.done():
            return False
        self._canceled.add(task_id)
        task.cancel()
        return True

    def running(self) -> list[str]:
        return sorted(tid for tid, task in self._tasks.items() if not task.done())

    def result(self, task_id: str) -> Checkpoint | None:
        return self._results.get(task_id)

    async def wait(self) -> dict[str, Checkpoint | None]:
        """Wait for every submitted task. Canceled or crashed tasks map to None."""
        while self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        return dict(self._results)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info("runner_stopped", tasks=len(tasks))

    async def _run(self, plan: TaskPlan) -> Checkpoint | None:
        task_id = plan.task_id
        try:
            checkpoint = await self._engine.execute(plan)
            self._results[task_id] = checkpoint
            return checkpoint
        except asyncio.CancelledError:
            self._results[task_id] = None
            log.info("task_canceled", task_id=task_id)
            if task_id in self._canceled:
                await self._notify("Task canceled", f"Task {task_id} was canceled", task_id)
            raise
        except Exception as e:
            self._results[task_id] = None
            log.exception("executor_error", task_id=task_id)
            await self._notify("Executor error", f"Task {task_id}: {type(e).__name__}: {e}", task_id)
            return None
        finally:
            self._tasks.pop(task_id, None)
            self._canceled.discard(task_id)

    async def _notify(self, title: str, body: str, task_id: str) -> None:
        try:
            await self._notifier.notify(title, body, task_id=task_id)
        except Exception:
            log.exception("notification_failed", task_id=task_id, title=title)

"""Runs a plan's fallback sequence as an independent task."""

from __future__ import annotations

from typing import Awaitable, Callable

from waypoint.core.checkpoint import COMPLETED, Checkpoint
from waypoint.core.errors import FallbackFailure
from waypoint.planner.models import TaskPlan
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

RunPlanFn = Callable[[TaskPlan, int], Awaitable[Checkpoint]]

FALLBACK_SUFFIX = "__fallback"


class FallbackSupervisor:
    """Builds the fallback plan and runs it through the engine.

    The fallback gets its own task id, and therefore its own checkpoint and
    control signals. It never declares a fallback of its own, and
    ``max_depth`` bounds the recursion regardless.
    """

    def __init__(self, run_plan: RunPlanFn, max_depth: int = 1) -> None:
        self._run_plan = run_plan
        self._max_depth = max_depth

    def allows(self, depth: int) -> bool:
        return depth < self._max_depth

    @staticmethod
    def task_id_for(parent_task_id: str) -> str:
        return f"{parent_task_id}{FALLBACK_SUFFIX}"

    def build_plan(self, parent: TaskPlan, task_id: str) -> TaskPlan:
        return TaskPlan(
            task_id=task_id,
            goal=f"fallback for {parent.task_id}",
            steps=parent.fallback,
        )

    async def run(self, parent: TaskPlan, task_id: str, depth: int) -> Checkpoint:
        """Run the fallback to completion. Raises FallbackFailure if it does not complete."""
        if not self.allows(depth):
            raise ValueError(f"Fallback depth limit {self._max_depth} reached for {parent.task_id}")

        plan = self.build_plan(parent, task_id)
        log.info(
            "fallback_started",
            parent_task_id=parent.task_id,
            task_id=task_id,
            steps=len(plan.steps),
        )
        checkpoint = await self._run_plan(plan, depth + 1)
        if checkpoint.status != COMPLETED:
            raise FallbackFailure(task_id, checkpoint)

        log.info("fallback_completed", parent_task_id=parent.task_id, task_id=task_id)
        return checkpoint

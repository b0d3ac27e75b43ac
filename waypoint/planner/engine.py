"""Durable, resumable plan execution."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, Coroutine, Mapping, TypeVar

from waypoint.config import EngineConfig
from waypoint.core.checkpoint import (
    ABORTED,
    COMPLETED,
    DONE,
    FAILED,
    PAUSED,
    PREREQUISITE_UNMET,
    RUNNING,
    SKIPPED_BY_USER,
    STEP_ABORTED,
    STEP_FAILED,
    Checkpoint,
    CheckpointStore,
)
from waypoint.core.confirmation import ConfirmationGateway
from waypoint.core.environment import EnvironmentProbe, check_prerequisites
from waypoint.core.errors import FallbackFailure, PrerequisiteUnmet, StepFailure, TaskConflictError
from waypoint.core.retry import RetryPolicy
from waypoint.core.signals import ControlSignals
from waypoint.handlers.registry import StepDispatcher
from waypoint.notify.base import Notifier
from waypoint.planner.fallback import FallbackSupervisor
from waypoint.planner.models import Step, TaskPlan
from waypoint.planner.parser import parse_plan, validate_plan
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Coroutine[Any, Any, None]]

STEP_FAILED_REASON = "step_failed"
FALLBACK_FAILED_REASON = "fallback_failed"


class ExecutionEngine:
    """Advances a plan one step at a time, checkpointing after every step.

    Collaborators are injected; the engine holds no global state. A task id
    is executed by at most one call at a time, so each checkpoint has a
    single writer.
    """

    def __init__(
        self,
        store: CheckpointStore,
        dispatcher: StepDispatcher,
        signals: ControlSignals,
        gateway: ConfirmationGateway,
        notifier: Notifier,
        environment: EnvironmentProbe | None = None,
        config: EngineConfig | None = None,
        retry: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._signals = signals
        self._gateway = gateway
        self._notifier = notifier
        self._environment = environment
        self._config = config or EngineConfig()
        self._retry = retry or RetryPolicy(sleep=sleep)
        self._sleep = sleep
        self._fallback = FallbackSupervisor(self._run_plan, max_depth=self._config.max_fallback_depth)
        self._active: set[str] = set()

    @property
    def active_tasks(self) -> list[str]:
        return sorted(self._active)

    async def execute(self, plan: TaskPlan | Mapping[str, Any]) -> Checkpoint:
        """Run ``plan`` from its last checkpoint. Returns the final checkpoint.

        Raises PlanValidationError for a malformed plan before touching
        storage.
        """
        if isinstance(plan, TaskPlan):
            validate_plan(plan)
        else:
            plan = parse_plan(plan)
        return await self._run_plan(plan, 0)

    async def _run_plan(self, plan: TaskPlan, depth: int) -> Checkpoint:
        if plan.task_id in self._active:
            raise TaskConflictError(f"Task {plan.task_id} is already running")
        self._active.add(plan.task_id)
        try:
            return await self._execute(plan, depth)
        finally:
            self._active.discard(plan.task_id)

    async def _execute(self, plan: TaskPlan, depth: int) -> Checkpoint:
        task_id = plan.task_id
        tlog = log.bind(task_id=task_id)

        checkpoint = await self._io(self._store.load, task_id)
        await self._io(self._store.save_plan, task_id, plan.to_dict())

        if checkpoint.is_finished:
            tlog.info("task_already_finished", status=checkpoint.status, reason=checkpoint.reason)
            return checkpoint

        # A step already failed but the terminal status was never written
        if checkpoint.failed_step:
            tlog.info("task_finishing_failure", fallback_task_id=checkpoint.fallback_task_id)
            return await self._finish_failed(plan, checkpoint, depth)

        if self._environment is not None:
            try:
                check_prerequisites(plan.prerequisites, self._environment)
            except PrerequisiteUnmet as e:
                checkpoint.status = FAILED
                checkpoint.reason = PREREQUISITE_UNMET
                await self._save(checkpoint)
                tlog.warning("prerequisites_unmet", unmet=e.unmet)
                await self._notify(
                    "Prerequisites unmet",
                    f"Task {task_id} requires {', '.join(e.unmet)}",
                    task_id,
                )
                return checkpoint

        if checkpoint.status != RUNNING or checkpoint.reason:
            checkpoint.status = RUNNING
            checkpoint.reason = None
            await self._save(checkpoint)

        tlog.info(
            "task_started",
            goal=plan.goal,
            start_index=checkpoint.last_step,
            total_steps=len(plan.steps),
        )
        work_dir = self._store.task_dir(task_id)

        for index in range(checkpoint.last_step, len(plan.steps)):
            step = plan.steps[index]

            if not await self._await_clearance(checkpoint, step, index):
                return checkpoint

            if step.requires_confirmation:
                approved = await self._gateway.request(task_id, step.step_id, step.description)
                if not approved:
                    checkpoint.record(step.step_id, SKIPPED_BY_USER, index + 1)
                    await self._save(checkpoint)
                    tlog.info("step_skipped_by_user", step_id=step.step_id, index=index)
                    continue
                # The decision may have taken minutes
                if self._signals.is_aborted(task_id):
                    await self._abort(checkpoint, step, index)
                    return checkpoint

            attempt = functools.partial(self._dispatcher.dispatch, step, work_dir, task_id)
            try:
                outcome = await self._retry.run(step, attempt, task_id=task_id)
            except StepFailure as failure:
                checkpoint.record(
                    step.step_id,
                    STEP_FAILED,
                    index + 1,
                    artifact_path=failure.outcome.artifact_path,
                    error=failure.outcome.failure_reason,
                )
                checkpoint.failed_step = step.step_id
                checkpoint.reason = STEP_FAILED_REASON
                if plan.fallback and self._fallback.allows(depth):
                    checkpoint.fallback_task_id = self._fallback.task_id_for(task_id)
                await self._save(checkpoint)
                tlog.warning("step_failed", step_id=step.step_id, index=index, error=str(failure))
                return await self._finish_failed(plan, checkpoint, depth)

            checkpoint.record(step.step_id, DONE, index + 1, artifact_path=outcome.artifact_path)
            await self._save(checkpoint)
            tlog.info("step_done", step_id=step.step_id, index=index, artifact=outcome.artifact_path)

        checkpoint.status = COMPLETED
        await self._save(checkpoint)
        tlog.info("task_completed")
        await self._notify("Task completed", f"Task {task_id} finished", task_id)
        return checkpoint

    async def _await_clearance(self, checkpoint: Checkpoint, step: Step, index: int) -> bool:
        """Honor abort and pause before a step. Returns False if the task was aborted."""
        task_id = checkpoint.task_id
        if self._signals.is_aborted(task_id):
            await self._abort(checkpoint, step, index)
            return False
        if not self._signals.is_paused(task_id):
            return True

        checkpoint.status = PAUSED
        await self._save(checkpoint)
        log.info("task_paused", task_id=task_id, index=index)

        while True:
            await self._sleep(self._config.pause_poll_interval)
            if self._signals.is_aborted(task_id):
                await self._abort(checkpoint, step, index)
                return False
            if not self._signals.is_paused(task_id):
                break

        checkpoint.status = RUNNING
        await self._save(checkpoint)
        log.info("task_resumed", task_id=task_id, index=index)
        return True

    async def _abort(self, checkpoint: Checkpoint, step: Step, index: int) -> None:
        checkpoint.status = ABORTED
        checkpoint.record(step.step_id, STEP_ABORTED, index)
        await self._save(checkpoint)
        log.info("task_aborted", task_id=checkpoint.task_id, index=index, step_id=step.step_id)
        await self._notify(
            "Task aborted",
            f"Task {checkpoint.task_id} aborted before step {step.step_id}",
            checkpoint.task_id,
        )

    async def _finish_failed(self, plan: TaskPlan, checkpoint: Checkpoint, depth: int) -> Checkpoint:
        body = f"Task {plan.task_id} failed at step {checkpoint.failed_step}"

        if checkpoint.fallback_task_id:
            try:
                await self._fallback.run(plan, checkpoint.fallback_task_id, depth)
                body += f"; fallback {checkpoint.fallback_task_id} completed"
            except FallbackFailure as e:
                log.warning(
                    "fallback_failed",
                    task_id=plan.task_id,
                    fallback_task_id=e.task_id,
                    fallback_status=e.checkpoint.status,
                )
                checkpoint.reason = FALLBACK_FAILED_REASON
                body += f"; fallback {e.task_id} {e.checkpoint.status}"

        checkpoint.status = FAILED
        await self._save(checkpoint)
        log.info("task_failed", task_id=plan.task_id, reason=checkpoint.reason)
        await self._notify("Task failed", body, plan.task_id)
        return checkpoint

    async def _save(self, checkpoint: Checkpoint) -> None:
        await self._io(self._store.save, checkpoint)

    async def _io(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)

    async def _notify(self, title: str, body: str, task_id: str) -> None:
        try:
            await self._notifier.notify(title, body, task_id=task_id)
        except Exception:
            log.exception("notification_failed", task_id=task_id, title=title)

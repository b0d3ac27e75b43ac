"""Exception taxonomy for plan execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from waypoint.core.checkpoint import Checkpoint
    from waypoint.handlers.base import StepOutcome


class WaypointError(Exception):
    """Base class for all waypoint errors."""


class PlanValidationError(WaypointError):
    """The plan document is malformed. Raised before any side effect."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PrerequisiteUnmet(WaypointError):
    def __init__(self, unmet: list[str]) -> None:
        super().__init__(f"Prerequisites unmet: {', '.join(unmet)}")
        self.unmet = unmet


class StepFailure(WaypointError):
    def __init__(self, step_id: str, outcome: StepOutcome, attempts: int) -> None:
        super().__init__(
            f"Step {step_id} failed after {attempts} attempt(s): {outcome.failure_reason}"
        )
        self.step_id = step_id
        self.outcome = outcome
        self.attempts = attempts


class DispatchUnsupported(WaypointError):
    def __init__(self, step_type: str) -> None:
        super().__init__(f"unsupported step type: {step_type}")
        self.step_type = step_type


class PersistenceError(WaypointError):
    """A checkpoint could not be written even after retrying."""


class FallbackFailure(WaypointError):
    def __init__(self, task_id: str, checkpoint: Checkpoint) -> None:
        super().__init__(f"Fallback {task_id} ended with status {checkpoint.status}")
        self.task_id = task_id
        self.checkpoint = checkpoint


class TaskConflictError(WaypointError):
    """The task is already being executed by this engine."""

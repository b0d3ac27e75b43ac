"""Plan document parsing and structural validation."""

from __future__ import annotations

import copy
import re
import time
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from waypoint.core.errors import PlanValidationError
from waypoint.planner.models import (
    DEFAULT_BACKOFF_S,
    DEFAULT_TIMEOUT_S,
    Prerequisites,
    RetrySpec,
    Step,
    TaskPlan,
)

_TASK_ID_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_REQUIRED_STEP_KEYS = ("id", "type", "description", "params")


def is_valid_task_id(task_id: object) -> bool:
    """True for one path segment made of letters, digits, ``.``, ``_`` and ``-``."""
    return isinstance(task_id, str) and bool(_TASK_ID_RE.match(task_id)) and task_id not in (".", "..")


def parse_plan(document: Mapping[str, Any]) -> TaskPlan:
    """Build a TaskPlan from a plan document.

    Accepts ``steps`` or the legacy ``plan`` key for the step list. Raises
    PlanValidationError describing the first problem found.
    """
    if not isinstance(document, Mapping):
        raise PlanValidationError("Plan document must be an object")

    raw_steps = document.get("steps")
    if raw_steps is None:
        raw_steps = document.get("plan")
    if raw_steps is None:
        raise PlanValidationError("Missing 'steps' or 'plan' array")

    task_id = document.get("task_id")
    if task_id is None or task_id == "":
        task_id = f"task_{int(time.time() * 1000)}"

    goal = document.get("goal", "")
    if not isinstance(goal, str):
        raise PlanValidationError("'goal' must be a string")

    steps = _parse_steps(raw_steps, "steps")
    fallback = _parse_steps(document.get("fallback") or [], "fallback")

    plan = TaskPlan(
        task_id=task_id,
        goal=goal,
        steps=steps,
        fallback=fallback,
        prerequisites=_parse_prerequisites(document.get("prerequisites")),
    )
    validate_plan(plan)
    return plan


def validate_plan(plan: TaskPlan) -> None:
    """Check invariants that hold for any TaskPlan, however it was built."""
    if not is_valid_task_id(plan.task_id):
        raise PlanValidationError(f"Invalid task_id: {plan.task_id!r}")

    for label, steps in (("steps", plan.steps), ("fallback", plan.fallback)):
        seen: set[str] = set()
        for step in steps:
            if not step.step_id:
                raise PlanValidationError(f"A step in '{label}' has an empty id")
            if not step.type:
                raise PlanValidationError(f"Step {step.step_id} has an empty type")
            if step.step_id in seen:
                raise PlanValidationError(f"Duplicate step id in '{label}': {step.step_id}")
            seen.add(step.step_id)


def _parse_steps(raw_steps: Any, label: str) -> tuple[Step, ...]:
    if isinstance(raw_steps, (str, bytes)) or not isinstance(raw_steps, Sequence):
        raise PlanValidationError(f"'{label}' must be an array")
    return tuple(_parse_step(raw, i, label) for i, raw in enumerate(raw_steps))


def _parse_step(raw: Any, index: int, label: str) -> Step:
    if not isinstance(raw, Mapping):
        raise PlanValidationError(f"{label}[{index}] is not an object")

    for key in _REQUIRED_STEP_KEYS:
        if key not in raw:
            name = raw.get("id", index)
            raise PlanValidationError(f"Step {name} in '{label}' missing '{key}'")

    step_id = raw["id"]
    if isinstance(step_id, bool) or not isinstance(step_id, (str, int)):
        raise PlanValidationError(f"{label}[{index}] 'id' must be a string")
    step_id = str(step_id)

    step_type = raw["type"]
    if not isinstance(step_type, str) or not step_type:
        raise PlanValidationError(f"Step {step_id} 'type' must be a non-empty string")

    description = raw["description"]
    if not isinstance(description, str):
        raise PlanValidationError(f"Step {step_id} 'description' must be a string")

    params = raw["params"]
    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        raise PlanValidationError(f"Step {step_id} 'params' must be an object")

    requires_confirmation = raw.get("requires_confirmation", False)
    if not isinstance(requires_confirmation, bool):
        raise PlanValidationError(f"Step {step_id} 'requires_confirmation' must be a boolean")

    return Step(
        step_id=step_id,
        type=step_type,
        description=description,
        params=MappingProxyType(copy.deepcopy(dict(params))),
        requires_confirmation=requires_confirmation,
        retry=_parse_retry(raw.get("retry"), step_id),
        timeout_s=_parse_timeout(raw.get("timeout_s"), step_id),
    )


def _parse_retry(raw: Any, step_id: str) -> RetrySpec:
    if raw is None:
        return RetrySpec()
    if not isinstance(raw, Mapping):
        raise PlanValidationError(f"Step {step_id} 'retry' must be an object")

    count = raw.get("count", 0)
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise PlanValidationError(f"Step {step_id} retry 'count' must be a non-negative integer")

    backoff = raw.get("backoff_s", DEFAULT_BACKOFF_S)
    if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
        raise PlanValidationError(f"Step {step_id} retry 'backoff_s' must be a non-negative number")

    return RetrySpec(count=count, backoff_s=float(backoff))


def _parse_timeout(raw: Any, step_id: str) -> float:
    if raw is None:
        return DEFAULT_TIMEOUT_S
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
        raise PlanValidationError(f"Step {step_id} 'timeout_s' must be a positive number")
    return float(raw)


def _parse_prerequisites(raw: Any) -> Prerequisites | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise PlanValidationError("'prerequisites' must be an object")

    wifi = raw.get("wifi", False)
    charging = raw.get("charging", False)
    min_space = raw.get("min_free_space_mb", 0)
    if not isinstance(wifi, bool) or not isinstance(charging, bool):
        raise PlanValidationError("'wifi' and 'charging' prerequisites must be booleans")
    if isinstance(min_space, bool) or not isinstance(min_space, int) or min_space < 0:
        raise PlanValidationError("'min_free_space_mb' must be a non-negative integer")

    return Prerequisites(wifi=wifi, charging=charging, min_free_space_mb=min_space)

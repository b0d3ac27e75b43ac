"""Plan model and execution."""

from waypoint.planner.models import Prerequisites, RetrySpec, Step, TaskPlan
from waypoint.planner.parser import is_valid_task_id, parse_plan, validate_plan

__all__ = [
    "Prerequisites",
    "RetrySpec",
    "Step",
    "TaskPlan",
    "is_valid_task_id",
    "parse_plan",
    "validate_plan",
]

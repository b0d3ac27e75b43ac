"""Planner data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_BACKOFF_S = 2.0
DEFAULT_TIMEOUT_S = 300.0


@dataclass(frozen=True)
class RetrySpec:
    count: int = 0
    backoff_s: float = DEFAULT_BACKOFF_S


@dataclass(frozen=True)
class Prerequisites:
    wifi: bool = False
    charging: bool = False
    min_free_space_mb: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.wifi or self.charging or self.min_free_space_mb > 0)


@dataclass(frozen=True)
class Step:
    step_id: str
    type: str
    description: str
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    requires_confirmation: bool = False
    retry: RetrySpec = field(default_factory=RetrySpec)
    timeout_s: float = DEFAULT_TIMEOUT_S

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.step_id,
            "type": self.type,
            "description": self.description,
            "params": dict(self.params),
            "requires_confirmation": self.requires_confirmation,
            "retry": {"count": self.retry.count, "backoff_s": self.retry.backoff_s},
            "timeout_s": self.timeout_s,
        }


@dataclass(frozen=True)
class TaskPlan:
    task_id: str
    goal: str
    steps: tuple[Step, ...]
    fallback: tuple[Step, ...] = ()
    prerequisites: Prerequisites | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_id": self.task_id,
            "goal": self.goal,
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.fallback:
            data["fallback"] = [s.to_dict() for s in self.fallback]
        if self.prerequisites is not None:
            data["prerequisites"] = {
                "wifi": self.prerequisites.wifi,
                "charging": self.prerequisites.charging,
                "min_free_space_mb": self.prerequisites.min_free_space_mb,
            }
        return data

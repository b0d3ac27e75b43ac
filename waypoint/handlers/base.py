"""Base step handler interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from waypoint.utils.platform import is_within


@dataclass
class StepOutcome:
    success: bool
    artifact_path: str | None = None
    failure_reason: str | None = None

    @classmethod
    def ok(cls, artifact_path: str | Path | None = None) -> StepOutcome:
        return cls(success=True, artifact_path=str(artifact_path) if artifact_path else None)

    @classmethod
    def fail(cls, reason: str) -> StepOutcome:
        return cls(success=False, failure_reason=reason)


class StepHandler(ABC):
    @property
    @abstractmethod
    def step_type(self) -> str: ...

    @property
    def aliases(self) -> tuple[str, ...]:
        """Additional type tags this handler answers to."""
        return ()

    @abstractmethod
    async def handle(
        self,
        params: Mapping[str, Any],
        work_dir: Path,
        task_id: str,
        timeout: float,
    ) -> StepOutcome: ...


def resolve_in_work_dir(work_dir: Path, relative: str) -> Path | None:
    """Resolve ``relative`` under ``work_dir``; None if it escapes."""
    candidate = (work_dir / relative).resolve()
    if not is_within(candidate, work_dir):
        return None
    return candidate

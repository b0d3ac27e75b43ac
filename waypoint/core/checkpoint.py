"""Durable per-task progress records with atomic replacement."""

from __future__ import annotations

import json
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from waypoint.core.errors import PersistenceError
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

CHECKPOINT_FILE = "checkpoint.json"
PLAN_FILE = "plan.json"

# Task status values
RUNNING = "running"
PAUSED = "paused"
ABORTED = "aborted"
COMPLETED = "completed"
FAILED = "failed"

# Step outcome values
DONE = "done"
STEP_FAILED = "failed"
SKIPPED_BY_USER = "skipped_by_user"
STEP_ABORTED = "aborted"

PREREQUISITE_UNMET = "prerequisite_unmet"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Checkpoint:
    task_id: str
    last_step: int = 0
    status: str = RUNNING
    steps_status: dict[str, str] = field(default_factory=dict)
    partial_outputs: dict[str, str] = field(default_factory=dict)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    reason: str | None = None
    failed_step: str | None = None
    fallback_task_id: str | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_finished(self) -> bool:
        """Completed, or failed for a reason that re-running cannot change."""
        if self.status == COMPLETED:
            return True
        return self.status == FAILED and self.reason != PREREQUISITE_UNMET

    def record(
        self,
        step_id: str,
        outcome: str,
        next_index: int,
        artifact_path: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record a step outcome and advance the resume index."""
        if self.steps_status.get(step_id) != DONE:
            self.steps_status[step_id] = outcome
        if artifact_path:
            self.partial_outputs[step_id] = artifact_path
        if error:
            self.errors[step_id] = error
        self.advance(next_index)

    def advance(self, next_index: int) -> None:
        self.last_step = max(self.last_step, next_index)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_id": self.task_id,
            "last_step": self.last_step,
            "status": self.status,
            "steps_status": dict(self.steps_status),
            "partial_outputs": dict(self.partial_outputs),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        if self.failed_step is not None:
            data["failed_step"] = self.failed_step
        if self.fallback_task_id is not None:
            data["fallback_task_id"] = self.fallback_task_id
        if self.errors:
            data["errors"] = dict(self.errors)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], task_id: str = "") -> Checkpoint:
        now = now_ms()
        return cls(
            task_id=str(data.get("task_id") or task_id),
            last_step=int(data.get("last_step", 0)),
            status=str(data.get("status", RUNNING)),
            steps_status={str(k): str(v) for k, v in (data.get("steps_status") or {}).items()},
            partial_outputs={str(k): str(v) for k, v in (data.get("partial_outputs") or {}).items()},
            created_at=int(data.get("created_at", now)),
            updated_at=int(data.get("updated_at", now)),
            reason=data.get("reason"),
            failed_step=data.get("failed_step"),
            fallback_task_id=data.get("fallback_task_id"),
            errors={str(k): str(v) for k, v in (data.get("errors") or {}).items()},
        )


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    """Write JSON to a temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            json.dump(data, tmp, indent=2, sort_keys=True)
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    try:
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class CheckpointStore:
    """File-backed checkpoints under ``<tasks_dir>/<task_id>/``.

    Readers never observe a partial write: every save goes to a temporary
    file in the same directory which is then renamed over the canonical
    path.
    """

    def __init__(
        self,
        tasks_dir: Path,
        write_attempts: int = 3,
        write_backoff: float = 0.1,
    ) -> None:
        self._tasks_dir = tasks_dir
        self._write_attempts = max(1, write_attempts)
        self._write_backoff = write_backoff

    @property
    def tasks_dir(self) -> Path:
        return self._tasks_dir

    def task_dir(self, task_id: str) -> Path:
        return self._tasks_dir / task_id

    def path_for(self, task_id: str) -> Path:
        return self.task_dir(task_id) / CHECKPOINT_FILE

    def exists(self, task_id: str) -> bool:
        return self.path_for(task_id).exists()

    def read(self, task_id: str) -> Checkpoint | None:
        """Read a checkpoint without creating one. Raises ValueError if corrupt."""
        path = self.path_for(task_id)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Checkpoint for {task_id} is not an object")
        return Checkpoint.from_dict(data, task_id=task_id)

    def load(self, task_id: str) -> Checkpoint:
        """Return the task's checkpoint, creating and persisting a fresh one if absent."""
        try:
            checkpoint = self.read(task_id)
        except (ValueError, TypeError, OSError):
            log.exception("checkpoint_unreadable", task_id=task_id)
            self._quarantine(task_id)
            checkpoint = None

        if checkpoint is None:
            checkpoint = Checkpoint(task_id=task_id)
            self.save(checkpoint)
            log.info("checkpoint_created", task_id=task_id)
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> None:
        checkpoint.updated_at = now_ms()
        path = self.path_for(checkpoint.task_id)
        data = checkpoint.to_dict()

        last_error: OSError | None = None
        for attempt in range(1, self._write_attempts + 1):
            try:
                atomic_write_json(path, data)
                return
            except OSError as e:
                last_error = e
                log.warning(
                    "checkpoint_write_failed",
                    task_id=checkpoint.task_id,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < self._write_attempts:
                    time.sleep(self._write_backoff)

        raise PersistenceError(
            f"Could not write checkpoint for {checkpoint.task_id}: {last_error}"
        ) from last_error

    def list_task_ids(self) -> list[str]:
        if not self._tasks_dir.exists():
            return []
        return sorted(p.name for p in self._tasks_dir.iterdir() if p.is_dir())

    # --- Plan documents ---

    def save_plan(self, task_id: str, document: dict[str, Any]) -> None:
        try:
            atomic_write_json(self.task_dir(task_id) / PLAN_FILE, document)
        except OSError as e:
            raise PersistenceError(f"Could not write plan for {task_id}: {e}") from e

    def load_plan(self, task_id: str) -> dict[str, Any] | None:
        path = self.task_dir(task_id) / PLAN_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _quarantine(self, task_id: str) -> None:
        path = self.path_for(task_id)
        if path.exists():
            target = path.with_name(f"{CHECKPOINT_FILE}.corrupt-{now_ms()}")
            path.replace(target)
            log.warning("checkpoint_quarantined", task_id=task_id, moved_to=str(target))

"""Out-of-band pause/abort markers for running tasks."""

from __future__ import annotations

import re
import time
from pathlib import Path

from waypoint.utils.logging import get_logger

log = get_logger(__name__)

PAUSE_MARKER = "pause.flag"
ABORT_MARKER = "abort.flag"

_DURATION_RE = re.compile(
    r"(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$", re.IGNORECASE
)


def parse_duration(text: str) -> int | None:
    """Parse duration string like '2h', '30m', '1h30m'. Returns seconds or None."""
    if not text:
        return None
    m = _DURATION_RE.match(text.strip())
    if not m or not any(m.groups()):
        return None
    hours = int(m.group(1) or 0)
    minutes = int(m.group(2) or 0)
    seconds = int(m.group(3) or 0)
    return hours * 3600 + minutes * 60 + seconds


class ControlSignals:
    """Marker files under ``<tasks_dir>/<task_id>/``.

    Any process that can write the task directory can raise or clear a
    signal; the engine only reads them between steps.
    """

    def __init__(self, tasks_dir: Path) -> None:
        self._tasks_dir = tasks_dir

    def _marker(self, task_id: str, name: str) -> Path:
        return self._tasks_dir / task_id / name

    def pause(self, task_id: str, duration_seconds: float | None = None) -> None:
        marker = self._marker(task_id, PAUSE_MARKER)
        marker.parent.mkdir(parents=True, exist_ok=True)
        if duration_seconds is not None and duration_seconds > 0:
            marker.write_text(f"until={time.time() + duration_seconds}")
        else:
            marker.write_text("paused")
        log.info("task_pause_requested", task_id=task_id, duration=duration_seconds)

    def resume(self, task_id: str) -> bool:
        """Clear the pause marker. Returns True if one was present."""
        marker = self._marker(task_id, PAUSE_MARKER)
        if not marker.exists():
            return False
        marker.unlink(missing_ok=True)
        log.info("task_resume_requested", task_id=task_id)
        return True

    def abort(self, task_id: str) -> None:
        marker = self._marker(task_id, ABORT_MARKER)
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text("abort")
        log.info("task_abort_requested", task_id=task_id)

    def clear_abort(self, task_id: str) -> bool:
        marker = self._marker(task_id, ABORT_MARKER)
        if not marker.exists():
            return False
        marker.unlink(missing_ok=True)
        log.info("task_abort_cleared", task_id=task_id)
        return True

    def is_aborted(self, task_id: str) -> bool:
        return self._marker(task_id, ABORT_MARKER).exists()

    def is_paused(self, task_id: str) -> bool:
        marker = self._marker(task_id, PAUSE_MARKER)
        try:
            content = marker.read_text().strip()
        except FileNotFoundError:
            return False

        if content.startswith("until="):
            try:
                until = float(content.split("=", 1)[1])
            except ValueError:
                return True
            if time.time() >= until:
                marker.unlink(missing_ok=True)
                log.info("task_auto_resumed", task_id=task_id)
                return False
        return True

    def state(self, task_id: str) -> str:
        """'aborted', 'paused' or 'running'. Abort takes precedence."""
        if self.is_aborted(task_id):
            return "aborted"
        if self.is_paused(task_id):
            return "paused"
        return "running"

"""Notifier that only writes structured log events."""

from __future__ import annotations

from waypoint.notify.base import Notifier
from waypoint.utils.logging import get_logger

log = get_logger(__name__)


class LogNotifier(Notifier):
    @property
    def channel_name(self) -> str:
        return "log"

    async def notify(self, title: str, body: str, *, task_id: str | None = None) -> None:
        log.info("notification", title=title, body=body, task_id=task_id)

    async def request_decision(self, task_id: str, step_id: str, message: str) -> None:
        log.info("confirmation_requested", task_id=task_id, step_id=step_id, message=message)

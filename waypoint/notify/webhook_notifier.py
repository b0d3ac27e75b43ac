"""Notifier that POSTs JSON events to an HTTP endpoint."""

from __future__ import annotations

from typing import Any

import httpx

from waypoint.config import NotificationConfig
from waypoint.notify.base import Notifier
from waypoint.utils.logging import get_logger
from waypoint.webhooks.handlers import SECRET_HEADER

log = get_logger(__name__)


class WebhookNotifier(Notifier):
    """Delivers ``{kind, title, body, task_id, step_id}`` to ``webhook_url``.

    The receiver renders notifications and confirmation prompts; decisions
    come back through the decision server.
    """

    def __init__(
        self,
        config: NotificationConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    @property
    def channel_name(self) -> str:
        return "webhook"

    async def notify(self, title: str, body: str, *, task_id: str | None = None) -> None:
        await self._post({
            "kind": "notification",
            "title": title,
            "body": body,
            "task_id": task_id,
            "step_id": None,
        })

    async def request_decision(self, task_id: str, step_id: str, message: str) -> None:
        await self._post({
            "kind": "confirmation",
            "title": "Confirmation required",
            "body": message,
            "task_id": task_id,
            "step_id": step_id,
        })

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, payload: dict[str, Any]) -> None:
        headers = {}
        if self._config.secret:
            headers[SECRET_HEADER] = self._config.secret
        resp = await self._client.post(self._config.webhook_url, json=payload, headers=headers)
        resp.raise_for_status()
        log.debug("webhook_notification_sent", kind=payload["kind"], task_id=payload["task_id"])

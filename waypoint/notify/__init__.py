"""Outbound notification channels."""

from waypoint.config import NotificationConfig
from waypoint.notify.base import Notifier
from waypoint.notify.log_notifier import LogNotifier
from waypoint.notify.webhook_notifier import WebhookNotifier

__all__ = [
    "Notifier",
    "LogNotifier",
    "WebhookNotifier",
    "create_notifier",
]


def create_notifier(config: NotificationConfig) -> Notifier:
    """Factory to create the notifier described by config."""
    if config.webhook_url:
        return WebhookNotifier(config)
    return LogNotifier()

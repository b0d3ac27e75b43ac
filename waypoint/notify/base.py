"""Abstract notifier base class."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Notifier(ABC):
    """Outbound channel for task notifications and confirmation prompts."""

    @property
    @abstractmethod
    def channel_name(self) -> str: ...

    @abstractmethod
    async def notify(self, title: str, body: str, *, task_id: str | None = None) -> None: ...

    @abstractmethod
    async def request_decision(self, task_id: str, step_id: str, message: str) -> None:
        """Ask the user to approve or deny a step. Raises if the channel is unavailable."""

    async def close(self) -> None:
        """Release resources. Override if needed."""

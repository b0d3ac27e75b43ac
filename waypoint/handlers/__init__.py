"""Step handlers and the dispatcher that routes steps to them."""

from __future__ import annotations

from waypoint.config import HandlersConfig
from waypoint.core.llm.base import TextGenerator
from waypoint.handlers.base import StepHandler, StepOutcome
from waypoint.handlers.basic import NoopHandler, NotificationHandler, WaitHandler
from waypoint.handlers.files import DeleteFilesHandler, DownloadFileHandler, SaveFileHandler
from waypoint.handlers.generate import GenerateTextHandler
from waypoint.handlers.registry import UNSUPPORTED_STEP_TYPE, StepDispatcher
from waypoint.handlers.restricted import RestrictedHandler, restricted_handlers
from waypoint.handlers.shell import ShellHandler
from waypoint.notify.base import Notifier

__all__ = [
    "StepHandler",
    "StepOutcome",
    "StepDispatcher",
    "UNSUPPORTED_STEP_TYPE",
    "NoopHandler",
    "WaitHandler",
    "NotificationHandler",
    "SaveFileHandler",
    "DeleteFilesHandler",
    "DownloadFileHandler",
    "GenerateTextHandler",
    "ShellHandler",
    "RestrictedHandler",
    "build_default_dispatcher",
]


def build_default_dispatcher(
    config: HandlersConfig,
    notifier: Notifier,
    generator: TextGenerator | None = None,
) -> StepDispatcher:
    """Register the built-in handlers. ``generate_text`` needs a generator."""
    dispatcher = StepDispatcher([
        NoopHandler(),
        WaitHandler(),
        NotificationHandler(notifier),
        SaveFileHandler(),
        DeleteFilesHandler(config.delete_roots),
        DownloadFileHandler(max_bytes=config.download_max_mb * 1024 * 1024),
        ShellHandler(enabled=config.shell_enabled, allowlist=config.shell_allowlist),
        *restricted_handlers(),
    ])
    if generator is not None:
        dispatcher.register(GenerateTextHandler(generator))
    return dispatcher

"""custom_shell step handler."""

from __future__ import annotations

import asyncio
import os
import re
import shlex
import sys
from pathlib import Path
from typing import Any, Mapping

from waypoint.handlers.base import StepHandler, StepOutcome
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

# Patterns that are always blocked
_BLOCKED_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\brm\s+-rf\s+/\s*$", re.IGNORECASE),
    re.compile(r"\bmkfs\b", re.IGNORECASE),
    re.compile(r"\bdd\s+.*of=/dev/", re.IGNORECASE),
    re.compile(r">\s*/dev/sd[a-z]", re.IGNORECASE),
    re.compile(r"\bformat\s+[a-zA-Z]:", re.IGNORECASE),
    re.compile(r":\(\)\s*\{\s*:\|:&\s*\};:", re.IGNORECASE),  # fork bomb
]

_OUTPUT_LOG = "shell_output.log"


def _shell_args(command: str) -> list[str]:
    if sys.platform == "win32":
        return ["powershell", "-NoProfile", "-Command", command]
    return [os.environ.get("SHELL", "/bin/bash"), "-c", command]


class ShellHandler(StepHandler):
    """Runs a command in the task directory.

    Disabled unless explicitly enabled. With an allowlist configured the
    command is split into argv, its program must be listed exactly, and it is
    executed directly so shell operators reach the program as plain
    arguments. Without one the command goes through the user's shell.
    Output is appended to ``shell_output.log`` in the task directory and
    returned as the artifact.
    """

    def __init__(self, enabled: bool = False, allowlist: list[str] | None = None) -> None:
        self._enabled = enabled
        self._allowlist = list(allowlist or [])

    @property
    def step_type(self) -> str:
        return "custom_shell"

    def check_command(self, command: str) -> str | None:
        """Return a refusal reason, or None if the command may run."""
        if not self._enabled:
            return "Shell steps are disabled"
        for pattern in _BLOCKED_PATTERNS:
            if pattern.search(command):
                return f"Command blocked by safety filter: {command}"
        if self._allowlist:
            try:
                argv = shlex.split(command)
            except ValueError:
                return f"Command could not be parsed: {command}"
            if not argv or argv[0] not in self._allowlist:
                return f"Command not in allowlist: {command}"
        return None

    def build_args(self, command: str) -> list[str]:
        if self._allowlist:
            return shlex.split(command)
        return _shell_args(command)

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        command = str(params.get("command", "")).strip()
        if not command:
            return StepOutcome.fail("'command' is required")

        refusal = self.check_command(command)
        if refusal:
            log.warning("blocked_command", task_id=task_id, command=command)
            return StepOutcome.fail(refusal)

        log.info("shell_exec", task_id=task_id, command=command, timeout=timeout)

        args = self.build_args(command)
        work_dir.mkdir(parents=True, exist_ok=True)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(work_dir),
            )
        except FileNotFoundError:
            return StepOutcome.fail(f"Executable not found: {args[0]}")

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # Dispatcher timeout cancels us; don't leave the child running
            proc.kill()
            await proc.wait()
            raise

        output_path = work_dir / _OUTPUT_LOG
        await asyncio.to_thread(
            _append_output, output_path, command, proc.returncode, stdout, stderr
        )

        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()[:500]
            return StepOutcome(
                success=False,
                artifact_path=str(output_path),
                failure_reason=f"Exit code {proc.returncode}: {err}" if err else f"Exit code {proc.returncode}",
            )
        return StepOutcome.ok(output_path)


def _append_output(path: Path, command: str, code: int | None, stdout: bytes, stderr: bytes) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"$ {command}\n")
        f.write(stdout.decode("utf-8", errors="replace"))
        if stderr:
            f.write("STDERR:\n")
            f.write(stderr.decode("utf-8", errors="replace"))
        f.write(f"\nExit code: {code}\n")

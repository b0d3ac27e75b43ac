"""generate_text step handler."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Mapping

from waypoint.core.llm.base import TextGenerator
from waypoint.handlers.base import StepHandler, StepOutcome, resolve_in_work_dir
from waypoint.utils.logging import get_logger

log = get_logger(__name__)


class GenerateTextHandler(StepHandler):
    def __init__(self, generator: TextGenerator) -> None:
        self._generator = generator

    @property
    def step_type(self) -> str:
        return "generate_text"

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        prompt = params.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            return StepOutcome.fail("'prompt' is required")

        save_as = str(params.get("save_as") or "generated.txt")
        target = resolve_in_work_dir(work_dir, save_as)
        if target is None:
            return StepOutcome.fail(f"Path escapes the task directory: {save_as}")

        max_tokens = params.get("max_tokens")
        text = await self._generator.generate(
            prompt,
            system=params.get("system"),
            max_tokens=max_tokens if isinstance(max_tokens, int) else None,
        )
        await asyncio.to_thread(_write_text, target, text)
        log.info("text_generated", task_id=task_id, path=str(target), chars=len(text))
        return StepOutcome.ok(target)


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")

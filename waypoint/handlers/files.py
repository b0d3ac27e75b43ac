"""File step handlers: save, delete, download."""

from __future__ import annotations

import asyncio
import shutil
import time
from pathlib import Path
from typing import Any, Mapping

import httpx

from waypoint.handlers.base import StepHandler, StepOutcome, resolve_in_work_dir
from waypoint.utils.logging import get_logger
from waypoint.utils.platform import is_within

log = get_logger(__name__)


class SaveFileHandler(StepHandler):
    @property
    def step_type(self) -> str:
        return "save_file"

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        path = str(params.get("path") or f"file_{int(time.time() * 1000)}.txt")
        content = params.get("content", "")
        if not isinstance(content, str):
            return StepOutcome.fail("'content' must be a string")

        target = resolve_in_work_dir(work_dir, path)
        if target is None:
            log.warning("save_blocked", task_id=task_id, path=path)
            return StepOutcome.fail(f"Path escapes the task directory: {path}")

        await asyncio.to_thread(_write_text, target, content)
        log.info("file_saved", task_id=task_id, path=str(target), chars=len(content))
        return StepOutcome.ok(target)


class DeleteFilesHandler(StepHandler):
    """Deletes only inside the task directory or explicitly allowed roots."""

    def __init__(self, allowed_roots: list[str] | None = None) -> None:
        self._allowed_roots = [Path(r).expanduser() for r in (allowed_roots or [])]

    @property
    def step_type(self) -> str:
        return "delete_files"

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        raw_path = params.get("path", "")
        if not raw_path:
            return StepOutcome.fail("'path' is required")
        recursive = bool(params.get("recursive", False))

        target = Path(raw_path).expanduser()
        if not target.is_absolute():
            target = work_dir / target
        target = target.resolve()

        roots = [work_dir, *self._allowed_roots]
        if not any(is_within(target, root) for root in roots):
            log.warning("delete_blocked", task_id=task_id, path=str(target))
            return StepOutcome.fail(f"Deletion blocked outside allowed roots: {target}")
        if target in (work_dir.resolve(), *(r.resolve() for r in self._allowed_roots)):
            return StepOutcome.fail(f"Refusing to delete an allowed root: {target}")

        if not target.exists():
            return StepOutcome.ok()
        if target.is_dir():
            if not recursive:
                return StepOutcome.fail(f"{target} is a directory; set 'recursive'")
            await asyncio.to_thread(shutil.rmtree, target)
        else:
            await asyncio.to_thread(target.unlink)

        log.info("files_deleted", task_id=task_id, path=str(target), recursive=recursive)
        return StepOutcome.ok()


class DownloadFileHandler(StepHandler):
    def __init__(
        self,
        max_bytes: int = 100 * 1024 * 1024,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._client = client

    @property
    def step_type(self) -> str:
        return "download_file"

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        url = str(params.get("url", ""))
        if not url.startswith(("http://", "https://")):
            return StepOutcome.fail(f"Unsupported download URL: {url!r}")

        save_as = str(params.get("save_as") or f"download_{int(time.time() * 1000)}")
        target = resolve_in_work_dir(work_dir, save_as)
        if target is None:
            return StepOutcome.fail(f"Path escapes the task directory: {save_as}")
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")

        client = self._client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        try:
            async with client.stream("GET", url) as resp:
                if resp.status_code >= 400:
                    return StepOutcome.fail(f"HTTP {resp.status_code} from {url}")
                written = 0
                with open(partial, "wb") as f:
                    async for chunk in resp.aiter_bytes():
                        written += len(chunk)
                        if written > self._max_bytes:
                            partial.unlink(missing_ok=True)
                            return StepOutcome.fail(f"Download exceeds {self._max_bytes} bytes")
                        f.write(chunk)
            partial.replace(target)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            return StepOutcome.fail(f"Download failed: {e}")
        finally:
            if self._client is None:
                await client.aclose()

        log.info("file_downloaded", task_id=task_id, url=url, path=str(target), bytes=written)
        return StepOutcome.ok(target)


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")

"""Local (OpenAI-compatible) text generator."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx

from waypoint.config import LLMConfig
from waypoint.core.llm.base import TextGenerator
from waypoint.utils.logging import get_logger

log = get_logger(__name__)


class LocalGenerator(TextGenerator):
    """OpenAI-compatible local model endpoint (ollama, llama.cpp, vllm, etc.)."""

    def __init__(self, config: LLMConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._model = config.model
        self._client = client or httpx.AsyncClient(
            timeout=120, base_url=config.local_endpoint.rstrip("/")
        )

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        body: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._config.max_tokens,
            "temperature": temperature if temperature is not None else self._config.temperature,
        }
        resp = await self._post_with_retry("/chat/completions", body)
        data = resp.json()
        return data["choices"][0]["message"].get("content", "") or ""

    async def close(self) -> None:
        await self._client.aclose()

    async def _post_with_retry(
        self, path: str, body: dict[str, Any], max_retries: int = 2
    ) -> httpx.Response:
        for attempt in range(max_retries + 1):
            try:
                resp = await self._client.post(path, json=body)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                if attempt == max_retries or e.response.status_code < 500:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("local_llm_retry", status=e.response.status_code, attempt=attempt)
                await asyncio.sleep(wait)
            except httpx.ConnectError:
                if attempt == max_retries:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("local_llm_connect_retry", attempt=attempt)
                await asyncio.sleep(wait)
        raise RuntimeError("Unreachable")

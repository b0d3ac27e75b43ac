"""Anthropic text generator."""

from __future__ import annotations

import asyncio
import random
from typing import Any

from anthropic import APIError, AsyncAnthropic, RateLimitError

from waypoint.config import LLMConfig
from waypoint.core.llm.base import TextGenerator
from waypoint.utils.logging import get_logger

log = get_logger(__name__)


class AnthropicGenerator(TextGenerator):
    def __init__(self, config: LLMConfig, client: AsyncAnthropic | None = None) -> None:
        self._config = config
        self._client = client or AsyncAnthropic(api_key=config.api_key or None)
        self._model = config.model

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens or self._config.max_tokens,
            "temperature": temperature if temperature is not None else self._config.temperature,
        }
        if system:
            kwargs["system"] = system

        response = await self._call_with_retry(kwargs)
        return "".join(block.text for block in response.content if block.type == "text")

    async def close(self) -> None:
        await self._client.close()

    async def _call_with_retry(
        self, kwargs: dict[str, Any], max_retries: int = 3
    ) -> Any:
        for attempt in range(max_retries + 1):
            try:
                return await self._client.messages.create(**kwargs)
            except RateLimitError:
                if attempt == max_retries:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("rate_limited", attempt=attempt, wait=wait)
                await asyncio.sleep(wait)
            except APIError as e:
                status = getattr(e, "status_code", None)
                if attempt == max_retries or status is None or status < 500:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("api_error_retry", status=status, attempt=attempt)
                await asyncio.sleep(wait)
        raise RuntimeError("Unreachable")

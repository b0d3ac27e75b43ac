"""Text generator abstract base class."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TextGenerator(ABC):
    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str: ...

    async def close(self) -> None:
        """Clean up resources. Override if needed."""

"""Text generation providers."""

from waypoint.config import LLMConfig
from waypoint.core.llm.anthropic import AnthropicGenerator
from waypoint.core.llm.base import TextGenerator
from waypoint.core.llm.local import LocalGenerator

__all__ = [
    "TextGenerator",
    "AnthropicGenerator",
    "LocalGenerator",
    "create_generator",
]


def create_generator(config: LLMConfig) -> TextGenerator:
    """Factory to create the configured text generator."""
    if config.provider == "local":
        return LocalGenerator(config)
    return AnthropicGenerator(config)

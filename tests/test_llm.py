"""Tests for text generators."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx

from waypoint.config import LLMConfig
from waypoint.core.llm import AnthropicGenerator, LocalGenerator, create_generator


class TestCreateGenerator:
    def test_anthropic_default(self):
        generator = create_generator(LLMConfig(api_key="test"))
        assert isinstance(generator, AnthropicGenerator)

    def test_local(self):
        assert isinstance(create_generator(LLMConfig(provider="local")), LocalGenerator)


class TestAnthropicGenerator:
    async def test_joins_text_blocks(self):
        client = AsyncMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="tool_use"),
                SimpleNamespace(type="text", text="world"),
            ]
        )
        generator = AnthropicGenerator(LLMConfig(max_tokens=100), client=client)
        text = await generator.generate("Say hello", system="Be brief")
        assert text == "Hello world"
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Say hello"}]
        assert kwargs["system"] == "Be brief"
        assert kwargs["max_tokens"] == 100


class TestLocalGenerator:
    async def test_chat_completion(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": "local text"}}]})

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://localhost:11434/v1"
        )
        generator = LocalGenerator(LLMConfig(provider="local", model="llama3"), client=client)
        assert await generator.generate("hi") == "local text"
        assert seen[0]["model"] == "llama3"
        assert seen[0]["messages"] == [{"role": "user", "content": "hi"}]

    async def test_retries_server_errors(self):
        responses = [httpx.Response(502), httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})]

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: responses.pop(0)),
            base_url="http://localhost:11434/v1",
        )
        generator = LocalGenerator(LLMConfig(provider="local"), client=client)
        with patch("waypoint.core.llm.local.asyncio.sleep", new=AsyncMock()):
            assert await generator.generate("hi") == "ok"

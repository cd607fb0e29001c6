"""Tests for the text-generation backends."""
import json

import httpx
import pytest

from elearn.config import Settings
from elearn.errors import ProviderError
from elearn.llm_client import (
    AnthropicGenerator,
    OllamaGenerator,
    OpenAIGenerator,
    create_text_generator,
)


@pytest.mark.asyncio
async def test_anthropic_generate():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": "Hi there"}]})

    generator = AnthropicGenerator(
        api_key="ak", model="claude-test", transport=httpx.MockTransport(handler)
    )
    text = await generator.generate("question?", "be grounded")

    assert text == "Hi there"
    assert seen["url"] == "https://api.anthropic.com/v1/messages"
    assert seen["headers"]["x-api-key"] == "ak"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["system"] == "be grounded"
    assert seen["body"]["messages"] == [{"role": "user", "content": "question?"}]
    assert seen["body"]["max_tokens"] == 4096


@pytest.mark.asyncio
async def test_openai_generate_puts_system_prompt_first():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Answer"}}]})

    generator = OpenAIGenerator(api_key="k", model="gpt", transport=httpx.MockTransport(handler))

    assert await generator.generate("q", "sys") == "Answer"
    assert seen["body"]["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "q"},
    ]


@pytest.mark.asyncio
async def test_ollama_generate_is_non_streaming():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "Local"}})

    generator = OllamaGenerator(model="llama3.2", transport=httpx.MockTransport(handler))

    assert await generator.generate("q") == "Local"
    assert seen["url"] == "http://localhost:11434/api/chat"
    assert seen["body"]["stream"] is False
    assert seen["body"]["messages"] == [{"role": "user", "content": "q"}]


@pytest.mark.asyncio
async def test_empty_content_raises_provider_error():
    generator = AnthropicGenerator(
        api_key="k",
        model="m",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"content": []})),
    )

    with pytest.raises(ProviderError):
        await generator.generate("q", "s")


@pytest.mark.asyncio
async def test_error_status_raises_provider_error():
    generator = OpenAIGenerator(
        api_key="k",
        model="m",
        transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")),
    )

    with pytest.raises(ProviderError) as exc_info:
        await generator.generate("q", "s")

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_timeout_is_flagged():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    generator = OllamaGenerator(model="m", timeout=0.01, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError) as exc_info:
        await generator.generate("q")

    assert exc_info.value.timed_out


@pytest.mark.asyncio
async def test_ollama_list_models():
    generator = OllamaGenerator(
        model="m",
        transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"models": [{"name": "llama3.2"}, {"name": "m"}]})
        ),
    )

    assert await generator.list_models() == ["llama3.2", "m"]


def test_factory_selection():
    assert isinstance(create_text_generator(Settings(model_provider="openai")), OpenAIGenerator)
    assert isinstance(create_text_generator(Settings(model_provider="ollama")), OllamaGenerator)
    assert isinstance(
        create_text_generator(Settings(model_provider="anthropic")), AnthropicGenerator
    )
    assert isinstance(create_text_generator(Settings(model_provider="other")), AnthropicGenerator)


def test_factory_passes_generation_timeout():
    generator = create_text_generator(
        Settings(model_provider="ollama", generation_timeout=12.5)
    )
    assert generator.timeout == 12.5

"""Unit tests for the async chat providers.

WHY: Every AI feature funnels through ChatProvider.chat(). If an HTTP
failure surfaces as a bare httpx exception, or a 429 loses its
Retry-After hint, the batch log tells the user nothing useful.

HOW: Providers are built with an httpx.MockTransport whose handler
inspects the outgoing request and returns a canned response. Coroutines
are driven with asyncio.run().

RULES:
- No network; every request is answered by the mock handler
- AI_API_KEY is removed from the environment where key loading matters
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.errors import AICancellationError, AIConfigurationError, AIProviderError
from transcript_editor.ai.providers import (
    OllamaProvider,
    OpenAICompatibleProvider,
    create_provider,
)

MESSAGES = [
    {"role": "system", "content": "You are helpful."},
    {"role": "user", "content": "Say hi."},
]


def _openai(handler, api_key: str | None = "sk-test") -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        base_url="https://llm.test/v1", model="gpt-test", api_key=api_key, transport=httpx.MockTransport(handler)
    )


def _ollama(handler) -> OllamaProvider:
    return OllamaProvider(base_url="http://ollama.test", model="llama-test", transport=httpx.MockTransport(handler))


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class TestOpenAICompatibleProvider:
    """POST /chat/completions with an optional bearer token."""

    def test_request_and_reply(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion("hi there"))

        reply = asyncio.run(_openai(handler).chat(MESSAGES, temperature=0.2, max_tokens=64))
        assert reply == "hi there"
        request = seen[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-test"
        assert body["messages"] == MESSAGES
        assert (body["temperature"], body["max_tokens"]) == (0.2, 64)

    def test_no_key_no_auth_header(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion("ok"))

        asyncio.run(_openai(handler, api_key=None).chat(MESSAGES))
        assert "Authorization" not in seen[0].headers

    def test_empty_choices(self):
        provider = _openai(lambda request: httpx.Response(200, json={"choices": []}))
        assert asyncio.run(provider.chat(MESSAGES)) == ""

    def test_context_manager_reuses_one_client(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion(str(len(seen))))

        async def run():
            async with _openai(handler) as provider:
                return [await provider.chat(MESSAGES), await provider.chat(MESSAGES)]

        assert asyncio.run(run()) == ["1", "2"]


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------


class TestOllamaProvider:
    """POST /api/chat, falling back to /api/generate."""

    def test_chat_endpoint(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "hello"}})

        assert asyncio.run(_ollama(handler).chat(MESSAGES, max_tokens=32)) == "hello"
        body = json.loads(seen[0].content)
        assert seen[0].url.path == "/api/chat"
        assert body["stream"] is False
        assert body["options"]["num_predict"] == 32

    def test_falls_back_to_generate(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/api/chat":
                return httpx.Response(404, text="not found")
            body = json.loads(request.content)
            assert body["system"] == "You are helpful."
            assert body["prompt"] == "Say hi."
            return httpx.Response(200, json={"response": "generated"})

        assert asyncio.run(_ollama(handler).chat(MESSAGES)) == "generated"
        assert paths == ["/api/chat", "/api/generate"]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    """HTTP and network failures become AIProviderError codes."""

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status):
        provider = _openai(lambda request: httpx.Response(status, text="denied"))
        with pytest.raises(AIProviderError) as exc_info:
            asyncio.run(provider.chat(MESSAGES))
        assert exc_info.value.code == "AUTH_ERROR"
        assert exc_info.value.status_code == status
        assert "API key" in exc_info.value.user_message()

    def test_rate_limit_keeps_retry_after(self):
        provider = _openai(lambda request: httpx.Response(429, headers={"Retry-After": "7"}, text="slow down"))
        with pytest.raises(AIProviderError) as exc_info:
            asyncio.run(provider.chat(MESSAGES))
        assert exc_info.value.code == "RATE_LIMIT"
        assert exc_info.value.retry_after == 7.0
        assert "Retry in 7s." in exc_info.value.user_message()

    def test_server_error(self):
        provider = _ollama(lambda request: httpx.Response(500, text="model crashed"))
        with pytest.raises(AIProviderError, match=r"API error \(500\): model crashed") as exc_info:
            asyncio.run(provider.chat(MESSAGES))
        assert exc_info.value.code == "PROVIDER_ERROR"

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AIProviderError) as exc_info:
            asyncio.run(_ollama(handler).chat(MESSAGES))
        assert exc_info.value.code == "CONNECTION_ERROR"
        assert exc_info.value.status_code is None


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    """A fired token abandons the request."""

    def test_cancelled_before_call(self):
        provider = _openai(lambda request: httpx.Response(200, json=_completion("late")))

        async def run():
            token = CancellationToken()
            token.cancel()
            return await provider.chat(MESSAGES, token=token)

        with pytest.raises(AICancellationError):
            asyncio.run(run())

    def test_cancelled_while_waiting(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=_completion("late"))

        provider = _openai(handler)

        async def run():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.01, token.cancel, "user pressed cancel")
            return await provider.chat(MESSAGES, token=token)

        with pytest.raises(AICancellationError, match="user pressed cancel"):
            asyncio.run(run())


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateProvider:
    """create_provider() validates configuration up front."""

    def test_unknown_provider(self):
        with pytest.raises(AIConfigurationError, match="Unknown AI provider"):
            create_provider("carrier-pigeon", model="m")

    def test_missing_model(self):
        with pytest.raises(AIConfigurationError):
            OllamaProvider(base_url="http://ollama.test", model="")

    def test_openai_requires_key(self, monkeypatch):
        monkeypatch.delenv("AI_API_KEY", raising=False)
        with pytest.raises(AIConfigurationError, match="AI_API_KEY"):
            create_provider("openai", base_url="https://llm.test/v1", model="gpt-test")

    def test_openai_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("AI_API_KEY", "sk-env")
        provider = create_provider("OpenAI", base_url="https://llm.test/v1", model="gpt-test")
        assert isinstance(provider, OpenAICompatibleProvider)
        assert provider._api_key == "sk-env"

    def test_ollama_needs_no_key(self, monkeypatch):
        monkeypatch.delenv("AI_API_KEY", raising=False)
        provider = create_provider("ollama", base_url="http://ollama.test/", model="llama-test")
        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == "http://ollama.test"
        assert provider.model == "llama-test"

"""Async HTTP chat providers for AI features.

WHY: Features only need "send these messages, get text back". Where the
model runs (a local Ollama server, an OpenAI-compatible gateway) is a
configuration detail. Hiding the HTTP specifics behind ChatProvider keeps
features and the orchestrator free of transport code and lets tests swap
in httpx.MockTransport.

HOW: Each provider wraps httpx.AsyncClient. Used as an async context
manager the provider keeps one connection pool open across a run;
otherwise each chat() call opens and closes a short-lived client. HTTP
failures are mapped to AIProviderError with a stable code.

RULES:
- chat() returns the assistant message text, never None
- A CancellationToken passed to chat() abandons the in-flight request
- 401/403 → AUTH_ERROR, 429 → RATE_LIMIT (with retry_after),
  network failures → CONNECTION_ERROR, anything else → PROVIDER_ERROR
- Ollama falls back from /api/chat to /api/generate on 404/405
"""

from __future__ import annotations

import abc
import logging
from typing import Any

import httpx

from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.errors import AIConfigurationError, AIProviderError
from transcript_editor.config import (
    AI_BASE_URL,
    AI_MAX_TOKENS,
    AI_MODEL,
    AI_PROVIDER,
    AI_TEMPERATURE,
    AI_TIMEOUT_S,
    load_ai_api_key,
)

logger = logging.getLogger(__name__)

Message = dict[str, str]


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Map a non-2xx response to AIProviderError."""
    if response.is_success:
        return
    status = response.status_code
    body = response.text[:500]
    if status in (401, 403):
        raise AIProviderError(
            f"{provider} rejected the credentials ({status})", status_code=status, code="AUTH_ERROR"
        )
    if status == 429:
        raise AIProviderError(
            f"{provider} rate limit exceeded",
            status_code=status,
            code="RATE_LIMIT",
            retry_after=_retry_after(response),
        )
    raise AIProviderError(f"{provider} API error ({status}): {body}", status_code=status)


class ChatProvider(abc.ABC):
    """Base class for chat-completion providers."""

    name = "provider"

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = AI_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not model:
            raise AIConfigurationError("No model configured for the AI provider")
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )

    async def __aenter__(self) -> ChatProvider:
        self._client = self._new_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.post(path, json=payload)
            async with self._new_client() as client:
                return await client.post(path, json=payload)
        except httpx.RequestError as exc:
            raise AIProviderError(
                f"Failed to communicate with {self.name}: {exc}", code="CONNECTION_ERROR"
            ) from exc

    async def chat(
        self,
        messages: list[Message],
        token: CancellationToken | None = None,
        temperature: float = AI_TEMPERATURE,
        max_tokens: int = AI_MAX_TOKENS,
    ) -> str:
        """Send messages and return the assistant's reply text.

        Raises:
            AIProviderError: On HTTP or network failure.
            AICancellationError: If token fires before the reply arrives.
        """
        request = self._chat(messages, temperature, max_tokens)
        if token is None:
            return await request
        return await token.guard(request)

    @abc.abstractmethod
    async def _chat(self, messages: list[Message], temperature: float, max_tokens: int) -> str:
        ...


class OpenAICompatibleProvider(ChatProvider):
    """Any server exposing POST /chat/completions (OpenAI, vLLM, LM Studio...)."""

    name = "openai"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _chat(self, messages: list[Message], temperature: float, max_tokens: int) -> str:
        resp = await self._post(
            "/chat/completions",
            {
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        raise_for_provider_status(resp, self.name)
        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""


class OllamaProvider(ChatProvider):
    """A local Ollama server."""

    name = "ollama"

    async def _chat(self, messages: list[Message], temperature: float, max_tokens: int) -> str:
        options = {"temperature": temperature, "num_predict": max_tokens}
        resp = await self._post(
            "/api/chat",
            {"model": self.model, "messages": messages, "stream": False, "options": options},
        )
        if resp.status_code in (404, 405):
            logger.info("Ollama /api/chat unavailable (%d); falling back to /api/generate", resp.status_code)
            return await self._generate(messages, options)
        raise_for_provider_status(resp, self.name)
        data = resp.json()
        return (data.get("message") or {}).get("content") or data.get("response") or ""

    async def _generate(self, messages: list[Message], options: dict[str, Any]) -> str:
        system = next((m["content"] for m in messages if m["role"] == "system"), "")
        prompt = "\n\n".join(m["content"] for m in messages if m["role"] != "system")
        resp = await self._post(
            "/api/generate",
            {"model": self.model, "prompt": prompt, "system": system, "stream": False, "options": options},
        )
        raise_for_provider_status(resp, self.name)
        return resp.json().get("response") or ""


PROVIDERS: dict[str, type[ChatProvider]] = {
    "openai": OpenAICompatibleProvider,
    "ollama": OllamaProvider,
}


def create_provider(
    provider: str | None = None,
    base_url: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatProvider:
    """Build a provider from explicit arguments, falling back to config.

    Raises:
        AIConfigurationError: For an unknown provider type, a missing
            model, or a missing API key where one is required.
    """
    kind = (provider or AI_PROVIDER).lower()
    cls = PROVIDERS.get(kind)
    if cls is None:
        raise AIConfigurationError(f"Unknown AI provider {kind!r}; expected one of {sorted(PROVIDERS)}")
    if api_key is None:
        try:
            api_key = load_ai_api_key(required=kind == "openai")
        except ValueError as exc:
            raise AIConfigurationError(str(exc)) from exc
    return cls(base_url=base_url or AI_BASE_URL, model=model or AI_MODEL, api_key=api_key, transport=transport)

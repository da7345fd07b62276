"""
AI Provider Adapters - Uniform list-models and chat-completion over three families.

Each adapter wraps one upstream HTTP API with httpx. Calls are single-shot:
no retries and no streaming. Upstream failures surface as ProviderError with
the provider's own message attached.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from structlog import get_logger

from app.exceptions import ProviderError
from app.models.domain import ModelDescriptor

logger = get_logger(__name__)

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7
GEMINI_SYSTEM_INSTRUCTION = "You are a helpful assistant."


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of the provider's error message."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return response.reason_phrase or f"HTTP {response.status_code}"


class ProviderAdapter(ABC):
    """Base class for upstream provider adapters."""

    name: str
    default_base_url: str

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Perform one request and return its JSON object body."""
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("provider_transport_error", provider=self.name, error=str(e))
            raise ProviderError(self.name, None, str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning(
                "provider_http_error",
                provider=self.name,
                status_code=response.status_code,
                detail=detail,
            )
            raise ProviderError(self.name, response.status_code, detail)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.name, response.status_code, "Malformed JSON response") from e
        if not isinstance(data, dict):
            logger.warning(
                "provider_unexpected_payload", provider=self.name, payload_type=type(data).__name__
            )
            raise ProviderError(self.name, response.status_code, "Unexpected response shape")
        return data

    def _objects(self, data: dict[str, Any], key: str) -> list[dict[str, Any]]:
        """JSON objects listed under ``key``; anything else in the list is skipped."""
        value = data.get(key) or []
        if not isinstance(value, list):
            raise ProviderError(self.name, None, f"Unexpected '{key}' in response")
        return [item for item in value if isinstance(item, dict)]

    @abstractmethod
    async def list_models(self) -> list[ModelDescriptor]:
        """Models visible to this key."""

    @abstractmethod
    async def chat_complete(
        self,
        model_name: str,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        """Single-turn completion text."""


class OpenAIAdapter(ProviderAdapter):
    """OpenAI Chat Completions API."""

    name = "openai"
    default_base_url = "https://api.openai.com/v1"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def list_models(self) -> list[ModelDescriptor]:
        data = await self._request("GET", f"{self.base_url}/models", headers=self._headers())
        return [
            ModelDescriptor(id=item["id"], provider=self.name, owned_by=item.get("owned_by"))
            for item in self._objects(data, "data")
            if item.get("id")
        ]

    async def chat_complete(
        self,
        model_name: str,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        body = {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "n": 1,
        }
        data = await self._request(
            "POST", f"{self.base_url}/chat/completions", headers=self._headers(), json=body
        )
        choices = self._objects(data, "choices")
        if not choices:
            raise ProviderError(self.name, None, "Response contained no choices")
        message = choices[0].get("message")
        return (message.get("content") if isinstance(message, dict) else None) or ""


class DeepSeekAdapter(OpenAIAdapter):
    """DeepSeek speaks the OpenAI wire format on its own host."""

    name = "deepseek"
    default_base_url = "https://api.deepseek.com/v1"


class GeminiAdapter(ProviderAdapter):
    """Google Gemini generateContent API."""

    name = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def list_models(self) -> list[ModelDescriptor]:
        data = await self._request(
            "GET", f"{self.base_url}/models", params={"key": self.api_key}
        )
        models = []
        for item in self._objects(data, "models"):
            name = item.get("name", "")
            if not name:
                continue
            models.append(
                ModelDescriptor(
                    id=name.removeprefix("models/"),
                    provider=self.name,
                    display_name=item.get("displayName"),
                )
            )
        return models

    async def chat_complete(
        self,
        model_name: str,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        body = {
            "systemInstruction": {"parts": [{"text": GEMINI_SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
            },
        }
        data = await self._request(
            "POST",
            f"{self.base_url}/models/{model_name}:generateContent",
            params={"key": self.api_key},
            json=body,
        )
        candidates = self._objects(data, "candidates")
        if not candidates:
            raise ProviderError(self.name, None, "Response contained no candidates")
        content = candidates[0].get("content")
        if not isinstance(content, dict):
            return ""
        return "".join(part.get("text", "") for part in self._objects(content, "parts"))


PROVIDER_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    OpenAIAdapter.name: OpenAIAdapter,
    DeepSeekAdapter.name: DeepSeekAdapter,
    GeminiAdapter.name: GeminiAdapter,
}


def normalize_provider(provider: str) -> str:
    return provider.strip().lower()


def get_adapter_class(provider: str) -> type[ProviderAdapter] | None:
    """Case-insensitive family lookup. Unknown families return None."""
    return PROVIDER_ADAPTERS.get(normalize_provider(provider))

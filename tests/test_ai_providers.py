"""
Tests for provider adapters and AIProxyDispatcher.

Upstream APIs are replaced by httpx.MockTransport handlers.
"""

import json

import httpx
import pytest

from app.config import get_settings
from app.exceptions import NotFoundError, ProviderError
from app.services.ai_providers import (
    DeepSeekAdapter,
    GeminiAdapter,
    OpenAIAdapter,
    get_adapter_class,
)
from app.services.dispatcher import AIProxyDispatcher


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAdapterLookup:
    @pytest.mark.parametrize(
        "provider,expected",
        [
            ("openai", OpenAIAdapter),
            ("OpenAI", OpenAIAdapter),
            (" deepseek ", DeepSeekAdapter),
            ("GEMINI", GeminiAdapter),
        ],
    )
    def test_case_insensitive(self, provider, expected):
        assert get_adapter_class(provider) is expected

    def test_unknown_family(self):
        assert get_adapter_class("claude") is None


class TestOpenAIAdapter:
    async def test_chat_request_shape(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"choices": [{"message": {"role": "assistant", "content": "Hi!"}}]}
            )

        adapter = OpenAIAdapter("sk-test", http_client=mock_client(handler))
        content = await adapter.chat_complete("gpt-4o-mini", "Hello", temperature=0.2)

        assert content == "Hi!"
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["messages"] == [{"role": "user", "content": "Hello"}]
        assert seen["body"]["max_tokens"] == 1000
        assert seen["body"]["temperature"] == 0.2
        assert seen["body"]["n"] == 1

    async def test_list_models(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/models"
            return httpx.Response(
                200, json={"data": [{"id": "gpt-4o", "owned_by": "openai"}, {"id": "gpt-4o-mini"}]}
            )

        adapter = OpenAIAdapter("sk-test", http_client=mock_client(handler))
        models = await adapter.list_models()

        assert [m.id for m in models] == ["gpt-4o", "gpt-4o-mini"]
        assert models[0].owned_by == "openai"
        assert models[0].provider == "openai"

    async def test_http_error_carries_provider_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

        adapter = OpenAIAdapter("sk-bad", http_client=mock_client(handler))

        with pytest.raises(ProviderError) as exc_info:
            await adapter.list_models()

        assert exc_info.value.upstream_status == 401
        assert exc_info.value.detail == "Incorrect API key provided"
        assert exc_info.value.status_code == 502

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        adapter = OpenAIAdapter("sk-test", http_client=mock_client(handler))

        with pytest.raises(ProviderError) as exc_info:
            await adapter.chat_complete("gpt-4o", "Hello")
        assert exc_info.value.upstream_status is None

    async def test_no_choices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        adapter = OpenAIAdapter("sk-test", http_client=mock_client(handler))

        with pytest.raises(ProviderError):
            await adapter.chat_complete("gpt-4o", "Hello")

    @pytest.mark.parametrize("payload", [[{"id": "gpt-4o"}], "ok", {"data": "gpt-4o"}])
    async def test_unexpected_payload_shape(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        adapter = OpenAIAdapter("sk-test", http_client=mock_client(handler))

        with pytest.raises(ProviderError):
            await adapter.list_models()

    async def test_non_object_entries_are_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": ["gpt-4o", {"id": "gpt-4o-mini"}]})

        adapter = OpenAIAdapter("sk-test", http_client=mock_client(handler))

        assert [m.id for m in await adapter.list_models()] == ["gpt-4o-mini"]


class TestDeepSeekAdapter:
    async def test_uses_deepseek_host(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "api.deepseek.com"
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        adapter = DeepSeekAdapter("ds-key", http_client=mock_client(handler))

        assert await adapter.chat_complete("deepseek-chat", "Hello") == "ok"


class TestGeminiAdapter:
    async def test_chat_request_shape(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"candidates": [{"content": {"parts": [{"text": "Hel"}, {"text": "lo"}]}}]},
            )

        adapter = GeminiAdapter("g-key", http_client=mock_client(handler))
        content = await adapter.chat_complete("gemini-1.5-flash", "Hi", temperature=0.9)

        assert content == "Hello"
        assert seen["path"] == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert seen["key"] == "g-key"
        assert seen["body"]["contents"] == [{"role": "user", "parts": [{"text": "Hi"}]}]
        assert seen["body"]["systemInstruction"]["parts"][0]["text"]
        assert seen["body"]["generationConfig"] == {"maxOutputTokens": 1000, "temperature": 0.9}

    async def test_list_models_strips_prefix(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"models": [{"name": "models/gemini-1.5-pro", "displayName": "Gemini 1.5 Pro"}]},
            )

        adapter = GeminiAdapter("g-key", http_client=mock_client(handler))
        models = await adapter.list_models()

        assert models[0].id == "gemini-1.5-pro"
        assert models[0].display_name == "Gemini 1.5 Pro"

    async def test_no_candidates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"candidates": []})

        adapter = GeminiAdapter("g-key", http_client=mock_client(handler))

        with pytest.raises(ProviderError):
            await adapter.chat_complete("gemini-1.5-pro", "Hi")


class TestDispatcher:
    async def test_routes_by_family(self):
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(200, json={"choices": [{"message": {"content": "done"}}]})

        dispatcher = AIProxyDispatcher(get_settings(), http_client=mock_client(handler))

        assert await dispatcher.get_chat_completion("DeepSeek", "k", "deepseek-chat", "Hi") == "done"
        assert hosts == ["api.deepseek.com"]

    async def test_unknown_family(self):
        dispatcher = AIProxyDispatcher(get_settings())

        with pytest.raises(NotFoundError, match="Unsupported AI model"):
            await dispatcher.list_models("claude", "key")

    async def test_provider_error_propagates_unchanged(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "upstream exploded"})

        dispatcher = AIProxyDispatcher(get_settings(), http_client=mock_client(handler))

        with pytest.raises(ProviderError) as exc_info:
            await dispatcher.get_chat_completion("openai", "k", "gpt-4o", "Hi")
        assert exc_info.value.detail == "upstream exploded"

    def test_adapter_not_cached(self):
        dispatcher = AIProxyDispatcher(get_settings())

        first = dispatcher.get_adapter("openai", "key-a")
        second = dispatcher.get_adapter("openai", "key-b")

        assert first is not second
        assert second.api_key == "key-b"

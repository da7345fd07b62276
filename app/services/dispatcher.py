"""
AI Proxy Dispatcher - Routes list-models and chat requests to provider adapters.

Adapters are built per call from the resolved credential and never cached.
"""

import time

import httpx
from structlog import get_logger

from app.config import Settings
from app.exceptions import NotFoundError
from app.models.domain import ModelDescriptor
from app.observability.tracing import trace_operation
from app.services.ai_providers import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ProviderAdapter,
    get_adapter_class,
    normalize_provider,
)

logger = get_logger(__name__)


class AIProxyDispatcher:
    """Maps a model family to an adapter and performs the upstream call."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self.http_client = http_client
        self._base_urls = {
            "openai": settings.openai_base_url,
            "deepseek": settings.deepseek_base_url,
            "gemini": settings.gemini_base_url,
        }

    def get_adapter(self, provider: str, api_key: str) -> ProviderAdapter | None:
        """Adapter for ``provider`` bound to ``api_key``, or None for unknown families."""
        adapter_class = get_adapter_class(provider)
        if adapter_class is None:
            return None
        return adapter_class(
            api_key,
            base_url=self._base_urls.get(adapter_class.name),
            timeout=self.settings.provider_timeout_seconds,
            http_client=self.http_client,
        )

    def _require_adapter(self, provider: str, api_key: str) -> ProviderAdapter:
        adapter = self.get_adapter(provider, api_key)
        if adapter is None:
            logger.warning("provider_not_supported", provider=provider)
            raise NotFoundError(f"Unsupported AI model: {provider}")
        return adapter

    async def list_models(self, provider: str, api_key: str) -> list[ModelDescriptor]:
        adapter = self._require_adapter(provider, api_key)
        with trace_operation("provider_list_models", provider=adapter.name):
            models = await adapter.list_models()
        logger.info("provider_models_listed", provider=adapter.name, count=len(models))
        return models

    async def get_chat_completion(
        self,
        provider: str,
        api_key: str,
        model_name: str,
        message: str,
        temperature: float | None = None,
    ) -> str:
        """
        One upstream completion.

        Raises:
            NotFoundError: unknown provider family
            ProviderError: upstream failure, propagated unchanged
        """
        adapter = self._require_adapter(provider, api_key)
        started = time.perf_counter()
        with trace_operation(
            "provider_chat_completion", provider=adapter.name, model_name=model_name
        ):
            content = await adapter.chat_complete(
                model_name,
                message,
                temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
                max_tokens=DEFAULT_MAX_TOKENS,
            )
        logger.info(
            "provider_chat_completed",
            provider=normalize_provider(provider),
            model_name=model_name,
            duration_ms=int((time.perf_counter() - started) * 1000),
            response_chars=len(content),
        )
        return content

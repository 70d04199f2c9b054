from __future__ import annotations

import logging
from typing import Optional

from yournal.core.config import Settings, get_settings
from yournal.providers.base import (
    CompletionStream,
    LLMAdapter,
    LLMResult,
    MockAdapter,
    ProviderError,
    ProviderRuntimeConfig,
)
from yournal.providers.ollama_adapter import OllamaAdapter
from yournal.providers.openai_adapter import OpenAIAdapter

SUPPORTED_PROVIDERS = ("ollama", "openai", "mock")

logger = logging.getLogger(__name__)


class ProviderService:
    """Route completion calls to the adapter chosen in settings.

    The adapter fixes the streaming wire format: Ollama streams newline
    JSON, OpenAI-compatible backends stream ``data:`` events.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        adapters: Optional[dict[str, LLMAdapter]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        timeout = self._settings.completion_timeout_sec
        self._adapters = adapters or {
            "ollama": OllamaAdapter(timeout_sec=timeout),
            "openai": OpenAIAdapter(timeout_sec=timeout),
            "mock": MockAdapter(),
        }
        self._runtime_cfg = self._build_runtime_config(self._settings)

    def set_adapters(self, adapters: dict[str, LLMAdapter]) -> None:
        """Override adapter registry (useful for tests)."""

        self._adapters = adapters

    @property
    def runtime_config(self) -> ProviderRuntimeConfig:
        return self._runtime_cfg

    async def generate(self, messages: list[dict]) -> LLMResult:
        """Return a complete answer for ``messages``."""

        adapter = self._get_adapter(self._runtime_cfg.provider)
        return await adapter.generate(self._runtime_cfg, messages)

    async def open_stream(self, messages: list[dict]) -> CompletionStream:
        """Start a streamed answer; failures surface before any output."""

        adapter = self._get_adapter(self._runtime_cfg.provider)
        logger.info(
            "Opening completion stream (provider=%s, model=%s)",
            self._runtime_cfg.provider,
            self._runtime_cfg.model_name,
        )
        return await adapter.open_stream(self._runtime_cfg, messages)

    def _get_adapter(self, provider: str) -> LLMAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise ProviderError("PROVIDER_UNSUPPORTED", f"Unsupported provider: {provider}")
        return adapter

    @staticmethod
    def _build_runtime_config(settings: Settings) -> ProviderRuntimeConfig:
        provider = settings.completion_provider.strip().lower()
        if provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unknown COMPLETION_PROVIDER=%s; fallback to ollama", provider)
            provider = "ollama"
        base_url = settings.openai_base_url if provider == "openai" else settings.ollama_base_url
        return ProviderRuntimeConfig(
            provider=provider,
            model_name=settings.completion_model.strip() or "gemma3",
            base_url=base_url,
            api_key=settings.completion_api_key.strip() or None,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        )

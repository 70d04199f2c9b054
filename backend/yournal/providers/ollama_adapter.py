from __future__ import annotations

from typing import Any, Optional

from yournal.providers.base import (
    CompletionStream,
    HTTPProviderAdapter,
    LLMResult,
    ProviderError,
    ProviderRuntimeConfig,
)
from yournal.providers.decoders import NDJSONDecoder


class OllamaAdapter(HTTPProviderAdapter):
    """Adapter for the Ollama local API (newline-delimited JSON streaming)."""

    provider_label = "Ollama"

    async def generate(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> LLMResult:
        url = self._join_url(cfg.base_url, "/api/chat")
        data = await self._request_json("POST", url, json=self._payload(cfg, messages, False))
        message = data.get("message", {})
        content = message.get("content") if isinstance(message, dict) else None
        if not content:
            raise ProviderError("PROVIDER_PARSE_ERROR", "Provider returned empty content.")
        return LLMResult(
            content=content,
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=self._get_int(data, "prompt_eval_count"),
            token_out=self._get_int(data, "eval_count"),
        )

    async def open_stream(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> CompletionStream:
        url = self._join_url(cfg.base_url, "/api/chat")
        return await self._open_stream(
            url, NDJSONDecoder, json=self._payload(cfg, messages, True)
        )

    @staticmethod
    def _payload(cfg: ProviderRuntimeConfig, messages: list[dict], stream: bool) -> dict[str, Any]:
        return {
            "model": cfg.model_name,
            "messages": messages,
            "stream": stream,
            "options": {"temperature": cfg.temperature, "num_predict": cfg.max_tokens},
        }

    @staticmethod
    def _join_url(base_url: Optional[str], path: str) -> str:
        if not base_url:
            raise ProviderError("PROVIDER_BASE_URL_MISSING", "Base URL is required for Ollama.")
        base = base_url.rstrip("/")
        if base.endswith("/api") and path.startswith("/api/"):
            return base + path[4:]
        return base + path

    @staticmethod
    def _get_int(data: dict[str, Any], key: str) -> Optional[int]:
        value = data.get(key)
        return int(value) if isinstance(value, int) else None

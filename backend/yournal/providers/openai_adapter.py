from __future__ import annotations

from typing import Any, Optional

from yournal.providers.base import (
    CompletionStream,
    HTTPProviderAdapter,
    LLMResult,
    ProviderError,
    ProviderRuntimeConfig,
    require_api_key,
)
from yournal.providers.decoders import SSEDecoder


class OpenAIAdapter(HTTPProviderAdapter):
    """Adapter for OpenAI-compatible chat completion APIs (SSE streaming).

    Works against routers such as Requesty that expose ``/v1/chat/completions``.
    """

    provider_label = "OpenAI"

    async def generate(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> LLMResult:
        url = self._join_url(cfg.base_url, "/v1/chat/completions")
        data = await self._request_json(
            "POST",
            url,
            headers=self._auth_headers(cfg.api_key),
            json=self._payload(cfg, messages, False),
        )
        choices = data.get("choices", [])
        if not choices:
            raise ProviderError("PROVIDER_PARSE_ERROR", "No choices returned by provider.")
        content = choices[0].get("message", {}).get("content")
        if not content:
            raise ProviderError("PROVIDER_PARSE_ERROR", "Provider returned empty content.")
        return LLMResult(
            content=content,
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=self._get_usage_int(data, "prompt_tokens"),
            token_out=self._get_usage_int(data, "completion_tokens"),
        )

    async def open_stream(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> CompletionStream:
        url = self._join_url(cfg.base_url, "/v1/chat/completions")
        headers = self._auth_headers(cfg.api_key)
        headers["Accept"] = "text/event-stream"
        return await self._open_stream(
            url, SSEDecoder, headers=headers, json=self._payload(cfg, messages, True)
        )

    @staticmethod
    def _payload(cfg: ProviderRuntimeConfig, messages: list[dict], stream: bool) -> dict[str, Any]:
        return {
            "model": cfg.model_name,
            "messages": messages,
            "stream": stream,
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
        }

    @staticmethod
    def _auth_headers(api_key: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {require_api_key(api_key, 'OpenAI')}"}

    @staticmethod
    def _join_url(base_url: Optional[str], path: str) -> str:
        if not base_url:
            raise ProviderError("PROVIDER_BASE_URL_MISSING", "Base URL is required for OpenAI.")
        base = base_url.rstrip("/")
        if base.endswith("/v1") and path.startswith("/v1/"):
            return base + path[3:]
        return base + path

    @staticmethod
    def _get_usage_int(data: dict[str, Any], key: str) -> Optional[int]:
        usage = data.get("usage", {})
        value = usage.get(key) if isinstance(usage, dict) else None
        return int(value) if isinstance(value, int) else None

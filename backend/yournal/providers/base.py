from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Protocol, Sequence

import httpx

if TYPE_CHECKING:
    from yournal.providers.decoders import IncrementDecoder

logger = logging.getLogger(__name__)


@dataclass
class ProviderRuntimeConfig:
    """Runtime configuration needed by a completion adapter."""

    provider: str
    model_name: str
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1000


@dataclass
class LLMResult:
    """Result returned from a single-shot completion call."""

    content: str
    model_provider: str
    model_name: str
    token_in: int | None = None
    token_out: int | None = None


class ProviderError(RuntimeError):
    """Raised when a provider operation fails."""

    def __init__(
        self,
        code: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


class CompletionStream(ABC):
    """Open completion whose output is consumed one increment at a time."""

    @abstractmethod
    def increments(self) -> AsyncIterator[str]:
        """Yield decoded text increments in generation order."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""


class LLMAdapter(Protocol):
    """Adapter interface for completion providers."""

    async def generate(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> LLMResult:
        """Generate a full response from the provider."""

    async def open_stream(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> CompletionStream:
        """Start a streamed response; raises ``ProviderError`` if it cannot start."""


def build_status_error(response: httpx.Response) -> ProviderError:
    """Build a normalized provider error from an HTTP response."""

    status = response.status_code
    message = _extract_response_message(response)
    formatted = f"Provider returned {status}: {message}"
    if status in {408, 429}:
        code = "PROVIDER_TIMEOUT" if status == 408 else "PROVIDER_RATE_LIMIT"
        return ProviderError(code, formatted, retryable=True, status_code=status)
    if status >= 500:
        return ProviderError(
            "PROVIDER_UPSTREAM",
            formatted,
            retryable=True,
            status_code=status,
        )
    return ProviderError("PROVIDER_BAD_STATUS", formatted, status_code=status)


def require_api_key(api_key: Optional[str], provider_name: str) -> str:
    """Return an API key or raise a normalized configuration error."""

    if api_key:
        return api_key
    raise ProviderError("API_KEY_REQUIRED", f"API key is required for {provider_name}.")


def _extract_response_message(response: httpx.Response) -> str:
    """Extract a concise error message from provider JSON/text payloads."""

    try:
        payload: Any = response.json()
    except ValueError:
        return (response.text or "Unknown error from provider.").strip()

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            detail = error.get("message") or error.get("code")
            if isinstance(detail, str) and detail.strip():
                return detail.strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return (response.text or "Unknown error from provider.").strip()


class HTTPCompletionStream(CompletionStream):
    """Streamed HTTP response decoded chunk by chunk."""

    def __init__(
        self,
        response: httpx.Response,
        decoder: "IncrementDecoder",
        owned_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._response = response
        self._decoder = decoder
        self._owned_client = owned_client
        self._closed = False

    async def increments(self) -> AsyncIterator[str]:
        try:
            async for chunk in self._response.aiter_text():
                for text in self._decoder.feed(chunk):
                    yield text
                if self._decoder.done:
                    break
            for text in self._decoder.flush():
                yield text
        except httpx.HTTPError as exc:
            raise ProviderError(
                "PROVIDER_STREAM_INTERRUPTED",
                "Provider stream was interrupted.",
                retryable=False,
            ) from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        if self._owned_client is not None:
            await self._owned_client.aclose()


class StaticCompletionStream(CompletionStream):
    """Stream over precomputed increments (offline mock provider)."""

    def __init__(self, pieces: Sequence[str]) -> None:
        self._pieces = list(pieces)
        self.closed = False

    async def increments(self) -> AsyncIterator[str]:
        try:
            for piece in self._pieces:
                if self.closed:
                    return
                yield piece
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        self.closed = True


class HTTPProviderAdapter:
    """Shared HTTP behavior for provider adapters."""

    provider_label = "provider"

    def __init__(
        self, timeout_sec: float = 90, http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._timeout = timeout_sec
        self._client = http_client

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        response = await self._request(method, url, headers=headers, json=json)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("PROVIDER_PARSE_ERROR", "Invalid JSON from provider.") from exc
        if not isinstance(payload, dict):
            raise ProviderError("PROVIDER_PARSE_ERROR", "Provider returned invalid JSON payload.")
        return payload

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            if self._client:
                response = await self._client.request(
                    method, url, headers=headers, json=json, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=headers, json=json)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                "PROVIDER_TIMEOUT", "Provider request timed out.", retryable=True
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderError(
                "PROVIDER_CONNECTION_ERROR",
                "Provider connection failed.",
                retryable=True,
            ) from exc
        if response.status_code >= 400:
            raise build_status_error(response)
        return response

    async def _open_stream(
        self,
        url: str,
        decoder_factory: Callable[[], "IncrementDecoder"],
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> HTTPCompletionStream:
        """Send a streaming POST and return once response headers arrive."""

        owned_client: Optional[httpx.AsyncClient] = None
        client = self._client
        if client is None:
            owned_client = httpx.AsyncClient(timeout=self._timeout)
            client = owned_client
        request = client.build_request("POST", url, headers=headers, json=json)
        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            await _close_quietly(owned_client)
            raise ProviderError(
                "PROVIDER_TIMEOUT", "Provider request timed out.", retryable=True
            ) from exc
        except httpx.RequestError as exc:
            await _close_quietly(owned_client)
            raise ProviderError(
                "PROVIDER_CONNECTION_ERROR",
                "Provider connection failed.",
                retryable=True,
            ) from exc

        if response.status_code >= 400:
            try:
                await response.aread()
            except httpx.HTTPError:
                logger.debug("Could not read error body from %s", self.provider_label)
            error = build_status_error(response)
            await response.aclose()
            await _close_quietly(owned_client)
            raise error
        return HTTPCompletionStream(response, decoder_factory(), owned_client)


async def _close_quietly(client: Optional[httpx.AsyncClient]) -> None:
    if client is not None:
        await client.aclose()


class MockAdapter:
    """Offline adapter that answers without contacting a model."""

    async def generate(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> LLMResult:
        return LLMResult(
            content="".join(self._pieces(messages)),
            model_provider=cfg.provider,
            model_name=cfg.model_name,
        )

    async def open_stream(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> CompletionStream:
        return StaticCompletionStream(self._pieces(messages))

    @staticmethod
    def _pieces(messages: list[dict]) -> list[str]:
        user_prompt = ""
        for message in reversed(messages):
            if message.get("role") == "user":
                user_prompt = message.get("content", "")
                break
        entry_lines = [line for line in user_prompt.splitlines() if line.startswith("- ")]
        if entry_lines:
            text = f"I found {len(entry_lines)} journal entries related to your question."
        else:
            text = "I could not find journal entries related to your question."
        words = text.split(" ")
        return [word if index == 0 else f" {word}" for index, word in enumerate(words)]

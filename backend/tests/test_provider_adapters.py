from __future__ import annotations

import json

import httpx
import pytest

from yournal.providers.base import ProviderError, ProviderRuntimeConfig
from yournal.providers.ollama_adapter import OllamaAdapter
from yournal.providers.openai_adapter import OpenAIAdapter

MESSAGES = [{"role": "user", "content": "hi"}]


def _chunks(*parts: str):
    async def body():
        for part in parts:
            yield part.encode("utf-8")

    return body()


def _ollama_cfg() -> ProviderRuntimeConfig:
    return ProviderRuntimeConfig(
        provider="ollama",
        model_name="gemma3",
        base_url="http://localhost:11434",
        temperature=0.7,
        max_tokens=1000,
    )


def _openai_cfg() -> ProviderRuntimeConfig:
    return ProviderRuntimeConfig(
        provider="openai",
        model_name="gpt-test",
        base_url="https://router.example.com/v1",
        api_key="sk-test",
    )


async def _drain(stream) -> list[str]:
    return [text async for text in stream.increments()]


@pytest.mark.anyio
async def test_ollama_adapter_generate_sends_options():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/chat":
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "message": {"content": "hello from ollama"},
                    "prompt_eval_count": 3,
                    "eval_count": 4,
                },
            )
        return httpx.Response(404, json={"error": "not found"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        result = await OllamaAdapter(http_client=client).generate(_ollama_cfg(), MESSAGES)

    assert result.content == "hello from ollama"
    assert result.token_in == 3
    assert result.token_out == 4
    assert seen[0]["stream"] is False
    assert seen[0]["options"] == {"temperature": 0.7, "num_predict": 1000}


@pytest.mark.anyio
async def test_ollama_stream_decodes_lines_split_across_chunks():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(
            200,
            content=_chunks(
                '{"message":{"content":"Yester"},"done":false}\n{"message":',
                '{"content":"day you"},"done":false}\n',
                '{"message":{"content":" wrote"},"done":false}\n{"done":true}\n',
            ),
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        stream = await OllamaAdapter(http_client=client).open_stream(_ollama_cfg(), MESSAGES)
        pieces = await _drain(stream)

    assert pieces == ["Yester", "day you", " wrote"]


@pytest.mark.anyio
async def test_openai_adapter_generate_reads_choice_and_usage():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "hello from router"}}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 7},
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await OpenAIAdapter(http_client=client).generate(_openai_cfg(), MESSAGES)

    assert result.content == "hello from router"
    assert result.token_in == 5
    assert result.token_out == 7


@pytest.mark.anyio
async def test_openai_stream_decodes_sse_events():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Accept"] == "text/event-stream"
        return httpx.Response(
            200,
            content=_chunks(
                'data: {"choices":[{"delta":{"content":"Se"}}]}\n\ndata: {"choi',
                'ces":[{"delta":{"content":"ems"}}]}\n\n',
                'data: {"choices":[{"delta":{"content":" calm"}}]}\n\ndata: [DONE]\n\n',
            ),
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        stream = await OpenAIAdapter(http_client=client).open_stream(_openai_cfg(), MESSAGES)
        pieces = await _drain(stream)

    assert pieces == ["Se", "ems", " calm"]


@pytest.mark.anyio
async def test_openai_requires_api_key():
    cfg = _openai_cfg()
    cfg.api_key = None

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        with pytest.raises(ProviderError) as exc_info:
            await OpenAIAdapter(http_client=client).open_stream(cfg, MESSAGES)

    assert exc_info.value.code == "API_KEY_REQUIRED"


@pytest.mark.anyio
async def test_stream_open_failure_raises_before_any_increment():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "slow down"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ProviderError) as exc_info:
            await OllamaAdapter(http_client=client).open_stream(_ollama_cfg(), MESSAGES)

    assert exc_info.value.code == "PROVIDER_RATE_LIMIT"
    assert exc_info.value.retryable is True
    assert "slow down" in exc_info.value.message


@pytest.mark.anyio
async def test_connection_refused_maps_to_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ProviderError) as exc_info:
            await OllamaAdapter(http_client=client).open_stream(_ollama_cfg(), MESSAGES)

    assert exc_info.value.code == "PROVIDER_CONNECTION_ERROR"


@pytest.mark.anyio
async def test_mid_stream_drop_surfaces_after_delivered_increments():
    async def body():
        yield b'{"message":{"content":"one"}}\n{"message":{"content":" two"}}\n'
        raise httpx.ReadError("peer reset")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    received: list[str] = []
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        stream = await OllamaAdapter(http_client=client).open_stream(_ollama_cfg(), MESSAGES)
        with pytest.raises(ProviderError) as exc_info:
            async for text in stream.increments():
                received.append(text)

    assert received == ["one", " two"]
    assert exc_info.value.code == "PROVIDER_STREAM_INTERRUPTED"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("adapter_cls", "cfg_factory", "expected_path"),
    [
        (OpenAIAdapter, _openai_cfg, "/v1/chat/completions"),
        (OllamaAdapter, _ollama_cfg, "/api/chat"),
    ],
)
async def test_adapter_generate_rate_limit_is_retryable(adapter_cls, cfg_factory, expected_path):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == expected_path
        return httpx.Response(429, json={"error": {"message": "rate limited"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ProviderError) as exc_info:
            await adapter_cls(http_client=client).generate(cfg_factory(), MESSAGES)

    assert exc_info.value.code == "PROVIDER_RATE_LIMIT"
    assert exc_info.value.retryable is True

from __future__ import annotations

import json
import math

import httpx
import pytest

from yournal.memory.embedder import (
    DeterministicEmbedder,
    EmbeddingClient,
    EmbeddingError,
    OllamaEmbedder,
    OpenAIEmbedder,
    create_embedder,
)


class BrokenEmbedder(DeterministicEmbedder):
    async def embed_texts(self, texts):
        raise EmbeddingError("model not loaded")


@pytest.mark.anyio
async def test_deterministic_embedder_is_stable_and_normalized():
    embedder = DeterministicEmbedder(dimension=32)

    first, second, other = await embedder.embed_texts(["Walked by the lake", "walked by the LAKE", "tax forms"])

    assert first == second
    assert first != other
    assert math.isclose(math.sqrt(sum(value * value for value in first)), 1.0)


@pytest.mark.anyio
async def test_ollama_embedder_posts_prompt_and_reads_vector():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/embeddings"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OllamaEmbedder(
            base_url="http://localhost:11434/",
            model_name="nomic-embed-text",
            dimension=3,
            http_client=client,
        )
        vectors = await embedder.embed_texts(["hello"])

    assert vectors == [[0.1, 0.2, 0.3]]
    assert seen == [{"model": "nomic-embed-text", "prompt": "hello"}]


@pytest.mark.anyio
async def test_ollama_embedder_rejects_dimension_mismatch():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"embedding": [0.1, 0.2]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OllamaEmbedder(
            base_url="http://localhost:11434", model_name="m", dimension=3, http_client=client
        )
        with pytest.raises(EmbeddingError):
            await embedder.embed_texts(["hello"])


@pytest.mark.anyio
async def test_openai_embedder_normalizes_rows():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer sk-embed"
        return httpx.Response(200, json={"data": [{"embedding": [3.0, 4.0]}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(
            base_url="https://router.example.com/v1",
            api_key="sk-embed",
            model_name="text-embedding-3-small",
            dimension=2,
            http_client=client,
        )
        vectors = await embedder.embed_texts(["x"])

    assert vectors == [pytest.approx([0.6, 0.8])]


@pytest.mark.anyio
async def test_embedding_client_returns_zero_vector_on_failure():
    client = EmbeddingClient(BrokenEmbedder(dimension=8))

    vector = await client.generate("anything")

    assert vector == [0.0] * 8
    assert vector == client.sentinel()


@pytest.mark.anyio
async def test_embedding_client_returns_zero_vector_when_provider_is_down():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        embedder = OllamaEmbedder(
            base_url="http://localhost:11434", model_name="m", dimension=4, http_client=http_client
        )
        vector = await EmbeddingClient(embedder).generate("hello")

    assert vector == [0.0, 0.0, 0.0, 0.0]


def test_create_embedder_selects_backends_and_falls_back():
    common = {
        "model_name": "",
        "dimension": 16,
        "ollama_base_url": "http://localhost:11434",
        "openai_base_url": "https://router.example.com/v1",
    }

    ollama = create_embedder(provider="Ollama", openai_api_key="", **common)
    assert isinstance(ollama, OllamaEmbedder)
    assert ollama.model_name == "nomic-embed-text"

    assert isinstance(create_embedder(provider="openai", openai_api_key="sk-x", **common), OpenAIEmbedder)
    assert isinstance(create_embedder(provider="openai", openai_api_key=" ", **common), DeterministicEmbedder)
    assert isinstance(create_embedder(provider="mystery", openai_api_key="", **common), DeterministicEmbedder)

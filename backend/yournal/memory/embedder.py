from __future__ import annotations

import hashlib
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class Embedder(ABC):
    """Embedding interface for pluggable providers."""

    provider: str
    model_name: str
    dimension: int

    @abstractmethod
    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Generate vectors for each text input."""


class DeterministicEmbedder(Embedder):
    """Offline deterministic embedding generator for tests and local runs."""

    provider = "deterministic"

    def __init__(self, dimension: int, model_name: str = "deterministic-v1") -> None:
        if dimension <= 0:
            raise EmbeddingError("Embedding dimension must be > 0")
        self.dimension = int(dimension)
        self.model_name = model_name

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._embed_single(text) for text in texts]

    def _embed_single(self, text: str) -> list[float]:
        cleaned = text.strip().lower()
        vector = [0.0] * self.dimension
        if not cleaned:
            vector[0] = 1.0
            return vector

        for token in self._tokenize(cleaned):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=16).digest()
            index = int.from_bytes(digest[:4], byteorder="big") % self.dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            magnitude = 1.0 + (digest[5] / 255.0)
            vector[index] += sign * magnitude
        return _normalize_vector(vector)

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        tokens: list[str] = []
        buffer: list[str] = []
        for ch in text:
            if ch.isalnum() or ch in {"_", "-", "'"}:
                buffer.append(ch)
                continue
            if buffer:
                tokens.append("".join(buffer))
                buffer.clear()
        if buffer:
            tokens.append("".join(buffer))
        return tokens


class OllamaEmbedder(Embedder):
    """Embedding provider backed by a local Ollama ``/api/embeddings`` endpoint."""

    provider = "ollama"

    def __init__(
        self,
        *,
        base_url: str,
        model_name: str,
        dimension: int,
        timeout_sec: float = 20.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if dimension <= 0:
            raise EmbeddingError("Embedding dimension must be > 0")
        self.model_name = model_name
        self.dimension = int(dimension)
        self._timeout_sec = timeout_sec
        self._client = http_client
        self._endpoint = f"{base_url.rstrip('/')}/api/embeddings"

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        # The endpoint embeds one prompt per call.
        return [await self._embed_single(text) for text in texts]

    async def _embed_single(self, text: str) -> list[float]:
        payload = {"model": self.model_name, "prompt": text}
        try:
            if self._client:
                response = await self._client.post(
                    self._endpoint, json=payload, timeout=self._timeout_sec
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_sec) as client:
                    response = await client.post(self._endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingError("Ollama embedding request failed") from exc
        except ValueError as exc:
            raise EmbeddingError("Ollama embedding response is not JSON") from exc

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingError("Embedding response is missing vector data")
        if len(embedding) != self.dimension:
            raise EmbeddingError("Embedding dimension mismatch")
        try:
            return [float(value) for value in embedding]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Embedding contains non-numeric values") from exc


class OpenAIEmbedder(Embedder):
    """OpenAI-compatible embedding provider implementation."""

    provider = "openai"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model_name: str,
        dimension: int,
        timeout_sec: float = 20.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if dimension <= 0:
            raise EmbeddingError("Embedding dimension must be > 0")
        if not api_key.strip():
            raise EmbeddingError("OpenAI embedding API key is empty")
        self.model_name = model_name
        self.dimension = int(dimension)
        self._timeout_sec = timeout_sec
        self._api_key = api_key
        self._client = http_client
        normalized = base_url.rstrip("/")
        if normalized.endswith("/v1"):
            normalized = normalized[:-3]
        self._endpoint = f"{normalized}/v1/embeddings"

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        payload = {"model": self.model_name, "input": list(texts)}
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._client:
                response = await self._client.post(
                    self._endpoint, json=payload, headers=headers, timeout=self._timeout_sec
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_sec) as client:
                    response = await client.post(self._endpoint, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingError("OpenAI embedding request failed") from exc
        except ValueError as exc:
            raise EmbeddingError("OpenAI embedding response is not JSON") from exc

        vectors = self._parse_embeddings(data, len(texts))
        return [_normalize_vector(vector) for vector in vectors]

    def _parse_embeddings(self, payload: Any, expected_size: int) -> list[list[float]]:
        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list) or len(rows) != expected_size:
            raise EmbeddingError("Embedding response shape is invalid")

        vectors: list[list[float]] = []
        for row in rows:
            embedding = row.get("embedding") if isinstance(row, dict) else None
            if not isinstance(embedding, list):
                raise EmbeddingError("Embedding row is missing vector data")
            if len(embedding) != self.dimension:
                raise EmbeddingError("Embedding dimension mismatch")
            try:
                vector = [float(value) for value in embedding]
            except (TypeError, ValueError) as exc:
                raise EmbeddingError("Embedding contains non-numeric values") from exc
            vectors.append(vector)
        return vectors


class EmbeddingClient:
    """Single-text embedding entry point that never raises.

    On any provider failure the all-zero sentinel vector of the configured
    dimension is returned. A zero vector has no direction, so vector search
    yields nothing and retrieval falls back to recent entries.
    """

    def __init__(self, embedder: Embedder) -> None:
        self._embedder = embedder

    def sentinel(self) -> list[float]:
        return [0.0] * self._embedder.dimension

    async def generate(self, text: str) -> list[float]:
        try:
            vectors = await self._embedder.embed_texts([text])
            vector = vectors[0]
        except (EmbeddingError, IndexError) as exc:
            logger.warning("Query embedding failed, using zero vector: %s", exc)
            return self.sentinel()
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error while embedding query, using zero vector")
            return self.sentinel()
        logger.debug("Generated embedding with %d dimensions", len(vector))
        return vector


def create_embedder(
    *,
    provider: str,
    model_name: str,
    dimension: int,
    ollama_base_url: str,
    openai_base_url: str,
    openai_api_key: str,
) -> Embedder:
    """Select an embedding backend by provider name."""

    normalized = provider.strip().lower()
    if normalized == "deterministic":
        return DeterministicEmbedder(
            dimension=dimension, model_name=model_name.strip() or "deterministic-v1"
        )

    if normalized == "ollama":
        return OllamaEmbedder(
            base_url=ollama_base_url,
            model_name=model_name.strip() or "nomic-embed-text",
            dimension=dimension,
        )

    if normalized == "openai":
        api_key = openai_api_key.strip()
        if not api_key:
            logger.warning(
                "EMBED_PROVIDER=openai but EMBED_OPENAI_API_KEY is missing; fallback to deterministic"
            )
            return DeterministicEmbedder(dimension=dimension)
        return OpenAIEmbedder(
            base_url=openai_base_url,
            api_key=api_key,
            model_name=model_name.strip() or "text-embedding-3-small",
            dimension=dimension,
        )

    logger.warning("Unknown EMBED_PROVIDER=%s; fallback to deterministic", normalized)
    return DeterministicEmbedder(dimension=dimension)


def _normalize_vector(vector: list[float]) -> list[float]:
    norm = math.sqrt(sum(item * item for item in vector))
    if norm <= 0:
        return vector
    return [item / norm for item in vector]

from __future__ import annotations

from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    # NOTE: Keep as string to avoid pydantic-settings JSON-decoding complex types from .env.
    cors_origins: str = Field(
        default="http://127.0.0.1:5173,http://localhost:5173",
        alias="CORS_ORIGINS",
    )
    db_url: str = Field(default="sqlite+aiosqlite:///./yournal.db", alias="DB_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    timezone: str = Field(default="UTC", alias="TIMEZONE")

    completion_provider: str = Field(default="ollama", alias="COMPLETION_PROVIDER")
    completion_model: str = Field(default="gemma3", alias="COMPLETION_MODEL")
    completion_api_key: str = Field(default="", alias="COMPLETION_API_KEY")
    completion_temperature: float = Field(default=0.7, alias="COMPLETION_TEMPERATURE")
    completion_max_tokens: int = Field(default=1000, alias="COMPLETION_MAX_TOKENS")
    completion_timeout_sec: float = Field(default=90, alias="COMPLETION_TIMEOUT_SEC")
    openai_base_url: str = Field(default="https://router.requesty.ai/v1", alias="OPENAI_BASE_URL")
    ollama_base_url: str = Field(
        default="http://localhost:11434", alias="OLLAMA_BASE_URL"
    )

    embed_provider: str = Field(default="ollama", alias="EMBED_PROVIDER")
    embed_model: str = Field(default="nomic-embed-text", alias="EMBED_MODEL")
    embed_dim: int = Field(default=768, alias="EMBED_DIM")
    embed_openai_api_key: str = Field(default="", alias="EMBED_OPENAI_API_KEY")

    rag_match_threshold: float = Field(default=0.3, alias="RAG_MATCH_THRESHOLD")
    rag_semantic_limit: int = Field(default=5, alias="RAG_SEMANTIC_LIMIT")
    rag_temporal_limit: int = Field(default=10, alias="RAG_TEMPORAL_LIMIT")
    rag_recent_limit: int = Field(default=5, alias="RAG_RECENT_LIMIT")
    rag_temporal_relevance: float = Field(default=0.8, alias="RAG_TEMPORAL_RELEVANCE")
    rag_recency_relevance: float = Field(default=0.5, alias="RAG_RECENCY_RELEVANCE")
    rag_keyword_fallback: bool = Field(default=False, alias="RAG_KEYWORD_FALLBACK")
    context_snippet_chars: int = Field(default=150, alias="CONTEXT_SNIPPET_CHARS")
    source_preview_chars: int = Field(default=100, alias="SOURCE_PREVIEW_CHARS")

    model_config = SettingsConfigDict(env_file=(".env", "backend/.env"), extra="ignore")

    def parsed_cors_origins(self) -> List[str]:
        """Return CORS origins parsed from env var.

        Supports comma-delimited strings (recommended) and JSON list strings.
        """

        raw = (self.cors_origins or "").strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                import json

                value: Any = json.loads(raw)
                if isinstance(value, list):
                    items = [str(item).strip() for item in value]
                    return [item for item in items if item]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()

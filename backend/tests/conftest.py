import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx
import pytest

from yournal.core.config import get_settings
from yournal.core.logging import RedactionFilter
from yournal.db.base import create_engine, create_sessionmaker, init_db
from yournal.main import create_app
from yournal.providers.base import (
    CompletionStream,
    LLMResult,
    ProviderError,
    ProviderRuntimeConfig,
    StaticCompletionStream,
)
from yournal.repos.entry_repo import EntryRepo


@pytest.fixture
def app(tmp_path, monkeypatch):
    db_path = tmp_path / "test_yournal.db"
    monkeypatch.setenv("DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("COMPLETION_PROVIDER", "ollama")
    monkeypatch.setenv("COMPLETION_MODEL", "stub-model")
    monkeypatch.setenv("EMBED_PROVIDER", "deterministic")
    monkeypatch.setenv("EMBED_MODEL", "deterministic-v1")
    monkeypatch.setenv("EMBED_DIM", "64")
    monkeypatch.setenv("TIMEZONE", "UTC")
    get_settings.cache_clear()
    app = create_app()
    app.state.provider_service.set_adapters({"ollama": StubAdapter()})
    yield app
    get_settings.cache_clear()


@pytest.fixture
async def client(app):
    await init_db(app.state.engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.engine.dispose()


@pytest.fixture
async def sessionmaker(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_store.db'}")
    await init_db(engine)
    yield create_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo filters that ``setup_logging`` adds to the root logger and its handlers."""

    root = logging.getLogger()
    saved = [(target, list(target.filters)) for target in (root, *root.handlers)]
    yield
    for target, filters in saved:
        target.filters[:] = filters
    for handler in root.handlers:
        if all(handler is not target for target, _ in saved):
            handler.filters[:] = [item for item in handler.filters if not isinstance(item, RedactionFilter)]


@pytest.fixture
def anyio_backend():
    return "asyncio"


async def seed_entry(
    sessionmaker,
    *,
    entry_id: str,
    user_id: str,
    body_text: str,
    created_at: Optional[datetime] = None,
) -> None:
    async with sessionmaker() as db:
        async with db.begin():
            await EntryRepo(db).add_entry(
                entry_id=entry_id,
                user_id=user_id,
                body_text=body_text,
                created_at=created_at,
            )


class StubAdapter:
    """Adapter stub used to avoid external API calls in tests."""

    def __init__(self, pieces: Optional[list[str]] = None) -> None:
        self.pieces = pieces or ["Stub", " answer", "."]
        self.messages: list[list[dict]] = []

    async def generate(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> LLMResult:
        self.messages.append(messages)
        return LLMResult(
            content="".join(self.pieces),
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=1,
            token_out=1,
        )

    async def open_stream(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> CompletionStream:
        self.messages.append(messages)
        return StaticCompletionStream(self.pieces)


class UnavailableAdapter(StubAdapter):
    """Adapter whose upstream refuses every connection."""

    async def generate(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> LLMResult:
        raise ProviderError("PROVIDER_CONNECTION_ERROR", "Provider connection failed.", True)

    async def open_stream(
        self, cfg: ProviderRuntimeConfig, messages: list[dict]
    ) -> CompletionStream:
        raise ProviderError("PROVIDER_CONNECTION_ERROR", "Provider connection failed.", True)

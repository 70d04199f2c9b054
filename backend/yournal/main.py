from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from yournal.api import ai as ai_api
from yournal.core.config import get_settings
from yournal.core.logging import setup_logging
from yournal.db.base import create_engine, create_sessionmaker, init_db
from yournal.memory.embedder import EmbeddingClient, create_embedder
from yournal.memory.entry_store import SQLEntryStore
from yournal.memory.keyword_search import SQLKeywordSearcher
from yournal.memory.vector_store import SQLiteVectorStore
from yournal.services.chat_service import ChatService
from yournal.services.memory_service import EntryIndexer
from yournal.services.prompt_builder import PromptBuilder
from yournal.services.provider_service import ProviderService
from yournal.services.retrieval_service import create_retrieval_orchestrator
from yournal.utils.time_utils import resolve_timezone


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    setup_logging(settings.log_level)

    engine = create_engine(settings.db_url)
    sessionmaker = create_sessionmaker(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        yield
        await engine.dispose()

    embedder = create_embedder(
        provider=settings.embed_provider,
        model_name=settings.embed_model,
        dimension=settings.embed_dim,
        ollama_base_url=settings.ollama_base_url,
        openai_base_url=settings.openai_base_url,
        openai_api_key=settings.embed_openai_api_key,
    )
    vector_store = SQLiteVectorStore(sessionmaker)

    app = FastAPI(lifespan=lifespan)
    app.state.engine = engine
    app.state.sessionmaker = sessionmaker
    app.state.embedding_client = EmbeddingClient(embedder)
    app.state.entry_indexer = EntryIndexer(embedder=embedder, vector_store=vector_store)
    app.state.provider_service = ProviderService(settings)
    app.state.retrieval_orchestrator = create_retrieval_orchestrator(
        settings=settings,
        entry_store=SQLEntryStore(sessionmaker),
        embedding_client=app.state.embedding_client,
        vector_store=vector_store,
        keyword_searcher=SQLKeywordSearcher(sessionmaker),
    )
    app.state.chat_service = ChatService(
        orchestrator=app.state.retrieval_orchestrator,
        prompt_builder=PromptBuilder(
            snippet_chars=settings.context_snippet_chars,
            tz=resolve_timezone(settings.timezone),
        ),
        provider_service=app.state.provider_service,
        preview_chars=settings.source_preview_chars,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ai_api.router)

    return app


app = create_app()

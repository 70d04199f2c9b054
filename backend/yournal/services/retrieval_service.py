from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from enum import Enum
from typing import Callable, Optional

from yournal.core.config import Settings
from yournal.memory.classifier import classify_query
from yournal.memory.embedder import EmbeddingClient
from yournal.memory.entry_store import EntryStore, StoreError
from yournal.memory.keyword_search import KeywordSearcher
from yournal.memory.temporal import TimeWindow, resolve_time_window
from yournal.memory.types import (
    MatchReason,
    MemoryRecord,
    Query,
    QueryKind,
    RetrievalHit,
    RetrievalResult,
    ScoredRecord,
)
from yournal.memory.vector_store import VectorStore
from yournal.utils.time_utils import resolve_timezone, utc_now

logger = logging.getLogger(__name__)


class StoreUnavailable(RuntimeError):
    """Raised when not even the recency fallback can read the store."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.code = "STORE_UNAVAILABLE"
        self.message = message


class RetrievalState(str, Enum):
    START = "start"
    CLASSIFIED = "classified"
    RETRIEVED = "retrieved"
    DEGRADED = "degraded"
    DONE = "done"


@dataclass(frozen=True)
class RetrievalConfig:
    """Caps, thresholds and fixed relevance values for retrieval."""

    match_threshold: float = 0.3
    semantic_limit: int = 5
    temporal_limit: int = 10
    recent_limit: int = 5
    temporal_relevance: float = 0.8
    recency_relevance: float = 0.5
    keyword_fallback: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetrievalConfig":
        return cls(
            match_threshold=settings.rag_match_threshold,
            semantic_limit=max(1, settings.rag_semantic_limit),
            temporal_limit=max(1, settings.rag_temporal_limit),
            recent_limit=max(1, settings.rag_recent_limit),
            temporal_relevance=settings.rag_temporal_relevance,
            recency_relevance=settings.rag_recency_relevance,
            keyword_fallback=settings.rag_keyword_fallback,
        )


@dataclass(frozen=True)
class RetrievalSnapshot:
    """Immutable progress record of one retrieval run."""

    state: RetrievalState
    query: Query
    kind: Optional[QueryKind] = None
    window: Optional[TimeWindow] = None
    result: RetrievalResult = RetrievalResult()
    primary_failed: bool = False


def next_state(snapshot: RetrievalSnapshot) -> RetrievalState:
    """Pure transition function of the retrieval state machine."""

    if snapshot.state is RetrievalState.START:
        return RetrievalState.CLASSIFIED
    if snapshot.state is RetrievalState.CLASSIFIED:
        return RetrievalState.RETRIEVED
    if snapshot.state is RetrievalState.RETRIEVED:
        if snapshot.primary_failed or snapshot.result.is_empty:
            return RetrievalState.DEGRADED
        return RetrievalState.DONE
    return RetrievalState.DONE


class RetrievalOrchestrator:
    """Run the classify → retrieve → degrade chain for one question."""

    def __init__(
        self,
        *,
        entry_store: EntryStore,
        embedding_client: EmbeddingClient,
        vector_store: VectorStore,
        keyword_searcher: Optional[KeywordSearcher] = None,
        config: Optional[RetrievalConfig] = None,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._entry_store = entry_store
        self._embedding_client = embedding_client
        self._vector_store = vector_store
        self._keyword_searcher = keyword_searcher
        self._config = config or RetrievalConfig()
        self._tz = tz
        self._clock = clock

    @property
    def config(self) -> RetrievalConfig:
        return self._config

    async def retrieve(self, query: Query) -> RetrievalResult:
        """Return ranked context for ``query``.

        Primary-path failures are absorbed; only a failing recency fallback
        raises :class:`StoreUnavailable`.
        """

        snapshot = RetrievalSnapshot(state=RetrievalState.START, query=query)
        while snapshot.state is not RetrievalState.DONE:
            snapshot = await self._step(snapshot)
        logger.info(
            "Retrieved %d entries (kind=%s, degraded=%s)",
            len(snapshot.result),
            snapshot.kind.value if snapshot.kind else "-",
            snapshot.primary_failed or _has_reason(snapshot.result, MatchReason.RECENCY_FALLBACK),
        )
        return snapshot.result

    async def _step(self, snapshot: RetrievalSnapshot) -> RetrievalSnapshot:
        state = snapshot.state
        if state is RetrievalState.START:
            kind = classify_query(snapshot.query.text)
            logger.info("Query type: %s", kind.value)
            return replace(snapshot, kind=kind, state=next_state(snapshot))

        if state is RetrievalState.CLASSIFIED:
            if snapshot.kind is QueryKind.TEMPORAL:
                updated = await self._retrieve_temporal(snapshot)
            else:
                updated = await self._retrieve_semantic(snapshot)
            return replace(updated, state=next_state(updated))

        if state is RetrievalState.RETRIEVED:
            return replace(snapshot, state=next_state(snapshot))

        if state is RetrievalState.DEGRADED:
            result = await self._retrieve_recent(snapshot.query)
            return replace(snapshot, result=result, state=next_state(snapshot))

        return snapshot

    async def _retrieve_temporal(self, snapshot: RetrievalSnapshot) -> RetrievalSnapshot:
        query = snapshot.query
        window = resolve_time_window(query.text, now=self._clock(), tz=self._tz)
        logger.info(
            "Fetching entries from %s: %s to %s",
            window.label,
            window.start.isoformat(),
            window.end.isoformat(),
        )
        try:
            records = await self._entry_store.list_in_window(
                user_id=query.user_id,
                start=window.start,
                end=window.end,
                limit=self._config.temporal_limit,
            )
        except StoreError as exc:
            logger.warning("Temporal entry query failed: %s", exc)
            return replace(snapshot, window=window, primary_failed=True)

        result = _fixed_result(
            records,
            self._config.temporal_relevance,
            MatchReason.TEMPORAL,
            self._config.temporal_limit,
        )
        return replace(snapshot, window=window, result=result)

    async def _retrieve_semantic(self, snapshot: RetrievalSnapshot) -> RetrievalSnapshot:
        query = snapshot.query
        vector = await self._embedding_client.generate(query.text)
        primary_failed = False
        try:
            matches = await self._vector_store.search(
                query_embedding=vector,
                min_similarity=self._config.match_threshold,
                limit=self._config.semantic_limit,
                owner_id=query.user_id,
            )
        except StoreError as exc:
            logger.warning("Vector search failed: %s", exc)
            matches = []
            primary_failed = True

        result = _scored_result(matches, MatchReason.SEMANTIC, self._config.semantic_limit)
        for index, hit in enumerate(result, start=1):
            logger.debug(
                "  %d. %d%% relevant: %s",
                index,
                round(hit.relevance * 100),
                hit.record.body_text[:50],
            )

        if result.is_empty and self._config.keyword_fallback and self._keyword_searcher:
            try:
                keyword_matches = await self._keyword_searcher.search(
                    text=query.text,
                    limit=self._config.semantic_limit,
                    owner_id=query.user_id,
                )
            except StoreError as exc:
                logger.warning("Keyword search failed: %s", exc)
                keyword_matches = []
            result = _scored_result(
                keyword_matches, MatchReason.KEYWORD, self._config.semantic_limit
            )
            if not result.is_empty:
                primary_failed = False

        return replace(snapshot, result=result, primary_failed=primary_failed)

    async def _retrieve_recent(self, query: Query) -> RetrievalResult:
        logger.info("No primary results, falling back to recent entries")
        try:
            records = await self._entry_store.list_recent(
                user_id=query.user_id, limit=self._config.recent_limit
            )
        except StoreError as exc:
            logger.error("Recency fallback failed: %s", exc)
            raise StoreUnavailable("Failed to fetch journal entries") from exc
        return _fixed_result(
            records,
            self._config.recency_relevance,
            MatchReason.RECENCY_FALLBACK,
            self._config.recent_limit,
        )


def create_retrieval_orchestrator(
    *,
    settings: Settings,
    entry_store: EntryStore,
    embedding_client: EmbeddingClient,
    vector_store: VectorStore,
    keyword_searcher: Optional[KeywordSearcher] = None,
) -> RetrievalOrchestrator:
    """Build an orchestrator from runtime settings."""

    return RetrievalOrchestrator(
        entry_store=entry_store,
        embedding_client=embedding_client,
        vector_store=vector_store,
        keyword_searcher=keyword_searcher,
        config=RetrievalConfig.from_settings(settings),
        tz=resolve_timezone(settings.timezone),
    )


def _scored_result(
    matches: list[ScoredRecord], reason: MatchReason, limit: int
) -> RetrievalResult:
    return RetrievalResult.ranked(
        (RetrievalHit(item.record, item.score, reason) for item in matches), limit
    )


def _fixed_result(
    records: list[MemoryRecord], relevance: float, reason: MatchReason, limit: int
) -> RetrievalResult:
    return RetrievalResult.ranked(
        (RetrievalHit(record, relevance, reason) for record in records), limit
    )


def _has_reason(result: RetrievalResult, reason: MatchReason) -> bool:
    return any(hit.match_reason is reason for hit in result)

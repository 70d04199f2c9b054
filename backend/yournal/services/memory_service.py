from __future__ import annotations

import logging

from yournal.memory.embedder import Embedder, EmbeddingError
from yournal.memory.entry_store import StoreError
from yournal.memory.vector_store import VectorStore

logger = logging.getLogger(__name__)


class EntryIndexer:
    """Compute and persist embeddings for journal entries.

    Entry create and update happen in the journal CRUD layer, outside this
    service. That layer calls ``index_entry`` (reachable as
    ``app.state.entry_indexer``) after each write; entries it never indexes
    stay out of vector search and are only found by date or recency.
    """

    def __init__(self, *, embedder: Embedder, vector_store: VectorStore) -> None:
        self._embedder = embedder
        self._vector_store = vector_store

    async def index_entry(self, *, user_id: str, entry_id: str, text: str) -> bool:
        """Embed ``text`` and attach it to the entry.

        Returns ``False`` when nothing was stored. A failed embedding is not
        written as a zero vector; the entry just stays out of vector search.
        """

        cleaned = text.strip()
        if not cleaned:
            return False
        try:
            vectors = await self._embedder.embed_texts([cleaned])
        except EmbeddingError as exc:
            logger.warning("Entry %s not indexed because embedding failed: %s", entry_id, exc)
            return False
        if len(vectors) != 1:
            logger.warning("Entry %s not indexed due to embedding count mismatch", entry_id)
            return False

        try:
            stored = await self._vector_store.upsert_embedding(
                owner_id=user_id,
                entry_id=entry_id,
                embedding=vectors[0],
                embed_model=self._embedder.model_name,
            )
        except StoreError:
            logger.exception("Entry %s not indexed because the store write failed", entry_id)
            return False
        if not stored:
            logger.warning("Entry %s not indexed because it does not exist", entry_id)
        return stored

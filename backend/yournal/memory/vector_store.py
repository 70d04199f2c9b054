from __future__ import annotations

import json
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yournal.memory.entry_store import read_session, to_record
from yournal.memory.types import ScoredRecord
from yournal.repos.entry_repo import EntryRepo


class VectorStore(ABC):
    """Nearest-neighbour search over stored entry embeddings."""

    @abstractmethod
    async def search(
        self,
        *,
        query_embedding: Sequence[float],
        min_similarity: float,
        limit: int,
        owner_id: str,
    ) -> list[ScoredRecord]:
        """Return the owner's entries above ``min_similarity``, best first."""

    @abstractmethod
    async def upsert_embedding(
        self,
        *,
        owner_id: str,
        entry_id: str,
        embedding: Sequence[float],
        embed_model: str,
    ) -> bool:
        """Attach an embedding to one entry; ``False`` if the entry is unknown."""


class SQLiteVectorStore(VectorStore):
    """SQL-backed vector store with in-process cosine similarity."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def search(
        self,
        *,
        query_embedding: Sequence[float],
        min_similarity: float,
        limit: int,
        owner_id: str,
    ) -> list[ScoredRecord]:
        if limit <= 0:
            return []

        query = [float(value) for value in query_embedding]
        query_norm = math.sqrt(sum(value * value for value in query))
        if query_norm <= 0:
            return []

        async with read_session(self._sessionmaker) as db:
            rows = await EntryRepo(db).list_with_vectors(user_id=owner_id)

        scored: list[ScoredRecord] = []
        for entry in rows:
            try:
                candidate = json.loads(entry.embedding_json or "")
            except json.JSONDecodeError:
                continue
            if not isinstance(candidate, list) or len(candidate) != len(query):
                continue
            try:
                candidate_vector = [float(value) for value in candidate]
            except (TypeError, ValueError):
                continue
            candidate_norm = float(entry.embedding_norm or 0.0)
            score = _cosine_similarity(query, query_norm, candidate_vector, candidate_norm)
            if score <= min_similarity:
                continue
            scored.append(ScoredRecord(record=to_record(entry), score=score))

        scored.sort(key=lambda row: (row.score, row.record.created_at), reverse=True)
        return scored[:limit]

    async def upsert_embedding(
        self,
        *,
        owner_id: str,
        entry_id: str,
        embedding: Sequence[float],
        embed_model: str,
    ) -> bool:
        vector = [float(value) for value in embedding]
        norm = math.sqrt(sum(value * value for value in vector))
        async with read_session(self._sessionmaker) as db:
            async with db.begin():
                repo = EntryRepo(db)
                entry = await repo.get_entry(owner_id, entry_id)
                if entry is None:
                    return False
                await repo.update_embedding(
                    entry=entry,
                    vector_json=json.dumps(vector, separators=(",", ":")),
                    vector_norm=norm,
                    model_name=embed_model,
                )
        return True


def _cosine_similarity(
    left: list[float], left_norm: float, right: list[float], right_norm: float
) -> float:
    if left_norm <= 0 or right_norm <= 0 or len(left) != len(right):
        return 0.0
    dot = 0.0
    for l_value, r_value in zip(left, right):
        dot += l_value * r_value
    return dot / (left_norm * right_norm)

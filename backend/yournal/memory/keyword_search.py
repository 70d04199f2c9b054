from __future__ import annotations

import re
from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yournal.memory.entry_store import read_session, to_record
from yournal.memory.types import ScoredRecord
from yournal.repos.entry_repo import EntryRepo

_TOKEN_PATTERN = re.compile(r"[a-z0-9']+")
STOPWORDS = frozenset(
    {
        "a", "about", "am", "an", "and", "any", "anything", "are", "as", "at",
        "be", "been", "but", "by", "did", "do", "does", "for", "from", "had",
        "has", "have", "how", "i", "in", "is", "it", "me", "my", "of", "on",
        "or", "so", "that", "the", "this", "to", "was", "we", "were", "what",
        "when", "where", "which", "who", "why", "with", "write", "wrote", "you",
    }
)


class KeywordSearcher(ABC):
    """Lexical-overlap search over a user's entries."""

    @abstractmethod
    async def search(self, *, text: str, limit: int, owner_id: str) -> list[ScoredRecord]:
        """Return entries sharing terms with ``text``, best overlap first."""


class SQLKeywordSearcher(KeywordSearcher):
    """Scores recent entries by the share of query terms they contain."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        scan_limit: int = 200,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._scan_limit = max(1, scan_limit)

    async def search(self, *, text: str, limit: int, owner_id: str) -> list[ScoredRecord]:
        terms = query_terms(text)
        if not terms or limit <= 0:
            return []

        async with read_session(self._sessionmaker) as db:
            rows = await EntryRepo(db).list_texts(user_id=owner_id, limit=self._scan_limit)

        scored: list[ScoredRecord] = []
        for entry in rows:
            score = overlap_score(terms, entry.body_text)
            if score <= 0:
                continue
            scored.append(ScoredRecord(record=to_record(entry), score=score))

        scored.sort(key=lambda row: (row.score, row.record.created_at), reverse=True)
        return scored[:limit]


def query_terms(text: str) -> set[str]:
    """Lowercased content words of a question."""

    return {token for token in _TOKEN_PATTERN.findall(text.lower()) if token not in STOPWORDS}


def overlap_score(terms: set[str], body: str) -> float:
    """Fraction of ``terms`` present in ``body`` (0.0 to 1.0)."""

    if not terms:
        return 0.0
    body_tokens = set(_TOKEN_PATTERN.findall(body.lower()))
    return len(terms & body_tokens) / len(terms)

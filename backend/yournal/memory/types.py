from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator, Optional


class QueryKind(str, Enum):
    """Retrieval path chosen for a question."""

    TEMPORAL = "temporal"
    SEMANTIC = "semantic"


class MatchReason(str, Enum):
    """Why a record ended up in a retrieval result."""

    TEMPORAL = "temporal"
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    RECENCY_FALLBACK = "recency_fallback"


@dataclass(frozen=True)
class Query:
    """One incoming question scoped to its author."""

    text: str
    user_id: str


@dataclass(frozen=True)
class MemoryRecord:
    """Read-only view of a stored journal entry."""

    id: str
    body_text: str
    created_at: datetime
    vector: Optional[tuple[float, ...]] = None


@dataclass(frozen=True)
class ScoredRecord:
    """Candidate returned by a retrieval client with its raw score."""

    record: MemoryRecord
    score: float


@dataclass(frozen=True)
class RetrievalHit:
    """A record selected for context together with its relevance."""

    record: MemoryRecord
    relevance: float
    match_reason: MatchReason


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked, deduplicated and capped set of hits.

    Build instances through :meth:`ranked`, which enforces the ordering
    (relevance desc, then newest first), one hit per record id and the cap.
    """

    hits: tuple[RetrievalHit, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "RetrievalResult":
        return cls(hits=())

    @classmethod
    def ranked(cls, hits: Iterable[RetrievalHit], limit: int) -> "RetrievalResult":
        best_by_id: dict[str, RetrievalHit] = {}
        for hit in hits:
            relevance = min(1.0, max(0.0, float(hit.relevance)))
            if relevance != hit.relevance:
                hit = RetrievalHit(hit.record, relevance, hit.match_reason)
            current = best_by_id.get(hit.record.id)
            if current is None or hit.relevance > current.relevance:
                best_by_id[hit.record.id] = hit

        ordered = sorted(
            best_by_id.values(),
            key=lambda item: (item.relevance, item.record.created_at),
            reverse=True,
        )
        return cls(hits=tuple(ordered[: max(0, limit)]))

    def __iter__(self) -> Iterator[RetrievalHit]:
        return iter(self.hits)

    def __len__(self) -> int:
        return len(self.hits)

    @property
    def is_empty(self) -> bool:
        return not self.hits

    @property
    def record_ids(self) -> list[str]:
        return [hit.record.id for hit in self.hits]

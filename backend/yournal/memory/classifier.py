from __future__ import annotations

from collections.abc import Sequence

from yournal.memory.types import QueryKind

# Evaluated in order; the first pattern found in the lowered question wins.
# Bare words such as "past" and "ago" also fire inside non-temporal sentences;
# that is an accepted limitation of substring matching.
TEMPORAL_PATTERNS: tuple[tuple[str, QueryKind], ...] = (
    ("yesterday", QueryKind.TEMPORAL),
    ("today", QueryKind.TEMPORAL),
    ("last week", QueryKind.TEMPORAL),
    ("this week", QueryKind.TEMPORAL),
    ("last month", QueryKind.TEMPORAL),
    ("this month", QueryKind.TEMPORAL),
    ("recent", QueryKind.TEMPORAL),
    ("past", QueryKind.TEMPORAL),
    ("ago", QueryKind.TEMPORAL),
    ("entries from", QueryKind.TEMPORAL),
    ("from yesterday", QueryKind.TEMPORAL),
    ("from today", QueryKind.TEMPORAL),
    ("from last week", QueryKind.TEMPORAL),
    ("from this week", QueryKind.TEMPORAL),
)


def classify_query(
    text: str,
    patterns: Sequence[tuple[str, QueryKind]] = TEMPORAL_PATTERNS,
    default: QueryKind = QueryKind.SEMANTIC,
) -> QueryKind:
    """Return the retrieval path for a question."""

    lowered = (text or "").lower()
    for pattern, kind in patterns:
        if pattern.lower() in lowered:
            return kind
    return default

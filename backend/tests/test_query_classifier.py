from __future__ import annotations

import pytest

from yournal.memory.classifier import TEMPORAL_PATTERNS, classify_query
from yournal.memory.types import QueryKind


@pytest.mark.parametrize(
    "text",
    [
        "what did I write yesterday",
        "Show me TODAY's notes",
        "summarize last week",
        "how was this week",
        "anything from last month?",
        "recent worries",
        "two days ago I felt great",
        "entries from october",
    ],
)
def test_temporal_phrases(text: str) -> None:
    assert classify_query(text) is QueryKind.TEMPORAL


@pytest.mark.parametrize(
    "text",
    [
        "what have I been feeling about work",
        "anything",
        "did I ever mention my sister",
        "",
    ],
)
def test_semantic_by_default(text: str) -> None:
    assert classify_query(text) is QueryKind.SEMANTIC


def test_bare_past_matches_even_without_a_date() -> None:
    assert classify_query("my past relationships") is QueryKind.TEMPORAL


def test_pattern_table_is_swappable() -> None:
    patterns = (("someday", QueryKind.TEMPORAL),)
    assert classify_query("someday I will travel", patterns) is QueryKind.TEMPORAL
    assert classify_query("what did I write yesterday", patterns) is QueryKind.SEMANTIC


def test_pattern_table_contains_all_keywords() -> None:
    keywords = {pattern for pattern, _ in TEMPORAL_PATTERNS}
    assert {"yesterday", "today", "last week", "this week", "ago", "past"} <= keywords
    assert len(TEMPORAL_PATTERNS) == 14

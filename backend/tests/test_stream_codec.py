from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from yournal.memory.types import MatchReason, MemoryRecord, RetrievalHit, RetrievalResult
from yournal.services.stream_codec import (
    FrameDecodeError,
    SourcesFrame,
    TokenFrame,
    decode_frame,
    decode_frames,
    encode_frame,
    sources_frame,
)


def _result() -> RetrievalResult:
    created = datetime(2026, 10, 20, 21, 15, tzinfo=timezone.utc)
    return RetrievalResult.ranked(
        [
            RetrievalHit(MemoryRecord("a", "z" * 300, created), 0.734, MatchReason.SEMANTIC),
            RetrievalHit(MemoryRecord("b", "", created), 0.5, MatchReason.RECENCY_FALLBACK),
        ],
        5,
    )


def test_sources_frame_wire_shape() -> None:
    encoded = encode_frame(sources_frame(_result())).decode("utf-8")

    assert encoded.startswith("data: ")
    assert encoded.endswith("\n\n")
    body = json.loads(encoded[len("data: "):])
    assert list(body) == ["sources"]
    first, second = body["sources"]
    assert first == {
        "id": "a",
        "content": "z" * 100 + "...",
        "created_at": "2026-10-20T21:15:00+00:00",
        "relevance": 0.734,
    }
    assert second["content"] == "No text content"


def test_token_frame_wire_shape_escapes_newlines() -> None:
    encoded = encode_frame(TokenFrame(text="line one\n\nline two")).decode("utf-8")

    assert encoded.count("\n\n") == 1
    assert json.loads(encoded[len("data: "):]) == {"response": "line one\n\nline two"}


def test_sources_round_trip_keeps_ids_and_relevance() -> None:
    result = _result()
    decoded = decode_frame(encode_frame(sources_frame(result)))

    assert isinstance(decoded, SourcesFrame)
    assert [source.id for source in decoded.sources] == result.record_ids
    assert [source.relevance for source in decoded.sources] == pytest.approx(
        [hit.relevance for hit in result]
    )


def test_decode_frames_splits_captured_body() -> None:
    body = (
        encode_frame(sources_frame(_result()))
        + encode_frame(TokenFrame("Hi"))
        + encode_frame(TokenFrame(" there"))
    )

    frames = decode_frames(body)

    assert isinstance(frames[0], SourcesFrame)
    assert frames[1:] == [TokenFrame("Hi"), TokenFrame(" there")]


@pytest.mark.parametrize(
    "line",
    ["response: {}", "data: {oops", "data: [1]", 'data: {"other": 1}', 'data: {"sources": 3}'],
)
def test_decode_rejects_unknown_frames(line: str) -> None:
    with pytest.raises(FrameDecodeError):
        decode_frame(line)

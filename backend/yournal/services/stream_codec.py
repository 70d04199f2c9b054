from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from pydantic import ValidationError

from yournal.memory.types import RetrievalResult
from yournal.schemas.chat import SourceOut, SourcesPayload, TokenPayload

FRAME_PREFIX = "data: "
FRAME_SEPARATOR = "\n\n"
PREVIEW_SUFFIX = "..."
MISSING_PREVIEW = "No text content"


class FrameDecodeError(ValueError):
    """Raised when a line is not a valid outbound stream frame."""


@dataclass(frozen=True)
class SourcesFrame:
    """Citation metadata; sent at most once, before any token."""

    sources: tuple[SourceOut, ...]


@dataclass(frozen=True)
class TokenFrame:
    """One increment of generated text."""

    text: str


StreamFrame = Union[SourcesFrame, TokenFrame]


def sources_frame(result: RetrievalResult, preview_chars: int = 100) -> SourcesFrame:
    """Summarize a retrieval result for the client, preserving rank order."""

    sources = []
    for hit in result:
        body = hit.record.body_text
        preview = body[:preview_chars] + PREVIEW_SUFFIX if body else MISSING_PREVIEW
        sources.append(
            SourceOut(
                id=hit.record.id,
                content=preview,
                created_at=hit.record.created_at.isoformat(),
                relevance=hit.relevance,
            )
        )
    return SourcesFrame(sources=tuple(sources))


def encode_frame(frame: StreamFrame) -> bytes:
    """Serialize one frame as a ``data: <json>`` line pair."""

    if isinstance(frame, SourcesFrame):
        payload = SourcesPayload(sources=list(frame.sources)).model_dump_json()
    elif isinstance(frame, TokenFrame):
        payload = TokenPayload(response=frame.text).model_dump_json()
    else:
        raise TypeError(f"Unsupported frame type: {type(frame).__name__}")
    return f"{FRAME_PREFIX}{payload}{FRAME_SEPARATOR}".encode("utf-8")


def decode_frame(line: Union[str, bytes]) -> StreamFrame:
    """Parse one ``data: <json>`` line back into a frame."""

    text = line.decode("utf-8") if isinstance(line, bytes) else line
    text = text.strip()
    if not text.startswith(FRAME_PREFIX.strip()):
        raise FrameDecodeError("Frame is missing the data prefix")
    body = text[len(FRAME_PREFIX.strip()):].strip()
    try:
        raw = json.loads(body)
    except ValueError as exc:
        raise FrameDecodeError("Frame body is not JSON") from exc
    if not isinstance(raw, dict):
        raise FrameDecodeError("Frame body is not an object")
    try:
        if "sources" in raw:
            return SourcesFrame(sources=tuple(SourcesPayload.model_validate(raw).sources))
        if "response" in raw:
            return TokenFrame(text=TokenPayload.model_validate(raw).response)
    except ValidationError as exc:
        raise FrameDecodeError("Frame body has an invalid shape") from exc
    raise FrameDecodeError("Frame body has no known key")


def decode_frames(data: Union[str, bytes]) -> list[StreamFrame]:
    """Split a captured stream body into frames."""

    text = data.decode("utf-8") if isinstance(data, bytes) else data
    return [decode_frame(block) for block in text.split(FRAME_SEPARATOR) if block.strip()]

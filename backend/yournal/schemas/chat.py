from __future__ import annotations

from yournal.schemas.common import APIModel


class ChatRequest(APIModel):
    """Incoming question."""

    message: str


class ChatResponse(APIModel):
    """Non-streaming answer."""

    response: str


class SourceOut(APIModel):
    """Citation for one retrieved entry."""

    id: str
    content: str
    created_at: str
    relevance: float


class SourcesPayload(APIModel):
    """Body of the leading ``sources`` stream frame."""

    sources: list[SourceOut]


class TokenPayload(APIModel):
    """Body of one generated-text stream frame."""

    response: str

from __future__ import annotations

import logging
from enum import Enum
from typing import AsyncIterator

from fastapi import Request

from yournal.memory.types import Query, RetrievalResult
from yournal.providers.base import CompletionStream, ProviderError
from yournal.services.prompt_builder import PromptBuilder
from yournal.services.provider_service import ProviderService
from yournal.services.retrieval_service import RetrievalOrchestrator
from yournal.services.stream_codec import StreamFrame, TokenFrame, encode_frame, sources_frame

logger = logging.getLogger(__name__)


class MultiplexState(str, Enum):
    IDLE = "idle"
    SOURCES_SENT = "sources_sent"
    SKIPPED = "skipped"
    STREAMING = "streaming"
    CLOSED = "closed"


class SourceMultiplexer:
    """Merge citations and generated text into one ordered frame stream.

    At most one sources frame is emitted and always first. Tokens follow in
    arrival order, pulled from the completion stream only as fast as the
    consumer iterates. A provider failure mid-stream ends the stream; frames
    already yielded stay valid.
    """

    def __init__(
        self,
        result: RetrievalResult,
        stream: CompletionStream,
        preview_chars: int = 100,
    ) -> None:
        self._result = result
        self._stream = stream
        self._preview_chars = preview_chars
        self.state = MultiplexState.IDLE
        self.interrupted = False

    async def frames(self) -> AsyncIterator[StreamFrame]:
        increments = self._stream.increments()
        try:
            if self._result.is_empty:
                self.state = MultiplexState.SKIPPED
            else:
                self.state = MultiplexState.SOURCES_SENT
                yield sources_frame(self._result, self._preview_chars)

            self.state = MultiplexState.STREAMING
            async for text in increments:
                yield TokenFrame(text=text)
        except ProviderError as exc:
            self.interrupted = True
            logger.error("Completion stream ended early: %s", exc.message)
        finally:
            await increments.aclose()
            await self._stream.aclose()
            self.state = MultiplexState.CLOSED

    async def encoded(self) -> AsyncIterator[bytes]:
        frames = self.frames()
        try:
            async for frame in frames:
                yield encode_frame(frame)
        finally:
            await frames.aclose()


class ChatService:
    """Answer a question over the user's journal."""

    def __init__(
        self,
        *,
        orchestrator: RetrievalOrchestrator,
        prompt_builder: PromptBuilder,
        provider_service: ProviderService,
        preview_chars: int = 100,
    ) -> None:
        self._orchestrator = orchestrator
        self._prompt_builder = prompt_builder
        self._provider_service = provider_service
        self._preview_chars = preview_chars

    async def prepare(self, query: Query) -> tuple[RetrievalResult, list[dict]]:
        """Retrieve context and build the completion messages."""

        result = await self._orchestrator.retrieve(query)
        context = self._prompt_builder.assemble_context(result)
        messages = self._prompt_builder.build_messages(query.text, context)
        return result, messages

    async def answer(self, query: Query) -> str:
        _, messages = await self.prepare(query)
        completion = await self._provider_service.generate(messages)
        return completion.content

    async def open_stream(self, query: Query) -> SourceMultiplexer:
        """Retrieve, then open the completion stream.

        Raises ``StoreUnavailable`` or ``ProviderError`` before any frame is
        produced, so callers can still answer with a plain error response.
        """

        result, messages = await self.prepare(query)
        stream = await self._provider_service.open_stream(messages)
        return SourceMultiplexer(result, stream, preview_chars=self._preview_chars)


def get_chat_service(request: Request) -> ChatService:
    """Dependency to access chat service from app state."""

    return request.app.state.chat_service

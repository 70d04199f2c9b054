from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import StreamingResponse

from yournal.core.security import sanitize_text
from yournal.memory.types import Query
from yournal.providers.base import ProviderError
from yournal.schemas.chat import ChatRequest, ChatResponse
from yournal.schemas.common import ErrorDetail
from yournal.services.chat_service import ChatService, get_chat_service
from yournal.services.retrieval_service import StoreUnavailable

MAX_MESSAGE_LEN = 2000

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


async def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity established upstream by the auth layer."""

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    user_id: str = Depends(current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Answer a question over the caller's journal in one response."""

    query = _build_query(payload, user_id)
    try:
        answer = await chat_service.answer(query)
    except StoreUnavailable as exc:
        raise _store_error(exc) from exc
    except ProviderError as exc:
        raise _provider_error(exc) from exc
    return ChatResponse(response=answer)


@router.post("/chat/rag")
async def chat_rag(
    payload: ChatRequest,
    user_id: str = Depends(current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Stream an answer as ``data:`` frames, citations first."""

    query = _build_query(payload, user_id)
    try:
        multiplexer = await chat_service.open_stream(query)
    except StoreUnavailable as exc:
        raise _store_error(exc) from exc
    except ProviderError as exc:
        raise _provider_error(exc) from exc

    return StreamingResponse(
        multiplexer.encoded(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def _build_query(payload: ChatRequest, user_id: str) -> Query:
    message = sanitize_text(payload.message, MAX_MESSAGE_LEN)
    if not message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorDetail(code="EMPTY_MESSAGE", message="Message must not be empty").model_dump(),
        )
    return Query(text=message, user_id=user_id)


def _store_error(exc: StoreUnavailable) -> HTTPException:
    logger.error("Chat failed, entry store unavailable: %s", exc.message)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=ErrorDetail(code=exc.code, message=exc.message).model_dump(),
    )


def _provider_error(exc: ProviderError) -> HTTPException:
    logger.error("Chat failed, completion service unavailable: %s (%s)", exc.message, exc.code)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=ErrorDetail(code=exc.code, message="AI service unavailable").model_dump(),
    )

"""Chat endpoints: streamed answers and conversation history."""

import logging
from functools import partial

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from kilo.auth.dependencies import get_current_user
from kilo.auth.schemas import User
from kilo.database.base import utc_now
from kilo.database.session import get_db, get_session_factory
from kilo.dependencies.rate_limit import (
    check_rate_limit,
    get_rate_limiter,
    rate_limit_exceeded,
    rate_limit_headers,
)
from kilo.models.chat import ChatMessage, ChatSession
from kilo.schemas.chat import ChatMessageResponse, ChatRequest, ChatSessionResponse
from kilo.services.core import chat as chat_service
from kilo.services.core.documents import count_ready_files
from kilo.services.core.knowledge_bases import get_knowledge_base
from kilo.services.providers.gemini import DocumentStoreError
from kilo.services.utils.rate_limiter import QueryRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post(
    "/knowledge-bases/{knowledge_base_id}/chat",
    dependencies=[Depends(check_rate_limit)],
)
def chat(
    knowledge_base_id: str,
    data: ChatRequest,
    user: User = Depends(get_current_user),
    limiter: QueryRateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> StreamingResponse:
    """
    Answer the latest user message from the knowledge base's documents.

    The answer is streamed as plain text. Rate limit state is reported in
    X-RateLimit-* headers and the conversation id in X-Chat-Session-Id.
    One query is reserved up front and given back if no answer is served.
    """
    limit_status = limiter.reserve(user.id)
    if not limit_status.allowed:
        raise rate_limit_exceeded(limit_status)

    served = False
    try:
        kb = get_knowledge_base(db, knowledge_base_id, user.id)
        if not kb:
            raise HTTPException(status_code=404, detail="Knowledge base not found")

        if count_ready_files(db, kb.id) == 0:
            raise HTTPException(status_code=400, detail="No documents available in this knowledge base")

        try:
            turns = chat_service.normalize_messages(data.messages)
        except chat_service.InvalidConversation as e:
            raise HTTPException(status_code=400, detail=str(e))

        question = turns[-1].content
        asked_at = utc_now()

        try:
            answer = chat_service.open_answer_stream(kb, turns)
        except DocumentStoreError as e:
            logger.error("Error starting chat for knowledge base %s: %s", kb.id, e)
            raise HTTPException(status_code=500, detail="Failed to generate response")

        session = chat_service.resolve_session(db, kb, user.id, data.session_id, question)
        served = True
    finally:
        if not served:
            limiter.release(user.id)

    # Recorded when the stream ends, whether it completed or the client went away
    answer.on_finish = partial(
        chat_service.record_chat_completion,
        session_factory,
        user.id,
        session.id,
        question,
        asked_at,
    )

    headers = rate_limit_headers(limit_status)
    headers["X-Chat-Session-Id"] = session.id

    return StreamingResponse(
        answer,
        media_type="text/plain; charset=utf-8",
        headers=headers,
    )


@router.get(
    "/knowledge-bases/{knowledge_base_id}/sessions",
    response_model=list[ChatSessionResponse],
)
def list_sessions(
    knowledge_base_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ChatSession]:
    """List the caller's conversations in a knowledge base, most recent first."""
    kb = get_knowledge_base(db, knowledge_base_id, user.id)
    if not kb:
        raise HTTPException(status_code=404, detail="Knowledge base not found")
    return chat_service.list_sessions(db, kb.id, user.id)


@router.get("/sessions/{session_id}/messages", response_model=list[ChatMessageResponse])
def list_session_messages(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ChatMessage]:
    messages = chat_service.get_session_messages(db, session_id, user.id)
    if messages is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return messages

"""
Chat orchestration.

Builds the grounded system prompt, opens the provider stream and, once the
stream ends (completed, interrupted or abandoned by the client), records the
exchange on a session of its own.
"""

import logging
from datetime import datetime
from itertools import chain
from typing import Callable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.database.base import utc_now
from kilo.models.chat import ChatMessage, ChatSession
from kilo.models.enums import MessageRole
from kilo.models.knowledge_base import KnowledgeBase
from kilo.schemas.chat import ChatMessageIn, message_text
from kilo.services.providers import gemini
from kilo.services.providers.gemini import ChatTurn, DocumentStoreError
from kilo.services.utils.usage import increment_query_count

logger = logging.getLogger(__name__)

SESSION_TITLE_MAX_LENGTH = 60

SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based on the uploaded documents in the knowledge base "{name}".
File Search Store ID: {store_id}

Instructions:
- Only answer questions based on the content in the uploaded documents
- If the answer is not in the documents, say "I don't have information about that in the uploaded documents"
- Be concise but thorough in your answers
- Cite specific information from the documents when relevant
- If asked about topics not in the documents, politely redirect to document-based questions"""


class InvalidConversation(ValueError):
    """The submitted message list cannot be answered."""


def build_system_prompt(kb: KnowledgeBase) -> str:
    return SYSTEM_PROMPT.format(name=kb.name, store_id=kb.gemini_store_id or "none")


def normalize_messages(messages: list[ChatMessageIn]) -> list[ChatTurn]:
    """
    Convert client turns into provider turns.

    Raises:
        InvalidConversation: No messages, or the last one is not from the user
    """
    if not messages:
        raise InvalidConversation("No messages provided")
    if messages[-1].role != MessageRole.USER.value:
        raise InvalidConversation("Last message must be from user")

    turns = []
    for message in messages:
        try:
            role = MessageRole(message.role)
        except ValueError:
            raise InvalidConversation(f"Unsupported message role: {message.role}")
        turns.append(ChatTurn(role=role, content=message_text(message)))
    return turns


def session_title(text: str) -> str:
    title = " ".join(text.split())
    if len(title) > SESSION_TITLE_MAX_LENGTH:
        title = title[: SESSION_TITLE_MAX_LENGTH - 3].rstrip() + "..."
    return title or "New chat"


class AnswerStream:
    """
    Provider answer stream whose first chunk has already been fetched.

    Pulling the first chunk up front lets a provider failure at start-up
    surface as a normal error response instead of a truncated stream. The
    full answer text is accumulated for persistence, and `on_finish` is
    called exactly once when iteration stops for any reason.
    """

    def __init__(
        self,
        chunks: Iterator[str],
        on_finish: Callable[["AnswerStream"], None] | None = None,
    ):
        self._chunks = chunks
        self._first = list(_take_first(chunks))
        self.parts: list[str] = []
        self.completed = False
        self.on_finish = on_finish
        self._finished = False

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def __iter__(self) -> Iterator[str]:
        try:
            for chunk in chain(self._first, self._chunks):
                self.parts.append(chunk)
                yield chunk
            self.completed = True
        except DocumentStoreError as e:
            logger.error("Chat stream interrupted: %s", e)
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if not self.completed:
            logger.info("Chat stream ended early after %d chunks", len(self.parts))
        if self.on_finish is not None:
            self.on_finish(self)


def _take_first(chunks: Iterator[str]) -> Iterator[str]:
    for chunk in chunks:
        yield chunk
        return


def open_answer_stream(kb: KnowledgeBase, turns: list[ChatTurn]) -> AnswerStream:
    """
    Start streaming an answer grounded on the knowledge base's store.

    Raises:
        DocumentStoreError: The provider rejected the request
    """
    chunks = gemini.stream_answer(kb.gemini_store_id, build_system_prompt(kb), turns)
    return AnswerStream(iter(chunks))


def resolve_session(
    db: Session,
    kb: KnowledgeBase,
    user_id: str,
    session_id: str | None,
    first_message: str,
) -> ChatSession:
    """Reuse the caller's session for this knowledge base, or start a new one."""
    if session_id:
        session = db.query(ChatSession).filter(
            ChatSession.id == session_id,
            ChatSession.user_id == user_id,
            ChatSession.knowledge_base_id == kb.id,
        ).first()
        if session:
            return session

    session = ChatSession(
        knowledge_base_id=kb.id,
        user_id=user_id,
        title=session_title(first_message),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def record_chat_completion(
    session_factory: Callable[[], Session],
    user_id: str,
    session_id: str,
    question: str,
    asked_at: datetime,
    answer: AnswerStream,
) -> None:
    """
    Persist the exchange and count the query in the durable ledger.

    Runs when the answer stream ends; failures are logged only.
    """
    db = session_factory()
    try:
        if not increment_query_count(db, user_id):
            logger.error("Error tracking query in database for user %s", user_id)

        db.add(
            ChatMessage(
                session_id=session_id,
                role=MessageRole.USER,
                content=question,
                created_at=asked_at,
            )
        )
        if answer.text:
            answered_at = utc_now()
            db.add(
                ChatMessage(
                    session_id=session_id,
                    role=MessageRole.ASSISTANT,
                    content=answer.text,
                    created_at=answered_at,
                )
            )
            session = db.get(ChatSession, session_id)
            if session is not None:
                session.updated_at = answered_at
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error saving chat messages for session %s: %s", session_id, e)
    finally:
        db.close()


def list_sessions(db: Session, knowledge_base_id: str, user_id: str) -> list[ChatSession]:
    return (
        db.query(ChatSession)
        .filter(
            ChatSession.knowledge_base_id == knowledge_base_id,
            ChatSession.user_id == user_id,
        )
        .order_by(ChatSession.updated_at.desc())
        .all()
    )


def get_session_messages(db: Session, session_id: str, user_id: str) -> list[ChatMessage] | None:
    """Messages of a session owned by the user, oldest first; None if not found."""
    session = db.query(ChatSession).filter(
        ChatSession.id == session_id,
        ChatSession.user_id == user_id,
    ).first()
    if session is None:
        return None
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at)
        .all()
    )

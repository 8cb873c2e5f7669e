from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from kilo.database.base import Base, created_at_column, id_column, updated_at_column

if TYPE_CHECKING:
    from kilo.models.chat import ChatSession
    from kilo.models.file import File
    from kilo.models.message_rating import MessageRating


class KnowledgeBase(Base):
    """
    Named container of documents, backed by one Gemini File Search store.

    The row is only inserted after the external store exists, so
    `gemini_store_id` is set from creation and never changes afterwards.
    Access: Direct via user_id.
    """

    __tablename__ = "knowledge_bases"

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(
        String(255),
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    gemini_store_id: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    # Relationships
    files: Mapped[list["File"]] = relationship(
        "File",
        back_populates="knowledge_base",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    chat_sessions: Mapped[list["ChatSession"]] = relationship(
        "ChatSession",
        back_populates="knowledge_base",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    ratings: Mapped[list["MessageRating"]] = relationship(
        "MessageRating",
        back_populates="knowledge_base",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("gemini_store_id")
    def _validate_store_id(self, key: str, value: str) -> str:
        current = self.gemini_store_id
        if current is not None and current != value:
            raise ValueError("gemini_store_id cannot be changed once set")
        return value

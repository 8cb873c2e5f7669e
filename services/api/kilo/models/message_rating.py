from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, SmallInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kilo.database.base import Base, created_at_column, id_column, updated_at_column

if TYPE_CHECKING:
    from kilo.models.knowledge_base import KnowledgeBase


class MessageRating(Base):
    """
    Thumbs up / down on an assistant message.

    One row per (user, message); re-rating overwrites the value.
    """

    __tablename__ = "message_ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "message_id", name="uq_message_ratings_user_message"),
        CheckConstraint("rating IN (-1, 1)", name="ck_message_ratings_rating"),
    )

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    knowledge_base_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("knowledge_bases.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    knowledge_base: Mapped["KnowledgeBase"] = relationship(
        "KnowledgeBase",
        back_populates="ratings",
    )

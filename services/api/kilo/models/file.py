from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from kilo.database.base import Base, created_at_column, id_column, optional_timestamp_column
from kilo.models.enums import FileStatus, can_transition

if TYPE_CHECKING:
    from kilo.models.knowledge_base import KnowledgeBase


class InvalidStatusTransition(ValueError):
    """Raised when a file status change is not in the transition table."""

    def __init__(self, current: FileStatus, target: FileStatus):
        self.current = current
        self.target = target
        super().__init__(f"Illegal file status transition: {current.value} -> {target.value}")


class File(Base):
    """
    Document indexed in a knowledge base's File Search store.

    Access: Via knowledge_base_id → knowledge_bases.user_id.
    """

    __tablename__ = "files"

    id: Mapped[str] = id_column()
    knowledge_base_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("knowledge_bases.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # External document name in the File Search store
    gemini_file_id: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[FileStatus] = mapped_column(
        SAEnum(
            FileStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=FileStatus.UPLOADING,
        nullable=False,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    uploaded_at: Mapped[datetime] = created_at_column()
    processed_at: Mapped[datetime | None] = optional_timestamp_column()

    # Relationships
    knowledge_base: Mapped["KnowledgeBase"] = relationship(
        "KnowledgeBase",
        back_populates="files",
    )

    @validates("status")
    def _validate_status(self, key: str, value: FileStatus | str) -> FileStatus:
        target = FileStatus(value)
        current = self.status
        if current is not None and not can_transition(FileStatus(current), target):
            raise InvalidStatusTransition(FileStatus(current), target)
        return target

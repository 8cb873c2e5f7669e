"""Test SQLAlchemy models."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kilo.models import (
    ChatMessage,
    ChatSession,
    File,
    FileStatus,
    InvalidStatusTransition,
    KnowledgeBase,
    MessageRating,
    MessageRole,
)
from kilo.models.enums import can_transition


class TestKnowledgeBase:
    """Test KnowledgeBase model."""

    def test_create_knowledge_base(self, session: Session, test_user_id: str):
        kb = KnowledgeBase(
            user_id=test_user_id,
            name="Research",
            description="Papers",
            gemini_store_id="fileSearchStores/abc",
        )
        session.add(kb)
        session.commit()

        assert kb.id is not None
        assert len(kb.id) == 36  # UUID format
        assert kb.created_at is not None
        assert kb.updated_at is not None

    def test_store_id_is_immutable(self, sample_kb: KnowledgeBase):
        with pytest.raises(ValueError):
            sample_kb.gemini_store_id = "fileSearchStores/other"

    def test_store_id_same_value_allowed(self, sample_kb: KnowledgeBase):
        sample_kb.gemini_store_id = "fileSearchStores/sample"
        assert sample_kb.gemini_store_id == "fileSearchStores/sample"

    def test_delete_cascades_to_children(
        self, session: Session, sample_kb: KnowledgeBase, ready_file: File, test_user_id: str
    ):
        chat = ChatSession(knowledge_base_id=sample_kb.id, user_id=test_user_id, title="Hi")
        session.add(chat)
        session.commit()
        session.add(ChatMessage(session_id=chat.id, role=MessageRole.USER, content="Hi"))
        session.add(
            MessageRating(
                user_id=test_user_id,
                message_id="msg-1",
                knowledge_base_id=sample_kb.id,
                rating=1,
            )
        )
        session.commit()

        session.delete(sample_kb)
        session.commit()
        session.expunge_all()

        assert session.query(File).count() == 0
        assert session.query(ChatSession).count() == 0
        assert session.query(ChatMessage).count() == 0
        assert session.query(MessageRating).count() == 0


class TestFileStatusMachine:
    """File status transitions are checked on assignment."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (FileStatus.UPLOADING, FileStatus.PROCESSING),
            (FileStatus.UPLOADING, FileStatus.READY),
            (FileStatus.UPLOADING, FileStatus.FAILED),
            (FileStatus.PROCESSING, FileStatus.READY),
            (FileStatus.PROCESSING, FileStatus.FAILED),
        ],
    )
    def test_legal_transitions(self, current: FileStatus, target: FileStatus):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (FileStatus.READY, FileStatus.PROCESSING),
            (FileStatus.READY, FileStatus.FAILED),
            (FileStatus.FAILED, FileStatus.READY),
            (FileStatus.PROCESSING, FileStatus.UPLOADING),
        ],
    )
    def test_illegal_transitions(self, current: FileStatus, target: FileStatus):
        assert not can_transition(current, target)

    def test_default_status_is_uploading(self, session: Session, sample_kb: KnowledgeBase):
        file = File(
            knowledge_base_id=sample_kb.id,
            file_name="notes.txt",
            file_size=10,
            gemini_file_id="doc-1",
        )
        session.add(file)
        session.commit()

        assert file.status == FileStatus.UPLOADING

    def test_progresses_to_ready(self, session: Session, sample_kb: KnowledgeBase):
        file = File(
            knowledge_base_id=sample_kb.id,
            file_name="notes.txt",
            file_size=10,
            gemini_file_id="doc-1",
            status=FileStatus.UPLOADING,
        )
        session.add(file)
        session.commit()

        file.status = FileStatus.PROCESSING
        file.status = FileStatus.READY
        session.commit()
        assert file.status == FileStatus.READY

    def test_terminal_state_rejects_change(self, ready_file: File):
        with pytest.raises(InvalidStatusTransition) as exc:
            ready_file.status = FileStatus.PROCESSING

        assert exc.value.current == FileStatus.READY
        assert exc.value.target == FileStatus.PROCESSING
        assert ready_file.status == FileStatus.READY

    def test_status_stored_as_lowercase_value(self, session: Session, ready_file: File):
        from sqlalchemy import text

        stored = session.execute(
            text("SELECT status FROM files WHERE id = :id"), {"id": ready_file.id}
        ).scalar_one()
        assert stored == "ready"


class TestMessageRating:
    """Test MessageRating constraints."""

    def test_unique_per_user_and_message(
        self, session: Session, sample_kb: KnowledgeBase, test_user_id: str
    ):
        for _ in range(2):
            session.add(
                MessageRating(
                    user_id=test_user_id,
                    message_id="msg-1",
                    knowledge_base_id=sample_kb.id,
                    rating=1,
                )
            )
        with pytest.raises(IntegrityError):
            session.commit()

    def test_rating_must_be_plus_or_minus_one(
        self, session: Session, sample_kb: KnowledgeBase, test_user_id: str
    ):
        session.add(
            MessageRating(
                user_id=test_user_id,
                message_id="msg-1",
                knowledge_base_id=sample_kb.id,
                rating=0,
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()

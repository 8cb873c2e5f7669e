import itertools
from dataclasses import dataclass, field

import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from kilo.database.base import Base
from kilo.models import (
    ChatMessage,
    ChatSession,
    File,
    FileStatus,
    KnowledgeBase,
    MessageRating,
    UsageRecord,
)
from kilo.services.providers import gemini
from kilo.services.providers.gemini import DocumentStoreError, UploadedDocument

# Ensure all models are imported so they're registered with Base.metadata
__all__ = [
    "ChatMessage",
    "ChatSession",
    "File",
    "KnowledgeBase",
    "MessageRating",
    "UsageRecord",
]


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key enforcement in SQLite."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_pdf(pages: int) -> bytes:
    """Build a blank PDF with the given number of pages."""
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page()
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf():
    return build_pdf


@dataclass
class FakeDocumentStore:
    """In-memory stand-in for the Gemini File Search adapter."""

    stores: set[str] = field(default_factory=set)
    documents: dict[str, str] = field(default_factory=dict)
    document_states: dict[str, FileStatus] = field(default_factory=dict)
    calls: list[tuple] = field(default_factory=list)
    upload_status: FileStatus = FileStatus.READY
    answer_chunks: list[str] = field(default_factory=lambda: ["Hello", " from", " the docs"])
    fail_on: set[str] = field(default_factory=set)
    prompts: list[str] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise DocumentStoreError(f"{name} failed")

    def create_store(self, display_name: str) -> str:
        self.calls.append(("create_store", display_name))
        self._maybe_fail("create_store")
        store_id = f"fileSearchStores/store-{next(self._ids)}"
        self.stores.add(store_id)
        return store_id

    def delete_store(self, store_id: str) -> None:
        self.calls.append(("delete_store", store_id))
        self._maybe_fail("delete_store")
        self.stores.discard(store_id)

    def upload_document(self, store_id, data, filename, mime_type) -> UploadedDocument:
        self.calls.append(("upload_document", store_id, filename, mime_type))
        self._maybe_fail("upload_document")
        document_id = f"{store_id}/documents/doc-{next(self._ids)}"
        self.documents[document_id] = store_id
        self.document_states[document_id] = self.upload_status
        return UploadedDocument(document_id=document_id, status=self.upload_status)

    def delete_document(self, document_id: str) -> None:
        self.calls.append(("delete_document", document_id))
        self._maybe_fail("delete_document")
        self.documents.pop(document_id, None)

    def get_document_state(self, document_id: str) -> FileStatus | None:
        self.calls.append(("get_document_state", document_id))
        self._maybe_fail("get_document_state")
        return self.document_states.get(document_id)

    def stream_answer(self, store_id, system_prompt, turns):
        self.calls.append(("stream_answer", store_id, len(turns)))
        self.prompts.append(system_prompt)
        self._maybe_fail("stream_answer")
        yield from self.answer_chunks

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def fake_store(monkeypatch) -> FakeDocumentStore:
    """Replace the provider functions the core services call."""
    store = FakeDocumentStore()
    for name in (
        "create_store",
        "delete_store",
        "upload_document",
        "delete_document",
        "get_document_state",
        "stream_answer",
    ):
        monkeypatch.setattr(gemini, name, getattr(store, name))
    return store


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool to ensure all connections share the same in-memory database.
    Without this, each connection would get a fresh database without tables.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    # Enable foreign key enforcement in SQLite
    event.listen(engine, "connect", _set_sqlite_pragma)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def session(session_factory) -> Session:
    """Create a test database session."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def test_user_id() -> str:
    """Provide a consistent test user ID."""
    return "test-user-00000000-0000-0000-0000-000000000001"


@pytest.fixture
def other_user_id() -> str:
    return "test-user-00000000-0000-0000-0000-000000000002"


@pytest.fixture
def sample_kb(session: Session, test_user_id: str) -> KnowledgeBase:
    """Create a sample knowledge base for testing."""
    kb = KnowledgeBase(
        user_id=test_user_id,
        name="Test Base",
        gemini_store_id="fileSearchStores/sample",
    )
    session.add(kb)
    session.commit()
    session.refresh(kb)
    return kb


@pytest.fixture
def ready_file(session: Session, sample_kb: KnowledgeBase) -> File:
    """Create an indexed file in the sample knowledge base."""
    file = File(
        knowledge_base_id=sample_kb.id,
        file_name="handbook.pdf",
        file_size=2048,
        mime_type="application/pdf",
        page_count=3,
        gemini_file_id="fileSearchStores/sample/documents/handbook",
        status=FileStatus.READY,
    )
    session.add(file)
    session.commit()
    session.refresh(file)
    return file


@pytest.fixture
def client(session_factory, test_user_id: str, fake_store) -> TestClient:
    """
    Create a FastAPI test client with in-memory database.

    The authenticated user is fixed to `test_user_id`; the document store is
    the in-memory fake.
    """
    from kilo.auth import dependencies as auth_deps
    from kilo.auth.schemas import User
    from kilo.database import session as session_module
    from kilo.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_get_current_user() -> User:
        return User(id=test_user_id, email="test@test.com")

    app.dependency_overrides[session_module.get_db] = override_get_db
    app.dependency_overrides[session_module.get_session_factory] = lambda: session_factory
    app.dependency_overrides[auth_deps.get_current_user] = override_get_current_user

    with TestClient(app) as client:
        yield client

    # Clear overrides after test
    app.dependency_overrides.clear()

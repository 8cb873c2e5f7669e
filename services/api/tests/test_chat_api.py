"""Tests for the chat endpoint and conversation history."""

from functools import partial

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from kilo.database.base import utc_now
from kilo.models import (
    ChatMessage,
    ChatSession,
    File,
    FileStatus,
    KnowledgeBase,
    MessageRole,
    UsageRecord,
)
from kilo.schemas.chat import ChatMessageIn
from kilo.services.core.chat import (
    AnswerStream,
    InvalidConversation,
    build_system_prompt,
    normalize_messages,
    record_chat_completion,
)
from kilo.services.utils.usage import get_user_usage, next_reset_at

QUESTION = {"messages": [{"role": "user", "content": "What is in the handbook?"}]}


def ask(client: TestClient, kb_id: str, body: dict = QUESTION):
    return client.post(f"/knowledge-bases/{kb_id}/chat", json=body)


class TestChat:
    def test_streams_answer_with_headers(
        self, client: TestClient, sample_kb: KnowledgeBase, ready_file: File, fake_store
    ):
        response = ask(client, sample_kb.id)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Hello from the docs"
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert response.headers["X-RateLimit-Reset"].endswith("T00:00:00.000Z")
        assert response.headers["X-Chat-Session-Id"]

        assert fake_store.called("stream_answer") == [("stream_answer", sample_kb.gemini_store_id, 1)]
        assert f'knowledge base "{sample_kb.name}"' in fake_store.prompts[0]

    def test_exchange_is_recorded(
        self,
        client: TestClient,
        session: Session,
        sample_kb: KnowledgeBase,
        ready_file: File,
        test_user_id: str,
    ):
        response = ask(client, sample_kb.id)
        session_id = response.headers["X-Chat-Session-Id"]

        assert get_user_usage(session, test_user_id).daily_queries == 1

        messages = client.get(f"/sessions/{session_id}/messages").json()
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "What is in the handbook?"),
            ("assistant", "Hello from the docs"),
        ]

        sessions = client.get(f"/knowledge-bases/{sample_kb.id}/sessions").json()
        assert len(sessions) == 1
        assert sessions[0]["title"] == "What is in the handbook?"

    def test_follow_up_reuses_session(
        self, client: TestClient, session: Session, sample_kb: KnowledgeBase, ready_file: File
    ):
        first = ask(client, sample_kb.id)
        session_id = first.headers["X-Chat-Session-Id"]

        body = {
            "sessionId": session_id,
            "messages": [
                {"role": "user", "content": "What is in the handbook?"},
                {"role": "assistant", "parts": [{"type": "text", "text": "Hello from the docs"}]},
                {"role": "user", "content": "Tell me more"},
            ],
        }
        second = ask(client, sample_kb.id, body)

        assert second.headers["X-Chat-Session-Id"] == session_id
        assert session.query(ChatSession).count() == 1
        assert session.query(ChatMessage).count() == 4

    def test_no_ready_files(self, client: TestClient, session: Session, sample_kb: KnowledgeBase, fake_store):
        session.add(
            File(
                knowledge_base_id=sample_kb.id,
                file_name="pending.txt",
                file_size=1,
                gemini_file_id="doc-pending",
                status=FileStatus.PROCESSING,
            )
        )
        session.commit()

        response = ask(client, sample_kb.id)
        assert response.status_code == 400
        assert response.json()["error"] == "No documents available in this knowledge base"
        assert fake_store.called("stream_answer") == []

    def test_unknown_knowledge_base(self, client: TestClient):
        assert ask(client, "nonexistent-id").status_code == 404

    def test_empty_messages(self, client: TestClient, sample_kb: KnowledgeBase, ready_file: File):
        response = ask(client, sample_kb.id, {"messages": []})
        assert response.status_code == 400
        assert response.json()["error"] == "No messages provided"

    def test_last_message_must_be_from_user(
        self, client: TestClient, sample_kb: KnowledgeBase, ready_file: File
    ):
        body = {"messages": [{"role": "assistant", "content": "Hi"}]}
        response = ask(client, sample_kb.id, body)
        assert response.status_code == 400
        assert response.json()["error"] == "Last message must be from user"

    def test_provider_failure_at_start(
        self, client: TestClient, session: Session, sample_kb: KnowledgeBase, ready_file: File, fake_store, test_user_id: str
    ):
        fake_store.fail_on.add("stream_answer")

        response = ask(client, sample_kb.id)
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to generate response"
        assert get_user_usage(session, test_user_id).daily_queries == 0
        assert session.query(ChatSession).count() == 0

        fake_store.fail_on.clear()
        retry = ask(client, sample_kb.id)
        assert retry.headers["X-RateLimit-Remaining"] == "99"

    def test_rejected_requests_do_not_use_up_queries(
        self, client: TestClient, sample_kb: KnowledgeBase, ready_file: File
    ):
        assert ask(client, "nonexistent-id").status_code == 404
        assert ask(client, sample_kb.id, {"messages": []}).status_code == 400
        assert ask(client, sample_kb.id, {"messages": "not a list"}).status_code == 400

        response = ask(client, sample_kb.id)
        assert response.headers["X-RateLimit-Remaining"] == "99"


class TestRateLimit:
    def test_rejects_after_daily_limit(
        self, client: TestClient, session: Session, sample_kb: KnowledgeBase, ready_file: File, test_user_id: str
    ):
        for _ in range(100):
            assert ask(client, sample_kb.id).status_code == 200

        assert get_user_usage(session, test_user_id).daily_queries == 100

        response = ask(client, sample_kb.id)
        assert response.status_code == 429
        data = response.json()
        assert data["error"] == "Rate limit exceeded"
        assert data["error_type"] == "rate_limit"
        assert data["limit"] == 100
        assert data["remaining"] == 0
        assert "daily limit of 100 queries" in data["message"]
        assert "UTC" in data["message"]
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_limit_seeded_from_ledger(
        self, client: TestClient, session: Session, sample_kb: KnowledgeBase, ready_file: File, fake_store, test_user_id: str
    ):
        session.add(
            UsageRecord(
                user_id=test_user_id,
                daily_query_count=100,
                total_query_count=250,
                query_reset_at=next_reset_at(),
            )
        )
        session.commit()

        assert ask(client, sample_kb.id).status_code == 429
        assert fake_store.called("stream_answer") == []

    def test_rate_limit_checked_before_ownership(
        self, client: TestClient, session: Session, test_user_id: str
    ):
        session.add(
            UsageRecord(
                user_id=test_user_id,
                daily_query_count=100,
                query_reset_at=next_reset_at(),
            )
        )
        session.commit()

        assert ask(client, "nonexistent-id").status_code == 429


class TestPromptAndMessages:
    def test_system_prompt_names_base_and_store(self, sample_kb: KnowledgeBase):
        prompt = build_system_prompt(sample_kb)
        assert '"Test Base"' in prompt
        assert "File Search Store ID: fileSearchStores/sample" in prompt
        assert "Only answer questions based on the content in the uploaded documents" in prompt

    def test_assistant_parts_are_joined(self):
        turns = normalize_messages(
            [
                ChatMessageIn(role="user", content="Hi"),
                ChatMessageIn(
                    role="assistant",
                    parts=[
                        {"type": "text", "text": "Hello "},
                        {"type": "reasoning", "text": "ignored"},
                        {"type": "text", "text": "there"},
                    ],
                ),
                ChatMessageIn(role="user", content="Next"),
            ]
        )
        assert [t.content for t in turns] == ["Hi", "Hello there", "Next"]
        assert turns[1].role == MessageRole.ASSISTANT

    def test_unknown_role_rejected(self):
        with pytest.raises(InvalidConversation):
            normalize_messages(
                [ChatMessageIn(role="system", content="x"), ChatMessageIn(role="user", content="y")]
            )


class TestSessions:
    def test_unknown_session(self, client: TestClient):
        assert client.get("/sessions/nonexistent-id/messages").status_code == 404

    def test_sessions_of_unknown_base(self, client: TestClient):
        assert client.get("/knowledge-bases/nonexistent-id/sessions").status_code == 404


class TestAnswerStream:
    def test_finish_called_once_after_full_stream(self):
        finished = []
        stream = AnswerStream(iter(["Hello", " there"]), on_finish=finished.append)

        assert list(stream) == ["Hello", " there"]
        assert finished == [stream]
        assert stream.completed
        assert stream.text == "Hello there"

    def test_abandoned_stream_still_finishes(self):
        finished = []
        stream = AnswerStream(iter(["Hello", " there", " again"]), on_finish=finished.append)

        chunks = iter(stream)
        assert next(chunks) == "Hello"
        chunks.close()

        assert finished == [stream]
        assert not stream.completed
        assert stream.text == "Hello"

    def test_abandoned_exchange_is_recorded(
        self, session_factory, session: Session, sample_kb: KnowledgeBase, test_user_id: str
    ):
        chat_session = ChatSession(
            knowledge_base_id=sample_kb.id, user_id=test_user_id, title="Question"
        )
        session.add(chat_session)
        session.commit()

        stream = AnswerStream(
            iter(["Partial", " answer"]),
            on_finish=partial(
                record_chat_completion,
                session_factory,
                test_user_id,
                chat_session.id,
                "Question",
                utc_now(),
            ),
        )
        chunks = iter(stream)
        next(chunks)
        chunks.close()

        assert get_user_usage(session, test_user_id).daily_queries == 1
        contents = [
            m.content
            for m in session.query(ChatMessage).order_by(ChatMessage.created_at).all()
        ]
        assert contents == ["Question", "Partial"]

"""Tests for message rating endpoints."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from kilo.models import KnowledgeBase, MessageRating


def rate(client: TestClient, message_id: str, rating, kb_id: str):
    return client.post(
        f"/messages/{message_id}/rating",
        json={"rating": rating, "knowledgeBaseId": kb_id},
    )


class TestRateMessage:
    def test_same_rating_twice_stores_one_row(
        self, client: TestClient, session: Session, sample_kb: KnowledgeBase
    ):
        first = rate(client, "msg-1", 1, sample_kb.id)
        second = rate(client, "msg-1", 1, sample_kb.id)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["success"] is True
        assert second.json()["rating"]["rating"] == 1
        assert session.query(MessageRating).count() == 1

    def test_rerating_overwrites(self, client: TestClient, session: Session, sample_kb: KnowledgeBase):
        rate(client, "msg-1", 1, sample_kb.id)
        response = rate(client, "msg-1", -1, sample_kb.id)

        assert response.json()["rating"]["rating"] == -1
        session.expire_all()
        assert session.query(MessageRating).one().rating == -1

    def test_toggle_off_removes_row(self, client: TestClient, session: Session, sample_kb: KnowledgeBase):
        rate(client, "msg-1", 1, sample_kb.id)

        response = client.delete("/messages/msg-1/rating")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert session.query(MessageRating).count() == 0

    def test_delete_missing_rating_is_ok(self, client: TestClient):
        response = client.delete("/messages/never-rated/rating")
        assert response.status_code == 200
        assert response.json()["removed"] == 0

    def test_invalid_rating_values(self, client: TestClient, sample_kb: KnowledgeBase):
        for value in (0, 2, -2, "1", True):
            response = rate(client, "msg-1", value, sample_kb.id)
            assert response.status_code == 400, value

        response = rate(client, "msg-1", 5, sample_kb.id)
        assert response.json()["error"] == "Rating must be -1 or 1"

    def test_unknown_knowledge_base(self, client: TestClient):
        response = rate(client, "msg-1", 1, "nonexistent-id")
        assert response.status_code == 404

    def test_other_users_knowledge_base(self, client: TestClient, session: Session, other_user_id: str):
        kb = KnowledgeBase(user_id=other_user_id, name="Theirs", gemini_store_id="s-other")
        session.add(kb)
        session.commit()

        assert rate(client, "msg-1", 1, kb.id).status_code == 404

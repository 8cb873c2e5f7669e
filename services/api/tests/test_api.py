"""Tests for usage, health and metrics routes."""

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.config import BYTES_PER_MB
from kilo.models import File, KnowledgeBase
from kilo.services.utils import quota
from kilo.services.utils.usage import increment_query_count, update_storage_usage


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["api"]["status"] == "healthy"
        assert "timestamp" in data

    def test_degraded_when_database_fails(self, client: TestClient, monkeypatch):
        def broken(self, *args, **kwargs):
            raise SQLAlchemyError("database unavailable")

        monkeypatch.setattr(Session, "execute", broken)

        response = client.get("/health")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"]["status"] == "unhealthy"


class TestUsageEndpoint:
    def test_usage_snapshot(
        self, client: TestClient, session: Session, sample_kb: KnowledgeBase, test_user_id: str
    ):
        update_storage_usage(session, test_user_id, 1024)
        increment_query_count(session, test_user_id)

        response = client.get("/usage")
        assert response.status_code == 200
        data = response.json()
        assert data["queries"]["used"] == 1
        assert data["queries"]["limit"] == 100
        assert data["queries"]["remaining"] == 99
        assert "resetAt" in data["queries"]
        assert data["knowledgeBases"] == {"used": 1, "limit": 5, "remaining": 4}
        assert data["storage"] == {
            "used": 1024,
            "limit": 100 * BYTES_PER_MB,
            "remaining": 100 * BYTES_PER_MB - 1024,
        }
        assert data["totalFileUploads"] == 0
        assert data["totalQueries"] == 1

    def test_usage_unavailable(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(quota, "get_user_usage", lambda db, user_id: None)

        response = client.get("/usage")
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to fetch usage statistics"


class TestMetricsEndpoint:
    def test_metrics(
        self,
        client: TestClient,
        session: Session,
        sample_kb: KnowledgeBase,
        ready_file: File,
        test_user_id: str,
    ):
        increment_query_count(session, test_user_id)
        increment_query_count(session, "someone-else")

        response = client.get("/metrics")
        assert response.status_code == 200
        data = response.json()
        metrics = data["metrics"]
        assert metrics["users"]["total"] == 2
        assert metrics["knowledgeBases"]["total"] == 1
        assert metrics["files"]["total"] == 1
        assert metrics["files"]["totalStorage"] == ready_file.file_size
        assert metrics["queries"]["total"] == 2
        assert data["limits"]["knowledgeBasesPerUser"] == 5
        assert data["limits"]["dailyQueriesPerUser"] == 100


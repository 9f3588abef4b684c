"""
Unit Tests for API Routes

Tests FastAPI routes with TestClient over a Dispatcher wired to FakeBackends.
"""

import pytest
from fastapi.testclient import TestClient

from search_dispatch.application.app import create_app
from search_dispatch.core.config.constants import HEADER_REQUEST_ID
from search_dispatch.services.dispatcher import build_dispatcher


@pytest.fixture
def dispatcher(settings, make_backend):
    return build_dispatcher(
        settings=settings,
        backends=[make_backend("wiki", priority=10, results=2), make_backend("arxiv", priority=5)],
    )


@pytest.fixture
def client(settings, dispatcher):
    app = create_app(settings=settings, dispatcher=dispatcher)
    with TestClient(app) as client:
        yield client


@pytest.mark.unit
class TestSearchRoute:
    def test_search_returns_merged_results(self, client):
        response = client.post("/api/v1/search", json={"query": "rust"})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "rust"
        assert data["count"] == 5
        assert {r["source_backend_id"] for r in data["results"]} == {"wiki", "arxiv"}
        assert data["results"][0]["aggregation_metadata"]["source"] == "search-dispatch"

    def test_request_id_header_becomes_search_id(self, client):
        response = client.post(
            "/api/v1/search", json={"query": "rust"}, headers={HEADER_REQUEST_ID: "req-42"}
        )
        assert response.json()["search_id"] == "req-42"
        assert response.headers[HEADER_REQUEST_ID] == "req-42"

    def test_sources_restriction(self, client):
        response = client.post("/api/v1/search", json={"query": "rust", "sources": ["arxiv"]})
        assert {r["source_backend_id"] for r in response.json()["results"]} == {"arxiv"}

    def test_blank_query_is_bad_request(self, client):
        response = client.post("/api/v1/search", json={"query": "   "})
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidQueryError"

    def test_missing_query_is_unprocessable(self, client):
        response = client.post("/api/v1/search", json={})
        assert response.status_code == 422

    def test_no_backends_is_service_unavailable(self, client, dispatcher):
        for backend_id in ("wiki", "arxiv"):
            for _ in range(6):
                dispatcher.health_monitor.record_error(backend_id)

        response = client.post("/api/v1/search", json={"query": "rust"})

        assert response.status_code == 503
        assert response.json()["error_type"] == "NoBackendsAvailableError"


@pytest.mark.unit
class TestStatusAndHealthRoutes:
    def test_status(self, client):
        client.post("/api/v1/search", json={"query": "rust"})
        data = client.get("/api/v1/status").json()
        assert data["total_backends"] == 2
        assert data["healthy_backends"] == 2
        assert data["searches"] == 1
        assert set(data["per_backend_rate_limit_remaining"]) == {"wiki", "arxiv"}

    def test_health_healthy(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_health_degraded(self, client, dispatcher):
        for _ in range(3):
            dispatcher.health_monitor.record_error("wiki")
        assert client.get("/api/v1/health").json()["status"] == "degraded"

    def test_health_unhealthy_fails_readiness(self, client, dispatcher):
        for backend_id in ("wiki", "arxiv"):
            for _ in range(6):
                dispatcher.health_monitor.record_error(backend_id)

        assert client.get("/api/v1/health").json()["status"] == "unhealthy"
        assert client.get("/api/v1/health/ready").status_code == 503

    def test_metrics_exposition(self, client):
        client.post("/api/v1/search", json={"query": "rust"})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "search_requests_completed_total" in response.text

    def test_root(self, client):
        data = client.get("/").json()
        assert data["name"] == "Search Dispatch Service"
        assert data["health"] == "/api/v1/health"

"""Integration tests for API endpoints."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from docsearch.api import dependencies
from docsearch.api.app import create_app
from docsearch.api.dependencies import get_service
from docsearch.api.routes import system
from docsearch.errors import EmbeddingUnavailableError
from docsearch.service import create_service

from conftest import FakeEmbeddingClient

INVOICE_TEXT = "Fitzer GmbH invoice for replacement rotor blades, due in thirty days."
MANUAL_TEXT = "Drone maintenance manual: inspect the rotor blades before every flight."


def _client_for(service):
    app = create_app()

    async def override_get_service():
        return service

    app.dependency_overrides[get_service] = override_get_service
    return TestClient(app)


@pytest.fixture
def client(service):
    """Test client over a fresh in-memory service."""
    with _client_for(service) as test_client:
        yield test_client


@pytest.fixture
def indexed_client(client):
    """Client with two inline documents already indexed."""
    for text, title in ((INVOICE_TEXT, "Fitzer invoice"), (MANUAL_TEXT, "Drone manual")):
        response = client.post("/documents/index", json={"text": text, "title": title})
        assert response.status_code == 200
    return client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "/health" in {route.path for route in system.router.routes}


class TestSearchEndpoint:
    def test_search_returns_ranked_results(self, indexed_client):
        response = indexed_client.post("/search", json={"query": "Fitzer invoice", "limit": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "Fitzer invoice"
        assert data["count"] == len(data["results"]) >= 1
        assert data["results"][0]["document_title"] == "Fitzer invoice"
        assert "took_ms" in data

    def test_search_without_matches_is_empty(self, indexed_client):
        response = indexed_client.post("/search", json={"query": "zeppelin"})

        assert response.status_code == 200
        assert response.json()["results"] == []

    def test_search_with_filters(self, indexed_client):
        response = indexed_client.post(
            "/search",
            json={"query": "rotor blades", "filters": {"keywords": ["maintenance"]}},
        )

        results = response.json()["results"]
        assert [r["document_title"] for r in results] == ["Drone manual"]

    def test_empty_query_is_bad_request(self, client):
        response = client.post("/search", json={"query": "   "})

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidInputError"

    def test_limit_out_of_range(self, client):
        response = client.post("/search", json={"query": "test", "limit": 0})
        assert response.status_code == 422

    def test_unknown_metric_rejected(self, client):
        response = client.post("/search", json={"query": "test", "metric": "dot"})
        assert response.status_code == 422


class TestContextEndpoint:
    def test_context_with_citations(self, indexed_client):
        response = indexed_client.post(
            "/context", json={"query": "rotor blades", "max_chunks": 5, "threshold": 0.1}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["context"].startswith("[1] ")
        assert len(data["citations"]) == 2
        assert data["max_chunks"] == 5

    def test_context_default_threshold(self, indexed_client):
        response = indexed_client.post("/context", json={"query": "rotor"})

        assert response.status_code == 200
        assert response.json()["threshold"] == 0.7


class TestDocumentEndpoints:
    def test_index_text_reports_result(self, client):
        response = client.post(
            "/documents/index",
            json={"text": INVOICE_TEXT, "title": "Fitzer invoice", "metadata": {"team": "ops"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["indexed"] == 1
        assert data["results"][0]["status"] == "indexed"
        assert data["results"][0]["state"] == "indexed"

        again = client.post("/documents/index", json={"text": INVOICE_TEXT, "title": "Fitzer invoice"})
        assert again.json()["skipped"] == 1

    def test_index_directory(self, client, docs_dir):
        response = client.post("/documents/index", json={"path": str(docs_dir)})

        assert response.status_code == 200
        assert response.json()["indexed"] == 3

    def test_index_requires_exactly_one_source(self, client):
        assert client.post("/documents/index", json={}).status_code == 422
        response = client.post("/documents/index", json={"path": "/tmp", "text": "x"})
        assert response.status_code == 422

    def test_index_missing_path(self, client, tmp_path):
        response = client.post("/documents/index", json={"path": str(tmp_path / "missing")})

        assert response.status_code == 400

    def test_list_and_get_documents(self, indexed_client):
        response = indexed_client.get("/documents", params={"limit": 10})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        titles = {d["title"] for d in data["documents"]}
        assert titles == {"Fitzer invoice", "Drone manual"}

        doc_id = data["documents"][0]["id"]
        document = indexed_client.get(f"/documents/{doc_id}").json()
        assert document["id"] == doc_id
        assert document["tags"]["document_type"]

    def test_list_documents_by_type(self, indexed_client):
        response = indexed_client.get("/documents", params={"document_type": "invoice"})

        assert [d["title"] for d in response.json()["documents"]] == ["Fitzer invoice"]

    def test_get_missing_document(self, client):
        response = client.get("/documents/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_delete_document(self, indexed_client):
        doc_id = indexed_client.get("/documents").json()["documents"][0]["id"]

        response = indexed_client.delete(f"/documents/{doc_id}")

        assert response.status_code == 200
        assert response.json()["chunks_deleted"] >= 1
        assert indexed_client.delete(f"/documents/{doc_id}").status_code == 404


class TestDiagnosticsEndpoints:
    def test_stats(self, indexed_client):
        response = indexed_client.get("/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total_documents"] == 2
        assert data["total_chunks"] >= 2

    def test_embedding_test(self, client):
        response = client.get("/embedding/test")

        assert response.status_code == 200
        assert response.json()["ok"] is True


class TestErrorMapping:
    def test_embedding_unavailable_is_503(self, config, memory_index):
        service = create_service(
            config,
            index=memory_index,
            embedder=FakeEmbeddingClient(error=EmbeddingUnavailableError("embedding service down")),
        )
        with _client_for(service) as client:
            response = client.post("/search", json={"query": "Fitzer"})

        assert response.status_code == 503
        assert response.json()["message"] == "embedding service down"

    def test_dimension_mismatch_is_502(self, config, memory_index):
        service = create_service(
            config, index=memory_index, embedder=FakeEmbeddingClient(output_dimension=3)
        )
        with _client_for(service) as client:
            response = client.post("/search", json={"query": "Fitzer"})

        assert response.status_code == 502
        assert response.json()["error"] == "EmbeddingDimensionMismatchError"

    def test_embedding_check_failure_is_reported(self, config, memory_index):
        service = create_service(
            config,
            index=memory_index,
            embedder=FakeEmbeddingClient(error=EmbeddingUnavailableError("down")),
        )
        with _client_for(service) as client:
            response = client.get("/embedding/test")

        assert response.status_code == 200
        assert response.json()["ok"] is False


class SlowService:
    """Stands in for the service; initialization yields to other tasks."""

    def __init__(self):
        self.closed = False

    async def initialize(self):
        await asyncio.sleep(0.01)

    async def close(self):
        self.closed = True


class TestServiceDependency:
    @pytest.mark.asyncio
    async def test_concurrent_first_requests_share_one_service(self, monkeypatch):
        created = []

        def fake_create_service(config):
            created.append(SlowService())
            return created[-1]

        monkeypatch.setattr(dependencies, "_service_instance", None)
        monkeypatch.setattr(dependencies, "_service_lock", asyncio.Lock())
        monkeypatch.setattr(dependencies, "get_config", lambda: None)
        monkeypatch.setattr(dependencies, "create_service", fake_create_service)

        first, second = await asyncio.gather(get_service(), get_service())

        assert len(created) == 1
        assert first is second
        await dependencies.close_service()
        assert first.closed

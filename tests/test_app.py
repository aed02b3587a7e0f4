"""Tests for the HTTP facade (semantic_search.app)."""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from semantic_search.app import create_app
from semantic_search.config import SearchConfig
from semantic_search.embedder import HashingEmbedder
from semantic_search.exceptions import EmbeddingError, IndexQueryError, IndexWriteError
from semantic_search.seeds import DEFAULT_SEED_DOCUMENTS
from semantic_search.service import SemanticSearchService
from semantic_search.vector_index import InMemoryVectorIndex

VECTOR_DOC = "Vector embeddings represent text as high-dimensional numerical vectors."
ML_DOC = "Machine learning models can understand semantic similarity using embeddings."
ORACLE_DOC = "Oracle AI Database introduces AI-powered vector search capabilities."


def build_service(**overrides) -> SemanticSearchService:
    config = SearchConfig(embedding_provider="hashing", **overrides)
    return SemanticSearchService(
        config,
        embedder=HashingEmbedder(dimensions=512),
        index=InMemoryVectorIndex(),
    )


@pytest.fixture
def service():
    return build_service()


@pytest.fixture
def client(service):
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


class TestStartup:
    def test_seeds_on_startup(self, client, service):
        assert service.index.count() == len(DEFAULT_SEED_DOCUMENTS)

    def test_restart_does_not_duplicate_seeds(self, service):
        for _ in range(2):
            with TestClient(create_app(service=build_service_sharing(service))):
                pass
        assert service.index.count() == len(DEFAULT_SEED_DOCUMENTS)

    def test_seeding_can_be_disabled(self):
        service = build_service(seed_on_startup=False)
        with TestClient(create_app(service=service)):
            pass
        assert service.index.count() == 0

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["documents"] == 4
        assert body["embedding_dimensions"] == 512
        assert body["embedding"]["healthy"] is True

    def test_health_reports_unhealthy_provider(self):
        provider = HashingEmbedder(dimensions=512)
        provider.health_check = MagicMock(return_value={
            "healthy": False,
            "model": "nomic-embed-text",
            "error": "Cannot reach Ollama at http://localhost:11434: refused",
        })
        service = SemanticSearchService(
            SearchConfig(embedding_provider="hashing", seed_on_startup=False),
            embedder=provider,
            index=InMemoryVectorIndex(),
        )
        with TestClient(create_app(service=service)) as client:
            body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert "Cannot reach Ollama" in body["embedding"]["error"]


def build_service_sharing(service: SemanticSearchService) -> SemanticSearchService:
    """A fresh service (new store, engine) over the same index."""
    return SemanticSearchService(
        service.config,
        embedder=HashingEmbedder(dimensions=512),
        index=service.index,
    )


class TestSearchEndpoint:
    def test_returns_content_and_metadata(self, client):
        response = client.get("/api/search", params={"query": "vector embeddings"})
        assert response.status_code == 200
        body = response.json()
        assert [item["content"] for item in body] == [VECTOR_DOC, ML_DOC, ORACLE_DOC]
        assert body[0] == {
            "content": VECTOR_DOC,
            "metadata": {"category": "concept", "technology": "ai"},
        }

    def test_top_k(self, client):
        response = client.get("/api/search", params={"query": "vector embeddings", "topK": 1})
        assert [item["content"] for item in response.json()] == [VECTOR_DOC]

    def test_empty_query_is_400(self, client):
        response = client.get("/api/search", params={"query": ""})
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_argument"

    def test_zero_top_k_is_400(self, client):
        response = client.get("/api/search", params={"query": "x", "topK": 0})
        assert response.status_code == 400

    def test_missing_query_is_rejected(self, client):
        assert client.get("/api/search").status_code == 422


class TestFilteredEndpoint:
    def test_applies_category_filter(self, client):
        response = client.get(
            "/api/search/filtered",
            params={"query": "vector embeddings", "category": "concept"},
        )
        assert response.status_code == 200
        body = response.json()
        assert [item["content"] for item in body] == [VECTOR_DOC, ML_DOC]
        assert all(item["metadata"]["category"] == "concept" for item in body)

    def test_category_without_matches_is_empty(self, client):
        response = client.get(
            "/api/search/filtered",
            params={"query": "vector embeddings", "category": "nonexistent"},
        )
        assert response.status_code == 200
        assert response.json() == []

    def test_missing_category_is_rejected(self, client):
        response = client.get("/api/search/filtered", params={"query": "vector"})
        assert response.status_code == 422

    def test_empty_category_is_400(self, client):
        response = client.get("/api/search/filtered", params={"query": "vector", "category": ""})
        assert response.status_code == 400


class TestAddDocumentsEndpoint:
    def test_add_then_search(self, client):
        response = client.post(
            "/api/documents",
            json={"documents": [
                {"text": "cats are mammals", "metadata": {"category": "bio"}},
                {"text": "dogs are mammals", "metadata": {"category": "bio", "legs": 4}},
            ]},
        )
        assert response.status_code == 200
        ids = response.json()["ids"]
        assert len(ids) == 2

        found = client.get("/api/search/filtered", params={"query": "mammals", "category": "bio"})
        assert [item["content"] for item in found.json()] == ["cats are mammals", "dogs are mammals"]
        assert found.json()[1]["metadata"] == {"category": "bio", "legs": "4"}

    def test_empty_batch_is_400(self, client):
        response = client.post("/api/documents", json={"documents": []})
        assert response.status_code == 400

    def test_operator_metadata_key_is_400(self, client):
        response = client.post(
            "/api/documents",
            json={"documents": [{"text": "x", "metadata": {"$weird": "bio"}}]},
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_argument"

    def test_nested_metadata_is_400(self, client):
        response = client.post(
            "/api/documents",
            json={"documents": [{"text": "x", "metadata": {"tags": ["a", "b"]}}]},
        )
        assert response.status_code == 400


class TestErrorMapping:
    def _client_with_failing(self, method: str, error: Exception) -> TestClient:
        service = build_service(seed_on_startup=False)
        setattr(service, method, MagicMock(side_effect=error))
        return TestClient(create_app(service=service))

    def test_embedding_failure_is_502(self):
        client = self._client_with_failing("search", EmbeddingError("provider down"))
        response = client.get("/api/search", params={"query": "x"})
        assert response.status_code == 502
        assert response.json()["kind"] == "embedding_failure"

    def test_index_query_failure_is_503_not_empty(self):
        client = self._client_with_failing("search", IndexQueryError("unavailable"))
        response = client.get("/api/search", params={"query": "x"})
        assert response.status_code == 503
        assert response.json()["kind"] == "index_query_failure"

    def test_index_write_failure_reports_succeeded_ids(self):
        error = IndexWriteError(succeeded_ids=["abc"], failed_ids=["def"])
        client = self._client_with_failing("add_documents", error)
        response = client.post("/api/documents", json={"documents": [{"text": "x"}]})
        assert response.status_code == 503
        assert response.json()["succeeded_ids"] == ["abc"]

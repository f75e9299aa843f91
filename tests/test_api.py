import contextlib
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from semse.api.dependencies import get_search_engine, get_store
from semse.core.errors import StorageError
from semse.main import create_app
from semse.search.engine import SearchEngine
from semse.storage.store import DocumentStore, SearchHit


@pytest.fixture
def mock_store():
    mock = AsyncMock(spec=DocumentStore)
    mock.knn.return_value = [
        SearchHit(
            key="documents:abc",
            distance=0.2,
            fields={"title": "Redis", "body": "Vectors", "date": "1709110646009"},
        ),
        SearchHit(
            key="documents:def",
            distance=0.4,
            fields={"title": "Other", "body": "Text", "date": "1709110646009", "image": "x.png"},
        ),
    ]
    mock.describe_index.return_value = {"index_name": "idx:documents"}
    return mock


@pytest.fixture
def client(mock_store, mock_embedder):
    app = create_app()
    engine = SearchEngine(mock_store, mock_embedder, index="idx:documents", prefix="documents")
    app.dependency_overrides[get_search_engine] = lambda: engine
    app.dependency_overrides[get_store] = lambda: mock_store

    # Mock lifespan to avoid a Redis connection
    @contextlib.asynccontextmanager
    async def mock_lifespan(app):
        yield

    app.router.lifespan_context = mock_lifespan

    with TestClient(app) as c:
        yield c


def test_query_returns_ranked_results(client, mock_store):
    response = client.post("/api/query", json={"query": "vector search", "count": 2})

    assert response.status_code == 200
    data = response.json()
    assert [r["id"] for r in data] == ["abc", "def"]
    assert data[0]["title"] == "Redis"
    assert data[0]["score"] == 0.2
    assert data[0]["date"].startswith("2024-02-28T08:57:26.009")
    assert data[1]["image"] == "x.png"
    mock_store.knn.assert_awaited_once_with("idx:documents", [0.1, 0.2, 0.3, 0.4], 2)


def test_query_defaults_window(client, mock_store):
    response = client.post("/api/query", json={"query": "vector search"})

    assert response.status_code == 200
    assert mock_store.knn.await_args.args[2] == 5


def test_query_start_skips_matches(client):
    response = client.post("/api/query", json={"query": "vector search", "start": 1, "count": 1})

    assert response.status_code == 200
    assert [r["id"] for r in response.json()] == ["def"]


def test_empty_query_is_bad_request(client, mock_embedder):
    response = client.post("/api/query", json={"query": "  "})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_query"
    mock_embedder.embed_one.assert_not_awaited()


def test_missing_query_is_bad_request(client):
    response = client.post("/api/query", json={})
    assert response.status_code == 400


def test_non_positive_count_is_bad_request(client):
    response = client.post("/api/query", json={"query": "q", "count": 0})
    assert response.status_code == 400


def test_oversized_body_is_rejected(client, mock_embedder):
    response = client.post("/api/query", json={"query": "x" * 4000})

    assert response.status_code == 413
    mock_embedder.embed_one.assert_not_awaited()


def test_unknown_fields_are_rejected(client):
    response = client.post("/api/query", json={"query": "q", "page": 2})
    assert response.status_code == 422


def test_health_ok(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "index": "idx:documents"}


def test_health_degraded_when_store_fails(client, mock_store):
    mock_store.describe_index.side_effect = StorageError("Connection refused")

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"

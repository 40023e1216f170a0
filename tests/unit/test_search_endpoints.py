"""HTTP tests for the search API using Starlette's TestClient."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from starlette.testclient import TestClient

from content_search_server.app_builder import AppBuilder
from content_search_server.errors import StorageError


pytestmark = pytest.mark.unit


def _index(client: TestClient, payload: dict) -> dict:
    response = client.post("/api/search/index", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def failing_client(settings):
    repository = AsyncMock()
    failure = StorageError("search failed: database is locked")
    for name in ("search", "add", "add_many", "get", "delete", "popular_tags", "content_stats", "recent", "ping"):
        getattr(repository, name).side_effect = failure
    app = AppBuilder(settings, repository=repository, install_signals=False, configure_observability=False).build()
    with TestClient(app) as test_client:
        yield test_client


class TestSearchRoutes:
    def test_search_requires_query_or_business_id(self, client):
        response = client.get("/api/search")
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Search query or businessId is required"}

    def test_search_envelope(self, client, payload_factory):
        _index(client, payload_factory(title="Pizza night"))
        response = client.get("/api/search", params={"q": "pizza", "businessId": "biz-1"})
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["count"] == 1
        assert body["query"] == "pizza"
        assert body["data"][0]["contentId"] == {"id": "sub-1", "name": None, "description": None}
        assert all(item["isActive"] for item in body["data"])

    def test_repeated_tag_parameters(self, client, payload_factory):
        _index(client, payload_factory(tags=["a"]))
        _index(client, payload_factory(tags=["b"]))
        _index(client, payload_factory(tags=["c"]))
        response = client.get("/api/search?businessId=biz-1&tags=a&tags=b")
        assert response.json()["count"] == 2

    def test_limit_above_max_is_rejected(self, client):
        response = client.get("/api/search", params={"businessId": "biz-1", "limit": "1000"})
        assert response.status_code == 400
        assert "Invalid limit" in response.json()["error"]

    def test_malformed_rating_is_rejected(self, client):
        response = client.get("/api/search", params={"businessId": "biz-1", "rating": "5stars"})
        assert response.status_code == 400

    def test_content_type_route(self, client, payload_factory):
        _index(client, payload_factory(contentType="staff"))
        _index(client, payload_factory())
        response = client.get("/api/search/staff", params={"businessId": "biz-1"})
        body = response.json()
        assert body["contentType"] == "staff"
        assert body["count"] == 1

    def test_unknown_content_type(self, client):
        response = client.get("/api/search/memo", params={"businessId": "biz-1"})
        assert response.status_code == 400

    def test_fixed_paths_win_over_content_type(self, client):
        response = client.get("/api/search/stats")
        assert response.json() == {"success": False, "error": "BusinessId is required"}

    def test_advanced_search(self, client, payload_factory):
        _index(client, payload_factory(title="Pizza", metadata={"rating": 3}))
        response = client.post(
            "/api/search/advanced",
            json={"query": "pizza", "filters": {"businessId": "biz-1"}, "pagination": {"limit": 5}},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["pagination"] == {"limit": 5, "offset": 0, "total": 1}
        assert body["sort"] == {"field": "date", "order": "desc"}

    def test_advanced_search_rejects_invalid_json(self, client):
        response = client.post(
            "/api/search/advanced", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400


class TestIndexRoutes:
    def test_create_update_delete(self, client, payload_factory):
        created = _index(client, payload_factory())
        assert created["indexedAt"] == created["createdAt"]

        response = client.put(f"/api/search/index/{created['id']}", json={"title": "Updated"})
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Updated"

        response = client.get(f"/api/search/index/{created['id']}")
        assert response.json()["data"]["title"] == "Updated"

        response = client.delete(f"/api/search/index/{created['id']}")
        assert response.json() == {"success": True, "message": "Search index deleted successfully"}

        response = client.delete(f"/api/search/index/{created['id']}")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Search index not found"}

    def test_create_validation_error(self, client, payload_factory):
        response = client.post("/api/search/index", json=payload_factory(contentType="memo"))
        assert response.status_code == 400
        assert "contentType" in response.json()["error"]

    def test_update_unknown(self, client):
        response = client.put("/api/search/index/missing", json={"title": "x"})
        assert response.status_code == 404

    def test_bulk(self, client, payload_factory):
        response = client.post("/api/search/index/bulk", json={"items": [payload_factory(), payload_factory()]})
        body = response.json()
        assert response.status_code == 201
        assert body["count"] == 2
        assert body["data"][0]["indexedAt"] == body["data"][1]["indexedAt"]

    @pytest.mark.parametrize("body", [{}, {"items": []}, {"items": "nope"}])
    def test_bulk_requires_items(self, client, body):
        response = client.post("/api/search/index/bulk", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "Items array is required"

    def test_tags_and_reindex(self, client, payload_factory):
        created = _index(client, payload_factory(tags=["fast"]))
        record_url = f"/api/search/index/{created['id']}"

        response = client.post(f"{record_url}/tags", json={"tag": "fast"})
        assert response.json()["data"]["tags"] == ["fast"]

        response = client.post(f"{record_url}/tags", json={"tag": "cheap"})
        assert response.json()["data"]["tags"] == ["fast", "cheap"]

        response = client.delete(f"{record_url}/tags/fast")
        assert response.json()["data"]["tags"] == ["cheap"]

        response = client.post(f"{record_url}/reindex")
        assert response.status_code == 200
        assert response.json()["data"]["indexedAt"] >= created["indexedAt"]


class TestAnalyticsRoutes:
    def test_popular_tags(self, client, payload_factory):
        _index(client, payload_factory(tags=["fast"]))
        response = client.get("/api/search/tags/popular", params={"businessId": "biz-1"})
        assert {"tag": "fast", "count": 1} in response.json()["data"]

    def test_stats(self, client, payload_factory):
        _index(client, payload_factory(metadata={"rating": 5, "sentiment": "positive"}))
        _index(client, payload_factory(metadata={"rating": 4}))
        response = client.get("/api/search/stats", params={"businessId": "biz-1"})
        assert response.json()["data"] == [
            {"contentType": "submission", "count": 2, "avgRating": 4.5, "sentimentBreakdown": ["positive"]}
        ]

    def test_high_rated(self, client, payload_factory):
        _index(client, payload_factory(title="Five", metadata={"rating": 5}))
        _index(client, payload_factory(title="Three", metadata={"rating": 3}))
        response = client.get("/api/search/high-rated", params={"businessId": "biz-1", "minRating": "4"})
        assert [item["title"] for item in response.json()["data"]] == ["Five"]

    def test_recent(self, client, payload_factory):
        created = _index(client, payload_factory(title="Newest"))
        response = client.get("/api/search/recent", params={"businessId": "biz-1"})
        assert response.json()["data"][0]["id"] == created["id"]

    def test_suggestions(self, client, payload_factory):
        _index(client, payload_factory(title="Pizza party"))
        response = client.get("/api/search/suggestions", params={"q": "pi", "businessId": "biz-1"})
        assert response.json()["count"] == 1
        response = client.get("/api/search/suggestions", params={"q": "p"})
        assert response.json() == {"success": True, "data": [], "count": 0}


class TestFailures:
    def test_unknown_route(self, client):
        response = client.get("/api/nothing/here")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Route not found"}

    @pytest.mark.parametrize(
        ("method", "url", "kwargs", "message"),
        [
            ("get", "/api/search", {"params": {"businessId": "biz-1"}}, "Failed to perform search"),
            ("get", "/api/search/form", {"params": {"businessId": "biz-1"}}, "Failed to search by content type"),
            ("post", "/api/search/advanced", {"json": {"query": "x"}}, "Failed to perform advanced search"),
            ("delete", "/api/search/index/abc", {}, "Failed to delete search index"),
            ("get", "/api/search/tags/popular", {"params": {"businessId": "biz-1"}}, "Failed to fetch popular tags"),
            ("get", "/api/search/recent", {"params": {"businessId": "biz-1"}}, "Failed to fetch recent content"),
        ],
    )
    def test_storage_failure_returns_generic_message(self, failing_client, method, url, kwargs, message):
        response = getattr(failing_client, method)(url, **kwargs)
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": message}
        assert "locked" not in response.text

    def test_index_storage_failure(self, failing_client, payload_factory):
        response = failing_client.post("/api/search/index", json=payload_factory())
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to index content"

    def test_unexpected_error_is_internal_server_error(self, settings):
        repository = AsyncMock()
        repository.recent.side_effect = RuntimeError("boom")
        app = AppBuilder(settings, repository=repository, install_signals=False, configure_observability=False).build()
        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.get("/api/search/recent", params={"businessId": "biz-1"})
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error"}

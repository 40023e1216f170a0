"""Shared test fixtures and configuration."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from starlette.testclient import TestClient

from content_search_server.adapters.content_repository import SqliteContentRepository
from content_search_server.app_builder import AppBuilder
from content_search_server.config import Settings
from content_search_server.search.sqlite_storage import SqliteDatabase
from content_search_server.service_layer.analytics_service import AnalyticsService
from content_search_server.service_layer.query_composer import QueryComposer
from content_search_server.service_layer.search_service import SearchGateway


# Complete test environment that overrides every config value read from env
TEST_ENV = {
    "DATABASE_PATH": "unused.db",
    "HOST": "127.0.0.1",
    "PORT": "3014",
    "LOG_LEVEL": "info",
    "LOG_JSON": "true",
    "ACCESS_LOG": "false",
    "DEFAULT_PAGE_SIZE": "50",
    "MAX_PAGE_SIZE": "200",
    "SQLITE_BUSY_TIMEOUT_MS": "5000",
    "SERVICE_NAME": "content_search",
    "OTLP_ENABLED": "false",
}


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Pin config-relevant environment variables for every test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


def make_payload(**overrides: Any) -> dict[str, Any]:
    """Build a valid camelCase index payload."""
    payload: dict[str, Any] = {
        "businessId": "biz-1",
        "contentType": "submission",
        "contentId": "sub-1",
        "title": "Great service at the downtown store",
        "content": "The staff were fast and friendly, would come back again.",
        "tags": ["service"],
        "categories": ["feedback"],
        "metadata": {"rating": 4, "sentiment": "positive"},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payload_factory():
    return make_payload


@pytest.fixture
def database(tmp_path: Path) -> Iterator[SqliteDatabase]:
    db = SqliteDatabase(tmp_path / "content.db", busy_timeout_ms=1000)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def repository(database: SqliteDatabase) -> SqliteContentRepository:
    return SqliteContentRepository(database)


@pytest.fixture
def composer() -> QueryComposer:
    return QueryComposer(default_page_size=50, max_page_size=200)


@pytest.fixture
def gateway(repository: SqliteContentRepository, composer: QueryComposer) -> SearchGateway:
    return SearchGateway(repository, composer)


@pytest.fixture
def analytics(repository: SqliteContentRepository, composer: QueryComposer) -> AnalyticsService:
    return AnalyticsService(repository, composer)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(database_path=str(tmp_path / "app.db"), log_json=False)


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    app = AppBuilder(settings, install_signals=False, configure_observability=False).build()
    with TestClient(app) as test_client:
        yield test_client

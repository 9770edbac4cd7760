# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from cardsync.config import Settings
from cardsync.db import init_db
from cardsync.errors import NetworkError
from cardsync.main import build_container, create_app
from conftest import FakeScraper


@pytest.fixture
def container(many_entities):
    container = build_container(Settings(database_url="sqlite://"))
    init_db(container.engine)
    container.service.scraper = FakeScraper(many_entities(3))
    yield container
    container.engine.dispose()


@pytest.fixture
def client(container):
    return TestClient(create_app(container, start_scheduler=False))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_info_lists_endpoints(client):
    body = client.get("/").json()
    assert body["endpoints"]["sync"] == "/sync"


def test_sync_then_list(client):
    response = client.post("/sync")
    assert response.status_code == 200
    report = response.json()
    assert report["status"] == "succeeded"
    assert report["trigger"] == "api"
    assert report["saved"] == 3

    listings = client.get("/listings", params={"source": "gamestore"}).json()
    assert len(listings) == 3
    assert {item["link"] for item in listings} == {
        "https://www.game.es/cards/001",
        "https://www.game.es/cards/002",
        "https://www.game.es/cards/003",
    }


def test_repeated_sync_keeps_one_row_per_card(client):
    client.post("/sync")
    client.post("/sync")
    assert len(client.get("/listings").json()) == 3


def test_failed_sync_returns_500(client, container):
    container.service.scraper = FakeScraper(error=NetworkError("site unreachable"))
    response = client.post("/sync")
    assert response.status_code == 500
    assert "site unreachable" in response.json()["detail"]


def test_sync_in_progress_returns_409(client, container):
    container.scheduler._guard.acquire()
    try:
        response = client.post("/sync")
    finally:
        container.scheduler._guard.release()
    assert response.status_code == 409


def test_listings_pagination_bounds(client):
    assert client.get("/listings", params={"limit": 0}).status_code == 422


def test_sync_during_shutdown_returns_503(client, container):
    container.service.cancel()
    response = client.post("/sync")
    assert response.status_code == 503

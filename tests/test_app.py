"""Tests for the FastAPI control surface."""

import httpx
import pytest
from fastapi.testclient import TestClient

import app as app_module
from tornstock.context import CollectorContext
from tests.conftest import FEED_TIMESTAMP, FakeUpstream


@pytest.fixture
def api_upstream(tmp_path, monkeypatch) -> FakeUpstream:
    upstream = FakeUpstream()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("TORN_MIN_DELAY_SECONDS", "0")
    monkeypatch.setenv("YATA_MIN_DELAY_SECONDS", "0")
    monkeypatch.setenv("YATA_RATE_LIMIT_BACKOFF_SECONDS", "0")
    monkeypatch.setenv("PREFETCH_PRICES", "false")
    monkeypatch.delenv("TORN_API_KEY", raising=False)

    create = CollectorContext.create
    transport = httpx.MockTransport(upstream.handler)
    monkeypatch.setattr(CollectorContext, "create", lambda settings: create(settings, transport=transport))
    return upstream


@pytest.fixture
def client(api_upstream):
    with TestClient(app_module.app) as test_client:
        yield test_client


class TestReadEndpoints:
    """Endpoints that only read state."""

    def test_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["endpoints"]["stock"] == "/stock"

    def test_stock_empty(self, client):
        response = client.get("/stock")
        assert response.status_code == 200
        assert response.json() == {"stockData": {}, "stockDataVersion": 0}

    def test_history_empty(self, client):
        response = client.get("/history/mex/258", params={"start": 0, "end": FEED_TIMESTAMP})
        assert response.status_code == 200
        assert response.json() == []

    def test_status_without_key(self, client):
        body = client.get("/collector/status").json()
        assert body["state"] == "idle"
        assert body["api_key_set"] is False

    def test_restart_without_key(self, client):
        response = client.post("/collector/restart")
        assert response.json() == {"initialized": False}


class TestApiKey:
    """Tests for POST /api-key."""

    def test_valid_key_starts_collecting(self, client, api_upstream):
        response = client.post("/api-key", json={"key": "good-key"})

        assert response.status_code == 200
        assert response.json() == {"valid": True, "initialized": True}

        stock = client.get("/stock").json()
        assert [entry["id"] for entry in stock["stockData"]["mex"]] == [258]
        assert stock["stockDataVersion"] > 0
        assert client.get("/collector/status").json()["running"] is True

        history = client.get("/history/mex/258", params={"start": 0, "end": FEED_TIMESTAMP}).json()
        assert [snapshot["quantity"] for snapshot in history] == [100]

    def test_invalid_key_rejected(self, client, api_upstream):
        api_upstream.user = [(200, {"error": {"code": 2, "error": "Incorrect key"}})]
        response = client.post("/api-key", json={"key": "bad-key"})
        assert response.status_code == 400
        assert client.get("/collector/status").json()["api_key_set"] is False

    def test_rate_limited_validation(self, client, api_upstream):
        api_upstream.user = [(429, {"error": {"code": 5, "error": "Too many requests"}})]
        response = client.post("/api-key", json={"key": "good-key"})
        assert response.status_code == 429


class TestManualRefresh:
    """Tests for POST /collector/refresh."""

    def test_refresh_returns_priced_stock(self, client, api_upstream):
        client.post("/api-key", json={"key": "good-key"})

        response = client.post("/collector/refresh", json={"countries": ["mex"]})

        assert response.status_code == 200
        entry = response.json()["stockData"]["mex"][0]
        assert entry["market_price"] == 30000
        assert entry["profit_per_minute"] == pytest.approx((30000 - 10000) / 36)

    def test_refresh_failure(self, client, api_upstream):
        api_upstream.yata = [httpx.ConnectError("unreachable")]
        response = client.post("/collector/refresh", json={})
        assert response.status_code == 502


class TestCountryFilter:
    """Tests for the stored country filter."""

    def test_defaults_to_all(self, client):
        assert client.get("/country-filter").json() == {"countries": []}

    def test_unknown_country_rejected(self, client):
        response = client.put("/country-filter", json={"countries": ["mex", "atlantis"]})
        assert response.status_code == 400
        assert client.get("/country-filter").json() == {"countries": []}

    def test_filter_applies_to_stock(self, client, api_upstream):
        api_upstream.yata = [(200, {
            "timestamp": FEED_TIMESTAMP,
            "stocks": {
                "mex": {"update": 1, "stocks": [{"id": 258, "name": "Jaguar Plushie", "quantity": 5, "cost": 10000}]},
                "can": {"update": 1, "stocks": [{"id": 258, "name": "Jaguar Plushie", "quantity": 7, "cost": 10000}]},
            },
        })]
        client.post("/api-key", json={"key": "good-key"})
        assert set(client.get("/stock").json()["stockData"]) == {"mex", "can"}

        assert client.put("/country-filter", json={"countries": ["can"]}).json() == {"countries": ["can"]}
        assert set(client.get("/stock").json()["stockData"]) == {"can"}

"""
Tests for REST API Endpoints (server.py).

Tests cover:
- Asset catalog and config endpoints
- Opening trades (quote-seeded and explicit start price)
- Validation and balance errors
- Trade lookup, history and stats after settlement
"""
import time
import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import server


@pytest.fixture
def client():
    """Client with startup/shutdown run. Long tick and quote intervals so only the tests move state."""
    with patch.dict(os.environ, {
        "TICK_INTERVAL_SEC": "60",
        "STARTING_BALANCE": "1000",
        "QUOTE_INTERVAL_SEC": "60",
    }):
        with TestClient(server.app) as c:
            yield c


def open_trade(client, **overrides):
    body = {"asset": "BTC/USDT", "direction": "up", "amount": 100, "duration": 60}
    body.update(overrides)
    return client.post("/api/trades", json=body)


class TestCatalogEndpoints:
    """Tests for read-only catalog endpoints."""

    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_assets(self, client):
        data = client.get("/api/assets").json()

        symbols = [a["symbol"] for a in data["assets"]]
        assert "BTC/USDT" in symbols
        assert all(a["price"] > 0 for a in data["assets"])
        assert [d["value"] for d in data["durations"]] == [30, 60, 120, 300]
        assert data["payout_multiplier"] == 1.85

    def test_config(self, client):
        data = client.get("/api/config").json()
        assert data["tick_interval_sec"] == 60.0
        assert data["starting_balance"] == 1000.0
        assert data["min_amount"] == 10.0


class TestOpenTrade:
    """Tests for POST /api/trades."""

    def test_open_trade(self, client):
        response = open_trade(client)
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert data["trade"]["status"] == "active"
        assert data["trade"]["direction"] == "up"
        assert data["trade"]["start_price"] > 0
        assert data["potential_payout"] == 185.0
        assert data["balance"] == 900.0

    def test_explicit_start_price(self, client):
        data = open_trade(client, start_price=50.0).json()
        assert data["trade"]["start_price"] == 50.0
        assert data["trade"]["current_price"] == 50.0

    def test_trade_listed_as_active(self, client):
        trade_id = open_trade(client).json()["trade"]["id"]

        trades = client.get("/api/trades/active").json()["trades"]
        assert [t["id"] for t in trades] == [trade_id]
        assert 0 <= trades[0]["progress"] <= 1
        assert trades[0]["potential_payout"] == 185.0

    @pytest.mark.parametrize("overrides", [
        {"amount": 5},
        {"amount": -100},
        {"direction": "sideways"},
        {"duration": 45},
        {"asset": "DOGE/USD"},
    ])
    def test_invalid_trade_rejected(self, client, overrides):
        response = open_trade(client, **overrides)
        assert response.status_code == 400
        assert "error" in response.json()

        assert client.get("/api/trades/active").json()["trades"] == []
        assert client.get("/api/wallet").json()["wallet"]["balance"] == 1000.0

    def test_missing_fields(self, client):
        response = client.post("/api/trades", json={"asset": "BTC/USDT"})
        assert response.status_code == 400
        assert "Missing fields" in response.json()["error"]

    def test_insufficient_balance(self, client):
        response = open_trade(client, amount=5000)
        assert response.status_code == 400
        assert "Insufficient balance" in response.json()["error"]

    def test_string_amount_cannot_overdraw(self, client):
        response = open_trade(client, amount="999999")
        assert response.status_code == 400
        assert "Insufficient balance" in response.json()["error"]

        assert client.get("/api/trades/active").json()["trades"] == []
        assert client.get("/api/wallet").json()["wallet"]["balance"] == 1000.0


class TestTradeLookup:
    """Trade lookup, history and stats."""

    def test_trade_not_found(self, client):
        response = client.get("/api/trades/missing")
        assert response.status_code == 404

    def test_settled_trade_moves_to_history(self, client):
        trade_id = open_trade(client, duration=30).json()["trade"]["id"]

        settled = server.engine.check_expiry(trade_id, now=time.time() + 31)
        assert settled is not None

        trade = client.get(f"/api/trades/{trade_id}").json()["trade"]
        assert trade["status"] in ("won", "lost")
        assert trade["end_price"] is not None

        assert client.get("/api/trades/active").json()["trades"] == []
        history = client.get("/api/trades/history").json()["trades"]
        assert [t["id"] for t in history] == [trade_id]

        stats = client.get("/api/stats").json()
        assert stats["stats"]["total_trades"] == 1
        assert stats["by_asset"][0]["asset"] == "BTC/USDT"

        wallet = client.get("/api/wallet").json()["wallet"]
        assert wallet["balance"] == round(900.0 + settled.payout, 2)

    def test_history_limit(self, client):
        for _ in range(3):
            trade_id = open_trade(client, amount=10, duration=30).json()["trade"]["id"]
            server.engine.check_expiry(trade_id, now=time.time() + 31)

        history = client.get("/api/trades/history", params={"limit": 2}).json()["trades"]
        assert len(history) == 2

    def test_negative_history_limit_rejected(self, client):
        trade_id = open_trade(client, duration=30).json()["trade"]["id"]
        server.engine.check_expiry(trade_id, now=time.time() + 31)

        response = client.get("/api/trades/history", params={"limit": -1})
        assert response.status_code == 422

        history = client.get("/api/trades/history", params={"limit": 0}).json()["trades"]
        assert history == []


class TestAssetChart:
    """Tests for GET /api/assets/{symbol}/chart."""

    def test_chart_series(self, client):
        data = client.get("/api/assets/EUR/USD/chart").json()

        assert data["symbol"] == "EUR/USD"
        assert len(data["points"]) == 50
        assert data["price"] == data["points"][-1]["price"]
        assert all(p["price"] >= 1.0850 * 0.95 for p in data["points"])

    def test_trade_seeded_from_latest_quote(self, client):
        quote = client.get("/api/assets/GOLD/chart").json()["price"]
        trade = open_trade(client, asset="GOLD").json()["trade"]
        assert trade["start_price"] == quote

    def test_config_exposes_quote_interval(self, client):
        assert client.get("/api/config").json()["quote_interval_sec"] == 60.0

    def test_unknown_asset(self, client):
        response = client.get("/api/assets/DOGE/USD/chart")
        assert response.status_code == 404

    def test_assets_include_change(self, client):
        assets = client.get("/api/assets").json()["assets"]
        assert all("change" in a for a in assets)
        assert all("name" in a for a in assets)

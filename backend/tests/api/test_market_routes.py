"""Tests for GET /market/status and GET /quotes."""

import pytest

from tests.conftest import make_quote


@pytest.fixture()
def stocked_service(fake_service):
    for symbol in ("AAPL", "MSFT", "SPY", "^GSPC", "BTC-USD"):
        fake_service.quotes[symbol] = make_quote(symbol, price=110.0, previous_close=100.0)
    return fake_service


class TestMarketStatus:
    def test_market_status_should_report_regular_session(self, client):
        # Act
        response = client.get("/market/status")

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "Open"
        assert body["schedule"] == "9:30 AM - 4:00 PM ET"
        assert body["holiday_name"] is None
        assert body["next_holiday"] == {
            "date": "2025-06-19",
            "name": "Juneteenth",
            "early_close": False,
        }


class TestQuotes:
    def test_quotes_should_run_initial_load_first(self, client, stocked_service):
        response = client.get("/quotes")

        assert response.status_code == 200
        body = response.json()
        assert body["plan"] == "INITIAL_LOAD"
        assert body["market_state"] == "REGULAR"
        assert set(body["quotes"]) == {"AAPL", "MSFT", "SPY"}
        assert set(body["index_quotes"]) == {"^GSPC", "BTC-USD"}
        aapl = body["quotes"]["AAPL"]
        assert aapl["change"] == pytest.approx(10.0)
        assert aapl["change_percent"] == pytest.approx(10.0)
        assert aapl["session"] == "Open"

    def test_quotes_should_switch_to_session_plan_after_initial_load(
        self, client, stocked_service
    ):
        client.get("/quotes")

        response = client.get("/quotes")

        assert response.json()["plan"] == "REGULAR_SESSION"
        assert set(response.json()["index_quotes"]) == {"^GSPC"}

    def test_quotes_should_omit_failed_symbols(self, client, stocked_service):
        stocked_service.failing.add("MSFT")

        response = client.get("/quotes")

        assert "MSFT" not in response.json()["quotes"]

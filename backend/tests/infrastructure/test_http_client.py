"""Tests for the curl_cffi transport in infrastructure/market_data/http_client.py."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from domain.market_schedule import MarketSchedule
from infrastructure.market_data import http_client
from infrastructure.market_data.http_client import (
    cached_fetch_json,
    clear_http_cache,
    fetch_json,
    is_retry_allowed,
    is_retryable_status,
)

URL = "https://query1.finance.yahoo.com/v8/finance/chart/AAPL"


def _response(status_code: int = 200, payload=None) -> MagicMock:
    response = MagicMock(status_code=status_code)
    response.json.return_value = payload if payload is not None else {"ok": True}
    return response


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_http_cache()
    yield
    clear_http_cache()


@pytest.fixture()
def session():
    """Patched curl_cffi session; configure session.get.side_effect per test."""
    mock_session = MagicMock()
    mock_session.__enter__.return_value = mock_session
    with (
        patch.object(http_client, "_get_session", return_value=mock_session),
        patch.object(http_client._rate_limiter, "wait"),
    ):
        yield mock_session


# ---------------------------------------------------------------------------
# Retry gating
# ---------------------------------------------------------------------------


class TestRetryGating:
    @pytest.mark.parametrize(
        "status, expected",
        [(200, False), (204, False), (404, True), (500, True), (503, True), (429, False)],
    )
    def test_is_retryable_status_should_exclude_success_and_429(self, status, expected):
        assert is_retryable_status(status) is expected

    @pytest.mark.parametrize(
        "moment, expected",
        [
            (datetime(2025, 6, 11, 15, 0, tzinfo=UTC), True),  # 11:00 ET open
            (datetime(2025, 6, 11, 12, 0, tzinfo=UTC), False),  # 08:00 ET pre
            (datetime(2025, 6, 11, 21, 0, tzinfo=UTC), False),  # 17:00 ET post
            (datetime(2025, 6, 12, 2, 0, tzinfo=UTC), True),  # 22:00 ET closed
        ],
    )
    def test_is_retry_allowed_should_skip_extended_hours(self, moment, expected):
        with patch.object(http_client, "_schedule", MarketSchedule(lambda: moment)):
            assert is_retry_allowed() is expected

    def test_return_last_outcome_should_raise_without_outcome(self):
        with pytest.raises(RuntimeError):
            http_client._return_last_outcome(MagicMock(outcome=None))


# ---------------------------------------------------------------------------
# fetch_json
# ---------------------------------------------------------------------------


class TestFetchJson:
    def test_fetch_json_should_return_payload_on_success(self, session):
        session.get.return_value = _response(200, {"chart": {"result": []}})

        assert fetch_json(URL, {"range": "1d"}) == {"chart": {"result": []}}
        assert session.get.call_count == 1

    def test_fetch_json_should_retry_server_error_once(self, session):
        session.get.side_effect = [_response(500), _response(200, {"ok": 1})]

        with patch.object(http_client, "is_retry_allowed", return_value=True):
            assert fetch_json(URL) == {"ok": 1}

        assert session.get.call_count == 2

    def test_fetch_json_should_give_up_after_two_attempts(self, session):
        session.get.return_value = _response(503)

        with patch.object(http_client, "is_retry_allowed", return_value=True):
            assert fetch_json(URL) is None

        assert session.get.call_count == 2

    def test_fetch_json_should_not_retry_rate_limited_response(self, session):
        session.get.return_value = _response(429)

        with patch.object(http_client, "is_retry_allowed", return_value=True):
            assert fetch_json(URL) is None

        assert session.get.call_count == 1

    def test_fetch_json_should_not_retry_during_extended_hours(self, session):
        session.get.return_value = _response(500)

        with patch.object(http_client, "is_retry_allowed", return_value=False):
            assert fetch_json(URL) is None

        assert session.get.call_count == 1

    def test_fetch_json_should_retry_network_errors(self, session):
        session.get.side_effect = [ConnectionError("reset"), _response(200, {"ok": 2})]

        with patch.object(http_client, "is_retry_allowed", return_value=True):
            assert fetch_json(URL) == {"ok": 2}

    def test_fetch_json_should_return_none_when_network_keeps_failing(self, session):
        session.get.side_effect = ConnectionError("reset")

        with patch.object(http_client, "is_retry_allowed", return_value=True):
            assert fetch_json(URL) is None

    def test_fetch_json_should_return_none_for_undecodable_body(self, session):
        response = _response(200)
        response.json.side_effect = ValueError("not json")
        session.get.return_value = response

        assert fetch_json(URL) is None

    def test_fetch_json_should_return_none_for_non_object_body(self, session):
        session.get.return_value = _response(200, ["a", "b"])

        assert fetch_json(URL) is None


# ---------------------------------------------------------------------------
# L1 cache
# ---------------------------------------------------------------------------


class TestCachedFetchJson:
    def test_cached_fetch_json_should_reuse_successful_payload(self, session):
        session.get.return_value = _response(200, {"chart": "x"})

        first = cached_fetch_json(URL, {"range": "1d", "interval": "1m"})
        second = cached_fetch_json(URL, {"interval": "1m", "range": "1d"})

        assert first == second == {"chart": "x"}
        assert session.get.call_count == 1

    def test_cached_fetch_json_should_not_cache_failures(self, session):
        session.get.side_effect = [_response(404), _response(200, {"chart": "y"})]

        with patch.object(http_client, "is_retry_allowed", return_value=False):
            assert cached_fetch_json(URL) is None
            assert cached_fetch_json(URL) == {"chart": "y"}

    def test_clear_http_cache_should_report_cleared_entries(self, session):
        session.get.return_value = _response(200, {"chart": "x"})
        cached_fetch_json(URL, {"range": "1d"})
        cached_fetch_json(URL, {"range": "5d"})

        assert clear_http_cache() == 2
        assert clear_http_cache() == 0

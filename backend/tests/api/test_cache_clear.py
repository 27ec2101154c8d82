"""Tests for POST /admin/cache/clear."""

from infrastructure.market_data import http_client


def test_cache_clear_should_empty_caches_and_http_cache(client, caches):
    # Arrange
    caches.rsi.set_rsi("AAPL", 60.0)
    with http_client._json_cache_lock:
        http_client._json_cache["https://example.test/chart?range=1d"] = {"chart": {}}

    # Act
    response = client.post("/admin/cache/clear")

    # Assert
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "caches": 7, "http": 1}
    assert caches.rsi.get_rsi("AAPL") is None

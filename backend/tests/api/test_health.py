"""Tests for GET /health."""


def test_health_should_return_ok(client):
    # Act
    response = client.get("/health")

    # Assert
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "tickertape-backend"}

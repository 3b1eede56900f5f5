"""Tests for the liveness and readiness probes."""

import pytest

pytestmark = pytest.mark.integration


def test_health(api_client):
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_health_while_shutting_down(api_client):
    api_client.app.state.shutting_down = True
    try:
        response = api_client.get("/api/health")
    finally:
        api_client.app.state.shutting_down = False
    assert response.status_code == 503


def test_ready_checks_database_and_redis(api_client):
    response = api_client.get("/api/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": True, "redis": True}}


def test_responses_carry_correlation_id(api_client):
    response = api_client.get("/api/health", headers={"X-Request-ID": "3fa85f64-5717-4562-b3fc-2c963f66afa6"})
    assert response.headers["X-Request-ID"] == "3fa85f64-5717-4562-b3fc-2c963f66afa6"

"""
Tests for health check endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from tlytics.config import Settings
from tlytics.main import create_app


@pytest.fixture
def client(tmp_path):
    app = create_app(Settings(DB_PATH=str(tmp_path / "health.db"), FLUSH_PERIOD=3600, LOG_JSON=False))
    with TestClient(app) as c:
        yield c


def test_health_liveness(client):
    """Test liveness health check."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "tlytics"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_health_readiness(client):
    """Test readiness health check."""
    r = client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready, e.g. a nearly full disk)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "tlytics"
    assert data["checks"]["store"]["status"] == "ok"
    assert "disk_space" in data["checks"]
    assert "memory" in data["checks"]
    assert data["buffered_events"] == 0


def test_readiness_fails_without_store(client):
    """Test readiness reports not_ready when the store is closed."""
    analytics = client.app.state.analytics
    client.portal.call(analytics.store.close)

    r = client.get("/health/ready")
    assert r.status_code == 503
    data = r.json()
    assert data["status"] == "not_ready"
    assert data["checks"]["store"]["status"] == "error"

    client.portal.call(analytics.store.open)


def test_metrics_endpoint(client):
    """Test Prometheus metrics endpoint."""
    client.get("/health")
    r = client.get("/metrics/")
    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert "tlytics_events_emitted_total" in content


def test_correlation_id_in_response(client):
    """Test that correlation ID is added to response headers."""
    r = client.get("/health")
    assert "x-correlation-id" in r.headers


def test_correlation_id_propagation(client):
    """Test that provided correlation ID is propagated."""
    correlation_id = "test-correlation-id-123"
    r = client.get("/health", headers={"x-correlation-id": correlation_id})
    assert r.headers["x-correlation-id"] == correlation_id

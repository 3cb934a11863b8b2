"""Tests for correlation ID middleware and error bodies.

Verifies:
- X-Request-ID header in responses
- Custom correlation ID echoing
- Debug ID in error responses without internal details
- Different correlation IDs for different requests
"""

import uuid

from fastapi.testclient import TestClient


def test_response_includes_correlation_id_header(api_client: TestClient):
    """Every API response should include X-Request-ID header with valid UUID."""
    response = api_client.get("/api/health")

    assert "x-request-id" in response.headers
    correlation_id = response.headers["x-request-id"]
    try:
        uuid.UUID(correlation_id)
    except ValueError:
        raise AssertionError(f"X-Request-ID header value '{correlation_id}' is not a valid UUID")


def test_custom_correlation_id_echoed(api_client: TestClient):
    response = api_client.get("/api/health", headers={"X-Request-ID": "custom-id-123"})

    assert response.headers["x-request-id"] == "custom-id-123"


def test_error_response_includes_debug_id(api_client: TestClient, store):
    """Validation lookups that fail surface as 503 with only a debug_id."""
    store.unavailable = True

    response = api_client.post("/api/projects/proj-1/timeline/validate")

    assert response.status_code == 503
    response_data = response.json()
    uuid.UUID(response_data["debug_id"])

    response_text = response.text.lower()
    leaked = [kw for kw in ("traceback", "sqlalchemy", "password") if kw in response_text]
    assert not leaked, f"Response leaked internal details: {leaked}"


def test_different_requests_get_different_ids(api_client: TestClient):
    id1 = api_client.get("/api/health").headers["x-request-id"]
    id2 = api_client.get("/api/health").headers["x-request-id"]

    assert id1 != id2, "Two separate requests should have different correlation IDs"


def test_health_reports_shutting_down(api_client: TestClient):
    api_client.app.state.shutting_down = True

    response = api_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"

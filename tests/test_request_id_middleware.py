from __future__ import annotations

from fastapi.testclient import TestClient

from gallery.core.config import LogSettings


def test_preserves_incoming_request_id_header(client: TestClient):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_request_id_is_echoed_in_error_bodies(client: TestClient):
    resp = client.get("/api/posts/999", headers={"X-Request-ID": "req-404"})

    assert resp.status_code == 404
    assert resp.json()["error"]["request_id"] == "req-404"


def test_custom_request_id_header(build_app):
    client = TestClient(build_app(log=LogSettings(level="WARNING", request_id_header="X-Correlation-ID")))

    resp = client.get("/health", headers={"X-Correlation-ID": "corr-1"})

    assert resp.headers.get("X-Correlation-ID") == "corr-1"
    assert "X-Request-ID" not in resp.headers

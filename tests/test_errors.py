"""Tests for the problem-details error boundary and correlation ids."""

import pytest

from api import create_app
from services.errors import ConfigurationError, TransientStoreError

PROBLEM_KEYS = {"type", "title", "status", "detail", "instance", "correlation_id", "timestamp"}


@pytest.fixture
def app():
    app = create_app("testing")

    @app.get("/boom")
    def boom():
        raise RuntimeError("database password is hunter2")

    @app.get("/store-down")
    def store_down():
        raise TransientStoreError("connection refused by db-01:5432")

    yield app
    app.extensions["store"].close()


def test_unknown_route_is_a_problem_document(client):
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.mimetype == "application/problem+json"
    body = resp.get_json()
    assert PROBLEM_KEYS <= set(body)
    assert body["status"] == 404
    assert body["instance"] == "/api/v1/nope"


def test_unhandled_exception_hides_details(client):
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["detail"] == "An unexpected error occurred"
    assert "hunter2" not in resp.get_data(as_text=True)
    assert "exception_type" not in body


def test_transient_store_error_is_retryable_500(client):
    resp = client.get("/store-down")
    assert resp.status_code == 500
    assert resp.headers["Retry-After"] == "1"
    assert "db-01" not in resp.get_data(as_text=True)


def test_correlation_id_is_echoed(client):
    resp = client.get("/api/v1/nope", headers={"X-Correlation-ID": "req-123"})
    assert resp.headers["X-Correlation-ID"] == "req-123"
    assert resp.get_json()["correlation_id"] == "req-123"


def test_correlation_id_is_generated_when_missing_or_invalid(client):
    resp = client.get("/api/v1/health", headers={"X-Correlation-ID": "bad id with spaces"})
    generated = resp.headers["X-Correlation-ID"]
    assert generated and generated != "bad id with spaces"


def test_health(client):
    body = client.get("/api/v1/health").get_json()
    assert body["status"] == "ok"
    assert body["version"] == "1.0.0"


def test_short_jwt_secret_fails_at_startup():
    with pytest.raises(ConfigurationError):
        create_app("testing", overrides={"JWT_SECRET": "short"})

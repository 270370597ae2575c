"""Tests for the structlog setup and correlation id context."""

from flask import Flask

from api.correlation import init_correlation
from utils.logging import (
    _add_correlation_id,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


def test_processor_adds_the_current_correlation_id():
    set_correlation_id("req-42")
    try:
        event = _add_correlation_id(None, "info", {"event": "user_logged_in"})
    finally:
        clear_correlation_id()
    assert event == {"event": "user_logged_in", "correlation_id": "req-42"}


def test_processor_leaves_entries_alone_outside_a_request():
    clear_correlation_id()
    assert _add_correlation_id(None, "info", {"event": "startup"}) == {"event": "startup"}


def test_set_correlation_id_generates_one():
    cid = set_correlation_id()
    try:
        assert cid and get_correlation_id() == cid
    finally:
        clear_correlation_id()


def test_request_binds_and_clears_the_id():
    app = Flask(__name__)
    init_correlation(app)
    seen = {}

    @app.get("/ping")
    def ping():
        seen["cid"] = get_correlation_id()
        return "pong"

    resp = app.test_client().get("/ping", headers={"X-Correlation-ID": "abc-1"})
    assert resp.headers["X-Correlation-ID"] == "abc-1"
    assert seen["cid"] == "abc-1"
    assert get_correlation_id() is None

"""
Per-request correlation ids.

The id comes from the X-Correlation-ID request header when present,
otherwise a new UUID4. It is bound into the structlog context for the
duration of the request and echoed on every response.
"""
import re

import structlog
from flask import request

from utils.logging import clear_correlation_id, get_correlation_id, set_correlation_id

HEADER = "X-Correlation-ID"

# accept only short, printable ids from clients
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def init_correlation(app) -> None:
    @app.before_request
    def bind_correlation_id():
        incoming = request.headers.get(HEADER, "")
        set_correlation_id(incoming if _VALID_ID.match(incoming) else None)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(method=request.method, path=request.path)

    @app.after_request
    def echo_correlation_id(response):
        cid = get_correlation_id()
        if cid:
            response.headers[HEADER] = cid
        return response

    @app.teardown_request
    def unbind_correlation_id(exception=None):
        structlog.contextvars.clear_contextvars()
        clear_correlation_id()

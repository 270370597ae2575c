"""
The single boundary between typed errors and HTTP.

Every error response is an RFC 7807 problem-details document
(application/problem+json) with a correlation id and a timestamp.
"""
from datetime import datetime, timezone

from flask import current_app, jsonify, request
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from services.errors import (
    AuthenticationError,
    ErrorKind,
    PreconditionFailedError,
    ServiceError,
    ValidationError,
)
from utils.logging import get_correlation_id, get_logger

logger = get_logger(__name__)

PROBLEM_MIMETYPE = "application/problem+json"

# kind -> (status, title, type URI)
PROBLEM_TYPES = {
    ErrorKind.VALIDATION: (422, "Validation failed", "https://tools.ietf.org/html/rfc4918#section-11.2"),
    ErrorKind.AUTHENTICATION: (401, "Unauthorized", "https://tools.ietf.org/html/rfc7235#section-3.1"),
    ErrorKind.AUTHORIZATION: (403, "Forbidden", "https://tools.ietf.org/html/rfc7231#section-6.5.3"),
    ErrorKind.NOT_FOUND: (404, "Resource not found", "https://tools.ietf.org/html/rfc7231#section-6.5.4"),
    ErrorKind.CONFLICT: (409, "Conflict", "https://tools.ietf.org/html/rfc7231#section-6.5.8"),
    ErrorKind.PRECONDITION_FAILED: (412, "Precondition failed", "https://tools.ietf.org/html/rfc7232#section-4.2"),
    ErrorKind.TRANSIENT_STORE: (500, "Internal server error", "https://tools.ietf.org/html/rfc7231#section-6.6.1"),
}

GENERIC_500_DETAIL = "An unexpected error occurred"


def problem_response(status: int, title: str, detail: str, type_: str = "about:blank", **extensions):
    payload = {
        "type": type_,
        "title": title,
        "status": status,
        "detail": detail,
        "instance": request.path,
        "correlation_id": get_correlation_id(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    payload.update({k: v for k, v in extensions.items() if v is not None})
    response = jsonify(payload)
    response.status_code = status
    response.mimetype = PROBLEM_MIMETYPE
    return response


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def handle_service_error(err: ServiceError):
        status, title, type_ = PROBLEM_TYPES[err.kind]

        if isinstance(err, AuthenticationError):
            # reason stays in logs; the body only ever carries the public message
            logger.warning("authentication_failed", reason=err.reason)
            response = problem_response(status, title, err.public_message, type_)
            response.headers["WWW-Authenticate"] = "Bearer"
            return response

        if isinstance(err, ValidationError):
            return problem_response(status, title, err.message, type_, errors=err.errors)

        if isinstance(err, PreconditionFailedError):
            return problem_response(
                status, title, err.message, type_,
                current_etag=err.current_etag,
                presented_etag=err.presented_etag,
            )

        if err.kind is ErrorKind.TRANSIENT_STORE:
            logger.error("store_unavailable", error=err.message)
            response = problem_response(status, title, GENERIC_500_DETAIL, type_)
            response.headers["Retry-After"] = "1"
            return response

        return problem_response(status, title, err.message, type_, **(err.details or {}))

    # Marshmallow validation errors map to 422
    @app.errorhandler(SchemaValidationError)
    def handle_schema_error(err: SchemaValidationError):
        status, title, type_ = PROBLEM_TYPES[ErrorKind.VALIDATION]
        errors = err.messages if isinstance(err.messages, dict) else {"_schema": err.messages}
        return problem_response(status, title, "Invalid input", type_, errors=errors)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return problem_response(err.code or 500, err.name, err.description or err.name)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("unhandled_exception", exception_type=err.__class__.__name__)
        details = {}
        # In dev, include exception details to speed up debugging; never a stack trace
        if current_app and current_app.debug:
            details = {"exception_type": err.__class__.__name__, "exception_message": str(err)}
        status, title, type_ = PROBLEM_TYPES[ErrorKind.TRANSIENT_STORE]
        return problem_response(status, title, GENERIC_500_DETAIL, type_, **details)

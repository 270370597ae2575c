"""
Typed service errors.

Every error raised below the HTTP layer carries an ErrorKind. The single
translation to status codes and problem-details bodies lives in api.errors;
nothing in this package knows about HTTP.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PRECONDITION_FAILED = "precondition_failed"
    TRANSIENT_STORE = "transient_store"


class ConfigurationError(Exception):
    """Raised at start-up when required settings are missing or unsafe."""


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    kind: ErrorKind = ErrorKind.VALIDATION
    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError):
    kind = ErrorKind.VALIDATION

    def __init__(self, errors: Dict[str, List[str]], message: str = "Invalid input"):
        super().__init__(message)
        self.errors = errors


class AuthenticationError(ServiceError):
    """
    Terminal authentication failure.

    The public message is fixed per family so a response never reveals which
    check failed; `reason` is for server-side logs only.
    """

    kind = ErrorKind.AUTHENTICATION
    public_message = "Authentication failed"

    def __init__(self, reason: str = ""):
        super().__init__(self.public_message)
        self.reason = reason


class InvalidCredentialsError(AuthenticationError):
    public_message = "Invalid email or password"


class AccountInactiveError(InvalidCredentialsError):
    # Same public message as a bad password: inactive accounts are not disclosed.
    pass


class InvalidTokenError(AuthenticationError):
    public_message = "Invalid or expired token"


class AuthorizationError(ServiceError):
    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str = "You are not allowed to access this resource"):
        super().__init__(message)


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, key: str):
        super().__init__(f"{resource} '{key}' was not found")
        self.resource = resource
        self.key = key


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT


class PreconditionFailedError(ServiceError):
    kind = ErrorKind.PRECONDITION_FAILED

    def __init__(self, current_etag: str, presented_etag: Optional[str]):
        super().__init__(
            "The resource has been modified since you last retrieved it. "
            "Fetch the current version and retry."
        )
        self.current_etag = current_etag
        self.presented_etag = presented_etag


class TransientStoreError(ServiceError):
    kind = ErrorKind.TRANSIENT_STORE
    retryable = True

    def __init__(self, message: str = "The data store is temporarily unavailable"):
        super().__init__(message)

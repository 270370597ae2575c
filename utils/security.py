"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Access token signing/verification via PyJWT
- Opaque refresh token generation
"""
from __future__ import annotations

import secrets
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from services.errors import ConfigurationError, InvalidTokenError

MIN_SECRET_BYTES = 32
# 48 random bytes -> 384 bits of entropy, 64 url-safe characters
REFRESH_TOKEN_BYTES = 48


class PasswordService:
    """Argon2 hashing with a dummy hash for timing-uniform misses."""

    def __init__(self, time_cost: Optional[int] = None, memory_cost: Optional[int] = None):
        kwargs = {}
        if time_cost:
            kwargs["time_cost"] = time_cost
        if memory_cost:
            kwargs["memory_cost"] = memory_cost
            kwargs["parallelism"] = 1
        self._ph = PasswordHasher(**kwargs)
        self._dummy_hash = self._ph.hash(secrets.token_urlsafe(16))

    def hash(self, password: str) -> str:
        """Hash a plaintext password using Argon2
        """
        return self._ph.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """ Verify a plaintext password using argon2
        """
        try:
            return self._ph.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def burn_verification(self, password: str) -> bool:
        """Spend the same time as a real verification; always False."""
        self.verify(self._dummy_hash, password)
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


class TokenIssuer(ABC):
    @abstractmethod
    def issue_access_token(self, user, roles: Iterable[str], now: datetime) -> Tuple[str, datetime]:
        """Return a signed access token and its expiry."""

    @abstractmethod
    def decode_access_token(self, token: str) -> Dict[str, Any]:
        """Return verified claims or raise InvalidTokenError."""

    @abstractmethod
    def issue_refresh_token(self) -> str:
        ...


class JwtTokenIssuer(TokenIssuer):
    """HS256 access tokens; the secret is checked once, here."""

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        issuer: str = "account-api",
        audience: str = "account-api-clients",
        access_ttl: timedelta = timedelta(minutes=15),
    ):
        if not secret:
            raise ConfigurationError("JWT_SECRET is not set")
        if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigurationError(f"JWT_SECRET must be at least {MIN_SECRET_BYTES} bytes long")
        self._secret = secret
        self._algorithm = algorithm
        self._issuer = issuer
        self._audience = audience
        self.access_ttl = access_ttl

    @classmethod
    def from_settings(cls, settings) -> "JwtTokenIssuer":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_ttl=settings.access_token_ttl,
        )

    def issue_access_token(self, user, roles, now):
        exp = now + self.access_ttl
        payload = {
            "iss": self._issuer,
            "aud": self._audience,
            "sub": str(user.id),
            "email": user.email,
            "name": user.display_name,
            "roles": list(roles),
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
            "type": "access",
            "jti": generate_jti(),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return token, exp

    def decode_access_token(self, token):
        """
        Decode and validate a JWT. Raises InvalidTokenError on invalid
        signature, expiry, issuer, audience or token type.
        """
        try:
            decoded = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidTokenError("access token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError(f"access token rejected: {exc}") from exc

        if decoded.get("type") != "access":
            raise InvalidTokenError("wrong token type")
        return decoded

    def issue_refresh_token(self):
        return generate_refresh_token()

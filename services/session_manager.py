"""
Authentication lifecycle over refresh tokens.

Token states: ACTIVE -> ROTATED (used for a refresh) | REVOKED (logout,
logout-all, password change, deactivation) | EXPIRED (time only).

The manager only talks to the abstract CredentialStore and TokenIssuer.
Rotation relies on the store's atomic rotate_refresh_token, so two requests
presenting the same token can never both succeed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from models.base_model import utcnow
from models.credential_store import CredentialStore
from models.refresh_token import RefreshToken
from models.user import User, normalize_email
from services.errors import (
    AccountInactiveError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from utils.logging import get_logger
from utils.security import PasswordService, TokenIssuer

logger = get_logger(__name__)

LOGOUT_REASON = "User logout"
LOGOUT_ALL_REASON = "Logout from all devices"
PASSWORD_CHANGED_REASON = "Password changed"


@dataclass(frozen=True)
class AuthResult:
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    user: User


class SessionManager:
    def __init__(
        self,
        store: CredentialStore,
        issuer: TokenIssuer,
        passwords: PasswordService,
        refresh_ttl: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._issuer = issuer
        self._passwords = passwords
        self._refresh_ttl = refresh_ttl
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def _new_refresh_token(self, user_id: str, now: datetime) -> RefreshToken:
        return RefreshToken(
            token=self._issuer.issue_refresh_token(),
            user_id=user_id,
            created_at=now,
            updated_at=now,
            expires_at=now + self._refresh_ttl,
        )

    def _issue(self, user: User, now: datetime) -> Tuple[str, datetime]:
        return self._issuer.issue_access_token(user, user.roles or [], now)

    def register(
        self,
        email: str,
        password: str,
        display_name: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthResult:
        email = normalize_email(email)
        if self._store.get_user_by_email(email) is not None:
            raise ConflictError("A user with this email address already exists")

        now = self.now()
        user = User(
            email=email,
            display_name=display_name,
            first_name=first_name,
            last_name=last_name,
            password_hash=self._passwords.hash(password),
            roles=["user"],
            created_at=now,
            updated_at=now,
        )
        self._store.add_user(user)

        access_token, access_exp = self._issue(user, now)
        refresh = self._new_refresh_token(user.id, now)
        self._store.add_refresh_token(refresh)
        logger.info("user_registered", user_id=user.id)
        return AuthResult(access_token, access_exp, refresh.token, refresh.expires_at, user)

    def login(self, email: str, password: str) -> AuthResult:
        user = self._store.get_user_by_email(normalize_email(email))
        if user is None:
            self._passwords.burn_verification(password)
            logger.warning("login_failed", reason="unknown_email")
            raise InvalidCredentialsError("unknown email")
        if not self._passwords.verify(user.password_hash, password):
            logger.warning("login_failed", reason="bad_password", user_id=user.id)
            raise InvalidCredentialsError("password mismatch")
        if not user.is_active:
            logger.warning("login_failed", reason="inactive", user_id=user.id)
            raise AccountInactiveError("account inactive")

        now = self.now()
        access_token, access_exp = self._issue(user, now)
        refresh = self._new_refresh_token(user.id, now)
        self._store.add_refresh_token(refresh)
        logger.info("user_logged_in", user_id=user.id)
        return AuthResult(access_token, access_exp, refresh.token, refresh.expires_at, user)

    def refresh(self, presented: str) -> AuthResult:
        now = self.now()
        current = self._store.get_refresh_token(presented)
        if current is None:
            logger.warning("refresh_failed", reason="unknown_token")
            raise InvalidTokenError("unknown refresh token")
        if not current.is_active(now):
            logger.warning(
                "refresh_failed", reason="not_active", user_id=current.user_id, state=current.state(now).value
            )
            raise InvalidTokenError("refresh token not active")

        user = self._store.get_user(current.user_id)
        if user is None or not user.is_active:
            logger.warning("refresh_failed", reason="owner_missing_or_inactive", user_id=current.user_id)
            raise InvalidTokenError("owner missing or inactive")

        replacement = self._new_refresh_token(user.id, now)
        if not self._store.rotate_refresh_token(presented, replacement, now):
            # another request rotated or revoked it after our read
            logger.warning("refresh_failed", reason="lost_rotation_race", user_id=user.id)
            raise InvalidTokenError("refresh token already used")

        access_token, access_exp = self._issue(user, now)
        logger.info("tokens_rotated", user_id=user.id)
        return AuthResult(access_token, access_exp, replacement.token, replacement.expires_at, user)

    def validate_refresh_token(self, presented: str) -> bool:
        """True if the token could be used for a refresh right now. Consumes nothing."""
        if not presented:
            return False
        now = self.now()
        current = self._store.get_refresh_token(presented)
        if current is None or not current.is_active(now):
            return False
        user = self._store.get_user(current.user_id)
        return user is not None and user.is_active

    def logout(self, token: str) -> None:
        if self._store.revoke_refresh_token(token, LOGOUT_REASON, self.now()):
            logger.info("refresh_token_revoked", reason=LOGOUT_REASON)

    def logout_all(self, user_id: str, reason: str = LOGOUT_ALL_REASON) -> int:
        revoked = self._store.revoke_tokens_for_user(user_id, reason, self.now())
        logger.info("refresh_tokens_revoked", user_id=user_id, count=revoked, reason=reason)
        return revoked

    def change_password(self, user_id: str, current_password: str, new_password: str) -> int:
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if not self._passwords.verify(user.password_hash, current_password):
            raise ValidationError({"current_password": ["Current password is incorrect"]})
        self._store.set_password_hash(user_id, self._passwords.hash(new_password), self.now())
        return self.logout_all(user_id, PASSWORD_CHANGED_REASON)

    def authenticate(self, access_token: str) -> Tuple[User, dict]:
        claims = self._issuer.decode_access_token(access_token)
        user = self._store.get_user(claims["sub"])
        if user is None or not user.is_active:
            raise InvalidTokenError("token subject missing or inactive")
        return user, claims

    def sweep_expired(self) -> int:
        deleted = self._store.delete_expired_tokens(self.now())
        logger.info("expired_tokens_swept", count=deleted)
        return deleted

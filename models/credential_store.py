"""
Abstract credential store.

Each operation names the columns it touches, so the atomicity each one needs
is part of its contract instead of being hidden behind a generic save().
Implementations: models.db_storage.DBStorage (SQLAlchemy) and
models.memory_storage.MemoryStorage (in-process, for tests and local runs).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from models.refresh_token import RefreshToken
from models.user import User


class CredentialStore(ABC):
    # users

    @abstractmethod
    def add_user(self, user: User) -> User:
        """Insert a user. Raises ConflictError if the email is taken."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Look up by normalized email."""

    @abstractmethod
    def list_users(
        self, page: int, limit: int, include_inactive: bool = False, search: Optional[str] = None
    ) -> Tuple[List[User], int]:
        """
        Return one page of users ordered by email, plus the total count.

        `search` keeps users whose display name contains it, case-insensitively.
        """

    @abstractmethod
    def count_users(self, include_inactive: bool = True) -> int:
        ...

    @abstractmethod
    def update_user_profile(
        self,
        user_id: str,
        changes: dict,
        now: datetime,
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[User]:
        """
        Set display_name / first_name / last_name from `changes`.

        When `expected_updated_at` is given the write only happens if the row
        still carries that timestamp. Returns the updated user, or None when
        the row is missing or was modified in between.
        """

    @abstractmethod
    def set_user_email(
        self,
        user_id: str,
        email: str,
        now: datetime,
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[User]:
        """
        Same contract as update_user_profile; ConflictError on duplicate.
        A new address is unverified, so email_verified is reset.
        """

    @abstractmethod
    def set_user_active(self, user_id: str, active: bool, now: datetime) -> Optional[User]:
        """
        Flip is_active (and deactivated_at) only if it currently differs from
        `active`. None if the user is missing or already in that state.
        """

    @abstractmethod
    def set_email_verified(self, user_id: str, now: datetime) -> Optional[User]:
        """Mark an active, unverified user's email verified; None otherwise."""

    @abstractmethod
    def set_user_roles(self, user_id: str, roles: Iterable[str], now: datetime) -> Optional[User]:
        ...

    @abstractmethod
    def set_password_hash(self, user_id: str, password_hash: str, now: datetime) -> bool:
        ...

    @abstractmethod
    def delete_user(self, user_id: str) -> bool:
        """Hard delete; the user's refresh tokens go with it."""

    # refresh tokens

    @abstractmethod
    def add_refresh_token(self, token: RefreshToken) -> None:
        ...

    @abstractmethod
    def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        ...

    @abstractmethod
    def list_refresh_tokens(self, user_id: str) -> List[RefreshToken]:
        """All tokens of a user, newest first."""

    @abstractmethod
    def rotate_refresh_token(
        self, presented: str, replacement: RefreshToken, now: datetime
    ) -> bool:
        """
        Atomically revoke `presented` (only if still active at `now`), point
        its replaced_by_token at `replacement.id` and insert `replacement`.

        Both writes happen or neither does. Returns False when the presented
        token was not active, in which case nothing is written.
        """

    @abstractmethod
    def revoke_refresh_token(self, token: str, reason: str, now: datetime) -> bool:
        """Revoke one token if it is not revoked yet. True if a row changed."""

    @abstractmethod
    def revoke_tokens_for_user(self, user_id: str, reason: str, now: datetime) -> int:
        """Revoke every active token of the user; returns the number revoked."""

    @abstractmethod
    def delete_expired_tokens(self, now: datetime) -> int:
        """Delete rows with expires_at <= now; returns the number deleted."""

    # lifecycle

    def close(self) -> None:
        """Release per-request resources. No-op by default."""
